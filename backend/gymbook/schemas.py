from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.calendar import can_cancel, hours_until, weekday_name
from .models import GymClass, Reservation, ReservationStatus, User, UserRole
from .utils.time import gym_timezone, utc_naive_to_gym


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    confirm_password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    user_id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime

    @field_serializer("created_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.astimezone(gym_timezone()).isoformat()

    @classmethod
    def from_db(cls, *, user: User) -> "UserRead":
        return cls(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=utc_naive_to_gym(user.created_at),
        )


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class RoleChange(BaseModel):
    role: UserRole


# Numeric class fields are left unconstrained here: the class validator
# reports every out-of-range field at once.
class ClassCreate(BaseModel):
    modality: str
    weekday: int
    start_time: str
    duration_minutes: int
    capacity: int
    instructor_id: Optional[int] = None
    recurring: bool = True
    description: Optional[str] = None


class ClassUpdate(BaseModel):
    modality: Optional[str] = None
    weekday: Optional[int] = None
    start_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    capacity: Optional[int] = None
    instructor_id: Optional[int] = None
    recurring: Optional[bool] = None
    description: Optional[str] = None


class ClassActiveToggle(BaseModel):
    active: bool


class ClassRead(BaseModel):
    class_id: int
    modality: str
    instructor_id: int
    weekday: int
    weekday_name: str
    start_time: str
    duration_minutes: int
    capacity: int
    occupied_seats: int
    remaining: int
    active: bool
    recurring: bool
    description: Optional[str]

    @classmethod
    def from_db(cls, *, gym_class: GymClass) -> "ClassRead":
        return cls(
            class_id=gym_class.id,
            modality=gym_class.modality,
            instructor_id=gym_class.instructor_id,
            weekday=gym_class.weekday,
            weekday_name=weekday_name(gym_class.weekday),
            start_time=gym_class.start_time,
            duration_minutes=gym_class.duration_minutes,
            capacity=gym_class.capacity,
            occupied_seats=gym_class.occupied_seats,
            remaining=max(gym_class.capacity - gym_class.occupied_seats, 0),
            active=gym_class.active,
            recurring=gym_class.recurring,
            description=gym_class.description,
        )


class OccurrenceRead(BaseModel):
    class_id: int
    occurrence_at: datetime
    remaining: int

    @field_serializer("occurrence_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.astimezone(gym_timezone()).isoformat()


class ReservationCreate(BaseModel):
    class_id: int
    occurrence_at: datetime


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class AttendanceMark(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    reservation_id: int
    class_id: int
    student_id: int
    status: ReservationStatus
    occurrence_at: datetime
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    modality: str
    weekday_name: str
    start_time: str
    duration_minutes: int
    can_cancel: bool
    hours_until: int

    @field_serializer("occurrence_at", "created_at", "cancelled_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return dt.astimezone(gym_timezone()).isoformat()

    @classmethod
    def from_db(
        cls,
        *,
        reservation: Reservation,
        gym_class: GymClass,
        now: Optional[datetime] = None,
    ) -> "ReservationRead":
        now = now or datetime.now(timezone.utc)
        occurrence = utc_naive_to_gym(reservation.occurrence_at)
        return cls(
            reservation_id=reservation.id,
            class_id=reservation.class_id,
            student_id=reservation.student_id,
            status=reservation.status,
            occurrence_at=occurrence,
            created_at=utc_naive_to_gym(reservation.created_at),
            cancelled_at=utc_naive_to_gym(reservation.cancelled_at) if reservation.cancelled_at else None,
            cancel_reason=reservation.cancel_reason,
            modality=gym_class.modality,
            weekday_name=weekday_name(gym_class.weekday),
            start_time=gym_class.start_time,
            duration_minutes=gym_class.duration_minutes,
            can_cancel=reservation.status == ReservationStatus.CONFIRMED and can_cancel(occurrence, now),
            hours_until=hours_until(occurrence, now),
        )


class RosterEntry(BaseModel):
    reservation_id: int
    student_id: int
    student_name: str
    student_email: str
    status: ReservationStatus


class RosterRead(BaseModel):
    class_id: int
    occurrence_at: datetime
    capacity: int
    entries: list[RosterEntry]

    @field_serializer("occurrence_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.astimezone(gym_timezone()).isoformat()


class StatusCounts(BaseModel):
    confirmed: int = 0
    cancelled: int = 0
    attended: int = 0
    absent: int = 0

    @classmethod
    def from_counts(cls, counts: dict[ReservationStatus, int]) -> "StatusCounts":
        return cls(**{status.value: total for status, total in counts.items()})


class StudentStatsRead(BaseModel):
    total: int
    by_status: StatusCounts
    attendance_rate: int
    cancellation_rate: int
    training_minutes: int
    remaining_bookings: int


class GymStatsRead(BaseModel):
    total_classes: int
    active_classes: int
    registered_students: int
    students_with_reservations: int
    reservations_by_status: StatusCounts
    classes_held: int
    attendance_rate: int
    average_occupancy: int

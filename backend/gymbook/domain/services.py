from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..models import GymClass, ReservationStatus, UserRole
from .calendar import can_cancel, monday_first_index, parse_time, to_weekday_number
from .errors import (
    CancelNotAllowedError,
    ClassFullError,
    DuplicateReservationError,
    InvalidOccurrenceError,
    InvalidStatusTransitionError,
    PermissionDeniedError,
    ReservationLimitExceededError,
)

MAX_ACTIVE_RESERVATIONS = 3

ATTENDANCE_STATUSES = frozenset({ReservationStatus.ATTENDED, ReservationStatus.ABSENT})
HISTORY_STATUSES = (ReservationStatus.CANCELLED, ReservationStatus.ATTENDED, ReservationStatus.ABSENT)
ROSTER_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.ATTENDED, ReservationStatus.ABSENT)


@dataclass(frozen=True)
class BookingSnapshot:
    capacity: int
    occupied_seats: int
    student_active_reservations: int
    student_has_same_occurrence: bool


def validate_reservation(snapshot: BookingSnapshot, *, max_active: int = MAX_ACTIVE_RESERVATIONS) -> int:
    """
    Pure validation of a new booking: reservation cap, seats left, duplicates, in that order.
    Returns the seats left after booking if OK. Raises domain errors otherwise.
    """
    if snapshot.student_active_reservations >= max_active:
        raise ReservationLimitExceededError(f"you already hold {max_active} active reservations")
    if snapshot.occupied_seats >= snapshot.capacity:
        raise ClassFullError("class is full")
    if snapshot.student_has_same_occurrence:
        raise DuplicateReservationError("you already have a reservation for this class")
    return snapshot.capacity - snapshot.occupied_seats - 1


def validate_occurrence(
    occurrence_local: datetime,
    *,
    weekday: int,
    start_time: str,
    now: datetime,
) -> None:
    """Check a concrete date-time (in gym local time) is a future slot of the weekly class."""
    if to_weekday_number(occurrence_local) != weekday or occurrence_local.strftime("%H:%M") != start_time:
        raise InvalidOccurrenceError("date does not match the class schedule")
    if occurrence_local.second or occurrence_local.microsecond:
        raise InvalidOccurrenceError("date does not match the class schedule")
    if occurrence_local <= now:
        raise InvalidOccurrenceError("class occurrence is in the past")


def validate_cancellation(
    status: ReservationStatus,
    occurrence: datetime,
    *,
    now: datetime,
    hours_before: int,
    enforce_lead_time: bool = True,
) -> bool:
    """
    Decide whether a reservation in `status` can move to cancelled.
    Returns False when it is already cancelled (nothing to do).
    """
    if status == ReservationStatus.CANCELLED:
        return False
    if status != ReservationStatus.CONFIRMED:
        raise InvalidStatusTransitionError(f"cannot cancel a reservation marked {status.value}")
    if enforce_lead_time and not can_cancel(occurrence, now, hours=hours_before):
        raise CancelNotAllowedError(f"reservations can only be cancelled up to {hours_before} hours before class")
    return True


def validate_attendance(status: ReservationStatus, target: ReservationStatus) -> bool:
    """
    Decide whether attendance can be recorded.
    Returns False when the reservation already carries `target`.
    """
    if target not in ATTENDANCE_STATUSES:
        raise InvalidStatusTransitionError(f"attendance must be one of: attended, absent (got {target.value})")
    if status == target:
        return False
    if status != ReservationStatus.CONFIRMED:
        raise InvalidStatusTransitionError(f"cannot mark {target.value} on a reservation marked {status.value}")
    return True


def percentage(value: int, total: int) -> int:
    if total == 0:
        return 0
    # round half up
    return int(value * 100 / total + 0.5)


def attendance_rate(attended: int, absent: int) -> int:
    return percentage(attended, attended + absent)


def sort_classes(classes: Iterable[GymClass]) -> list[GymClass]:
    """Order classes Monday first (Sunday last), then by start time."""
    return sorted(classes, key=lambda c: (monday_first_index(c.weekday), parse_time(c.start_time), c.id or 0))


@dataclass(frozen=True)
class Actor:
    """The authenticated user on whose behalf a use case runs."""

    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.INSTRUCTOR, UserRole.ADMIN)


def ensure_can_manage_class(actor: Actor, instructor_id: int) -> None:
    if actor.is_admin:
        return
    if actor.role == UserRole.INSTRUCTOR and actor.user_id == instructor_id:
        return
    raise PermissionDeniedError("only the class instructor or an admin can do this")

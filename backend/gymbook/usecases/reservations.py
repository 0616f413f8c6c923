import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo

from ..domain.errors import (
    CapacityExceededError,
    ClassFullError,
    ClassInactiveError,
    InvalidOccurrenceError,
    NotFoundError,
    PermissionDeniedError,
)
from ..domain.repositories import ClassRepository, ReservationFilter, ReservationRepository, UserRepository
from ..domain.services import (
    HISTORY_STATUSES,
    MAX_ACTIVE_RESERVATIONS,
    ROSTER_STATUSES,
    Actor,
    BookingSnapshot,
    attendance_rate as compute_attendance_rate,
    ensure_can_manage_class,
    percentage,
    validate_attendance,
    validate_cancellation,
    validate_occurrence,
    validate_reservation,
)
from ..models import GymClass, Reservation, ReservationStatus, User, UserRole
from ..utils.time import to_utc_naive

logger = logging.getLogger(__name__)

DEFAULT_STUDENT_CANCEL_REASON = "Cancelled by student"
DEFAULT_STAFF_CANCEL_REASON = "Cancelled by staff"


@dataclass(frozen=True)
class StudentStats:
    total: int
    confirmed: int
    cancelled: int
    attended: int
    absent: int
    attendance_rate: int
    cancellation_rate: int
    training_minutes: int


async def create_reservation(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    user_repo: UserRepository,
    *,
    student_id: int,
    class_id: int,
    occurrence_at: datetime,
    now: datetime,
    tz: tzinfo,
    max_active: int = MAX_ACTIVE_RESERVATIONS,
) -> tuple[Reservation, GymClass]:
    """
    Book one seat on a concrete occurrence of a class.
    Must run inside a transaction: the student and class rows stay locked until commit,
    and a failed seat increment rolls back the inserted reservation.
    """
    if occurrence_at.tzinfo is None:
        raise InvalidOccurrenceError("occurrence must include a time zone")

    student = await user_repo.get_for_update(student_id)
    if student is None:
        raise NotFoundError(f"student {student_id} not found")
    gym_class = await class_repo.get_for_update(class_id)
    if gym_class is None:
        raise NotFoundError(f"class {class_id} not found")
    if not gym_class.active:
        raise ClassInactiveError("class is not accepting reservations")

    validate_occurrence(
        occurrence_at.astimezone(tz),
        weekday=gym_class.weekday,
        start_time=gym_class.start_time,
        now=now,
    )
    occurrence_utc = to_utc_naive(occurrence_at)

    snapshot = BookingSnapshot(
        capacity=gym_class.capacity,
        occupied_seats=gym_class.occupied_seats,
        student_active_reservations=await res_repo.count_confirmed_for_student(student_id),
        student_has_same_occurrence=await res_repo.has_confirmed(
            student_id=student_id,
            class_id=class_id,
            occurrence_at=occurrence_utc,
        ),
    )
    validate_reservation(snapshot, max_active=max_active)

    reservation = await res_repo.create(class_id=class_id, student_id=student_id, occurrence_at=occurrence_utc)
    try:
        gym_class = await class_repo.increment_seats(class_id)
    except CapacityExceededError as exc:
        raise ClassFullError("class is full") from exc
    logger.info(
        "student %s booked class %s at %s (%s/%s seats)",
        student_id,
        class_id,
        occurrence_utc.isoformat(),
        gym_class.occupied_seats,
        gym_class.capacity,
    )
    return reservation, gym_class


def _ensure_can_touch(actor: Actor, reservation: Reservation, gym_class: GymClass) -> None:
    if actor.role == UserRole.STUDENT:
        if reservation.student_id != actor.user_id:
            raise NotFoundError(f"reservation {reservation.id} not found")
        return
    ensure_can_manage_class(actor, gym_class.instructor_id)


async def cancel_reservation(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    reservation_id: int,
    now: datetime,
    reason: str | None = None,
    hours_before: int = 2,
) -> tuple[Reservation, GymClass, ReservationStatus]:
    row = await res_repo.get_for_update(reservation_id)
    if row is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    reservation, gym_class = row
    _ensure_can_touch(actor, reservation, gym_class)

    previous = reservation.status
    # Staff may cancel inside the lead-time window; students may not.
    proceed = validate_cancellation(
        previous,
        reservation.occurrence_at.replace(tzinfo=timezone.utc),
        now=now,
        hours_before=hours_before,
        enforce_lead_time=actor.role == UserRole.STUDENT,
    )
    if not proceed:
        return reservation, gym_class, previous

    default_reason = DEFAULT_STUDENT_CANCEL_REASON if actor.role == UserRole.STUDENT else DEFAULT_STAFF_CANCEL_REASON
    reservation.status = ReservationStatus.CANCELLED
    reservation.cancelled_at = to_utc_naive(now)
    reservation.cancel_reason = (reason or "").strip() or default_reason
    reservation = await res_repo.save(reservation)
    gym_class = await class_repo.decrement_seats(gym_class.id)
    logger.info("reservation %s cancelled by user %s", reservation.id, actor.user_id)
    return reservation, gym_class, previous


async def mark_attendance(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    reservation_id: int,
    status: ReservationStatus,
) -> tuple[Reservation, GymClass, ReservationStatus]:
    if not actor.is_staff:
        raise PermissionDeniedError("only instructors and admins can mark attendance")
    row = await res_repo.get_for_update(reservation_id)
    if row is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    reservation, gym_class = row
    ensure_can_manage_class(actor, gym_class.instructor_id)

    previous = reservation.status
    if validate_attendance(previous, status):
        reservation.status = status
        reservation = await res_repo.save(reservation)
        # the seat belongs to confirmed reservations only
        if previous == ReservationStatus.CONFIRMED:
            gym_class = await class_repo.decrement_seats(gym_class.id)
        logger.info("reservation %s marked %s by user %s", reservation.id, status.value, actor.user_id)
    return reservation, gym_class, previous


async def get_reservation(
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    reservation_id: int,
) -> tuple[Reservation, GymClass]:
    row = await res_repo.get(reservation_id)
    if row is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    _ensure_can_touch(actor, *row)
    return row


async def list_reservations(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    student_id: int | None = None,
    class_id: int | None = None,
    status: ReservationStatus | None = None,
) -> list[tuple[Reservation, GymClass]]:
    if not actor.is_staff:
        raise PermissionDeniedError("only instructors and admins can list reservations")
    if not actor.is_admin:
        # instructors only see the reservations of their own classes
        if class_id is None:
            raise PermissionDeniedError("instructors must filter by class")
        gym_class = await class_repo.get(class_id)
        if gym_class is None:
            raise NotFoundError(f"class {class_id} not found")
        ensure_can_manage_class(actor, gym_class.instructor_id)
    filters = ReservationFilter(student_id=student_id, class_id=class_id, status=status)
    return await res_repo.search(filters)


async def list_active_reservations(
    res_repo: ReservationRepository,
    *,
    student_id: int,
) -> list[tuple[Reservation, GymClass]]:
    filters = ReservationFilter(student_id=student_id, status=ReservationStatus.CONFIRMED)
    return await res_repo.search(filters, ascending=True)


async def list_history(
    res_repo: ReservationRepository,
    *,
    student_id: int,
    limit: int = 10,
) -> list[tuple[Reservation, GymClass]]:
    return await res_repo.search(
        ReservationFilter(student_id=student_id),
        statuses=HISTORY_STATUSES,
        limit=limit,
    )


async def class_roster(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    class_id: int,
    occurrence_at: datetime,
) -> tuple[GymClass, list[tuple[Reservation, User]]]:
    if not actor.is_staff:
        raise PermissionDeniedError("only instructors and admins can see the roster")
    gym_class = await class_repo.get(class_id)
    if gym_class is None:
        raise NotFoundError(f"class {class_id} not found")
    ensure_can_manage_class(actor, gym_class.instructor_id)
    rows = await res_repo.list_for_occurrence(class_id, to_utc_naive(occurrence_at), ROSTER_STATUSES)
    return gym_class, rows


async def count_by_status(res_repo: ReservationRepository, *, student_id: int) -> dict[ReservationStatus, int]:
    return await res_repo.count_by_status(student_id)


async def attendance_rate(res_repo: ReservationRepository, *, student_id: int) -> int:
    counts = await res_repo.count_by_status(student_id)
    return compute_attendance_rate(counts[ReservationStatus.ATTENDED], counts[ReservationStatus.ABSENT])


async def student_stats(res_repo: ReservationRepository, *, student_id: int) -> StudentStats:
    counts = await res_repo.count_by_status(student_id)
    total = sum(counts.values())
    return StudentStats(
        total=total,
        confirmed=counts[ReservationStatus.CONFIRMED],
        cancelled=counts[ReservationStatus.CANCELLED],
        attended=counts[ReservationStatus.ATTENDED],
        absent=counts[ReservationStatus.ABSENT],
        attendance_rate=compute_attendance_rate(counts[ReservationStatus.ATTENDED], counts[ReservationStatus.ABSENT]),
        cancellation_rate=percentage(counts[ReservationStatus.CANCELLED], total),
        training_minutes=await res_repo.attended_minutes(student_id),
    )

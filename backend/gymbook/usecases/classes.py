from datetime import datetime
from typing import Any

from ..domain.calendar import upcoming_occurrences
from ..domain.errors import ClassInUseError, NotFoundError, ValidationFailedError
from ..domain.repositories import ClassFilter, ClassRepository, ReservationRepository, UserRepository
from ..domain.services import Actor, ensure_can_manage_class
from ..domain.validators import sanitize_string, validate_class
from ..models import GymClass, UserRole

_EDITABLE_FIELDS = (
    "modality",
    "instructor_id",
    "weekday",
    "start_time",
    "duration_minutes",
    "capacity",
    "recurring",
    "description",
)


async def _ensure_instructor(user_repo: UserRepository, instructor_id: int) -> None:
    instructor = await user_repo.get(instructor_id)
    if instructor is None or instructor.role not in (UserRole.INSTRUCTOR, UserRole.ADMIN):
        raise NotFoundError(f"instructor {instructor_id} not found")


async def get_class(class_repo: ClassRepository, *, class_id: int) -> GymClass:
    gym_class = await class_repo.get(class_id)
    if gym_class is None:
        raise NotFoundError(f"class {class_id} not found")
    return gym_class


async def list_classes(
    class_repo: ClassRepository,
    *,
    modality: str | None = None,
    instructor_id: int | None = None,
    weekday: int | None = None,
    active: bool | None = None,
) -> list[GymClass]:
    filters = ClassFilter(modality=modality, instructor_id=instructor_id, weekday=weekday, active=active)
    return await class_repo.search(filters)


async def create_class(
    class_repo: ClassRepository,
    user_repo: UserRepository,
    *,
    actor: Actor,
    modality: str,
    weekday: int,
    start_time: str,
    duration_minutes: int,
    capacity: int,
    instructor_id: int | None = None,
    recurring: bool = True,
    description: str | None = None,
) -> GymClass:
    instructor_id = instructor_id if instructor_id is not None else actor.user_id
    ensure_can_manage_class(actor, instructor_id)

    result = validate_class(modality, weekday, start_time, duration_minutes, capacity)
    if not result.valid:
        raise ValidationFailedError(result.errors)
    await _ensure_instructor(user_repo, instructor_id)

    return await class_repo.create(
        modality=sanitize_string(modality),
        instructor_id=instructor_id,
        weekday=weekday,
        start_time=start_time,
        duration_minutes=duration_minutes,
        capacity=capacity,
        recurring=recurring,
        description=description,
    )


async def update_class(
    class_repo: ClassRepository,
    user_repo: UserRepository,
    *,
    actor: Actor,
    class_id: int,
    changes: dict[str, Any],
) -> GymClass:
    gym_class = await class_repo.get_for_update(class_id)
    if gym_class is None:
        raise NotFoundError(f"class {class_id} not found")
    ensure_can_manage_class(actor, gym_class.instructor_id)

    changes = {key: value for key, value in changes.items() if key in _EDITABLE_FIELDS}
    merged = {field: changes.get(field, getattr(gym_class, field)) for field in _EDITABLE_FIELDS}

    result = validate_class(
        merged["modality"],
        merged["weekday"],
        merged["start_time"],
        merged["duration_minutes"],
        merged["capacity"],
    )
    errors = list(result.errors)
    if isinstance(merged["capacity"], int) and merged["capacity"] < gym_class.occupied_seats:
        errors.append(f"Capacity cannot be lower than the {gym_class.occupied_seats} seats already booked")
    if errors:
        raise ValidationFailedError(errors)

    if merged["instructor_id"] != gym_class.instructor_id:
        # only admins can reassign a class
        ensure_can_manage_class(actor, merged["instructor_id"])
        await _ensure_instructor(user_repo, merged["instructor_id"])
    if "modality" in changes:
        changes["modality"] = sanitize_string(changes["modality"])

    return await class_repo.update(gym_class, changes)


async def delete_class(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    class_id: int,
) -> GymClass:
    """Delete a class that never had bookings. Classes with history must be deactivated instead."""
    gym_class = await class_repo.get_for_update(class_id)
    if gym_class is None:
        raise NotFoundError(f"class {class_id} not found")
    ensure_can_manage_class(actor, gym_class.instructor_id)
    if await res_repo.count_for_class(class_id) > 0:
        raise ClassInUseError("class has reservations; deactivate it instead")
    await class_repo.delete(gym_class)
    return gym_class


async def set_class_active(
    class_repo: ClassRepository,
    *,
    actor: Actor,
    class_id: int,
    active: bool,
) -> GymClass:
    gym_class = await get_class(class_repo, class_id=class_id)
    ensure_can_manage_class(actor, gym_class.instructor_id)
    return await class_repo.set_active(class_id, active)


async def has_available_seats(class_repo: ClassRepository, *, class_id: int) -> bool:
    return await class_repo.has_available_seats(class_id)


async def recount_seats(class_repo: ClassRepository, *, actor: Actor, class_id: int) -> GymClass:
    gym_class = await get_class(class_repo, class_id=class_id)
    ensure_can_manage_class(actor, gym_class.instructor_id)
    return await class_repo.recount_seats(class_id)


def list_occurrences(gym_class: GymClass, *, now: datetime, count: int = 4) -> list[datetime]:
    """Upcoming concrete start times of a weekly class, in the time zone of `now`."""
    return upcoming_occurrences(gym_class.weekday, gym_class.start_time, count=count, now=now)

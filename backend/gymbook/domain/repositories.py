from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, Sequence

from ..models import GymClass, Reservation, ReservationStatus, User, UserRole


@dataclass(frozen=True)
class ClassFilter:
    modality: str | None = None
    instructor_id: int | None = None
    weekday: int | None = None
    active: bool | None = None


@dataclass(frozen=True)
class ReservationFilter:
    student_id: int | None = None
    class_id: int | None = None
    status: ReservationStatus | None = None


class UserRepository(Protocol):
    async def get(self, user_id: int) -> User | None: ...

    async def get_for_update(self, user_id: int) -> User | None: ...

    async def get_by_email(self, email: str) -> User | None: ...

    async def create(self, *, name: str, email: str, password_hash: str, role: UserRole) -> User: ...

    async def save(self, user: User) -> User: ...

    async def count_by_role(self, role: UserRole) -> int: ...


class ClassRepository(Protocol):
    async def create(
        self,
        *,
        modality: str,
        instructor_id: int,
        weekday: int,
        start_time: str,
        duration_minutes: int,
        capacity: int,
        recurring: bool,
        description: str | None,
    ) -> GymClass: ...

    async def get(self, class_id: int) -> GymClass | None: ...

    async def get_for_update(self, class_id: int) -> GymClass | None: ...

    async def search(self, filters: ClassFilter | None = None) -> list[GymClass]: ...

    async def update(self, gym_class: GymClass, changes: dict[str, Any]) -> GymClass: ...

    async def delete(self, gym_class: GymClass) -> None: ...

    async def set_active(self, class_id: int, active: bool) -> GymClass: ...

    async def increment_seats(self, class_id: int) -> GymClass: ...

    async def decrement_seats(self, class_id: int) -> GymClass: ...

    async def has_available_seats(self, class_id: int) -> bool: ...

    async def recount_seats(self, class_id: int) -> GymClass: ...


class ReservationRepository(Protocol):
    async def get(self, reservation_id: int) -> tuple[Reservation, GymClass] | None: ...

    async def get_for_update(self, reservation_id: int) -> tuple[Reservation, GymClass] | None: ...

    async def create(self, *, class_id: int, student_id: int, occurrence_at: datetime) -> Reservation: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def count_confirmed_for_student(self, student_id: int) -> int: ...

    async def has_confirmed(self, *, student_id: int, class_id: int, occurrence_at: datetime) -> bool: ...

    async def count_for_class(self, class_id: int) -> int: ...

    async def search(
        self,
        filters: ReservationFilter | None = None,
        *,
        statuses: Sequence[ReservationStatus] | None = None,
        ascending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[Reservation, GymClass]]: ...

    async def list_for_occurrence(
        self,
        class_id: int,
        occurrence_at: datetime,
        statuses: Sequence[ReservationStatus],
    ) -> list[tuple[Reservation, User]]: ...

    async def count_by_status(self, student_id: int | None = None) -> dict[ReservationStatus, int]: ...

    async def attended_minutes(self, student_id: int) -> int: ...

    async def count_students_with_reservations(self) -> int: ...

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional, Sequence, Tuple, cast

from sqlalchemy import Select, distinct, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import CapacityExceededError, EmailAlreadyRegisteredError, NotFoundError, StoreError
from ..domain.repositories import (
    ClassFilter,
    ClassRepository,
    ReservationFilter,
    ReservationRepository,
    UserRepository,
)
from ..domain.services import sort_classes
from ..models import GymClass, Reservation, ReservationStatus, User, UserRole
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("database error while trying to %s", action)
        raise StoreError(f"failed to {action}") from exc


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> User | None:
        with _store_errors("load user"):
            return await self.session.get(User, user_id)

    async def get_for_update(self, user_id: int) -> User | None:
        with _store_errors("lock user"):
            result = await self.session.scalar(select(User).where(User.id == user_id).with_for_update())
        return result if isinstance(result, User) else None

    async def get_by_email(self, email: str) -> User | None:
        with _store_errors("load user"):
            return await self.session.scalar(select(User).where(func.lower(User.email) == email.lower()))

    async def create(self, *, name: str, email: str, password_hash: str, role: UserRole) -> User:
        now = utc_now_naive()
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        with _store_errors("create user"):
            self.session.add(user)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                raise EmailAlreadyRegisteredError("this email is already registered") from exc
        return user

    async def save(self, user: User) -> User:
        user.updated_at = utc_now_naive()
        with _store_errors("update user"):
            self.session.add(user)
            await self.session.flush()
        return user

    async def count_by_role(self, role: UserRole) -> int:
        with _store_errors("count users"):
            return int(await self.session.scalar(select(func.count(User.id)).where(User.role == role)) or 0)


class SqlAlchemyClassRepository(ClassRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> GymClass:
        now = utc_now_naive()
        gym_class = GymClass(
            modality=modality,
            instructor_id=instructor_id,
            weekday=weekday,
            start_time=start_time,
            duration_minutes=duration_minutes,
            capacity=capacity,
            occupied_seats=0,
            active=True,
            recurring=recurring,
            description=description,
            created_at=now,
            updated_at=now,
        )
        with _store_errors("create class"):
            self.session.add(gym_class)
            await self.session.flush()
        return gym_class

    async def get(self, class_id: int) -> GymClass | None:
        with _store_errors("load class"):
            return await self.session.get(GymClass, class_id)

    async def get_for_update(self, class_id: int) -> GymClass | None:
        with _store_errors("lock class"):
            result = await self.session.scalar(
                select(GymClass)
                .where(GymClass.id == class_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        return result if isinstance(result, GymClass) else None

    async def search(self, filters: ClassFilter | None = None) -> List[GymClass]:
        stmt: Select[Tuple[GymClass]] = select(GymClass)
        if filters is not None:
            if filters.modality:
                stmt = stmt.where(GymClass.modality == filters.modality)
            if filters.instructor_id is not None:
                stmt = stmt.where(GymClass.instructor_id == filters.instructor_id)
            if filters.weekday is not None:
                stmt = stmt.where(GymClass.weekday == filters.weekday)
            if filters.active is not None:
                stmt = stmt.where(GymClass.active == filters.active)
        with _store_errors("list classes"):
            rows = await self.session.scalars(stmt)
            return sort_classes(rows.all())

    async def update(self, gym_class: GymClass, changes: dict[str, Any]) -> GymClass:
        for key, value in changes.items():
            setattr(gym_class, key, value)
        gym_class.updated_at = utc_now_naive()
        with _store_errors("update class"):
            self.session.add(gym_class)
            await self.session.flush()
        return gym_class

    async def delete(self, gym_class: GymClass) -> None:
        with _store_errors("delete class"):
            await self.session.delete(gym_class)
            await self.session.flush()

    async def set_active(self, class_id: int, active: bool) -> GymClass:
        with _store_errors("change class status"):
            await self.session.execute(
                update(GymClass)
                .where(GymClass.id == class_id)
                .values(active=active, updated_at=utc_now_naive())
                .execution_options(synchronize_session=False)
            )
        return await self._reload(class_id)

    async def increment_seats(self, class_id: int) -> GymClass:
        """Take one seat; the capacity check and the write are a single statement."""
        with _store_errors("reserve seat"):
            result = await self.session.execute(
                update(GymClass)
                .where(GymClass.id == class_id, GymClass.occupied_seats < GymClass.capacity)
                .values(occupied_seats=GymClass.occupied_seats + 1, updated_at=utc_now_naive())
                .execution_options(synchronize_session=False)
            )
        if cast(Any, result).rowcount == 0:
            gym_class = await self._reload(class_id)
            raise CapacityExceededError(f"class {gym_class.id} is full ({gym_class.capacity} seats)")
        return await self._reload(class_id)

    async def decrement_seats(self, class_id: int) -> GymClass:
        with _store_errors("release seat"):
            await self.session.execute(
                update(GymClass)
                .where(GymClass.id == class_id, GymClass.occupied_seats > 0)
                .values(occupied_seats=GymClass.occupied_seats - 1, updated_at=utc_now_naive())
                .execution_options(synchronize_session=False)
            )
        return await self._reload(class_id)

    async def has_available_seats(self, class_id: int) -> bool:
        gym_class = await self.get(class_id)
        if gym_class is None:
            return False
        return gym_class.occupied_seats < gym_class.capacity

    async def recount_seats(self, class_id: int) -> GymClass:
        confirmed = (
            select(func.count(Reservation.id))
            .where(Reservation.class_id == class_id, Reservation.status == ReservationStatus.CONFIRMED)
            .scalar_subquery()
        )
        with _store_errors("recount seats"):
            await self.session.execute(
                update(GymClass)
                .where(GymClass.id == class_id)
                .values(occupied_seats=confirmed, updated_at=utc_now_naive())
                .execution_options(synchronize_session=False)
            )
        return await self._reload(class_id)

    async def _reload(self, class_id: int) -> GymClass:
        with _store_errors("load class"):
            gym_class = await self.session.get(GymClass, class_id, populate_existing=True)
        if gym_class is None:
            raise NotFoundError(f"class {class_id} not found")
        return gym_class


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _with_class(self) -> Select[Tuple[Reservation, GymClass]]:
        return select(Reservation, GymClass).join(GymClass, Reservation.class_id == GymClass.id)

    async def get(self, reservation_id: int) -> Optional[Tuple[Reservation, GymClass]]:
        stmt = self._with_class().where(Reservation.id == reservation_id)
        with _store_errors("load reservation"):
            row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, GymClass]], row)

    async def get_for_update(self, reservation_id: int) -> Optional[Tuple[Reservation, GymClass]]:
        stmt = (
            self._with_class()
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        with _store_errors("lock reservation"):
            row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, GymClass]], row)

    async def create(self, *, class_id: int, student_id: int, occurrence_at: datetime) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            class_id=class_id,
            student_id=student_id,
            occurrence_at=occurrence_at,
            status=ReservationStatus.CONFIRMED,
            created_at=now,
            updated_at=now,
        )
        with _store_errors("create reservation"):
            self.session.add(reservation)
            await self.session.flush()
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = utc_now_naive()
        with _store_errors("update reservation"):
            self.session.add(reservation)
            await self.session.flush()
        return reservation

    async def count_confirmed_for_student(self, student_id: int) -> int:
        stmt = select(func.count(Reservation.id)).where(
            Reservation.student_id == student_id,
            Reservation.status == ReservationStatus.CONFIRMED,
        )
        with _store_errors("count reservations"):
            return int(await self.session.scalar(stmt) or 0)

    async def has_confirmed(self, *, student_id: int, class_id: int, occurrence_at: datetime) -> bool:
        stmt = select(Reservation.id).where(
            Reservation.student_id == student_id,
            Reservation.class_id == class_id,
            Reservation.occurrence_at == occurrence_at,
            Reservation.status == ReservationStatus.CONFIRMED,
        )
        with _store_errors("check existing reservation"):
            return await self.session.scalar(stmt.limit(1)) is not None

    async def count_for_class(self, class_id: int) -> int:
        stmt = select(func.count(Reservation.id)).where(Reservation.class_id == class_id)
        with _store_errors("count reservations"):
            return int(await self.session.scalar(stmt) or 0)

    async def search(
        self,
        filters: ReservationFilter | None = None,
        *,
        statuses: Sequence[ReservationStatus] | None = None,
        ascending: bool = False,
        limit: int | None = None,
    ) -> List[Tuple[Reservation, GymClass]]:
        stmt = self._with_class()
        if filters is not None:
            if filters.student_id is not None:
                stmt = stmt.where(Reservation.student_id == filters.student_id)
            if filters.class_id is not None:
                stmt = stmt.where(Reservation.class_id == filters.class_id)
            if filters.status is not None:
                stmt = stmt.where(Reservation.status == filters.status)
        if statuses:
            stmt = stmt.where(Reservation.status.in_(list(statuses)))
        order = Reservation.occurrence_at.asc() if ascending else Reservation.occurrence_at.desc()
        stmt = stmt.order_by(order, Reservation.id.asc() if ascending else Reservation.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with _store_errors("list reservations"):
            rows = await self.session.execute(stmt)
            return cast(List[Tuple[Reservation, GymClass]], list(rows.all()))

    async def list_for_occurrence(
        self,
        class_id: int,
        occurrence_at: datetime,
        statuses: Sequence[ReservationStatus],
    ) -> List[Tuple[Reservation, User]]:
        stmt: Select[Tuple[Reservation, User]] = (
            select(Reservation, User)
            .join(User, Reservation.student_id == User.id)
            .where(
                Reservation.class_id == class_id,
                Reservation.occurrence_at == occurrence_at,
                Reservation.status.in_(list(statuses)),
            )
            .order_by(User.name.asc(), Reservation.id.asc())
        )
        with _store_errors("load class roster"):
            rows = await self.session.execute(stmt)
            return cast(List[Tuple[Reservation, User]], list(rows.all()))

    async def count_by_status(self, student_id: int | None = None) -> dict[ReservationStatus, int]:
        stmt = select(Reservation.status, func.count(Reservation.id)).group_by(Reservation.status)
        if student_id is not None:
            stmt = stmt.where(Reservation.student_id == student_id)
        with _store_errors("count reservations"):
            rows = await self.session.execute(stmt)
            counts = {status: 0 for status in ReservationStatus}
            for status, total in rows.all():
                counts[ReservationStatus(status)] = int(total)
        return counts

    async def attended_minutes(self, student_id: int) -> int:
        stmt = (
            select(func.coalesce(func.sum(GymClass.duration_minutes), 0))
            .select_from(Reservation)
            .join(GymClass, Reservation.class_id == GymClass.id)
            .where(Reservation.student_id == student_id, Reservation.status == ReservationStatus.ATTENDED)
        )
        with _store_errors("sum training time"):
            return int(await self.session.scalar(stmt) or 0)

    async def count_students_with_reservations(self) -> int:
        with _store_errors("count students"):
            return int(await self.session.scalar(select(func.count(distinct(Reservation.student_id)))) or 0)


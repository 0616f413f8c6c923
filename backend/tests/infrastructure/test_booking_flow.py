from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

import pytest
from gymbook.domain.calendar import to_weekday_number, upcoming_occurrences
from gymbook.domain.errors import (
    ClassFullError,
    ClassInUseError,
    DuplicateReservationError,
    PermissionDeniedError,
    ReservationLimitExceededError,
    ValidationFailedError,
)
from gymbook.domain.services import Actor
from gymbook.infrastructure.repositories import (
    SqlAlchemyClassRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyUserRepository,
)
from gymbook.models import GymClass, Reservation, ReservationStatus, User, UserRole
from gymbook.usecases import classes as class_uc
from gymbook.usecases import reservations as res_uc
from gymbook.usecases import stats as stats_uc
from gymbook.usecases import users as user_uc
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

SAO_PAULO = ZoneInfo("America/Sao_Paulo")
Factory = async_sessionmaker[AsyncSession]


async def _user(factory: Factory, name: str, role: UserRole = UserRole.STUDENT) -> Actor:
    async with factory() as session:
        async with session.begin():
            user = await user_uc.register_user(
                SqlAlchemyUserRepository(session),
                name=name,
                email=f"{name.lower().replace(' ', '.')}@gym.com",
                password="secret1",
                confirm_password="secret1",
                role=role,
            )
    return Actor(user_id=user.id, role=user.role)


async def _class(
    factory: Factory,
    instructor: Actor,
    *,
    capacity: int = 10,
    weekday: int | None = None,
    start_time: str = "19:00",
    modality: str = "Cross",
) -> GymClass:
    if weekday is None:
        weekday = to_weekday_number(datetime.now(SAO_PAULO) + timedelta(days=3))
    async with factory() as session:
        async with session.begin():
            return await class_uc.create_class(
                SqlAlchemyClassRepository(session),
                SqlAlchemyUserRepository(session),
                actor=instructor,
                modality=modality,
                weekday=weekday,
                start_time=start_time,
                duration_minutes=60,
                capacity=capacity,
            )


def _occurrences(gym_class: GymClass, count: int = 4) -> list[datetime]:
    return upcoming_occurrences(gym_class.weekday, gym_class.start_time, count=count, now=datetime.now(SAO_PAULO))


async def _book(factory: Factory, student: Actor, gym_class: GymClass, occurrence: datetime) -> Reservation:
    async with factory() as session:
        async with session.begin():
            reservation, _ = await res_uc.create_reservation(
                SqlAlchemyClassRepository(session),
                SqlAlchemyReservationRepository(session),
                SqlAlchemyUserRepository(session),
                student_id=student.user_id,
                class_id=gym_class.id,
                occurrence_at=occurrence,
                now=datetime.now(timezone.utc),
                tz=SAO_PAULO,
            )
    return reservation


async def _cancel(factory: Factory, actor: Actor, reservation_id: int) -> tuple[Reservation, GymClass, Any]:
    async with factory() as session:
        async with session.begin():
            return await res_uc.cancel_reservation(
                SqlAlchemyClassRepository(session),
                SqlAlchemyReservationRepository(session),
                actor=actor,
                reservation_id=reservation_id,
                now=datetime.now(timezone.utc),
            )


async def _mark(factory: Factory, actor: Actor, reservation_id: int, status: ReservationStatus) -> None:
    async with factory() as session:
        async with session.begin():
            await res_uc.mark_attendance(
                SqlAlchemyClassRepository(session),
                SqlAlchemyReservationRepository(session),
                actor=actor,
                reservation_id=reservation_id,
                status=status,
            )


async def _seats(factory: Factory, class_id: int) -> int:
    async with factory() as session:
        gym_class = await SqlAlchemyClassRepository(session).get(class_id)
        assert gym_class is not None
        return gym_class.occupied_seats


async def _count_reservations(factory: Factory, class_id: int) -> int:
    async with factory() as session:
        return await SqlAlchemyReservationRepository(session).count_for_class(class_id)


@pytest.mark.asyncio
async def test_class_fills_up_and_rejects_the_next_student(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor, capacity=10)
    occurrence = _occurrences(gym_class)[0]

    students = [await _user(session_factory, f"Student {chr(ord('a') + i)}") for i in range(11)]
    booked = [await _book(session_factory, student, gym_class, occurrence) for student in students[:10]]
    assert await _seats(session_factory, gym_class.id) == 10

    with pytest.raises(ClassFullError):
        await _book(session_factory, students[10], gym_class, occurrence)
    assert await _seats(session_factory, gym_class.id) == 10
    assert await _count_reservations(session_factory, gym_class.id) == 10

    await _cancel(session_factory, students[0], booked[0].id)
    assert await _seats(session_factory, gym_class.id) == 9

    await _book(session_factory, students[10], gym_class, occurrence)
    assert await _seats(session_factory, gym_class.id) == 10


@pytest.mark.asyncio
async def test_student_is_capped_at_three_active_reservations(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    occurrences = _occurrences(gym_class)

    booked = [await _book(session_factory, student, gym_class, occurrence) for occurrence in occurrences[:3]]
    with pytest.raises(ReservationLimitExceededError):
        await _book(session_factory, student, gym_class, occurrences[3])
    assert await _seats(session_factory, gym_class.id) == 3

    await _cancel(session_factory, student, booked[1].id)
    await _book(session_factory, student, gym_class, occurrences[3])
    assert await _seats(session_factory, gym_class.id) == 3


@pytest.mark.asyncio
async def test_duplicate_blocked_until_cancelled(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    occurrence = _occurrences(gym_class)[0]

    first = await _book(session_factory, student, gym_class, occurrence)
    with pytest.raises(DuplicateReservationError):
        await _book(session_factory, student, gym_class, occurrence)

    cancelled, gym_class_after, previous = await _cancel(session_factory, student, first.id)
    assert previous == ReservationStatus.CONFIRMED
    assert cancelled.cancel_reason == "Cancelled by student"
    assert gym_class_after.occupied_seats == 0

    again = await _book(session_factory, student, gym_class, occurrence)
    assert again.id != first.id
    assert await _seats(session_factory, gym_class.id) == 1


@pytest.mark.asyncio
async def test_cancel_twice_releases_one_seat(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    students = [await _user(session_factory, name) for name in ("Bruno Lima", "Clara Dias")]
    occurrence = _occurrences(gym_class)[0]

    reservation = await _book(session_factory, students[0], gym_class, occurrence)
    await _book(session_factory, students[1], gym_class, occurrence)

    await _cancel(session_factory, students[0], reservation.id)
    _, _, previous = await _cancel(session_factory, students[0], reservation.id)
    assert previous == ReservationStatus.CANCELLED
    assert await _seats(session_factory, gym_class.id) == 1


@pytest.mark.asyncio
async def test_invalid_class_is_not_stored(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    async with session_factory() as session:
        with pytest.raises(ValidationFailedError) as excinfo:
            async with session.begin():
                await class_uc.create_class(
                    SqlAlchemyClassRepository(session),
                    SqlAlchemyUserRepository(session),
                    actor=instructor,
                    modality="Cross",
                    weekday=1,
                    start_time="19:00",
                    duration_minutes=20,
                    capacity=60,
                )
    assert excinfo.value.errors == [
        "Duration must be between 30 and 180 minutes",
        "Capacity must be between 1 and 50 students",
    ]
    async with session_factory() as session:
        assert await SqlAlchemyClassRepository(session).search() == []


@pytest.mark.asyncio
async def test_attendance_rate_and_gym_stats(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    occurrences = _occurrences(gym_class)

    async with session_factory() as session:
        rate = await res_uc.attendance_rate(SqlAlchemyReservationRepository(session), student_id=student.user_id)
    assert rate == 0

    outcomes = [
        ReservationStatus.ATTENDED,
        ReservationStatus.ATTENDED,
        ReservationStatus.ATTENDED,
        ReservationStatus.ABSENT,
    ]
    for occurrence, outcome in zip(occurrences, outcomes):
        reservation = await _book(session_factory, student, gym_class, occurrence)
        await _mark(session_factory, instructor, reservation.id, outcome)

    async with session_factory() as session:
        res_repo = SqlAlchemyReservationRepository(session)
        assert await res_uc.attendance_rate(res_repo, student_id=student.user_id) == 75
        stats = await res_uc.student_stats(res_repo, student_id=student.user_id)
        history = await res_uc.list_history(res_repo, student_id=student.user_id)
    assert stats.training_minutes == 180
    assert stats.confirmed == 0
    assert [r.occurrence_at for r, _ in history] == sorted((r.occurrence_at for r, _ in history), reverse=True)

    async with session_factory() as session:
        gym = await stats_uc.gym_stats(
            SqlAlchemyClassRepository(session),
            SqlAlchemyReservationRepository(session),
            SqlAlchemyUserRepository(session),
        )
    assert gym.total_classes == 1
    assert gym.registered_students == 1
    assert gym.students_with_reservations == 1
    assert gym.classes_held == 4
    assert gym.attendance_rate == 75
    assert gym.average_occupancy == 0


@pytest.mark.asyncio
async def test_recount_repairs_drifted_counter(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    await _book(session_factory, student, gym_class, _occurrences(gym_class)[0])

    async with session_factory() as session:
        async with session.begin():
            await session.execute(update(GymClass).where(GymClass.id == gym_class.id).values(occupied_seats=7))

    async with session_factory() as session:
        async with session.begin():
            repaired = await class_uc.recount_seats(
                SqlAlchemyClassRepository(session), actor=instructor, class_id=gym_class.id
            )
    assert repaired.occupied_seats == 1


@pytest.mark.asyncio
async def test_class_with_history_cannot_be_deleted(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    reservation = await _book(session_factory, student, gym_class, _occurrences(gym_class)[0])
    await _cancel(session_factory, student, reservation.id)

    async with session_factory() as session:
        with pytest.raises(ClassInUseError):
            async with session.begin():
                await class_uc.delete_class(
                    SqlAlchemyClassRepository(session),
                    SqlAlchemyReservationRepository(session),
                    actor=instructor,
                    class_id=gym_class.id,
                )


@pytest.mark.asyncio
async def test_roster_lists_students_of_one_occurrence(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    first, second = _occurrences(gym_class, count=2)
    clara = await _user(session_factory, "Clara Dias")
    bruno = await _user(session_factory, "Bruno Lima")
    await _book(session_factory, clara, gym_class, first)
    await _book(session_factory, bruno, gym_class, first)
    await _book(session_factory, bruno, gym_class, second)

    async with session_factory() as session:
        _, rows = await res_uc.class_roster(
            SqlAlchemyClassRepository(session),
            SqlAlchemyReservationRepository(session),
            actor=instructor,
            class_id=gym_class.id,
            occurrence_at=first,
        )
    assert [student.name for _, student in rows] == ["Bruno Lima", "Clara Dias"]
    assert all(isinstance(student, User) for _, student in rows)


@pytest.mark.asyncio
async def test_attended_reservation_frees_its_seat(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor, capacity=1)
    first, second = _occurrences(gym_class, count=2)
    bruno = await _user(session_factory, "Bruno Lima")
    clara = await _user(session_factory, "Clara Dias")

    reservation = await _book(session_factory, bruno, gym_class, first)
    await _mark(session_factory, instructor, reservation.id, ReservationStatus.ATTENDED)
    assert await _seats(session_factory, gym_class.id) == 0

    async with session_factory() as session:
        async with session.begin():
            recounted = await class_uc.recount_seats(
                SqlAlchemyClassRepository(session), actor=instructor, class_id=gym_class.id
            )
    assert recounted.occupied_seats == 0

    await _book(session_factory, clara, gym_class, second)
    assert await _seats(session_factory, gym_class.id) == 1


@pytest.mark.asyncio
async def test_student_active_list_and_capped_history(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor)
    student = await _user(session_factory, "Bruno Lima")
    occurrences = _occurrences(gym_class, count=3)

    for _ in range(11):
        reservation = await _book(session_factory, student, gym_class, occurrences[0])
        await _cancel(session_factory, student, reservation.id)
    for occurrence in (occurrences[2], occurrences[0], occurrences[1]):
        await _book(session_factory, student, gym_class, occurrence)

    async with session_factory() as session:
        res_repo = SqlAlchemyReservationRepository(session)
        active = await res_uc.list_active_reservations(res_repo, student_id=student.user_id)
        history = await res_uc.list_history(res_repo, student_id=student.user_id)
        short_history = await res_uc.list_history(res_repo, student_id=student.user_id, limit=3)
        counts = await res_uc.count_by_status(res_repo, student_id=student.user_id)

    assert [r.occurrence_at.replace(tzinfo=timezone.utc) for r, _ in active] == occurrences
    assert len(history) == 10
    assert all(r.status == ReservationStatus.CANCELLED for r, _ in history)
    assert [r.id for r, _ in history] == sorted((r.id for r, _ in history), reverse=True)
    assert len(short_history) == 3
    assert counts[ReservationStatus.CANCELLED] == 11
    assert counts[ReservationStatus.CONFIRMED] == 3
    assert counts[ReservationStatus.ATTENDED] == 0


@pytest.mark.asyncio
async def test_staff_reservation_listing_filters(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    admin = await _user(session_factory, "Admin User", UserRole.ADMIN)
    cross = await _class(session_factory, instructor)
    yoga = await _class(session_factory, instructor, start_time="07:00", modality="Yoga")
    bruno = await _user(session_factory, "Bruno Lima")
    clara = await _user(session_factory, "Clara Dias")

    bruno_cross = await _book(session_factory, bruno, cross, _occurrences(cross)[0])
    await _book(session_factory, bruno, yoga, _occurrences(yoga)[0])
    clara_cross = await _book(session_factory, clara, cross, _occurrences(cross)[0])
    await _cancel(session_factory, clara, clara_cross.id)

    async def listing(actor: Actor, **filters: Any) -> list[int]:
        async with session_factory() as session:
            rows = await res_uc.list_reservations(
                SqlAlchemyClassRepository(session),
                SqlAlchemyReservationRepository(session),
                actor=actor,
                **filters,
            )
        return sorted(r.id for r, _ in rows)

    assert len(await listing(admin)) == 3
    assert len(await listing(admin, student_id=bruno.user_id)) == 2
    assert await listing(admin, class_id=cross.id) == sorted([bruno_cross.id, clara_cross.id])
    assert await listing(admin, class_id=cross.id, status=ReservationStatus.CONFIRMED) == [bruno_cross.id]
    assert await listing(instructor, class_id=cross.id, student_id=clara.user_id) == [clara_cross.id]
    with pytest.raises(PermissionDeniedError):
        await listing(instructor)
    with pytest.raises(PermissionDeniedError):
        await listing(bruno, class_id=cross.id)


@pytest.mark.asyncio
async def test_class_search_filters_and_weekly_order(session_factory: Factory) -> None:
    carlos = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    ana = await _user(session_factory, "Ana Santos", UserRole.INSTRUCTOR)
    sunday = await _class(session_factory, carlos, weekday=0, start_time="08:00")
    monday_late = await _class(session_factory, carlos, weekday=1, start_time="19:00")
    monday_early = await _class(session_factory, ana, weekday=1, start_time="07:00", modality="Yoga")
    wednesday = await _class(session_factory, ana, weekday=3, start_time="06:00", modality="Pilates")

    async with session_factory() as session:
        async with session.begin():
            await class_uc.set_class_active(
                SqlAlchemyClassRepository(session), actor=ana, class_id=wednesday.id, active=False
            )

    async def ids(**filters: Any) -> list[int]:
        async with session_factory() as session:
            classes = await class_uc.list_classes(SqlAlchemyClassRepository(session), **filters)
        return [c.id for c in classes]

    assert await ids() == [monday_early.id, monday_late.id, wednesday.id, sunday.id]
    assert await ids(weekday=1) == [monday_early.id, monday_late.id]
    assert await ids(modality="Yoga") == [monday_early.id]
    assert await ids(instructor_id=carlos.user_id) == [monday_late.id, sunday.id]
    assert await ids(active=False) == [wednesday.id]
    assert await ids(active=True, instructor_id=ana.user_id) == [monday_early.id]


@pytest.mark.asyncio
async def test_seat_availability_and_release_floor(session_factory: Factory) -> None:
    instructor = await _user(session_factory, "Carlos Silva", UserRole.INSTRUCTOR)
    gym_class = await _class(session_factory, instructor, capacity=1)
    student = await _user(session_factory, "Bruno Lima")

    async def available(class_id: int) -> bool:
        async with session_factory() as session:
            return await class_uc.has_available_seats(SqlAlchemyClassRepository(session), class_id=class_id)

    assert await available(gym_class.id) is True
    await _book(session_factory, student, gym_class, _occurrences(gym_class)[0])
    assert await available(gym_class.id) is False
    assert await available(gym_class.id + 100) is False

    empty = await _class(session_factory, instructor, start_time="08:00")
    async with session_factory() as session:
        async with session.begin():
            released = await SqlAlchemyClassRepository(session).decrement_seats(empty.id)
    assert released.occupied_seats == 0
    assert await _seats(session_factory, empty.id) == 0

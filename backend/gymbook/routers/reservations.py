from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_actor, get_session, require_roles, require_staff
from ..domain.errors import DomainError
from ..domain.services import Actor
from ..infrastructure.repositories import (
    SqlAlchemyClassRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyUserRepository,
)
from ..models import ReservationStatus, UserRole
from ..schemas import (
    AttendanceMark,
    ReservationCancel,
    ReservationCreate,
    ReservationRead,
    StatusCounts,
    StudentStatsRead,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import gym_timezone
from .errors import to_http

router = APIRouter(prefix="", tags=["reservations"])

require_student = require_roles(UserRole.STUDENT)


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _read_all(rows: list, now: datetime) -> list[ReservationRead]:
    return [ReservationRead.from_db(reservation=res, gym_class=gym_class, now=now) for res, gym_class in rows]


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_student),
) -> ReservationRead:
    if payload.occurrence_at.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="occurrence_at must have timezone")
    settings = get_settings()
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    user_repo = SqlAlchemyUserRepository(session)
    now = datetime.now(timezone.utc)
    async with session.begin():
        try:
            reservation, gym_class = await reservation_usecase.create_reservation(
                class_repo,
                res_repo,
                user_repo,
                student_id=actor.user_id,
                class_id=payload.class_id,
                occurrence_at=payload.occurrence_at,
                now=now,
                tz=gym_timezone(),
                max_active=settings.max_active_reservations,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        _audit(
            action="reservation.created",
            actor="student",
            actor_id=actor.user_id,
            reservation_id=reservation.id,
            class_id=gym_class.id,
            student_id=reservation.student_id,
            status_to=reservation.status,
            occupied_seats=gym_class.occupied_seats,
        )

    return ReservationRead.from_db(reservation=reservation, gym_class=gym_class, now=now)


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_student),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_active_reservations(res_repo, student_id=actor.user_id)
    except DomainError as exc:
        raise to_http(exc) from exc
    return _read_all(rows, datetime.now(timezone.utc))


@router.get("/me/reservations/history", response_model=List[ReservationRead])
async def list_my_history(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_student),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_history(
            res_repo,
            student_id=actor.user_id,
            limit=limit or get_settings().history_limit,
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return _read_all(rows, datetime.now(timezone.utc))


@router.get("/me/stats", response_model=StudentStatsRead)
async def my_stats(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_student),
) -> StudentStatsRead:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        stats = await reservation_usecase.student_stats(res_repo, student_id=actor.user_id)
    except DomainError as exc:
        raise to_http(exc) from exc
    return StudentStatsRead(
        total=stats.total,
        by_status=StatusCounts(
            confirmed=stats.confirmed,
            cancelled=stats.cancelled,
            attended=stats.attended,
            absent=stats.absent,
        ),
        attendance_rate=stats.attendance_rate,
        cancellation_rate=stats.cancellation_rate,
        training_minutes=stats.training_minutes,
        remaining_bookings=max(get_settings().max_active_reservations - stats.confirmed, 0),
    )


@router.get("/reservations", response_model=List[ReservationRead])
async def list_reservations(
    student_id: Optional[int] = Query(default=None, ge=1),
    class_id: Optional[int] = Query(default=None, ge=1),
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> list[ReservationRead]:
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_reservations(
            class_repo,
            res_repo,
            actor=actor,
            student_id=student_id,
            class_id=class_id,
            status=status_filter,
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return _read_all(rows, datetime.now(timezone.utc))


@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        reservation, gym_class = await reservation_usecase.get_reservation(
            res_repo,
            actor=actor,
            reservation_id=reservation_id,
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return ReservationRead.from_db(reservation=reservation, gym_class=gym_class)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    payload: Optional[ReservationCancel] = None,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    now = datetime.now(timezone.utc)
    async with session.begin():
        try:
            updated, gym_class, previous = await reservation_usecase.cancel_reservation(
                class_repo,
                res_repo,
                actor=actor,
                reservation_id=reservation_id,
                now=now,
                reason=payload.reason if payload else None,
                hours_before=get_settings().cancel_hours_before,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        if previous != updated.status:
            _audit(
                action="reservation.cancelled",
                actor=actor.role.value,
                actor_id=actor.user_id,
                reservation_id=updated.id,
                class_id=gym_class.id,
                student_id=updated.student_id,
                status_from=previous,
                status_to=updated.status,
                occupied_seats=gym_class.occupied_seats,
                message=updated.cancel_reason,
            )

    return ReservationRead.from_db(reservation=updated, gym_class=gym_class, now=now)


@router.post("/reservations/{reservation_id}/attendance", response_model=ReservationRead)
async def mark_attendance(
    payload: AttendanceMark,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> ReservationRead:
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            updated, gym_class, previous = await reservation_usecase.mark_attendance(
                class_repo,
                res_repo,
                actor=actor,
                reservation_id=reservation_id,
                status=payload.status,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        if previous != updated.status:
            _audit(
                action="reservation.attendance_marked",
                actor=actor.role.value,
                actor_id=actor.user_id,
                reservation_id=updated.id,
                class_id=gym_class.id,
                student_id=updated.student_id,
                status_from=previous,
                status_to=updated.status,
            )

    return ReservationRead.from_db(reservation=updated, gym_class=gym_class)

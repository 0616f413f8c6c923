from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_actor, get_session, require_staff
from ..domain.errors import DomainError
from ..domain.services import Actor
from ..infrastructure.repositories import (
    SqlAlchemyClassRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyUserRepository,
)
from ..schemas import (
    ClassActiveToggle,
    ClassCreate,
    ClassRead,
    ClassUpdate,
    OccurrenceRead,
    RosterEntry,
    RosterRead,
)
from ..usecases import classes as class_usecase
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import gym_now
from .errors import to_http

router = APIRouter(prefix="/classes", tags=["classes"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.get("", response_model=List[ClassRead])
async def list_classes(
    modality: Optional[str] = Query(default=None, min_length=1, max_length=100),
    instructor_id: Optional[int] = Query(default=None, ge=1),
    weekday: Optional[int] = Query(default=None, ge=0, le=6),
    active: Optional[bool] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> list[ClassRead]:
    class_repo = SqlAlchemyClassRepository(session)
    try:
        classes = await class_usecase.list_classes(
            class_repo,
            modality=modality,
            instructor_id=instructor_id,
            weekday=weekday,
            active=active,
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return [ClassRead.from_db(gym_class=c) for c in classes]


@router.post("", response_model=ClassRead, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> ClassRead:
    class_repo = SqlAlchemyClassRepository(session)
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            gym_class = await class_usecase.create_class(
                class_repo,
                user_repo,
                actor=actor,
                modality=payload.modality,
                weekday=payload.weekday,
                start_time=payload.start_time,
                duration_minutes=payload.duration_minutes,
                capacity=payload.capacity,
                instructor_id=payload.instructor_id,
                recurring=payload.recurring,
                description=payload.description,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        _audit(
            action="class.created",
            actor=actor.role.value,
            actor_id=actor.user_id,
            class_id=gym_class.id,
            occupied_seats=gym_class.occupied_seats,
            extra={"instructor_id": gym_class.instructor_id, "capacity": gym_class.capacity},
        )

    return ClassRead.from_db(gym_class=gym_class)


@router.get("/{class_id}", response_model=ClassRead)
async def get_class(
    class_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ClassRead:
    class_repo = SqlAlchemyClassRepository(session)
    try:
        gym_class = await class_usecase.get_class(class_repo, class_id=class_id)
    except DomainError as exc:
        raise to_http(exc) from exc
    return ClassRead.from_db(gym_class=gym_class)


@router.get("/{class_id}/occurrences", response_model=List[OccurrenceRead])
async def list_occurrences(
    class_id: int = Path(..., ge=1),
    count: int = Query(default=4, ge=1, le=12),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> list[OccurrenceRead]:
    class_repo = SqlAlchemyClassRepository(session)
    try:
        gym_class = await class_usecase.get_class(class_repo, class_id=class_id)
    except DomainError as exc:
        raise to_http(exc) from exc
    remaining = max(gym_class.capacity - gym_class.occupied_seats, 0)
    return [
        OccurrenceRead(class_id=gym_class.id, occurrence_at=occurrence, remaining=remaining)
        for occurrence in class_usecase.list_occurrences(gym_class, now=gym_now(), count=count)
    ]


@router.patch("/{class_id}", response_model=ClassRead)
async def update_class(
    payload: ClassUpdate,
    class_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> ClassRead:
    changes = payload.model_dump(exclude_unset=True)
    class_repo = SqlAlchemyClassRepository(session)
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            gym_class = await class_usecase.update_class(
                class_repo,
                user_repo,
                actor=actor,
                class_id=class_id,
                changes=changes,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        _audit(
            action="class.updated",
            actor=actor.role.value,
            actor_id=actor.user_id,
            class_id=gym_class.id,
            occupied_seats=gym_class.occupied_seats,
            extra={"fields": sorted(changes)},
        )

    return ClassRead.from_db(gym_class=gym_class)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class(
    class_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> None:
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            await class_usecase.delete_class(class_repo, res_repo, actor=actor, class_id=class_id)
        except DomainError as exc:
            raise to_http(exc) from exc
        _audit(
            action="class.deleted",
            actor=actor.role.value,
            actor_id=actor.user_id,
            class_id=class_id,
        )


@router.post("/{class_id}/active", response_model=ClassRead)
async def set_class_active(
    payload: ClassActiveToggle,
    class_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> ClassRead:
    class_repo = SqlAlchemyClassRepository(session)
    async with session.begin():
        try:
            gym_class = await class_usecase.set_class_active(
                class_repo,
                actor=actor,
                class_id=class_id,
                active=payload.active,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        _audit(
            action="class.activated" if payload.active else "class.deactivated",
            actor=actor.role.value,
            actor_id=actor.user_id,
            class_id=gym_class.id,
            occupied_seats=gym_class.occupied_seats,
        )

    return ClassRead.from_db(gym_class=gym_class)


@router.post("/{class_id}/recount", response_model=ClassRead)
async def recount_seats(
    class_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> ClassRead:
    class_repo = SqlAlchemyClassRepository(session)
    async with session.begin():
        try:
            before = (await class_usecase.get_class(class_repo, class_id=class_id)).occupied_seats
            gym_class = await class_usecase.recount_seats(class_repo, actor=actor, class_id=class_id)
        except DomainError as exc:
            raise to_http(exc) from exc
        if before != gym_class.occupied_seats:
            _audit(
                action="class.seats_recounted",
                actor=actor.role.value,
                actor_id=actor.user_id,
                class_id=gym_class.id,
                occupied_seats=gym_class.occupied_seats,
                extra={"previous_seats": before},
            )

    return ClassRead.from_db(gym_class=gym_class)


@router.get("/{class_id}/roster", response_model=RosterRead)
async def class_roster(
    class_id: int = Path(..., ge=1),
    occurrence_at: datetime = Query(...),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_staff),
) -> RosterRead:
    if occurrence_at.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="occurrence_at must have timezone")
    class_repo = SqlAlchemyClassRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        gym_class, rows = await reservation_usecase.class_roster(
            class_repo,
            res_repo,
            actor=actor,
            class_id=class_id,
            occurrence_at=occurrence_at,
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return RosterRead(
        class_id=gym_class.id,
        occurrence_at=occurrence_at,
        capacity=gym_class.capacity,
        entries=[
            RosterEntry(
                reservation_id=reservation.id,
                student_id=student.id,
                student_name=student.name,
                student_email=student.email,
                status=reservation.status,
            )
            for reservation, student in rows
        ],
    )

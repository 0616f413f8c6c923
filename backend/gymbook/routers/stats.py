from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_admin
from ..domain.errors import DomainError
from ..domain.services import Actor
from ..infrastructure.repositories import (
    SqlAlchemyClassRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyUserRepository,
)
from ..schemas import GymStatsRead, StatusCounts
from ..usecases import stats as stats_usecase
from .errors import to_http

router = APIRouter(prefix="/admin", tags=["stats"])


@router.get("/stats", response_model=GymStatsRead)
async def gym_stats(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_admin),
) -> GymStatsRead:
    try:
        stats = await stats_usecase.gym_stats(
            SqlAlchemyClassRepository(session),
            SqlAlchemyReservationRepository(session),
            SqlAlchemyUserRepository(session),
        )
    except DomainError as exc:
        raise to_http(exc) from exc
    return GymStatsRead(
        total_classes=stats.total_classes,
        active_classes=stats.active_classes,
        registered_students=stats.registered_students,
        students_with_reservations=stats.students_with_reservations,
        reservations_by_status=StatusCounts.from_counts(stats.reservations_by_status),
        classes_held=stats.classes_held,
        attendance_rate=stats.attendance_rate,
        average_occupancy=stats.average_occupancy,
    )

from dataclasses import dataclass

from ..domain.repositories import ClassRepository, ReservationRepository, UserRepository
from ..domain.services import attendance_rate
from ..models import ReservationStatus, UserRole


@dataclass(frozen=True)
class GymStats:
    total_classes: int
    active_classes: int
    registered_students: int
    students_with_reservations: int
    reservations_by_status: dict[ReservationStatus, int]
    classes_held: int
    attendance_rate: int
    average_occupancy: int


async def gym_stats(
    class_repo: ClassRepository,
    res_repo: ReservationRepository,
    user_repo: UserRepository,
) -> GymStats:
    """Aggregate figures for the admin dashboard.

    Occupancy is the mean of each class's booked share of its capacity, so a
    small class that is full weighs as much as a large one.
    """
    classes = await class_repo.search()
    counts = await res_repo.count_by_status()
    attended = counts[ReservationStatus.ATTENDED]
    absent = counts[ReservationStatus.ABSENT]

    occupancy = 0
    if classes:
        share = sum(c.occupied_seats / c.capacity for c in classes) / len(classes)
        occupancy = int(share * 100 + 0.5)

    return GymStats(
        total_classes=len(classes),
        active_classes=sum(1 for c in classes if c.active),
        registered_students=await user_repo.count_by_role(UserRole.STUDENT),
        students_with_reservations=await res_repo.count_students_with_reservations(),
        reservations_by_status=counts,
        classes_held=attended + absent,
        attendance_rate=attendance_rate(attended, absent),
        average_occupancy=occupancy,
    )

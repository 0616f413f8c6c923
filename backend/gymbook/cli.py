"""
Operational commands for the gym booking backend.

Usage:
  gymbook init-db
  gymbook create-admin --email admin@example.com --password secret1
  gymbook seed --password secret1
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Awaitable, Optional, Sequence

from .config import get_settings
from .database import async_session, engine, init_db
from .domain.errors import DomainError
from .domain.services import Actor
from .infrastructure.repositories import SqlAlchemyClassRepository, SqlAlchemyUserRepository
from .models import User, UserRole
from .usecases import classes as class_usecase
from .usecases import users as user_usecase

logger = logging.getLogger("gymbook.cli")

SEED_INSTRUCTORS: list[tuple[str, str]] = [
    ("Carlos Silva", "carlos.silva@example.com"),
    ("Ana Santos", "ana.santos@example.com"),
    ("Pedro Oliveira", "pedro.oliveira@example.com"),
    ("Maria Costa", "maria.costa@example.com"),
    ("Rafael Mendes", "rafael.mendes@example.com"),
]

# (instructor index, modality, weekday, start time, duration, capacity, description)
SEED_CLASSES: list[tuple[int, str, int, str, int, int, str]] = [
    (0, "Functional", 1, "18:00", 60, 10, "Full-body functional training"),
    (1, "Yoga", 1, "07:00", 60, 8, "Yoga for beginners"),
    (2, "Cross", 2, "19:00", 60, 15, "High intensity cross training"),
    (0, "Functional", 3, "18:00", 60, 10, "Full-body functional training"),
    (1, "Yoga", 3, "07:00", 60, 8, "Yoga for beginners"),
    (2, "Cross", 5, "19:00", 60, 15, "High intensity cross training"),
    (3, "Pilates", 4, "08:00", 60, 6, "Pilates for core strength"),
    (4, "Spinning", 2, "06:00", 45, 20, "Early morning spinning"),
]


async def _ensure_user(name: str, email: str, password: str, role: UserRole) -> tuple[User, bool]:
    async with async_session() as session:
        user_repo = SqlAlchemyUserRepository(session)
        async with session.begin():
            existing = await user_repo.get_by_email(email)
            if existing is not None:
                return existing, False
            user = await user_usecase.register_user(
                user_repo,
                name=name,
                email=email,
                password=password,
                confirm_password=password,
                role=role,
            )
        return user, True


async def _init_db() -> None:
    await init_db()
    logger.info("database schema is up to date")


async def _create_admin(name: str, email: str, password: str) -> None:
    user, created = await _ensure_user(name, email, password, UserRole.ADMIN)
    if created:
        logger.info("created admin %s (id=%s)", user.email, user.id)
    else:
        logger.warning("user %s already exists with role %s", user.email, user.role.value)


async def _seed(password: str) -> None:
    await init_db()
    instructors: list[User] = []
    for name, email in SEED_INSTRUCTORS:
        user, _ = await _ensure_user(name, email, password, UserRole.INSTRUCTOR)
        instructors.append(user)

    async with async_session() as session:
        class_repo = SqlAlchemyClassRepository(session)
        user_repo = SqlAlchemyUserRepository(session)
        async with session.begin():
            if await class_repo.search():
                logger.info("classes already present, skipping class seed")
                return
            for index, modality, weekday, start_time, duration, capacity, description in SEED_CLASSES:
                instructor = instructors[index]
                await class_usecase.create_class(
                    class_repo,
                    user_repo,
                    actor=Actor(user_id=instructor.id, role=instructor.role),
                    modality=modality,
                    weekday=weekday,
                    start_time=start_time,
                    duration_minutes=duration,
                    capacity=capacity,
                    description=description,
                )
    logger.info("seeded %d instructors and %d classes", len(instructors), len(SEED_CLASSES))


async def _run(coro: Awaitable[None]) -> None:
    try:
        await coro
    finally:
        await engine.dispose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gymbook", description="Gym booking maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create missing tables")

    admin = sub.add_parser("create-admin", help="create the first administrator")
    admin.add_argument("--name", default=os.getenv("ADMIN_NAME", "Administrator"))
    admin.add_argument("--email", default=os.getenv("ADMIN_EMAIL"))
    admin.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))

    seed = sub.add_parser("seed", help="create sample instructors and weekly classes")
    seed.add_argument("--password", default=os.getenv("SEED_PASSWORD"), help="password for seeded instructors")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)s %(message)s")

    if args.command == "init-db":
        coro = _init_db()
    elif args.command == "create-admin":
        if not args.email or not args.password:
            logger.error("--email and --password (or ADMIN_EMAIL / ADMIN_PASSWORD) are required")
            return 2
        coro = _create_admin(args.name, args.email, args.password)
    else:
        if not args.password:
            logger.error("--password (or SEED_PASSWORD) is required")
            return 2
        coro = _seed(args.password)

    try:
        asyncio.run(_run(coro))
    except DomainError as exc:
        errors = getattr(exc, "errors", None) or [str(exc)]
        for message in errors:
            logger.error(message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

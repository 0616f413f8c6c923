from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_actor, get_session, require_admin
from ..domain.errors import DomainError
from ..domain.services import Actor
from ..infrastructure.repositories import SqlAlchemyUserRepository
from ..schemas import PasswordChange, ProfileUpdate, RoleChange, UserRead
from ..usecases import users as user_usecase
from ..utils.audit_log import emit_audit_log
from .errors import to_http

router = APIRouter(prefix="", tags=["users"])


@router.get("/me", response_model=UserRead)
async def read_me(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    user_repo = SqlAlchemyUserRepository(session)
    try:
        user = await user_usecase.get_user(user_repo, user_id=actor.user_id)
    except DomainError as exc:
        raise to_http(exc) from exc
    return UserRead.from_db(user=user)


@router.patch("/me", response_model=UserRead)
async def update_me(
    payload: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            user = await user_usecase.update_profile(
                user_repo,
                user_id=actor.user_id,
                name=payload.name,
                email=payload.email,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
    return UserRead.from_db(user=user)


@router.post("/me/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_my_password(
    payload: PasswordChange,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> None:
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            await user_usecase.change_password(
                user_repo,
                user_id=actor.user_id,
                current_password=payload.current_password,
                new_password=payload.new_password,
                confirm_password=payload.confirm_password,
            )
        except DomainError as exc:
            raise to_http(exc) from exc


@router.patch("/users/{user_id}/role", response_model=UserRead)
async def change_role(
    payload: RoleChange,
    user_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_admin),
) -> UserRead:
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            user, previous = await user_usecase.change_role(
                user_repo,
                actor=actor,
                user_id=user_id,
                role=payload.role,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        if previous != user.role:
            try:
                emit_audit_log(
                    action="user.role_changed",
                    actor="admin",
                    actor_id=actor.user_id,
                    status_from=previous,
                    status_to=user.role,
                    extra={"user_id": user.id},
                )
            except RuntimeError as exc:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed"
                ) from exc

    return UserRead.from_db(user=user)

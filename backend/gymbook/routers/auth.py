from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyUserRepository
from ..models import UserRole
from ..schemas import LoginRequest, RegisterRequest, TokenResponse, UserRead
from ..usecases import users as user_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.auth import create_access_token
from .errors import to_http

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_for(user_id: int, role: UserRole) -> str:
    settings = get_settings()
    return create_access_token(
        user_id=user_id,
        role=role,
        secret=settings.auth_secret,
        algorithm=settings.auth_algorithm,
        expires_delta=timedelta(minutes=settings.access_token_minutes),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            user = await user_usecase.register_user(
                user_repo,
                name=payload.name,
                email=payload.email,
                password=payload.password,
                confirm_password=payload.confirm_password,
            )
        except DomainError as exc:
            raise to_http(exc) from exc
        try:
            emit_audit_log(
                action="user.registered",
                actor="system",
                actor_id=user.id,
                student_id=user.id,
            )
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc

    return TokenResponse(access_token=_token_for(user.id, user.role), user=UserRead.from_db(user=user))


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    user_repo = SqlAlchemyUserRepository(session)
    try:
        user = await user_usecase.authenticate(user_repo, email=payload.email, password=payload.password)
    except DomainError as exc:
        raise to_http(exc) from exc
    return TokenResponse(access_token=_token_for(user.id, user.role), user=UserRead.from_db(user=user))

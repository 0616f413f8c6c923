import logging

from ..domain.errors import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from ..domain.repositories import UserRepository
from ..domain.services import Actor
from ..domain.validators import (
    sanitize_string,
    validate_login,
    validate_password_change,
    validate_profile,
    validate_registration,
)
from ..models import User, UserRole
from ..utils.auth import hash_password, verify_password

logger = logging.getLogger(__name__)


async def register_user(
    user_repo: UserRepository,
    *,
    name: str,
    email: str,
    password: str,
    confirm_password: str,
    role: UserRole = UserRole.STUDENT,
) -> User:
    result = validate_registration(name, email, password, confirm_password)
    if not result.valid:
        raise ValidationFailedError(result.errors)

    email = email.strip().lower()
    if await user_repo.get_by_email(email) is not None:
        raise EmailAlreadyRegisteredError("this email is already registered")

    user = await user_repo.create(
        name=sanitize_string(name),
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    logger.info("registered user %s with role %s", user.id, role.value)
    return user


async def authenticate(user_repo: UserRepository, *, email: str, password: str) -> User:
    result = validate_login(email, password)
    if not result.valid:
        raise ValidationFailedError(result.errors)

    user = await user_repo.get_by_email(email.strip())
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("invalid email or password")
    return user


async def get_user(user_repo: UserRepository, *, user_id: int) -> User:
    user = await user_repo.get(user_id)
    if user is None:
        raise NotFoundError(f"user {user_id} not found")
    return user


async def update_profile(
    user_repo: UserRepository,
    *,
    user_id: int,
    name: str | None = None,
    email: str | None = None,
) -> User:
    user = await get_user(user_repo, user_id=user_id)
    new_name = name if name is not None else user.name
    new_email = email.strip().lower() if email is not None else user.email

    result = validate_profile(new_name, new_email)
    if not result.valid:
        raise ValidationFailedError(result.errors)

    if new_email != user.email:
        other = await user_repo.get_by_email(new_email)
        if other is not None and other.id != user.id:
            raise EmailAlreadyRegisteredError("this email is already registered")

    user.name = sanitize_string(new_name)
    user.email = new_email
    return await user_repo.save(user)


async def change_password(
    user_repo: UserRepository,
    *,
    user_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> User:
    result = validate_password_change(current_password, new_password, confirm_password)
    if not result.valid:
        raise ValidationFailedError(result.errors)

    user = await get_user(user_repo, user_id=user_id)
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("current password is incorrect")

    user.password_hash = hash_password(new_password)
    return await user_repo.save(user)


async def change_role(
    user_repo: UserRepository,
    *,
    actor: Actor,
    user_id: int,
    role: UserRole,
) -> tuple[User, UserRole]:
    if not actor.is_admin:
        raise PermissionDeniedError("only admins can change roles")
    if actor.user_id == user_id and role != UserRole.ADMIN:
        raise PermissionDeniedError("admins cannot demote themselves")

    user = await get_user(user_repo, user_id=user_id)
    previous = user.role
    if previous != role:
        user.role = role
        user = await user_repo.save(user)
    return user, previous

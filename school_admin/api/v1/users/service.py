import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.models import LoginHistory, User
from school_admin.auth.security import generate_login_code, hash_login_code, login_code_expiry
from school_admin.core.exceptions import ServiceError

from .schemas import (
    CreateUserResponse,
    LoginCodeResponse,
    LoginHistoryPage,
    LoginHistoryResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)


def _to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


def _assign_login_code(user: User) -> str:
    code = generate_login_code()
    user.login_code_hash = hash_login_code(code)
    user.code_expires_at = login_code_expiry()
    return code


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return user


async def create_user(db: AsyncSession, payload: UserCreate) -> CreateUserResponse:
    existing = await db.execute(select(User).where(User.phone_number == payload.phone_number))
    if existing.scalar_one_or_none():
        raise ServiceError("A user with this phone number already exists", status.HTTP_409_CONFLICT)

    user = User(
        name=payload.name.strip(),
        phone_number=payload.phone_number,
        email=payload.email,
        role=payload.role.value,
        tc_available=payload.tc_available,
        is_active=True,
    )
    code = _assign_login_code(user)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("A user with this phone number already exists", status.HTTP_409_CONFLICT)
    await db.refresh(user)
    logger.info("Created %s user %s", user.role, user.id)
    return CreateUserResponse(
        user=_to_response(user),
        login_code=LoginCodeResponse(
            user_id=user.id,
            phone_number=user.phone_number,
            login_code=code,
            expires_at=user.code_expires_at,
        ),
    )


async def list_users(
    db: AsyncSession,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[UserResponse]:
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    result = await db.execute(stmt.order_by(User.name))
    return [_to_response(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: UUID) -> Optional[UserResponse]:
    user = await db.get(User, user_id)
    return _to_response(user) if user else None


async def update_user(db: AsyncSession, user_id: UUID, payload: UserUpdate) -> UserResponse:
    user = await _get_user(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("phone_number") and data["phone_number"] != user.phone_number:
        other = await db.execute(
            select(User).where(User.phone_number == data["phone_number"], User.id != user_id)
        )
        if other.scalar_one_or_none():
            raise ServiceError("A user with this phone number already exists", status.HTTP_409_CONFLICT)
    for field, value in data.items():
        if value is None and field in ("name", "phone_number", "role", "is_active", "tc_available"):
            continue
        if field == "role":
            value = value.value if hasattr(value, "value") else value
        setattr(user, field, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("A user with this phone number already exists", status.HTTP_409_CONFLICT)
    await db.refresh(user)
    return _to_response(user)


async def deactivate_user(db: AsyncSession, user_id: UUID, acting_user_id: UUID) -> UserResponse:
    if user_id == acting_user_id:
        raise ServiceError("You cannot deactivate your own account", status.HTTP_400_BAD_REQUEST)
    user = await _get_user(db, user_id)
    user.is_active = False
    user.login_code_hash = None
    user.code_expires_at = None
    await db.commit()
    await db.refresh(user)
    logger.info("Deactivated user %s", user.id)
    return _to_response(user)


async def issue_login_code(db: AsyncSession, user_id: UUID) -> LoginCodeResponse:
    """Replace the user's login code. The previous code stops working immediately."""
    user = await _get_user(db, user_id)
    if not user.is_active:
        raise ServiceError("Cannot issue a login code to an inactive user", status.HTTP_400_BAD_REQUEST)
    code = _assign_login_code(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Issued new login code for user %s", user.id)
    return LoginCodeResponse(
        user_id=user.id,
        phone_number=user.phone_number,
        login_code=code,
        expires_at=user.code_expires_at,
    )


async def list_login_history(
    db: AsyncSession,
    user_id: Optional[UUID] = None,
    success: Optional[bool] = None,
    limit: int = 50,
    offset: int = 0,
) -> LoginHistoryPage:
    filters = []
    if user_id:
        filters.append(LoginHistory.user_id == user_id)
    if success is not None:
        filters.append(LoginHistory.success.is_(success))
    total = await db.scalar(select(func.count()).select_from(LoginHistory).where(*filters))
    result = await db.execute(
        select(LoginHistory)
        .where(*filters)
        .order_by(LoginHistory.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return LoginHistoryPage(
        items=[LoginHistoryResponse.model_validate(row) for row in result.scalars().all()],
        total=total or 0,
    )

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.models import LoginHistory, RefreshToken, User
from school_admin.auth.schemas import (
    AcademicYearContext,
    LoginResponse,
    LoginWithCodeRequest,
    TokenResponse,
    UserInfo,
)
from school_admin.auth.security import (
    as_utc,
    create_access_token,
    create_refresh_token,
    verify_login_code,
)
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import AcademicYear

logger = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid phone number or login code"


async def _current_academic_year(db: AsyncSession) -> Optional[AcademicYear]:
    result = await db.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True)))
    return result.scalars().first()


def _access_payload(user: User, academic_year: Optional[AcademicYear], issued_at: datetime) -> dict:
    return {
        "sub": str(user.id),
        "user_id": str(user.id),
        "role": user.role,
        "academic_year_id": str(academic_year.id) if academic_year else None,
        "iat": int(issued_at.timestamp()),
    }


async def _record_attempt(
    db: AsyncSession,
    phone_number: str,
    user: Optional[User],
    success: bool,
    failure_reason: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    db.add(
        LoginHistory(
            user_id=user.id if user else None,
            phone_number=phone_number,
            success=success,
            failure_reason=failure_reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )


async def login_with_code(
    db: AsyncSession,
    payload: LoginWithCodeRequest,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> LoginResponse:
    """Exchange phone number + login code for an access/refresh token pair."""
    result = await db.execute(select(User).where(User.phone_number == payload.phone_number))
    user: Optional[User] = result.scalar_one_or_none()

    failure: Optional[str] = None
    if not user or not user.is_active:
        failure = "unknown_or_inactive_user"
    elif not user.login_code_hash:
        failure = "no_login_code"
    elif user.code_expires_at and as_utc(user.code_expires_at) < datetime.now(timezone.utc):
        failure = "login_code_expired"
    elif not verify_login_code(payload.login_code, user.login_code_hash):
        failure = "login_code_mismatch"

    if failure:
        await _record_attempt(db, payload.phone_number, user, False, failure, ip_address, user_agent)
        await db.commit()
        logger.warning("Login failed for %s: %s", payload.phone_number, failure)
        raise ServiceError(INVALID_LOGIN_MESSAGE, status.HTTP_401_UNAUTHORIZED)

    academic_year = await _current_academic_year(db)
    issued_at = datetime.now(timezone.utc)
    access_token = create_access_token(subject=_access_payload(user, academic_year, issued_at))
    refresh_token_str, refresh_expires_at = create_refresh_token()

    db.add(RefreshToken(user_id=user.id, token=refresh_token_str, expires_at=refresh_expires_at))
    await _record_attempt(db, payload.phone_number, user, True, None, ip_address, user_agent)
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise ServiceError(
            "Failed to persist authentication state",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ) from e
    logger.info("User %s (%s) logged in", user.id, user.role)

    academic_year_ctx: Optional[AcademicYearContext] = None
    if academic_year:
        academic_year_ctx = AcademicYearContext(id=academic_year.id, year_name=academic_year.year_name)

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token_str,
        user=UserInfo(
            id=user.id,
            name=user.name,
            phone_number=user.phone_number,
            email=user.email,
            role=user.role,
        ),
        academic_year=academic_year_ctx,
        issued_at=issued_at,
    )


async def refresh_access_token(db: AsyncSession, refresh_token: str) -> TokenResponse:
    result = await db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
    stored = result.scalar_one_or_none()
    if not stored or as_utc(stored.expires_at) < datetime.now(timezone.utc):
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)

    user = await db.get(User, stored.user_id)
    if not user or not user.is_active:
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)

    academic_year = await _current_academic_year(db)
    issued_at = datetime.now(timezone.utc)
    return TokenResponse(
        access_token=create_access_token(subject=_access_payload(user, academic_year, issued_at)),
    )

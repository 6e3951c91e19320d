from datetime import datetime, timedelta, timezone
import secrets
from typing import Dict, Optional, Tuple

import bcrypt
from jose import jwt

from school_admin.core.config import settings

# No 0/O, 1/I: codes are read out over the phone
LOGIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_login_code(length: Optional[int] = None) -> str:
    if length is None:
        length = settings.login_code_length
    return "".join(secrets.choice(LOGIN_CODE_ALPHABET) for _ in range(length))


def hash_login_code(plain_code: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain_code.strip().upper().encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_login_code(plain_code: str, code_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_code.strip().upper().encode("utf-8"), code_hash.encode("utf-8"))
    except ValueError:
        # In case the stored hash is invalid/corrupted
        return False


def login_code_expiry(hours: Optional[int] = None) -> datetime:
    if hours is None:
        hours = settings.login_code_expire_hours
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def create_access_token(
    *, subject: Dict, expires_minutes: Optional[int] = None
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    return encoded_jwt


def create_refresh_token(*, expires_days: Optional[int] = None) -> Tuple[str, datetime]:
    if expires_days is None:
        expires_days = settings.refresh_token_expire_days
    expire = datetime.now(timezone.utc) + timedelta(days=expires_days)
    token = secrets.token_urlsafe(48)
    return token, expire


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

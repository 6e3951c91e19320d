from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from school_admin.core.enums import UserRole
from school_admin.core.validation import check_phone_number


class LoginWithCodeRequest(BaseModel):
    phone_number: str = Field(..., min_length=1)
    login_code: str = Field(..., min_length=1, max_length=32)

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: str) -> str:
        return check_phone_number(v)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserInfo(BaseModel):
    id: UUID
    name: str
    phone_number: str
    email: Optional[str] = None
    role: UserRole


class AcademicYearContext(BaseModel):
    """Current academic year embedded in the session/token."""

    id: UUID
    year_name: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo
    academic_year: Optional[AcademicYearContext] = None
    issued_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role checks."""

    id: UUID
    name: str
    role: UserRole
    academic_year_id: Optional[UUID] = None  # current academic year at login

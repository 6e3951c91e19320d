from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from school_admin.core.enums import UserRole
from school_admin.core.validation import check_phone_number


class UserCreate(BaseModel):
    """Staff account created by an administrator. A login code is issued on creation."""

    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=1)
    role: UserRole
    email: Optional[str] = Field(None, max_length=255)
    tc_available: bool = False

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: str) -> str:
        return check_phone_number(v)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone_number: Optional[str] = None
    role: Optional[UserRole] = None
    email: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None
    tc_available: Optional[bool] = None

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone_number(v)


class UserResponse(BaseModel):
    id: UUID
    name: str
    phone_number: str
    email: Optional[str] = None
    role: UserRole
    is_active: bool
    tc_available: bool
    code_expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginCodeResponse(BaseModel):
    """Clear login code. Returned only at issue time; the server keeps a hash."""

    user_id: UUID
    phone_number: str
    login_code: str
    expires_at: datetime


class CreateUserResponse(BaseModel):
    user: UserResponse
    login_code: LoginCodeResponse


class LoginHistoryResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    phone_number: str
    success: bool
    failure_reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginHistoryPage(BaseModel):
    items: List[LoginHistoryResponse]
    total: int

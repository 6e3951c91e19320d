import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from school_admin.db.session import Base


class User(Base):
    """Staff user (administrator, accountant, teacher). Signs in with phone number + login code."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    phone_number = Column(String(15), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False)  # administrator | accountant | teacher
    is_active = Column(Boolean, nullable=False, default=True)
    tc_available = Column(Boolean, nullable=False, default=False)
    # bcrypt hash of the current login code; the clear code is only shown once when issued
    login_code_hash = Column(Text, nullable=True)
    code_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )


class RefreshToken(Base):
    """Stored refresh tokens for users."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(512), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")


class LoginHistory(Base):
    """One row per login attempt. user_id is null when the phone number did not match a user."""

    __tablename__ = "login_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    phone_number = Column(String(15), nullable=False)
    success = Column(Boolean, nullable=False)
    failure_reason = Column(String(100), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

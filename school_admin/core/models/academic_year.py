import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from school_admin.db.session import Base


class AcademicYear(Base):
    """
    School academic year (e.g. "2025-2026"). Only one year is is_current = true.
    previous_year_id links the chain used when copying fee structures forward.
    transition_status becomes "completed" once its students were promoted to the next year.
    """

    __tablename__ = "academic_years"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    year_name = Column(String(20), nullable=False, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    previous_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="SET NULL"), nullable=True)
    transition_status = Column(String(20), nullable=False, default="pending")  # pending | completed
    transition_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AcademicYearSetting(Base):
    """Per-year key/value blob store (e.g. setting_key = "year_end_reports")."""

    __tablename__ = "academic_year_settings"
    __table_args__ = (
        UniqueConstraint("academic_year_id", "setting_key", name="uq_academic_year_setting_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False)
    setting_key = Column(String(100), nullable=False)
    setting_value = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

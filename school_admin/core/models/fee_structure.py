"""School fee lines per class/year and bus fees per village/year."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, Text, UniqueConstraint, Uuid

from school_admin.db.session import Base


class FeeStructure(Base):
    """
    One fee line for a class in an academic year.
    is_recurring_monthly lines are charged every month of the year; others once.
    """

    __tablename__ = "fee_structure"
    __table_args__ = (
        UniqueConstraint("academic_year_id", "class_id", "fee_type_id", name="uq_fee_structure_line"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    fee_type_id = Column(Uuid, ForeignKey("fee_types.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=True)
    applicable_to_new_students_only = Column(Boolean, nullable=False, default=False)
    is_recurring_monthly = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    last_updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class BusFeeStructure(Base):
    """Monthly bus fee for a village in an academic year. Only one row per (village, year) is active."""

    __tablename__ = "bus_fee_structure"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    village_id = Column(Uuid, ForeignKey("villages.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_amount = Column(Numeric(12, 2), nullable=False)
    effective_from_date = Column(Date, nullable=False)
    effective_to_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    last_updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

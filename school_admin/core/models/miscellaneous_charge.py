"""Ad-hoc charges (uniform, books, trips) outside the fee structure."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid

from school_admin.db.session import Base


class ChargeCategory(Base):
    __tablename__ = "charge_categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class MiscellaneousCharge(Base):
    """Charge levied on one student. Settled in full by a single miscellaneous fee payment."""

    __tablename__ = "miscellaneous_charges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    charge_category_id = Column(Uuid, ForeignKey("charge_categories.id", ondelete="RESTRICT"), nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    charge_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    payment_id = Column(Uuid, ForeignKey("fee_payments.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

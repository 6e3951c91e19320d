"""Fee payments and their split between the bus and school balances."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid

from school_admin.db.session import Base


class FeePayment(Base):
    """
    Money received from a student. charge_type "fee" payments carry exactly one payment_allocation row;
    "miscellaneous" payments settle a miscellaneous charge and are not allocated.
    metadata_ holds the split policy used ({"split_policy": "equal"}).
    """

    __tablename__ = "fee_payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False, index=True)
    amount_paid = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)  # cash | online
    transaction_id = Column(String(100), nullable=True)
    receipt_number = Column(String(50), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    charge_type = Column(String(20), nullable=False, default="fee")  # fee | miscellaneous
    charge_description = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PaymentAllocation(Base):
    """bus_fee_amount + school_fee_amount always equals the payment's amount_paid."""

    __tablename__ = "payment_allocation"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("fee_payments.id", ondelete="CASCADE"), nullable=False, unique=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    bus_fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    school_fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    allocation_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

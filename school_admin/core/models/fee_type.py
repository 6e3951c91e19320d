"""Fee type master (Tuition, Exam, Admission, Bus)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, String, Text, Uuid

from school_admin.db.session import Base


class FeeType(Base):
    """Named kind of fee. category decides which balance (school or bus) its charges count towards."""

    __tablename__ = "fee_types"
    __table_args__ = (
        CheckConstraint("category IN ('school','bus')", name="chk_fee_type_category"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    frequency = Column(String(20), nullable=False, default="annual")  # monthly | quarterly | annual | ad_hoc
    category = Column(String(20), nullable=False, default="school")
    is_monthly = Column(Boolean, nullable=False, default=False)
    is_for_new_students_only = Column(Boolean, nullable=False, default=False)
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)
    last_updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

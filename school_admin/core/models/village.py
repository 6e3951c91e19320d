"""Villages (bus catchment areas) and the history of their bus fee changes."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid

from school_admin.db.session import Base


class Village(Base):
    """Catchment area served by the school bus. Bus fee is set per year in bus_fee_structure."""

    __tablename__ = "villages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    distance_from_school = Column(Numeric(6, 2), nullable=False)  # km
    bus_number = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class BusFeeHistory(Base):
    """Immutable record of each change to a village's active bus fee."""

    __tablename__ = "bus_fee_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    village_id = Column(Uuid, ForeignKey("villages.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=True)
    previous_amount = Column(Numeric(12, 2), nullable=True)
    new_amount = Column(Numeric(12, 2), nullable=False)
    change_date = Column(Date, nullable=False)
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

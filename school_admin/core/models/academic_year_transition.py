"""Academic year transition: one promotion run from one year into the next."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, String, Uuid

from school_admin.db.session import Base


class AcademicYearTransition(Base):
    """Batch promotion of a year's students. pending -> in_progress -> completed | failed."""

    __tablename__ = "academic_year_transitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    from_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    to_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    total_students = Column(Integer, nullable=False, default=0)
    promoted_students = Column(Integer, nullable=False, default=0)
    retained_students = Column(Integer, nullable=False, default=0)
    transferred_students = Column(Integer, nullable=False, default=0)
    dropped_students = Column(Integer, nullable=False, default=0)
    skipped_students = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

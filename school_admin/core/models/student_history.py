"""Per-year student placement and the promotion decisions made between years."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from school_admin.db.session import Base


class StudentAcademicHistory(Base):
    """
    Student enrollment per academic year. One row per (student, academic_year).
    Promotion creates NEW rows in the target year; earlier rows are never rewritten.
    """

    __tablename__ = "student_academic_history"
    __table_args__ = (
        UniqueConstraint("student_id", "academic_year_id", name="uq_student_history_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False)
    section = Column(String(10), nullable=True)
    promotion_status = Column(String(20), nullable=True)
    # Fee-relevant facts as they stood in this year; later edits to the student do not rewrite them.
    registration_type = Column(String(20), nullable=False, default="new")
    has_school_bus = Column(Boolean, nullable=False, default=False)
    village_id = Column(Uuid, ForeignKey("villages.id", ondelete="SET NULL"), nullable=True)
    registration_date_for_year = Column(Date, nullable=False)
    is_active_in_year = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class StudentPromotionHistory(Base):
    """Outcome recorded for a student when their academic year was closed out."""

    __tablename__ = "student_promotion_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    transition_id = Column(Uuid, ForeignKey("academic_year_transitions.id", ondelete="SET NULL"), nullable=True)
    from_class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    to_class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    promotion_status = Column(String(20), nullable=False)  # promoted | retained | transferred_out | dropped_out
    promotion_date = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

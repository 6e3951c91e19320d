"""Year-scoped classes (e.g. LKG, 1, 10). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from school_admin.db.session import Base


class SchoolClass(Base):
    """Class offered in an academic year. Promotion looks up the next class by name in the target year."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("academic_year_id", "name", name="uq_class_year_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)
    display_order = Column(Integer, nullable=True)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

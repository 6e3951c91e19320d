import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text, Uuid

from school_admin.db.session import Base


class Student(Base):
    """
    Registered student. class_id points at the class of the student's latest academic year;
    per-year placement is kept in student_academic_history.
    Bus fees apply only when has_school_bus and village_id are both set.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    admission_number = Column(String(50), nullable=False, unique=True)
    student_name = Column(String(255), nullable=False)
    gender = Column(String(10), nullable=False, default="male")
    date_of_birth = Column(Date, nullable=True)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True, index=True)
    section = Column(String(10), nullable=False, default="A")
    admission_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    exit_date = Column(Date, nullable=True)
    pen = Column(String(50), nullable=True)  # Permanent Education Number
    address = Column(Text, nullable=True)
    phone_number = Column(String(15), nullable=True)
    father_name = Column(String(255), nullable=True)
    mother_name = Column(String(255), nullable=True)
    student_aadhar = Column(String(12), nullable=True)
    father_aadhar = Column(String(12), nullable=True)
    village_id = Column(Uuid, ForeignKey("villages.id", ondelete="SET NULL"), nullable=True, index=True)
    has_school_bus = Column(Boolean, nullable=False, default=False)
    bus_start_date = Column(Date, nullable=True)
    registration_type = Column(String(20), nullable=False, default="new")  # new | continuing
    last_registration_date = Column(Date, nullable=True)
    last_registration_type = Column(String(20), nullable=True)
    previous_admission_number = Column(String(50), nullable=True)
    rejoining_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

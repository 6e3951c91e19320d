import math
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.core.exceptions import ServiceError
from school_admin.core.models import (
    FeePayment,
    MiscellaneousCharge,
    PaymentAllocation,
    SchoolClass,
    Student,
    StudentAcademicHistory,
    StudentPromotionHistory,
    Village,
)

from .schemas import (
    AcademicHistoryResponse,
    StudentCreate,
    StudentPaginatedResponse,
    StudentResponse,
    StudentUpdate,
)

ENUM_FIELDS = ("gender", "status", "registration_type")
HISTORY_FIELDS = {"section", "status", "registration_type", "has_school_bus", "village_id"}


def _to_response(
    student: Student,
    class_name: Optional[str] = None,
    village_name: Optional[str] = None,
) -> StudentResponse:
    response = StudentResponse.model_validate(student)
    response.class_name = class_name
    response.village_name = village_name
    return response


async def _student_response(db: AsyncSession, student: Student) -> StudentResponse:
    class_name = None
    village_name = None
    if student.class_id:
        sc = await db.get(SchoolClass, student.class_id)
        class_name = sc.name if sc else None
    if student.village_id:
        village = await db.get(Village, student.village_id)
        village_name = village.name if village else None
    return _to_response(student, class_name, village_name)


async def _get_class(db: AsyncSession, class_id: UUID) -> SchoolClass:
    sc = await db.get(SchoolClass, class_id)
    if not sc:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    return sc


async def _check_village(db: AsyncSession, village_id: Optional[UUID]) -> None:
    if village_id and not await db.get(Village, village_id):
        raise ServiceError("Village not found", status.HTTP_404_NOT_FOUND)


async def _upsert_history(db: AsyncSession, student: Student, sc: SchoolClass) -> None:
    """Keep the student's history row for the class's academic year in line with the student record."""
    result = await db.execute(
        select(StudentAcademicHistory).where(
            StudentAcademicHistory.student_id == student.id,
            StudentAcademicHistory.academic_year_id == sc.academic_year_id,
        )
    )
    history = result.scalar_one_or_none()
    if history:
        history.class_id = sc.id
        history.section = student.section
        history.is_active_in_year = student.status == "active"
        history.registration_type = student.registration_type
        history.has_school_bus = student.has_school_bus
        history.village_id = student.village_id
        return
    db.add(
        StudentAcademicHistory(
            student_id=student.id,
            academic_year_id=sc.academic_year_id,
            class_id=sc.id,
            section=student.section,
            registration_type=student.registration_type,
            has_school_bus=student.has_school_bus,
            village_id=student.village_id,
            registration_date_for_year=student.last_registration_date or student.admission_date,
            is_active_in_year=student.status == "active",
        )
    )


async def admission_number_exists(db: AsyncSession, admission_number: str) -> bool:
    result = await db.execute(select(Student.id).where(Student.admission_number == admission_number))
    return result.first() is not None


async def register_student(db: AsyncSession, payload: StudentCreate, commit: bool = True) -> Student:
    """Insert the student and their academic history row for the class's year."""
    admission_number = payload.admission_number.strip()
    if await admission_number_exists(db, admission_number):
        raise ServiceError(
            f"Admission number '{admission_number}' already exists",
            status.HTTP_409_CONFLICT,
        )
    sc = await _get_class(db, payload.class_id) if payload.class_id else None
    await _check_village(db, payload.village_id)

    data = payload.model_dump(exclude={"admission_number"})
    for field in ENUM_FIELDS:
        if field in data and hasattr(data[field], "value"):
            data[field] = data[field].value
    student = Student(
        admission_number=admission_number,
        status="active",
        last_registration_date=payload.admission_date,
        last_registration_type=data["registration_type"],
        **data,
    )
    db.add(student)
    await db.flush()
    if sc:
        await _upsert_history(db, student, sc)
    if commit:
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ServiceError(
                f"Admission number '{admission_number}' already exists",
                status.HTTP_409_CONFLICT,
            )
        await db.refresh(student)
    return student


async def create_student(db: AsyncSession, payload: StudentCreate) -> StudentResponse:
    student = await register_student(db, payload)
    return await _student_response(db, student)


async def get_student(db: AsyncSession, student_id: UUID) -> Optional[StudentResponse]:
    student = await db.get(Student, student_id)
    return await _student_response(db, student) if student else None


async def list_students(
    db: AsyncSession,
    search: Optional[str] = None,
    class_id: Optional[UUID] = None,
    section: Optional[str] = None,
    status_filter: Optional[str] = None,
    village_id: Optional[UUID] = None,
    has_school_bus: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> StudentPaginatedResponse:
    """Filtered, paginated student list. search matches name or admission number (case-insensitive)."""
    filters = []
    if search:
        term = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(Student.student_name).like(term),
                func.lower(Student.admission_number).like(term),
            )
        )
    if class_id:
        filters.append(Student.class_id == class_id)
    if section:
        filters.append(Student.section == section)
    if status_filter:
        filters.append(Student.status == status_filter)
    if village_id:
        filters.append(Student.village_id == village_id)
    if has_school_bus is not None:
        filters.append(Student.has_school_bus.is_(has_school_bus))

    total = await db.scalar(select(func.count()).select_from(Student).where(*filters)) or 0
    result = await db.execute(
        select(Student, SchoolClass.name, Village.name)
        .outerjoin(SchoolClass, SchoolClass.id == Student.class_id)
        .outerjoin(Village, Village.id == Student.village_id)
        .where(*filters)
        .order_by(Student.student_name, Student.admission_number)
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    items = [_to_response(student, class_name, village_name) for student, class_name, village_name in result.all()]
    return StudentPaginatedResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


async def update_student(db: AsyncSession, student_id: UUID, payload: StudentUpdate) -> StudentResponse:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    data = payload.model_dump(exclude_unset=True)
    for field in ENUM_FIELDS:
        if data.get(field) is not None and hasattr(data[field], "value"):
            data[field] = data[field].value

    sc = None
    if data.get("class_id"):
        sc = await _get_class(db, data["class_id"])
    if "village_id" in data:
        await _check_village(db, data["village_id"])

    has_bus = data.get("has_school_bus", student.has_school_bus)
    village_id = data["village_id"] if "village_id" in data else student.village_id
    if has_bus and not village_id:
        raise ServiceError(
            "Village is required when school bus service is selected",
            status.HTTP_400_BAD_REQUEST,
        )

    exit_date = data["exit_date"] if "exit_date" in data else student.exit_date
    if data.get("status") == "inactive" and exit_date is None:
        raise ServiceError("exit_date is required when marking a student inactive", status.HTTP_400_BAD_REQUEST)

    for field, value in data.items():
        if value is None and field in ("student_name", "gender", "section", "status", "has_school_bus", "registration_type"):
            continue
        setattr(student, field, value)
    if data.get("status") == "active":
        student.exit_date = None

    if sc is None and student.class_id and (HISTORY_FIELDS & data.keys()):
        sc = await db.get(SchoolClass, student.class_id)
    if sc:
        await _upsert_history(db, student, sc)

    await db.commit()
    await db.refresh(student)
    return await _student_response(db, student)


async def delete_student(db: AsyncSession, student_id: UUID) -> None:
    """Delete a student with no recorded payments. History and unpaid charges go with them."""
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    payments = await db.scalar(
        select(func.count()).select_from(FeePayment).where(FeePayment.student_id == student_id)
    )
    if payments:
        raise ServiceError(
            "Student has recorded payments; mark the student inactive instead",
            status.HTTP_409_CONFLICT,
        )
    await db.execute(delete(PaymentAllocation).where(PaymentAllocation.student_id == student_id))
    await db.execute(delete(MiscellaneousCharge).where(MiscellaneousCharge.student_id == student_id))
    await db.execute(delete(StudentPromotionHistory).where(StudentPromotionHistory.student_id == student_id))
    await db.execute(delete(StudentAcademicHistory).where(StudentAcademicHistory.student_id == student_id))
    await db.delete(student)
    await db.commit()


async def list_academic_history(db: AsyncSession, student_id: UUID) -> List[AcademicHistoryResponse]:
    if not await db.get(Student, student_id):
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    result = await db.execute(
        select(StudentAcademicHistory)
        .where(StudentAcademicHistory.student_id == student_id)
        .order_by(StudentAcademicHistory.registration_date_for_year)
    )
    return [AcademicHistoryResponse.model_validate(row) for row in result.scalars().all()]

from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import resolve_academic_year
from school_admin.auth.models import User
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import FeeStructure, SchoolClass, Student, StudentAcademicHistory

from .schemas import SchoolClassCreate, SchoolClassResponse, SchoolClassUpdate


def _to_response(sc: SchoolClass) -> SchoolClassResponse:
    return SchoolClassResponse.model_validate(sc)


async def _check_teacher(db: AsyncSession, teacher_id: Optional[UUID]) -> None:
    if teacher_id is None:
        return
    teacher = await db.get(User, teacher_id)
    if not teacher or not teacher.is_active:
        raise ServiceError("Class teacher not found", status.HTTP_404_NOT_FOUND)


async def find_class_by_name(db: AsyncSession, academic_year_id: UUID, name: str) -> Optional[SchoolClass]:
    """Case-insensitive lookup of a class by name within one academic year."""
    result = await db.execute(
        select(SchoolClass).where(
            SchoolClass.academic_year_id == academic_year_id,
            func.lower(SchoolClass.name) == name.strip().lower(),
        )
    )
    return result.scalars().first()


async def create_class(db: AsyncSession, payload: SchoolClassCreate) -> SchoolClassResponse:
    ay = await resolve_academic_year(db, payload.academic_year_id)
    year_name = ay.year_name
    name = payload.name.strip()
    if await find_class_by_name(db, ay.id, name):
        raise ServiceError(
            f"Class '{name}' already exists in {year_name}",
            status.HTTP_409_CONFLICT,
        )
    await _check_teacher(db, payload.teacher_id)
    sc = SchoolClass(
        academic_year_id=ay.id,
        name=name,
        display_order=payload.display_order,
        teacher_id=payload.teacher_id,
    )
    db.add(sc)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Class '{name}' already exists in {year_name}", status.HTTP_409_CONFLICT)
    await db.refresh(sc)
    return _to_response(sc)


async def list_classes(db: AsyncSession, academic_year_id: Optional[UUID] = None) -> List[SchoolClassResponse]:
    """Classes of one academic year (default current), in display order."""
    ay = await resolve_academic_year(db, academic_year_id)
    result = await db.execute(
        select(SchoolClass)
        .where(SchoolClass.academic_year_id == ay.id)
        .order_by(SchoolClass.display_order.is_(None), SchoolClass.display_order, SchoolClass.name)
    )
    return [_to_response(sc) for sc in result.scalars().all()]


async def get_class(db: AsyncSession, class_id: UUID) -> Optional[SchoolClassResponse]:
    sc = await db.get(SchoolClass, class_id)
    return _to_response(sc) if sc else None


async def update_class(db: AsyncSession, class_id: UUID, payload: SchoolClassUpdate) -> SchoolClassResponse:
    sc = await db.get(SchoolClass, class_id)
    if not sc:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None:
        name = payload.name.strip()
        other = await find_class_by_name(db, sc.academic_year_id, name)
        if other and other.id != sc.id:
            raise ServiceError(f"Class '{name}' already exists in this academic year", status.HTTP_409_CONFLICT)
        sc.name = name
    if payload.display_order is not None:
        sc.display_order = payload.display_order
    if "teacher_id" in payload.model_fields_set:
        await _check_teacher(db, payload.teacher_id)
        sc.teacher_id = payload.teacher_id
    await db.commit()
    await db.refresh(sc)
    return _to_response(sc)


async def delete_class(db: AsyncSession, class_id: UUID) -> None:
    """Delete a class that has no students, history rows or fee lines."""
    sc = await db.get(SchoolClass, class_id)
    if not sc:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    for model, column in (
        (Student, Student.class_id),
        (StudentAcademicHistory, StudentAcademicHistory.class_id),
        (FeeStructure, FeeStructure.class_id),
    ):
        in_use = await db.scalar(select(func.count()).select_from(model).where(column == class_id))
        if in_use:
            raise ServiceError("Class is in use and cannot be deleted", status.HTTP_409_CONFLICT)
    await db.delete(sc)
    await db.commit()

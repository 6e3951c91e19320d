from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, FEE_STAFF, require_roles
from school_admin.core.enums import StudentStatus
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import (
    AcademicHistoryResponse,
    BulkAdmissionRequest,
    BulkAdmissionResult,
    StudentCreate,
    StudentPaginatedResponse,
    StudentResponse,
    StudentUpdate,
)
from . import import_service, service

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
) -> StudentResponse:
    try:
        return await service.create_student(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=StudentPaginatedResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_students(
    search: Optional[str] = Query(None, description="Name or admission number"),
    class_id: Optional[UUID] = Query(None),
    section: Optional[str] = Query(None),
    status_filter: Optional[StudentStatus] = Query(None, alias="status"),
    village_id: Optional[UUID] = Query(None),
    has_school_bus: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> StudentPaginatedResponse:
    return await service.list_students(
        db,
        search=search,
        class_id=class_id,
        section=section,
        status_filter=status_filter.value if status_filter else None,
        village_id=village_id,
        has_school_bus=has_school_bus,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/bulk-admission",
    response_model=BulkAdmissionResult,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def bulk_admission(
    payload: BulkAdmissionRequest,
    db: AsyncSession = Depends(get_db),
) -> BulkAdmissionResult:
    """Import continuing students into the current academic year. Failed rows are reported, not retried."""
    try:
        return await import_service.import_students(db, payload.rows)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{student_id}",
    response_model=StudentResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> StudentResponse:
    student = await service.get_student(db, student_id)
    if not student:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return student


@router.get(
    "/{student_id}/academic-history",
    response_model=List[AcademicHistoryResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_academic_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[AcademicHistoryResponse]:
    try:
        return await service.list_academic_history(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{student_id}",
    response_model=StudentResponse,
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
) -> StudentResponse:
    try:
        return await service.update_student(db, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_student(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

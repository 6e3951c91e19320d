from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, require_roles
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import (
    AcademicYearCreate,
    AcademicYearResponse,
    AcademicYearSettingResponse,
    AcademicYearSettingUpsert,
    AcademicYearUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/academic-years", tags=["academic-years"])


@router.post(
    "",
    response_model=AcademicYearResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def create_academic_year(
    payload: AcademicYearCreate,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearResponse:
    """Create academic year. Use set_as_current=true to make it the current year."""
    try:
        return await service.create_academic_year(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[AcademicYearResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
) -> List[AcademicYearResponse]:
    return await service.list_academic_years(db)


@router.get(
    "/current",
    response_model=Optional[AcademicYearResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_current_academic_year(
    db: AsyncSession = Depends(get_db),
) -> Optional[AcademicYearResponse]:
    """Get the current academic year (is_current=true). Default for data operations."""
    return await service.get_current_academic_year(db)


@router.get(
    "/{academic_year_id}",
    response_model=AcademicYearResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_academic_year(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearResponse:
    ay = await service.get_academic_year(db, academic_year_id)
    if not ay:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Academic year not found")
    return ay


@router.put(
    "/{academic_year_id}",
    response_model=AcademicYearResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def update_academic_year(
    academic_year_id: UUID,
    payload: AcademicYearUpdate,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearResponse:
    try:
        return await service.update_academic_year(db, academic_year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{academic_year_id}/set-current",
    response_model=AcademicYearResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def set_academic_year_current(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearResponse:
    """Set this academic year as current. All others become non-current."""
    try:
        return await service.set_academic_year_current(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{academic_year_id}/settings/{setting_key}",
    response_model=AcademicYearSettingResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_setting(
    academic_year_id: UUID,
    setting_key: str,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearSettingResponse:
    setting = await service.get_setting(db, academic_year_id, setting_key)
    if not setting:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return setting


@router.put(
    "/{academic_year_id}/settings/{setting_key}",
    response_model=AcademicYearSettingResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def save_setting(
    academic_year_id: UUID,
    setting_key: str,
    payload: AcademicYearSettingUpsert,
    db: AsyncSession = Depends(get_db),
) -> AcademicYearSettingResponse:
    try:
        return await service.save_setting(db, academic_year_id, setting_key, payload.setting_value)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

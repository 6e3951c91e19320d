from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, FEE_STAFF, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.enums import FeeCategory
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import (
    BusFeeDraft,
    BusFeeResponse,
    BusFeeSave,
    ClassFeeStatus,
    FeeStructureDraft,
    FeeStructureResponse,
    FeeStructureSave,
    FeeTypeCreate,
    FeeTypeResponse,
    FeeTypeUpdate,
    StudentFeeStatus,
)
from . import calculations, service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# ----- Fee types -----
@router.post(
    "/types",
    response_model=FeeTypeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def create_fee_type(
    payload: FeeTypeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeTypeResponse:
    try:
        return await service.create_fee_type(db, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/types",
    response_model=List[FeeTypeResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_fee_types(
    category: Optional[FeeCategory] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[FeeTypeResponse]:
    return await service.list_fee_types(db, category=category.value if category else None)


@router.put(
    "/types/{fee_type_id}",
    response_model=FeeTypeResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def update_fee_type(
    fee_type_id: UUID,
    payload: FeeTypeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeTypeResponse:
    try:
        return await service.update_fee_type(db, fee_type_id, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/types/{fee_type_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def delete_fee_type(
    fee_type_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_fee_type(db, fee_type_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- School fee structure -----
@router.get(
    "/structure",
    response_model=List[FeeStructureResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_fee_structure(
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the current academic year"),
    class_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[FeeStructureResponse]:
    try:
        return await service.list_fee_structure(db, academic_year_id, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/structure",
    response_model=List[FeeStructureResponse],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def save_fee_structure(
    payload: FeeStructureSave,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeStructureResponse]:
    """Replace the fee lines of every class included in the payload."""
    try:
        return await service.save_fee_structure(db, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/structure/copy-previous",
    response_model=List[FeeStructureDraft],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def copy_fee_structure_from_previous(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[FeeStructureDraft]:
    """Draft lines from the previous year, re-targeted to this year. Nothing is saved."""
    try:
        return await service.copy_fee_structure_from_previous(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Bus fees -----
@router.get(
    "/bus",
    response_model=List[BusFeeResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_bus_fees(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[BusFeeResponse]:
    try:
        return await service.list_bus_fees(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/bus",
    response_model=List[BusFeeResponse],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def save_bus_fees(
    payload: BusFeeSave,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BusFeeResponse]:
    try:
        return await service.save_bus_fees(db, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/bus/copy-previous",
    response_model=List[BusFeeDraft],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def copy_bus_fees_from_previous(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[BusFeeDraft]:
    try:
        return await service.copy_bus_fees_from_previous(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Fee status -----
@router.get(
    "/students/{student_id}/status",
    response_model=StudentFeeStatus,
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def get_student_fee_status(
    student_id: UUID,
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> StudentFeeStatus:
    try:
        return await calculations.calculate_student_fee_status(db, student_id, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/classes/{class_id}/status",
    response_model=ClassFeeStatus,
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def get_class_fee_status(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ClassFeeStatus:
    try:
        return await calculations.calculate_class_fee_status(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

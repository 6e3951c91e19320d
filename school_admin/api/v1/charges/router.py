from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, FEE_STAFF, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import (
    ChargeCategoryCreate,
    ChargeCategoryResponse,
    ChargeCategoryUpdate,
    ChargeCreate,
    ChargePaymentRequest,
    ChargePaymentResponse,
    ChargeResponse,
    ChargeUpdate,
)
from . import service

router = APIRouter(
    prefix="/api/v1/charges",
    tags=["miscellaneous-charges"],
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)


# ----- Categories -----
@router.post(
    "/categories",
    response_model=ChargeCategoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def create_category(
    payload: ChargeCategoryCreate,
    db: AsyncSession = Depends(get_db),
) -> ChargeCategoryResponse:
    try:
        return await service.create_category(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/categories", response_model=List[ChargeCategoryResponse])
async def list_categories(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
) -> List[ChargeCategoryResponse]:
    return await service.list_categories(db, active_only=active_only)


@router.put(
    "/categories/{category_id}",
    response_model=ChargeCategoryResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def update_category(
    category_id: UUID,
    payload: ChargeCategoryUpdate,
    db: AsyncSession = Depends(get_db),
) -> ChargeCategoryResponse:
    try:
        return await service.update_category(db, category_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Charges -----
@router.post("", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_charge(
    payload: ChargeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ChargeResponse:
    try:
        return await service.create_charge(db, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[ChargeResponse])
async def list_charges(
    student_id: Optional[UUID] = Query(None),
    academic_year_id: Optional[UUID] = Query(None),
    is_paid: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[ChargeResponse]:
    return await service.list_charges(db, student_id=student_id, academic_year_id=academic_year_id, is_paid=is_paid)


@router.put("/{charge_id}", response_model=ChargeResponse)
async def update_charge(
    charge_id: UUID,
    payload: ChargeUpdate,
    db: AsyncSession = Depends(get_db),
) -> ChargeResponse:
    try:
        return await service.update_charge(db, charge_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{charge_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_charge(
    charge_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_charge(db, charge_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{charge_id}/pay", response_model=ChargePaymentResponse)
async def pay_charge(
    charge_id: UUID,
    payload: ChargePaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ChargePaymentResponse:
    """Pay the charge in full. Creates a miscellaneous payment with an RC-MISC receipt."""
    try:
        return await service.pay_charge(db, charge_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

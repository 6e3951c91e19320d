from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, FEE_STAFF, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.enums import ChargeType, PaymentMethod
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import (
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
    ReceiptResponse,
    RecalculateAllResponse,
)
from . import service

router = APIRouter(
    prefix="/api/v1/payments",
    tags=["payments"],
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    """Record a fee payment. Returns the payment with its bus/school allocation."""
    try:
        return await service.create_payment(db, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    student_id: Optional[UUID] = Query(None),
    academic_year_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    charge_type: Optional[ChargeType] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> PaymentListResponse:
    return await service.list_payments(
        db,
        student_id=student_id,
        academic_year_id=academic_year_id,
        date_from=date_from,
        date_to=date_to,
        payment_method=payment_method.value if payment_method else None,
        charge_type=charge_type.value if charge_type else None,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/recalculate-all",
    response_model=RecalculateAllResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def recalculate_all_allocations(
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the current academic year"),
    db: AsyncSession = Depends(get_db),
) -> RecalculateAllResponse:
    """Replay every fee payment of the year against the current fee structure."""
    try:
        return await service.recalculate_all_allocations(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    payment = await service.get_payment(db, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: UUID,
    payload: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    try:
        return await service.update_payment(db, payment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def delete_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_payment(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{payment_id}/receipt", response_model=ReceiptResponse)
async def get_receipt(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ReceiptResponse:
    try:
        return await service.get_receipt(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{payment_id}/recalculate", response_model=PaymentResponse)
async def recalculate_payment_allocation(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    try:
        return await service.recalculate_payment_allocation(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import resolve_academic_year
from school_admin.api.v1.payments.service import generate_receipt_number
from school_admin.core.enums import ChargeType
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import ChargeCategory, FeePayment, MiscellaneousCharge, Student

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

logger = logging.getLogger(__name__)

MISC_RECEIPT_PREFIX = "RC-MISC-"


# ----- Categories -----
async def _find_category_by_name(db: AsyncSession, name: str) -> Optional[ChargeCategory]:
    result = await db.execute(
        select(ChargeCategory).where(func.lower(ChargeCategory.name) == name.strip().lower())
    )
    return result.scalars().first()


async def create_category(db: AsyncSession, payload: ChargeCategoryCreate) -> ChargeCategoryResponse:
    name = payload.name.strip()
    if await _find_category_by_name(db, name):
        raise ServiceError(f"Category '{name}' already exists", status.HTTP_409_CONFLICT)
    category = ChargeCategory(name=name, description=payload.description, is_active=payload.is_active)
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Category '{name}' already exists", status.HTTP_409_CONFLICT)
    await db.refresh(category)
    return ChargeCategoryResponse.model_validate(category)


async def list_categories(db: AsyncSession, active_only: bool = True) -> List[ChargeCategoryResponse]:
    stmt = select(ChargeCategory).order_by(ChargeCategory.name)
    if active_only:
        stmt = stmt.where(ChargeCategory.is_active.is_(True))
    result = await db.execute(stmt)
    return [ChargeCategoryResponse.model_validate(c) for c in result.scalars().all()]


async def update_category(
    db: AsyncSession,
    category_id: UUID,
    payload: ChargeCategoryUpdate,
) -> ChargeCategoryResponse:
    category = await db.get(ChargeCategory, category_id)
    if not category:
        raise ServiceError("Category not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None:
        name = payload.name.strip()
        other = await _find_category_by_name(db, name)
        if other and other.id != category.id:
            raise ServiceError(f"Category '{name}' already exists", status.HTTP_409_CONFLICT)
        category.name = name
    if "description" in payload.model_fields_set:
        category.description = payload.description
    if payload.is_active is not None:
        category.is_active = payload.is_active
    await db.commit()
    await db.refresh(category)
    return ChargeCategoryResponse.model_validate(category)


# ----- Charges -----
async def _charge_response(db: AsyncSession, charge: MiscellaneousCharge) -> ChargeResponse:
    response = ChargeResponse.model_validate(charge)
    student = await db.get(Student, charge.student_id)
    category = await db.get(ChargeCategory, charge.charge_category_id)
    response.student_name = student.student_name if student else None
    response.category_name = category.name if category else None
    return response


async def _get_charge(db: AsyncSession, charge_id: UUID) -> MiscellaneousCharge:
    charge = await db.get(MiscellaneousCharge, charge_id)
    if not charge:
        raise ServiceError("Charge not found", status.HTTP_404_NOT_FOUND)
    return charge


async def _check_category(db: AsyncSession, category_id: UUID) -> None:
    category = await db.get(ChargeCategory, category_id)
    if not category or not category.is_active:
        raise ServiceError("Charge category not found", status.HTTP_404_NOT_FOUND)


async def create_charge(
    db: AsyncSession,
    payload: ChargeCreate,
    created_by: Optional[UUID] = None,
) -> ChargeResponse:
    if not await db.get(Student, payload.student_id):
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    await _check_category(db, payload.charge_category_id)
    year = await resolve_academic_year(db, payload.academic_year_id)
    charge = MiscellaneousCharge(
        student_id=payload.student_id,
        academic_year_id=year.id,
        charge_category_id=payload.charge_category_id,
        description=payload.description.strip(),
        amount=payload.amount,
        charge_date=payload.charge_date,
        due_date=payload.due_date,
        is_paid=False,
        created_by=created_by,
    )
    db.add(charge)
    await db.commit()
    await db.refresh(charge)
    return await _charge_response(db, charge)


async def list_charges(
    db: AsyncSession,
    student_id: Optional[UUID] = None,
    academic_year_id: Optional[UUID] = None,
    is_paid: Optional[bool] = None,
) -> List[ChargeResponse]:
    stmt = (
        select(MiscellaneousCharge, Student.student_name, ChargeCategory.name)
        .join(Student, Student.id == MiscellaneousCharge.student_id)
        .join(ChargeCategory, ChargeCategory.id == MiscellaneousCharge.charge_category_id)
        .order_by(MiscellaneousCharge.charge_date.desc(), MiscellaneousCharge.created_at.desc())
    )
    if student_id:
        stmt = stmt.where(MiscellaneousCharge.student_id == student_id)
    if academic_year_id:
        stmt = stmt.where(MiscellaneousCharge.academic_year_id == academic_year_id)
    if is_paid is not None:
        stmt = stmt.where(MiscellaneousCharge.is_paid.is_(is_paid))
    result = await db.execute(stmt)
    items: List[ChargeResponse] = []
    for charge, student_name, category_name in result.all():
        item = ChargeResponse.model_validate(charge)
        item.student_name = student_name
        item.category_name = category_name
        items.append(item)
    return items


async def update_charge(db: AsyncSession, charge_id: UUID, payload: ChargeUpdate) -> ChargeResponse:
    charge = await _get_charge(db, charge_id)
    if charge.is_paid:
        raise ServiceError("A paid charge cannot be edited", status.HTTP_409_CONFLICT)
    if payload.charge_category_id is not None:
        await _check_category(db, payload.charge_category_id)
        charge.charge_category_id = payload.charge_category_id
    if payload.description is not None:
        charge.description = payload.description.strip()
    if payload.amount is not None:
        charge.amount = payload.amount
    if payload.charge_date is not None:
        charge.charge_date = payload.charge_date
    if "due_date" in payload.model_fields_set:
        charge.due_date = payload.due_date
    await db.commit()
    await db.refresh(charge)
    return await _charge_response(db, charge)


async def delete_charge(db: AsyncSession, charge_id: UUID) -> None:
    charge = await _get_charge(db, charge_id)
    if charge.is_paid:
        raise ServiceError("A paid charge cannot be deleted", status.HTTP_409_CONFLICT)
    await db.delete(charge)
    await db.commit()


async def pay_charge(
    db: AsyncSession,
    charge_id: UUID,
    payload: ChargePaymentRequest,
    created_by: Optional[UUID] = None,
) -> ChargePaymentResponse:
    """Settle the charge in full with a miscellaneous fee payment (no bus/school allocation)."""
    charge = await _get_charge(db, charge_id)
    if charge.is_paid:
        raise ServiceError("Charge is already paid", status.HTTP_409_CONFLICT)

    receipt_number = await generate_receipt_number(db, MISC_RECEIPT_PREFIX)
    payment = FeePayment(
        student_id=charge.student_id,
        academic_year_id=charge.academic_year_id,
        amount_paid=charge.amount,
        payment_date=payload.payment_date,
        payment_method=payload.payment_method.value,
        transaction_id=payload.transaction_id,
        receipt_number=receipt_number,
        notes=f"Payment for: {charge.description}",
        charge_type=ChargeType.MISCELLANEOUS.value,
        charge_description=charge.description,
        metadata_={"charge_id": str(charge.id)},
        created_by=created_by,
    )
    db.add(payment)
    try:
        await db.flush()
        # Claim the charge only if it is still unpaid; a concurrent payment leaves nothing to update.
        claimed = await db.execute(
            update(MiscellaneousCharge)
            .where(MiscellaneousCharge.id == charge_id, MiscellaneousCharge.is_paid.is_(False))
            .values(is_paid=True, payment_id=payment.id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            raise ServiceError("Charge is already paid", status.HTTP_409_CONFLICT)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Could not record the payment; please retry", status.HTTP_409_CONFLICT)
    await db.refresh(charge)
    logger.info("Charge %s paid with receipt %s", charge.id, receipt_number)
    return ChargePaymentResponse(
        charge=await _charge_response(db, charge),
        payment_id=payment.id,
        receipt_number=receipt_number,
        amount_paid=payment.amount_paid,
    )

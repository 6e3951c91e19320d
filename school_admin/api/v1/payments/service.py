import logging
import secrets
import string
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import resolve_academic_year
from school_admin.api.v1.fees.calculations import outstanding_balances, student_fee_totals
from school_admin.auth.models import User
from school_admin.core.enums import ChargeType, SplitPolicy
from school_admin.core.exceptions import AllocationError, ServiceError
from school_admin.core.models import (
    AcademicYear,
    FeePayment,
    MiscellaneousCharge,
    PaymentAllocation,
    SchoolClass,
    Student,
)

from .allocation import ZERO, Allocation, allocate, to_money
from .schemas import (
    AllocationResponse,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentSummary,
    PaymentUpdate,
    ReceiptResponse,
    RecalculateAllResponse,
)

logger = logging.getLogger(__name__)

RECEIPT_ALPHABET = string.ascii_uppercase + string.digits
RECEIPT_ATTEMPTS = 5


# ----- Receipt numbers -----
def _receipt_suffix(length: int = 6) -> str:
    return "".join(secrets.choice(RECEIPT_ALPHABET) for _ in range(length))


async def receipt_number_exists(db: AsyncSession, receipt_number: str) -> bool:
    result = await db.execute(select(FeePayment.id).where(FeePayment.receipt_number == receipt_number))
    return result.first() is not None


async def generate_receipt_number(db: AsyncSession, prefix: str) -> str:
    """prefix + 6 random characters, unique among existing receipts."""
    for _ in range(RECEIPT_ATTEMPTS):
        candidate = f"{prefix}{_receipt_suffix()}"
        if not await receipt_number_exists(db, candidate):
            return candidate
    raise ServiceError("Could not generate a unique receipt number", status.HTTP_500_INTERNAL_SERVER_ERROR)


def fee_receipt_prefix(payment_date: date) -> str:
    return f"RC-{payment_date:%Y%m%d}-"


# ----- Helpers -----
async def _get_allocation(db: AsyncSession, payment_id: UUID) -> Optional[PaymentAllocation]:
    result = await db.execute(select(PaymentAllocation).where(PaymentAllocation.payment_id == payment_id))
    return result.scalar_one_or_none()


async def _get_payment(db: AsyncSession, payment_id: UUID) -> FeePayment:
    payment = await db.get(FeePayment, payment_id)
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    return payment


def _payment_policy(payment: FeePayment) -> SplitPolicy:
    return SplitPolicy((payment.metadata_ or {}).get("split_policy", SplitPolicy.STANDARD.value))


def _to_response(
    payment: FeePayment,
    allocation: Optional[PaymentAllocation],
    student: Optional[Student] = None,
) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        student_id=payment.student_id,
        student_name=student.student_name if student else None,
        admission_number=student.admission_number if student else None,
        academic_year_id=payment.academic_year_id,
        amount_paid=payment.amount_paid,
        payment_date=payment.payment_date,
        payment_method=payment.payment_method,
        transaction_id=payment.transaction_id,
        receipt_number=payment.receipt_number,
        notes=payment.notes,
        charge_type=payment.charge_type,
        charge_description=payment.charge_description,
        split_policy=(payment.metadata_ or {}).get("split_policy"),
        allocation=AllocationResponse.model_validate(allocation) if allocation else None,
        created_by=payment.created_by,
        created_at=payment.created_at,
    )


async def _allocate_for_payment(
    db: AsyncSession,
    student: Student,
    year: AcademicYear,
    amount: Decimal,
    policy: SplitPolicy,
    manual_bus: Optional[Decimal] = None,
    manual_school: Optional[Decimal] = None,
    exclude_payment_id: Optional[UUID] = None,
) -> Allocation:
    totals, bus_out, school_out = await outstanding_balances(db, student, year, exclude_payment_id)
    return allocate(
        amount,
        bus_out,
        school_out,
        policy,
        bus_monthly=totals.monthly_bus,
        school_monthly=totals.monthly_school,
        manual_bus_amount=manual_bus,
        manual_school_amount=manual_school,
    )


def _policy_metadata(policy: SplitPolicy, allocation: Allocation) -> Dict[str, str]:
    metadata = {"split_policy": policy.value}
    if policy == SplitPolicy.MANUAL:
        metadata["manual_bus_amount"] = str(allocation.bus_fee_amount)
        metadata["manual_school_amount"] = str(allocation.school_fee_amount)
    return metadata


# ----- Create / read -----
async def create_payment(
    db: AsyncSession,
    payload: PaymentCreate,
    created_by: Optional[UUID] = None,
) -> PaymentResponse:
    """Record a fee payment and its bus/school allocation in one transaction."""
    student = await db.get(Student, payload.student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    year = await resolve_academic_year(db, payload.academic_year_id)

    allocation = await _allocate_for_payment(
        db,
        student,
        year,
        payload.amount_paid,
        payload.split_policy,
        manual_bus=payload.bus_fee_amount,
        manual_school=payload.school_fee_amount,
    )

    receipt_number = (payload.receipt_number or "").strip()
    if receipt_number:
        if await receipt_number_exists(db, receipt_number):
            raise ServiceError(f"Receipt number '{receipt_number}' already exists", status.HTTP_409_CONFLICT)
    else:
        receipt_number = await generate_receipt_number(db, fee_receipt_prefix(payload.payment_date))

    payment = FeePayment(
        student_id=student.id,
        academic_year_id=year.id,
        amount_paid=to_money(payload.amount_paid),
        payment_date=payload.payment_date,
        payment_method=payload.payment_method.value,
        transaction_id=payload.transaction_id,
        receipt_number=receipt_number,
        notes=payload.notes,
        charge_type=ChargeType.FEE.value,
        metadata_=_policy_metadata(payload.split_policy, allocation),
        created_by=created_by,
    )
    db.add(payment)
    try:
        await db.flush()
        row = PaymentAllocation(
            payment_id=payment.id,
            student_id=student.id,
            bus_fee_amount=allocation.bus_fee_amount,
            school_fee_amount=allocation.school_fee_amount,
            allocation_date=payload.payment_date,
        )
        db.add(row)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Receipt number '{receipt_number}' already exists", status.HTTP_409_CONFLICT)
    await db.refresh(payment)
    await db.refresh(row)
    logger.info(
        "Payment %s of %s for student %s: bus=%s school=%s (%s)",
        payment.receipt_number,
        payment.amount_paid,
        student.admission_number,
        allocation.bus_fee_amount,
        allocation.school_fee_amount,
        payload.split_policy.value,
    )
    return _to_response(payment, row, student)


async def get_payment(db: AsyncSession, payment_id: UUID) -> Optional[PaymentResponse]:
    payment = await db.get(FeePayment, payment_id)
    if not payment:
        return None
    student = await db.get(Student, payment.student_id)
    return _to_response(payment, await _get_allocation(db, payment_id), student)


async def list_payments(
    db: AsyncSession,
    student_id: Optional[UUID] = None,
    academic_year_id: Optional[UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_method: Optional[str] = None,
    charge_type: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> PaymentListResponse:
    """Payments newest first. The summary covers every payment matching the filters, not just the page."""
    filters = []
    if student_id:
        filters.append(FeePayment.student_id == student_id)
    if academic_year_id:
        filters.append(FeePayment.academic_year_id == academic_year_id)
    if date_from:
        filters.append(FeePayment.payment_date >= date_from)
    if date_to:
        filters.append(FeePayment.payment_date <= date_to)
    if payment_method:
        filters.append(FeePayment.payment_method == payment_method)
    if charge_type:
        filters.append(FeePayment.charge_type == charge_type)

    summary_row = (
        await db.execute(
            select(
                func.count(FeePayment.id),
                func.coalesce(func.sum(FeePayment.amount_paid), 0),
                func.coalesce(func.sum(case((FeePayment.payment_method == "cash", FeePayment.amount_paid), else_=0)), 0),
                func.coalesce(func.sum(case((FeePayment.payment_method == "online", FeePayment.amount_paid), else_=0)), 0),
                func.coalesce(func.sum(PaymentAllocation.bus_fee_amount), 0),
                func.coalesce(func.sum(PaymentAllocation.school_fee_amount), 0),
            )
            .outerjoin(PaymentAllocation, PaymentAllocation.payment_id == FeePayment.id)
            .where(*filters)
        )
    ).one()
    total, total_amount, cash_amount, online_amount, bus_amount, school_amount = summary_row

    result = await db.execute(
        select(FeePayment, PaymentAllocation, Student)
        .outerjoin(PaymentAllocation, PaymentAllocation.payment_id == FeePayment.id)
        .join(Student, Student.id == FeePayment.student_id)
        .where(*filters)
        .order_by(FeePayment.payment_date.desc(), FeePayment.created_at.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    items = [_to_response(payment, allocation, student) for payment, allocation, student in result.all()]
    return PaymentListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        summary=PaymentSummary(
            total_amount=to_money(total_amount),
            cash_amount=to_money(cash_amount),
            online_amount=to_money(online_amount),
            bus_amount=to_money(bus_amount),
            school_amount=to_money(school_amount),
        ),
    )


# ----- Update / delete -----
async def update_payment(db: AsyncSession, payment_id: UUID, payload: PaymentUpdate) -> PaymentResponse:
    """Edit a payment. The allocation is recomputed when the amount or split policy changes."""
    payment = await _get_payment(db, payment_id)
    data = payload.model_dump(exclude_unset=True)
    is_fee = payment.charge_type == ChargeType.FEE.value

    amount_changed = data.get("amount_paid") is not None and to_money(data["amount_paid"]) != to_money(payment.amount_paid)
    policy = data.get("split_policy") or _payment_policy(payment)
    policy_changed = data.get("split_policy") is not None and policy != _payment_policy(payment)
    manual_given = data.get("bus_fee_amount") is not None or data.get("school_fee_amount") is not None

    if not is_fee and (amount_changed or policy_changed or manual_given):
        raise ServiceError(
            "Miscellaneous charge payments cannot change amount or allocation",
            status.HTTP_400_BAD_REQUEST,
        )
    if manual_given and policy != SplitPolicy.MANUAL:
        raise ServiceError(
            "bus_fee_amount and school_fee_amount require split_policy 'manual'",
            status.HTTP_400_BAD_REQUEST,
        )

    if payload.payment_date is not None:
        payment.payment_date = payload.payment_date
    if payload.payment_method is not None:
        payment.payment_method = payload.payment_method.value
    if "transaction_id" in data:
        payment.transaction_id = payload.transaction_id
    if "notes" in data:
        payment.notes = payload.notes

    allocation_row = await _get_allocation(db, payment.id)
    if is_fee and (amount_changed or policy_changed or manual_given):
        amount = to_money(data["amount_paid"]) if data.get("amount_paid") is not None else to_money(payment.amount_paid)
        student = await db.get(Student, payment.student_id)
        year = await db.get(AcademicYear, payment.academic_year_id)
        allocation = await _allocate_for_payment(
            db,
            student,
            year,
            amount,
            policy,
            manual_bus=payload.bus_fee_amount,
            manual_school=payload.school_fee_amount,
            exclude_payment_id=payment.id,
        )
        payment.amount_paid = amount
        payment.metadata_ = {**(payment.metadata_ or {}), **_policy_metadata(policy, allocation)}
        allocation_row = _apply_allocation(payment, allocation_row, allocation, db)
        logger.info("Payment %s reallocated: bus=%s school=%s", payment.receipt_number, *allocation)
    elif allocation_row is not None and payload.payment_date is not None:
        allocation_row.allocation_date = payload.payment_date

    await db.commit()
    await db.refresh(payment)
    if allocation_row is not None:
        await db.refresh(allocation_row)
    student = await db.get(Student, payment.student_id)
    return _to_response(payment, allocation_row, student)


def _apply_allocation(
    payment: FeePayment,
    row: Optional[PaymentAllocation],
    allocation: Allocation,
    db: AsyncSession,
) -> PaymentAllocation:
    if row is None:
        row = PaymentAllocation(payment_id=payment.id, student_id=payment.student_id)
        db.add(row)
    row.bus_fee_amount = allocation.bus_fee_amount
    row.school_fee_amount = allocation.school_fee_amount
    row.allocation_date = payment.payment_date
    return row


async def delete_payment(db: AsyncSession, payment_id: UUID) -> None:
    """Delete a payment and its allocation. A settled miscellaneous charge becomes unpaid again."""
    payment = await _get_payment(db, payment_id)
    allocation = await _get_allocation(db, payment_id)
    if allocation:
        await db.delete(allocation)
    result = await db.execute(select(MiscellaneousCharge).where(MiscellaneousCharge.payment_id == payment_id))
    for charge in result.scalars().all():
        charge.is_paid = False
        charge.payment_id = None
    await db.flush()
    receipt_number = payment.receipt_number
    await db.delete(payment)
    await db.commit()
    logger.info("Deleted payment %s", receipt_number)


# ----- Receipt -----
async def get_receipt(db: AsyncSession, payment_id: UUID) -> ReceiptResponse:
    payment = await _get_payment(db, payment_id)
    student = await db.get(Student, payment.student_id)
    allocation = await _get_allocation(db, payment_id)
    class_name = None
    if student and student.class_id:
        sc = await db.get(SchoolClass, student.class_id)
        class_name = sc.name if sc else None
    collector = await db.get(User, payment.created_by) if payment.created_by else None
    return ReceiptResponse(
        receipt_number=payment.receipt_number,
        payment_date=payment.payment_date,
        student_name=student.student_name if student else "",
        admission_number=student.admission_number if student else "",
        class_name=class_name,
        section=student.section if student else None,
        bus_fee_amount=to_money(allocation.bus_fee_amount) if allocation else ZERO,
        school_fee_amount=to_money(allocation.school_fee_amount) if allocation else ZERO,
        total=to_money(payment.amount_paid),
        payment_method=payment.payment_method,
        transaction_id=payment.transaction_id,
        charge_type=payment.charge_type,
        charge_description=payment.charge_description,
        collected_by=collector.name if collector else None,
    )


# ----- Recalculation -----
def _manual_amounts(payment: FeePayment):
    metadata = payment.metadata_ or {}
    bus = metadata.get("manual_bus_amount")
    school = metadata.get("manual_school_amount")
    return (Decimal(bus) if bus is not None else None, Decimal(school) if school is not None else None)


async def recalculate_payment_allocation(db: AsyncSession, payment_id: UUID) -> PaymentResponse:
    """Re-split one payment against the balance left by the student's other payments of that year."""
    payment = await _get_payment(db, payment_id)
    if payment.charge_type != ChargeType.FEE.value:
        raise ServiceError("Only fee payments carry an allocation", status.HTTP_400_BAD_REQUEST)
    student = await db.get(Student, payment.student_id)
    year = await db.get(AcademicYear, payment.academic_year_id)
    manual_bus, manual_school = _manual_amounts(payment)
    allocation = await _allocate_for_payment(
        db,
        student,
        year,
        to_money(payment.amount_paid),
        _payment_policy(payment),
        manual_bus=manual_bus,
        manual_school=manual_school,
        exclude_payment_id=payment.id,
    )
    row = _apply_allocation(payment, await _get_allocation(db, payment.id), allocation, db)
    await db.commit()
    await db.refresh(row)
    await db.refresh(payment)
    logger.info("Recalculated allocation for %s: bus=%s school=%s", payment.receipt_number, *allocation)
    return _to_response(payment, row, student)


async def recalculate_all_allocations(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
) -> RecalculateAllResponse:
    """
    Replay every fee payment of the year per student, oldest first, starting from a zero balance.
    Runs in one transaction; any payment that no longer fits rolls everything back.
    """
    year = await resolve_academic_year(db, academic_year_id)
    year_id, year_name = year.id, year.year_name
    result = await db.execute(
        select(FeePayment)
        .where(
            FeePayment.academic_year_id == year.id,
            FeePayment.charge_type == ChargeType.FEE.value,
        )
        .order_by(FeePayment.student_id, FeePayment.payment_date, FeePayment.created_at)
    )
    by_student: Dict[UUID, List[FeePayment]] = {}
    for payment in result.scalars().all():
        by_student.setdefault(payment.student_id, []).append(payment)

    reallocated = 0
    try:
        for student_id, payments in by_student.items():
            student = await db.get(Student, student_id)
            totals = await student_fee_totals(db, student, year)
            paid_bus = paid_school = ZERO
            for payment in payments:
                manual_bus, manual_school = _manual_amounts(payment)
                allocation = allocate(
                    payment.amount_paid,
                    totals.bus_total - paid_bus,
                    totals.school_total - paid_school,
                    _payment_policy(payment),
                    bus_monthly=totals.monthly_bus,
                    school_monthly=totals.monthly_school,
                    manual_bus_amount=manual_bus,
                    manual_school_amount=manual_school,
                )
                _apply_allocation(payment, await _get_allocation(db, payment.id), allocation, db)
                paid_bus += allocation.bus_fee_amount
                paid_school += allocation.school_fee_amount
                reallocated += 1
        await db.commit()
    except AllocationError as e:
        await db.rollback()
        logger.warning("Recalculation for %s aborted: %s", year_name, e.message)
        raise ServiceError(f"Recalculation aborted: {e.message}", status.HTTP_409_CONFLICT)

    logger.info("Recalculated %d payments for %d students in %s", reallocated, len(by_student), year_name)
    return RecalculateAllResponse(
        academic_year_id=year_id,
        students_processed=len(by_student),
        payments_reallocated=reallocated,
    )

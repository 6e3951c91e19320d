"""Fee totals, amounts paid and payment status per student and per class."""

from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import resolve_academic_year
from school_admin.api.v1.payments.allocation import ZERO, to_money
from school_admin.core.enums import ChargeType, FeeStatus
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import (
    AcademicYear,
    BusFeeStructure,
    FeePayment,
    FeeStructure,
    PaymentAllocation,
    SchoolClass,
    Student,
    StudentAcademicHistory,
)

from .schemas import ClassFeeStatus, StudentFeeStatus


class Placement(NamedTuple):
    class_id: Optional[UUID]
    registration_type: str
    has_school_bus: bool
    village_id: Optional[UUID]


class FeeTotals(NamedTuple):
    months_in_year: int
    bus_months: int
    school_total: Decimal
    bus_total: Decimal
    monthly_school: Decimal
    monthly_bus: Decimal


def months_between(start: date, end: date) -> int:
    """Calendar months from start to end, both months counted. 0 when end is before start."""
    if end < start:
        return 0
    return (end.year - start.year) * 12 + end.month - start.month + 1


def fee_status(total: Decimal, paid: Decimal) -> FeeStatus:
    if paid >= total:
        return FeeStatus.PAID
    if paid > ZERO:
        return FeeStatus.PARTIAL
    return FeeStatus.PENDING


def school_fee_totals(
    lines: Sequence[FeeStructure],
    registration_type: str,
    months: int,
) -> Tuple[Decimal, Decimal]:
    """(year total, monthly recurring amount) of the lines that apply to the student."""
    total = ZERO
    monthly = ZERO
    for line in lines:
        if line.applicable_to_new_students_only and registration_type != "new":
            continue
        amount = to_money(line.amount)
        if line.is_recurring_monthly:
            monthly += amount
            total += amount * months
        else:
            total += amount
    return to_money(total), to_money(monthly)


async def placement_for_year(db: AsyncSession, student: Student, academic_year_id: UUID) -> Placement:
    """
    Class, registration type and bus use recorded for the year.

    A student with no history row for the year is placed by the student record itself.
    """
    result = await db.execute(
        select(StudentAcademicHistory).where(
            StudentAcademicHistory.student_id == student.id,
            StudentAcademicHistory.academic_year_id == academic_year_id,
        )
    )
    history = result.scalar_one_or_none()
    if history is None:
        return Placement(student.class_id, student.registration_type, student.has_school_bus, student.village_id)
    return Placement(history.class_id, history.registration_type, history.has_school_bus, history.village_id)


async def active_bus_fee(db: AsyncSession, village_id: UUID, academic_year_id: UUID) -> Optional[BusFeeStructure]:
    result = await db.execute(
        select(BusFeeStructure)
        .where(
            BusFeeStructure.village_id == village_id,
            BusFeeStructure.academic_year_id == academic_year_id,
            BusFeeStructure.is_active.is_(True),
        )
        .order_by(BusFeeStructure.created_at.desc())
    )
    return result.scalars().first()


async def student_fee_totals(db: AsyncSession, student: Student, year: AcademicYear) -> FeeTotals:
    months = months_between(year.start_date, year.end_date)

    school_total = monthly_school = ZERO
    placement = await placement_for_year(db, student, year.id)
    if placement.class_id:
        lines_result = await db.execute(
            select(FeeStructure).where(
                FeeStructure.academic_year_id == year.id,
                FeeStructure.class_id == placement.class_id,
            )
        )
        school_total, monthly_school = school_fee_totals(
            lines_result.scalars().all(), placement.registration_type, months
        )

    bus_total = monthly_bus = ZERO
    bus_months = 0
    if placement.has_school_bus and placement.village_id:
        bus_fee = await active_bus_fee(db, placement.village_id, year.id)
        if bus_fee:
            start = year.start_date
            if student.bus_start_date and student.bus_start_date > start:
                start = student.bus_start_date
            bus_months = months_between(start, year.end_date)
            monthly_bus = to_money(bus_fee.fee_amount)
            bus_total = to_money(monthly_bus * bus_months)

    return FeeTotals(months, bus_months, school_total, bus_total, monthly_school, monthly_bus)


async def paid_amounts(
    db: AsyncSession,
    student_id: UUID,
    academic_year_id: UUID,
    exclude_payment_id: Optional[UUID] = None,
) -> Tuple[Decimal, Decimal]:
    """(bus, school) allocated from the student's fee payments in the year."""
    stmt = (
        select(
            func.coalesce(func.sum(PaymentAllocation.bus_fee_amount), 0),
            func.coalesce(func.sum(PaymentAllocation.school_fee_amount), 0),
        )
        .join(FeePayment, FeePayment.id == PaymentAllocation.payment_id)
        .where(
            FeePayment.student_id == student_id,
            FeePayment.academic_year_id == academic_year_id,
            FeePayment.charge_type == ChargeType.FEE.value,
        )
    )
    if exclude_payment_id:
        stmt = stmt.where(FeePayment.id != exclude_payment_id)
    bus, school = (await db.execute(stmt)).one()
    return to_money(bus), to_money(school)


async def outstanding_balances(
    db: AsyncSession,
    student: Student,
    year: AcademicYear,
    exclude_payment_id: Optional[UUID] = None,
) -> Tuple[FeeTotals, Decimal, Decimal]:
    """Fee totals plus (bus outstanding, school outstanding), never negative."""
    totals = await student_fee_totals(db, student, year)
    paid_bus, paid_school = await paid_amounts(db, student.id, year.id, exclude_payment_id)
    bus_out = max(ZERO, totals.bus_total - paid_bus)
    school_out = max(ZERO, totals.school_total - paid_school)
    return totals, bus_out, school_out


async def build_student_fee_status(db: AsyncSession, student: Student, year: AcademicYear) -> StudentFeeStatus:
    totals = await student_fee_totals(db, student, year)
    paid_bus, paid_school = await paid_amounts(db, student.id, year.id)
    last_payment_date = await db.scalar(
        select(func.max(FeePayment.payment_date)).where(
            FeePayment.student_id == student.id,
            FeePayment.academic_year_id == year.id,
            FeePayment.charge_type == ChargeType.FEE.value,
        )
    )
    total_fees = totals.school_total + totals.bus_total
    total_paid = paid_bus + paid_school
    pending_bus = max(ZERO, totals.bus_total - paid_bus)
    pending_school = max(ZERO, totals.school_total - paid_school)
    return StudentFeeStatus(
        student_id=student.id,
        academic_year_id=year.id,
        months_in_year=totals.months_in_year,
        bus_months=totals.bus_months,
        total_school_fee=totals.school_total,
        total_bus_fee=totals.bus_total,
        monthly_school_fee=totals.monthly_school,
        monthly_bus_fee=totals.monthly_bus,
        paid_school_fee=paid_school,
        paid_bus_fee=paid_bus,
        pending_school_fee=pending_school,
        pending_bus_fee=pending_bus,
        total_fees=total_fees,
        total_paid=total_paid,
        outstanding=pending_bus + pending_school,
        last_payment_date=last_payment_date,
        status=fee_status(total_fees, total_paid),
    )


async def calculate_student_fee_status(
    db: AsyncSession,
    student_id: UUID,
    academic_year_id: Optional[UUID] = None,
) -> StudentFeeStatus:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    year = await resolve_academic_year(db, academic_year_id)
    return await build_student_fee_status(db, student, year)


async def active_students_in_class(db: AsyncSession, class_id: UUID) -> List[Student]:
    result = await db.execute(
        select(Student)
        .where(Student.class_id == class_id, Student.status == "active")
        .order_by(Student.student_name)
    )
    return list(result.scalars().all())


async def calculate_class_fee_status(db: AsyncSession, class_id: UUID) -> ClassFeeStatus:
    """Fee totals over the active students of a class, in the class's academic year."""
    sc = await db.get(SchoolClass, class_id)
    if not sc:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    year = await resolve_academic_year(db, sc.academic_year_id)

    statuses = [await build_student_fee_status(db, s, year) for s in await active_students_in_class(db, class_id)]
    total_fees = sum((s.total_fees for s in statuses), ZERO)
    total_paid = sum((s.total_paid for s in statuses), ZERO)
    return ClassFeeStatus(
        class_id=sc.id,
        class_name=sc.name,
        academic_year_id=year.id,
        total_students=len(statuses),
        total_fees=total_fees,
        total_paid=total_paid,
        total_outstanding=sum((s.outstanding for s in statuses), ZERO),
        paid_count=sum(1 for s in statuses if s.status == FeeStatus.PAID),
        partial_count=sum(1 for s in statuses if s.status == FeeStatus.PARTIAL),
        pending_count=sum(1 for s in statuses if s.status == FeeStatus.PENDING),
        collection_percentage=float(total_paid / total_fees * 100) if total_fees > ZERO else 0.0,
    )

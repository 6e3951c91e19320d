import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import (
    get_current_academic_year_model,
    resolve_academic_year,
    upsert_setting,
)
from school_admin.api.v1.fees.calculations import active_students_in_class, build_student_fee_status
from school_admin.api.v1.payments.allocation import ZERO, to_money
from school_admin.auth.models import User
from school_admin.core.models import (
    FeePayment,
    PaymentAllocation,
    SchoolClass,
    Student,
    StudentAcademicHistory,
    StudentPromotionHistory,
)

from .schemas import (
    ClassOutstanding,
    ClassWiseRow,
    DailyCollectionPayment,
    DailyCollectionReport,
    DashboardStats,
    FeeCollectionStats,
    MethodTotal,
    PromotionSummary,
    StudentStats,
    YearEndReport,
)

logger = logging.getLogger(__name__)

YEAR_END_REPORT_KEY = "year_end_reports"


# ----- Year-end report -----
async def _student_stats(db: AsyncSession, academic_year_id: UUID) -> StudentStats:
    row = (
        await db.execute(
            select(
                func.count(StudentAcademicHistory.id),
                func.sum(case((StudentAcademicHistory.is_active_in_year.is_(True), 1), else_=0)),
                func.sum(case((StudentAcademicHistory.registration_type == "new", 1), else_=0)),
                func.sum(case((StudentAcademicHistory.has_school_bus.is_(True), 1), else_=0)),
            )
            .join(Student, Student.id == StudentAcademicHistory.student_id)
            .where(StudentAcademicHistory.academic_year_id == academic_year_id)
        )
    ).one()
    return StudentStats(
        total_students=row[0] or 0,
        active_students=row[1] or 0,
        new_admissions=row[2] or 0,
        with_bus_service=row[3] or 0,
    )


async def _pending_fees(db: AsyncSession, academic_year_id: UUID) -> Decimal:
    """Outstanding balance summed over the year's active students."""
    year = await resolve_academic_year(db, academic_year_id)
    result = await db.execute(
        select(Student)
        .join(StudentAcademicHistory, StudentAcademicHistory.student_id == Student.id)
        .where(
            StudentAcademicHistory.academic_year_id == academic_year_id,
            StudentAcademicHistory.is_active_in_year.is_(True),
            Student.status == "active",
        )
    )
    pending = ZERO
    for student in result.scalars().all():
        pending += (await build_student_fee_status(db, student, year)).outstanding
    return pending


async def _fee_collection(db: AsyncSession, academic_year_id: UUID) -> FeeCollectionStats:
    row = (
        await db.execute(
            select(
                func.coalesce(func.sum(FeePayment.amount_paid), 0),
                func.sum(case((FeePayment.payment_method == "online", 1), else_=0)),
                func.sum(case((FeePayment.payment_method == "cash", 1), else_=0)),
            ).where(FeePayment.academic_year_id == academic_year_id)
        )
    ).one()
    return FeeCollectionStats(
        total_collection=to_money(row[0]),
        online_payments=row[1] or 0,
        cash_payments=row[2] or 0,
        pending_fees=await _pending_fees(db, academic_year_id),
    )


async def _promotion_summary(db: AsyncSession, academic_year_id: UUID) -> PromotionSummary:
    result = await db.execute(
        select(StudentPromotionHistory.promotion_status, func.count(StudentPromotionHistory.id))
        .where(StudentPromotionHistory.academic_year_id == academic_year_id)
        .group_by(StudentPromotionHistory.promotion_status)
    )
    counts = dict(result.all())
    return PromotionSummary(
        total_promoted=counts.get("promoted", 0),
        total_retained=counts.get("retained", 0),
        total_transferred=counts.get("transferred_out", 0),
        total_dropped=counts.get("dropped_out", 0),
    )


async def _class_wise(db: AsyncSession, academic_year_id: UUID) -> List[ClassWiseRow]:
    result = await db.execute(
        select(
            SchoolClass.name,
            func.count(StudentAcademicHistory.id),
            func.sum(case((StudentAcademicHistory.is_active_in_year.is_(True), 1), else_=0)),
        )
        .outerjoin(
            StudentAcademicHistory,
            (StudentAcademicHistory.class_id == SchoolClass.id)
            & (StudentAcademicHistory.academic_year_id == academic_year_id),
        )
        .where(SchoolClass.academic_year_id == academic_year_id)
        .group_by(SchoolClass.id, SchoolClass.name, SchoolClass.display_order)
        .order_by(SchoolClass.display_order, SchoolClass.name)
    )
    return [
        ClassWiseRow(class_name=name, total_students=total or 0, active_students=active or 0)
        for name, total, active in result.all()
    ]


async def generate_year_end_report(db: AsyncSession, academic_year_id: Optional[UUID] = None) -> YearEndReport:
    """Build the report and store it as the year's "year_end_reports" setting (replacing any earlier one)."""
    year = await resolve_academic_year(db, academic_year_id)
    report = YearEndReport(
        academic_year_id=year.id,
        year_name=year.year_name,
        student_stats=await _student_stats(db, year.id),
        fee_collection=await _fee_collection(db, year.id),
        promotion_summary=await _promotion_summary(db, year.id),
        class_wise_report=await _class_wise(db, year.id),
    )
    await upsert_setting(db, year.id, YEAR_END_REPORT_KEY, report.model_dump(mode="json"))
    logger.info("Year-end report generated for %s", report.year_name)
    return report


# ----- Daily collection -----
async def daily_collection(db: AsyncSession, report_date: Optional[date] = None) -> DailyCollectionReport:
    report_date = report_date or date.today()
    result = await db.execute(
        select(FeePayment, PaymentAllocation, Student, SchoolClass.name)
        .outerjoin(PaymentAllocation, PaymentAllocation.payment_id == FeePayment.id)
        .join(Student, Student.id == FeePayment.student_id)
        .outerjoin(SchoolClass, SchoolClass.id == Student.class_id)
        .where(FeePayment.payment_date == report_date)
        .order_by(FeePayment.created_at)
    )

    by_method: Dict[str, MethodTotal] = {}
    payments: List[DailyCollectionPayment] = []
    total = ZERO
    for payment, allocation, student, class_name in result.all():
        amount = to_money(payment.amount_paid)
        total += amount
        bucket = by_method.setdefault(
            payment.payment_method,
            MethodTotal(
                payment_method=payment.payment_method,
                payment_count=0,
                total_amount=ZERO,
                bus_amount=ZERO,
                school_amount=ZERO,
                miscellaneous_amount=ZERO,
            ),
        )
        bucket.payment_count += 1
        bucket.total_amount += amount
        if payment.charge_type == "miscellaneous":
            bucket.miscellaneous_amount += amount
        elif allocation:
            bucket.bus_amount += to_money(allocation.bus_fee_amount)
            bucket.school_amount += to_money(allocation.school_fee_amount)
        payments.append(
            DailyCollectionPayment(
                payment_id=payment.id,
                receipt_number=payment.receipt_number,
                student_name=student.student_name,
                admission_number=student.admission_number,
                class_name=class_name,
                amount_paid=amount,
                payment_method=payment.payment_method,
                charge_type=payment.charge_type,
            )
        )
    return DailyCollectionReport(
        report_date=report_date,
        total_amount=total,
        payment_count=len(payments),
        by_method=sorted(by_method.values(), key=lambda m: m.payment_method),
        payments=payments,
    )


# ----- Outstanding by class -----
async def outstanding_by_class(db: AsyncSession, academic_year_id: Optional[UUID] = None) -> List[ClassOutstanding]:
    """Defaulters (active students with a balance) and their outstanding total per class."""
    year = await resolve_academic_year(db, academic_year_id)
    result = await db.execute(
        select(SchoolClass, User.name)
        .outerjoin(User, User.id == SchoolClass.teacher_id)
        .where(SchoolClass.academic_year_id == year.id)
        .order_by(SchoolClass.display_order, SchoolClass.name)
    )
    rows: List[ClassOutstanding] = []
    for sc, teacher_name in result.all():
        students = await active_students_in_class(db, sc.id)
        defaulters = 0
        outstanding = ZERO
        for student in students:
            fee_status = await build_student_fee_status(db, student, year)
            if fee_status.outstanding > ZERO:
                defaulters += 1
                outstanding += fee_status.outstanding
        rows.append(
            ClassOutstanding(
                class_id=sc.id,
                class_name=sc.name,
                teacher_name=teacher_name,
                student_count=len(students),
                defaulter_count=defaulters,
                outstanding_balance=outstanding,
            )
        )
    return rows


# ----- Dashboard -----
async def _collected(db: AsyncSession, *filters) -> Decimal:
    return to_money(await db.scalar(select(func.coalesce(func.sum(FeePayment.amount_paid), 0)).where(*filters)))


async def dashboard_stats(db: AsyncSession, include_defaulters: bool = False) -> DashboardStats:
    year = await get_current_academic_year_model(db)
    today = date.today()
    first_of_month = today.replace(day=1)

    active_students = await db.scalar(
        select(func.count()).select_from(Student).where(Student.status == "active")
    )
    yearly_filters = [FeePayment.academic_year_id == year.id] if year else []
    stats = DashboardStats(
        academic_year_id=year.id if year else None,
        year_name=year.year_name if year else None,
        active_students=active_students or 0,
        daily_collection=await _collected(db, FeePayment.payment_date == today),
        monthly_collection=await _collected(db, FeePayment.payment_date >= first_of_month),
        yearly_collection=await _collected(db, *yearly_filters),
    )
    if include_defaulters and year:
        stats.defaulters = await outstanding_by_class(db, year.id)
    return stats

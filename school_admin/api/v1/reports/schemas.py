from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ----- Year-end report -----
class StudentStats(BaseModel):
    total_students: int
    active_students: int
    new_admissions: int
    with_bus_service: int


class FeeCollectionStats(BaseModel):
    total_collection: Decimal
    online_payments: int
    cash_payments: int
    pending_fees: Decimal


class PromotionSummary(BaseModel):
    total_promoted: int
    total_retained: int
    total_transferred: int
    total_dropped: int


class ClassWiseRow(BaseModel):
    class_name: str
    total_students: int
    active_students: int


class YearEndReport(BaseModel):
    academic_year_id: UUID
    year_name: str
    student_stats: StudentStats
    fee_collection: FeeCollectionStats
    promotion_summary: PromotionSummary
    class_wise_report: List[ClassWiseRow]


# ----- Daily collection -----
class MethodTotal(BaseModel):
    payment_method: str
    payment_count: int
    total_amount: Decimal
    bus_amount: Decimal
    school_amount: Decimal
    miscellaneous_amount: Decimal


class DailyCollectionPayment(BaseModel):
    payment_id: UUID
    receipt_number: str
    student_name: str
    admission_number: str
    class_name: Optional[str] = None
    amount_paid: Decimal
    payment_method: str
    charge_type: str


class DailyCollectionReport(BaseModel):
    report_date: date
    total_amount: Decimal
    payment_count: int
    by_method: List[MethodTotal]
    payments: List[DailyCollectionPayment]


# ----- Outstanding / dashboard -----
class ClassOutstanding(BaseModel):
    class_id: UUID
    class_name: str
    teacher_name: Optional[str] = None
    student_count: int
    defaulter_count: int
    outstanding_balance: Decimal


class DashboardStats(BaseModel):
    academic_year_id: Optional[UUID] = None
    year_name: Optional[str] = None
    active_students: int
    daily_collection: Decimal
    monthly_collection: Decimal
    yearly_collection: Decimal
    defaulters: List[ClassOutstanding] = Field(
        default_factory=list,
        description="Per-class defaulters; administrators only",
    )

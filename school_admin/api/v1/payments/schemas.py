from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from school_admin.core.enums import PaymentMethod, SplitPolicy
from school_admin.core.validation import MAX_FEE_AMOUNT


class PaymentCreate(BaseModel):
    """
    Fee payment. The amount is split between bus and school balances by split_policy;
    manual requires bus_fee_amount and school_fee_amount.
    """

    student_id: UUID
    amount_paid: Decimal = Field(..., gt=0, le=MAX_FEE_AMOUNT)
    payment_date: date = Field(default_factory=date.today)
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_id: Optional[str] = Field(None, max_length=100)
    receipt_number: Optional[str] = Field(None, max_length=50, description="Generated when omitted")
    notes: Optional[str] = None
    academic_year_id: Optional[UUID] = Field(None, description="Defaults to the current academic year")
    split_policy: SplitPolicy = SplitPolicy.STANDARD
    bus_fee_amount: Optional[Decimal] = Field(None, ge=0)
    school_fee_amount: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def _manual_amounts(self):
        if self.split_policy == SplitPolicy.MANUAL and (self.bus_fee_amount is None or self.school_fee_amount is None):
            raise ValueError("bus_fee_amount and school_fee_amount are required for a manual split")
        if self.split_policy != SplitPolicy.MANUAL and (
            self.bus_fee_amount is not None or self.school_fee_amount is not None
        ):
            raise ValueError("bus_fee_amount and school_fee_amount require split_policy 'manual'")
        return self


class PaymentUpdate(BaseModel):
    amount_paid: Optional[Decimal] = Field(None, gt=0, le=MAX_FEE_AMOUNT)
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    split_policy: Optional[SplitPolicy] = None
    bus_fee_amount: Optional[Decimal] = Field(None, ge=0)
    school_fee_amount: Optional[Decimal] = Field(None, ge=0)


class AllocationResponse(BaseModel):
    bus_fee_amount: Decimal
    school_fee_amount: Decimal
    allocation_date: date

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    admission_number: Optional[str] = None
    academic_year_id: UUID
    amount_paid: Decimal
    payment_date: date
    payment_method: str
    transaction_id: Optional[str] = None
    receipt_number: str
    notes: Optional[str] = None
    charge_type: str
    charge_description: Optional[str] = None
    split_policy: Optional[str] = None
    allocation: Optional[AllocationResponse] = None
    created_by: Optional[UUID] = None
    created_at: datetime


class PaymentSummary(BaseModel):
    total_amount: Decimal = Decimal("0.00")
    cash_amount: Decimal = Decimal("0.00")
    online_amount: Decimal = Decimal("0.00")
    bus_amount: Decimal = Decimal("0.00")
    school_amount: Decimal = Decimal("0.00")


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    summary: PaymentSummary


class ReceiptResponse(BaseModel):
    receipt_number: str
    payment_date: date
    student_name: str
    admission_number: str
    class_name: Optional[str] = None
    section: Optional[str] = None
    bus_fee_amount: Decimal
    school_fee_amount: Decimal
    total: Decimal
    payment_method: str
    transaction_id: Optional[str] = None
    charge_type: str
    charge_description: Optional[str] = None
    collected_by: Optional[str] = None


class RecalculateAllResponse(BaseModel):
    academic_year_id: UUID
    students_processed: int
    payments_reallocated: int

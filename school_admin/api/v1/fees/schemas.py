from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from school_admin.core.enums import FeeCategory, FeeFrequency, FeeStatus
from school_admin.core.validation import MAX_FEE_AMOUNT


# ----- Fee types -----
class FeeTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    frequency: FeeFrequency = FeeFrequency.ANNUAL
    category: FeeCategory = FeeCategory.SCHOOL
    is_monthly: bool = False
    is_for_new_students_only: bool = False
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    @model_validator(mode="after")
    def _effective_range(self):
        if self.effective_from and self.effective_to and self.effective_to < self.effective_from:
            raise ValueError("effective_to must be on or after effective_from")
        return self


class FeeTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    frequency: Optional[FeeFrequency] = None
    category: Optional[FeeCategory] = None
    is_monthly: Optional[bool] = None
    is_for_new_students_only: Optional[bool] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class FeeTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    frequency: str
    category: str
    is_monthly: bool
    is_for_new_students_only: bool
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    class Config:
        from_attributes = True


# ----- School fee structure -----
class FeeStructureLine(BaseModel):
    class_id: UUID
    fee_type_id: UUID
    amount: Decimal = Field(..., gt=0, le=MAX_FEE_AMOUNT)
    due_date: Optional[date] = None
    applicable_to_new_students_only: bool = False
    is_recurring_monthly: bool = False
    notes: Optional[str] = None


class FeeStructureSave(BaseModel):
    """Replaces the year's fee lines for every class present in ``lines``."""

    academic_year_id: Optional[UUID] = Field(None, description="Defaults to the current academic year")
    lines: List[FeeStructureLine] = Field(..., min_length=1)


class FeeStructureResponse(BaseModel):
    id: UUID
    academic_year_id: UUID
    class_id: UUID
    class_name: Optional[str] = None
    fee_type_id: UUID
    fee_type_name: Optional[str] = None
    amount: Decimal
    due_date: Optional[date] = None
    applicable_to_new_students_only: bool
    is_recurring_monthly: bool
    notes: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class FeeStructureDraft(FeeStructureLine):
    """Previous year's line re-targeted to another year. Not saved until posted back."""

    academic_year_id: UUID
    class_name: Optional[str] = None
    fee_type_name: Optional[str] = None


# ----- Bus fees -----
class BusFeeLine(BaseModel):
    village_id: UUID
    fee_amount: Decimal = Field(..., gt=0, le=MAX_FEE_AMOUNT, description="Monthly bus fee")
    effective_from_date: Optional[date] = None
    effective_to_date: Optional[date] = None
    notes: Optional[str] = None


class BusFeeSave(BaseModel):
    academic_year_id: Optional[UUID] = Field(None, description="Defaults to the current academic year")
    fees: List[BusFeeLine] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, description="Recorded in bus fee history")


class BusFeeResponse(BaseModel):
    id: UUID
    village_id: UUID
    village_name: Optional[str] = None
    academic_year_id: UUID
    fee_amount: Decimal
    effective_from_date: date
    effective_to_date: date
    is_active: bool
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BusFeeDraft(BusFeeLine):
    academic_year_id: UUID
    village_name: Optional[str] = None


# ----- Fee status -----
class StudentFeeStatus(BaseModel):
    student_id: UUID
    academic_year_id: UUID
    months_in_year: int
    bus_months: int
    total_school_fee: Decimal
    total_bus_fee: Decimal
    monthly_school_fee: Decimal
    monthly_bus_fee: Decimal
    paid_school_fee: Decimal
    paid_bus_fee: Decimal
    pending_school_fee: Decimal
    pending_bus_fee: Decimal
    total_fees: Decimal
    total_paid: Decimal
    outstanding: Decimal
    last_payment_date: Optional[date] = None
    status: FeeStatus


class ClassFeeStatus(BaseModel):
    class_id: UUID
    class_name: str
    academic_year_id: UUID
    total_students: int
    total_fees: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    paid_count: int
    partial_count: int
    pending_count: int
    collection_percentage: float

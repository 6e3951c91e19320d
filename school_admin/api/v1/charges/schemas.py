from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_admin.core.enums import PaymentMethod
from school_admin.core.validation import MAX_FEE_AMOUNT


# ----- Categories -----
class ChargeCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: bool = True


class ChargeCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ChargeCategoryResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


# ----- Charges -----
class ChargeCreate(BaseModel):
    student_id: UUID
    charge_category_id: UUID
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, le=MAX_FEE_AMOUNT)
    charge_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    academic_year_id: Optional[UUID] = Field(None, description="Defaults to the current academic year")


class ChargeUpdate(BaseModel):
    charge_category_id: Optional[UUID] = None
    description: Optional[str] = Field(None, min_length=1)
    amount: Optional[Decimal] = Field(None, gt=0, le=MAX_FEE_AMOUNT)
    charge_date: Optional[date] = None
    due_date: Optional[date] = None


class ChargeResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    academic_year_id: UUID
    charge_category_id: UUID
    category_name: Optional[str] = None
    description: str
    amount: Decimal
    charge_date: date
    due_date: Optional[date] = None
    is_paid: bool
    payment_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ChargePaymentRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_id: Optional[str] = Field(None, max_length=100)
    payment_date: date = Field(default_factory=date.today)


class ChargePaymentResponse(BaseModel):
    charge: ChargeResponse
    payment_id: UUID
    receipt_number: str
    amount_paid: Decimal

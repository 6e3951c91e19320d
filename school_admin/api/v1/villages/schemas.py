from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class VillageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    distance_from_school: Decimal = Field(..., ge=0, description="Kilometres")
    bus_number: Optional[str] = Field(None, max_length=20)
    is_active: bool = True


class VillageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    distance_from_school: Optional[Decimal] = Field(None, ge=0)
    bus_number: Optional[str] = Field(None, max_length=20)
    is_active: Optional[bool] = None


class VillageResponse(BaseModel):
    id: UUID
    name: str
    distance_from_school: Decimal
    bus_number: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class VillageWithStats(VillageResponse):
    """Village plus counts of active students and the bus fee active in the requested year."""

    total_students: int = 0
    bus_students: int = 0
    current_bus_fee: Optional[Decimal] = None


class BusFeeHistoryResponse(BaseModel):
    id: UUID
    village_id: UUID
    academic_year_id: Optional[UUID] = None
    previous_amount: Optional[Decimal] = None
    new_amount: Decimal
    change_date: date
    changed_by: Optional[UUID] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AcademicYearCreate(BaseModel):
    """Create academic year. year_name must be unique."""

    year_name: str = Field(..., min_length=1, max_length=20, description="e.g. 2025-2026")
    start_date: date = Field(..., description="Academic year start date")
    end_date: date = Field(..., description="Academic year end date (must be after start_date)")
    set_as_current: bool = Field(
        False,
        description="If true, all other years become non-current.",
    )
    previous_year_id: Optional[UUID] = Field(
        None,
        description="Year this one follows. Defaults to the current year at creation.",
    )


class AcademicYearUpdate(BaseModel):
    year_name: Optional[str] = Field(None, min_length=1, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    previous_year_id: Optional[UUID] = None


class AcademicYearResponse(BaseModel):
    id: UUID
    year_name: str
    start_date: date
    end_date: date
    is_current: bool
    previous_year_id: Optional[UUID] = None
    transition_status: str
    transition_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AcademicYearSettingUpsert(BaseModel):
    setting_value: Dict[str, Any] = Field(default_factory=dict)


class AcademicYearSettingResponse(BaseModel):
    id: UUID
    academic_year_id: UUID
    setting_key: str
    setting_value: Dict[str, Any]
    updated_at: datetime

    class Config:
        from_attributes = True

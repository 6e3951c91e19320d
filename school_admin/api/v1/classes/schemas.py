from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SchoolClassCreate(BaseModel):
    """Class in an academic year. Defaults to the current year."""

    name: str = Field(..., min_length=1, max_length=50, description="e.g. LKG, 1, 10")
    academic_year_id: Optional[UUID] = None
    display_order: Optional[int] = None
    teacher_id: Optional[UUID] = None


class SchoolClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_order: Optional[int] = None
    teacher_id: Optional[UUID] = None


class SchoolClassResponse(BaseModel):
    id: UUID
    academic_year_id: UUID
    name: str
    display_order: Optional[int] = None
    teacher_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True

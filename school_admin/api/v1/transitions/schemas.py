from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_admin.core.enums import PromotionStatus


class TransitionCreate(BaseModel):
    from_year_id: UUID
    to_year_id: UUID


class StudentOutcomeOverride(BaseModel):
    """Per-student decision. Without an override a student is promoted."""

    student_id: UUID
    promotion_status: PromotionStatus
    to_class_id: Optional[UUID] = Field(None, description="Explicit target class for promoted/retained students")


class TransitionRunRequest(BaseModel):
    class_mapping: Dict[str, str] = Field(
        default_factory=dict,
        description="Current class name -> next class name, e.g. {'UKG': '1'}. Numeric names default to name + 1.",
    )
    student_overrides: List[StudentOutcomeOverride] = Field(default_factory=list)


class SkippedStudent(BaseModel):
    student_id: UUID
    student_name: Optional[str] = None
    reason: str


class TransitionResponse(BaseModel):
    id: UUID
    from_year_id: UUID
    to_year_id: UUID
    status: str
    total_students: int
    promoted_students: int
    retained_students: int
    transferred_students: int
    dropped_students: int
    skipped_students: int
    error_message: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransitionRunResponse(BaseModel):
    transition: TransitionResponse
    skipped: List[SkippedStudent] = Field(default_factory=list)

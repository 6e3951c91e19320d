from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from school_admin.core.enums import Gender, RegistrationType, StudentStatus
from school_admin.core.validation import check_aadhar, check_phone_number


# ----- Student -----
class StudentBase(BaseModel):
    student_name: str = Field(..., min_length=1, max_length=255)
    gender: Gender = Gender.MALE
    date_of_birth: Optional[date] = None
    class_id: Optional[UUID] = None
    section: str = Field("A", min_length=1, max_length=10)
    pen: Optional[str] = Field(None, max_length=50, description="Permanent Education Number")
    address: Optional[str] = None
    phone_number: Optional[str] = None
    father_name: Optional[str] = Field(None, max_length=255)
    mother_name: Optional[str] = Field(None, max_length=255)
    student_aadhar: Optional[str] = None
    father_aadhar: Optional[str] = None
    village_id: Optional[UUID] = None
    has_school_bus: bool = False
    bus_start_date: Optional[date] = None

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone_number(v)

    @field_validator("student_aadhar", "father_aadhar")
    @classmethod
    def _aadhar(cls, v: Optional[str]) -> Optional[str]:
        return check_aadhar(v)

    @model_validator(mode="after")
    def _bus_needs_village(self):
        if self.has_school_bus and not self.village_id:
            raise ValueError("Village is required when school bus service is selected")
        return self


class StudentCreate(StudentBase):
    """Register a student. A student_academic_history row is created for the class's academic year."""

    admission_number: str = Field(..., min_length=1, max_length=50)
    admission_date: date = Field(default_factory=date.today)
    registration_type: RegistrationType = RegistrationType.NEW
    previous_admission_number: Optional[str] = Field(None, max_length=50)
    rejoining_reason: Optional[str] = None


class StudentUpdate(BaseModel):
    student_name: Optional[str] = Field(None, min_length=1, max_length=255)
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    class_id: Optional[UUID] = None
    section: Optional[str] = Field(None, min_length=1, max_length=10)
    status: Optional[StudentStatus] = None
    exit_date: Optional[date] = None
    pen: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    phone_number: Optional[str] = None
    father_name: Optional[str] = Field(None, max_length=255)
    mother_name: Optional[str] = Field(None, max_length=255)
    student_aadhar: Optional[str] = None
    father_aadhar: Optional[str] = None
    village_id: Optional[UUID] = None
    has_school_bus: Optional[bool] = None
    bus_start_date: Optional[date] = None
    registration_type: Optional[RegistrationType] = None
    previous_admission_number: Optional[str] = Field(None, max_length=50)
    rejoining_reason: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone_number(v)

    @field_validator("student_aadhar", "father_aadhar")
    @classmethod
    def _aadhar(cls, v: Optional[str]) -> Optional[str]:
        return check_aadhar(v)


class StudentResponse(BaseModel):
    id: UUID
    admission_number: str
    student_name: str
    gender: str
    date_of_birth: Optional[date] = None
    class_id: Optional[UUID] = None
    class_name: Optional[str] = None
    section: str
    admission_date: date
    status: str
    exit_date: Optional[date] = None
    pen: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    student_aadhar: Optional[str] = None
    father_aadhar: Optional[str] = None
    village_id: Optional[UUID] = None
    village_name: Optional[str] = None
    has_school_bus: bool
    bus_start_date: Optional[date] = None
    registration_type: str
    last_registration_date: Optional[date] = None
    last_registration_type: Optional[str] = None
    previous_admission_number: Optional[str] = None
    rejoining_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StudentPaginatedResponse(BaseModel):
    """Paginated response for GET /api/v1/students."""

    items: List[StudentResponse] = Field(..., description="List of students")
    total: int = Field(..., ge=0, description="Total count matching the filters")
    page: int = Field(..., ge=1, description="Current page")
    page_size: int = Field(..., ge=1, le=200, description="Page size")
    total_pages: int = Field(..., ge=0, description="Total pages")


class AcademicHistoryResponse(BaseModel):
    id: UUID
    academic_year_id: UUID
    class_id: UUID
    section: Optional[str] = None
    promotion_status: Optional[str] = None
    registration_type: str
    has_school_bus: bool
    village_id: Optional[UUID] = None
    registration_date_for_year: date
    is_active_in_year: bool

    class Config:
        from_attributes = True


# ----- Bulk admission -----
class BulkAdmissionRequest(BaseModel):
    """
    Rows keyed by the admission template headers:
    admission_number, student_name, gender, date_of_birth, promoted_class, section, address,
    phone_number, father_name, mother_name, student_aadhar, father_aadhar, village_name, has_school_bus.
    """

    rows: List[Dict[str, Any]] = Field(..., min_length=1, max_length=1000)


class ImportErrorItem(BaseModel):
    row: int = Field(..., description="1-based row number, counting the header as row 1")
    field: str
    message: str
    severity: str = Field("error", description="error | warning")


class BulkAdmissionResult(BaseModel):
    total_processed: int
    successful_imports: int
    failed_imports: int
    duplicates: int
    validation_errors: int
    errors: List[ImportErrorItem] = Field(default_factory=list)

"""Bulk admission of continuing students from template rows (already parsed by the client)."""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Set

from fastapi import status
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import get_current_academic_year_model
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import SchoolClass, Student, Village
from school_admin.core.validation import is_valid_aadhar, is_valid_phone_number, normalize_phone_number

from .schemas import BulkAdmissionResult, ImportErrorItem, StudentCreate
from .service import register_student

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("admission_number", "student_name", "father_name", "mother_name", "address")
GENDERS = ("male", "female", "other")
TRUTHY = ("true", "yes", "y", "1")


def _cell(row: Dict[str, Any], key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUTHY


def validate_rows(rows: List[Dict[str, Any]], existing_numbers: Set[str]) -> List[ImportErrorItem]:
    """
    Field-level checks for every row. Row numbers count the template header as row 1.
    An admission number already on file is a warning: the row is skipped as a duplicate.
    """
    errors: List[ImportErrorItem] = []
    seen: Set[str] = set()

    for index, row in enumerate(rows):
        row_no = index + 2

        def add(field: str, message: str, severity: str = "error") -> None:
            errors.append(ImportErrorItem(row=row_no, field=field, message=message, severity=severity))

        for field in REQUIRED_FIELDS:
            if not _cell(row, field):
                add(field, f"{field.replace('_', ' ').capitalize()} is required")

        phone = normalize_phone_number(_cell(row, "phone_number"))
        if phone and not is_valid_phone_number(phone):
            add("phone_number", "Please enter a valid 10-digit phone number")
        for field in ("student_aadhar", "father_aadhar"):
            value = _cell(row, field).replace(" ", "")
            if value and not is_valid_aadhar(value):
                add(field, "Aadhar number must be 12 digits")

        gender = _cell(row, "gender").lower()
        if gender and gender not in GENDERS:
            add("gender", "Gender must be male, female, or other")

        dob = _cell(row, "date_of_birth")
        if dob:
            try:
                date.fromisoformat(dob[:10])
            except ValueError:
                add("date_of_birth", "Invalid date format")

        admission_number = _cell(row, "admission_number")
        if admission_number:
            if admission_number in seen:
                add("admission_number", "Duplicate admission number in file")
            else:
                seen.add(admission_number)
            if admission_number in existing_numbers:
                add("admission_number", "Student already exists in database", "warning")

    return errors


async def import_students(db: AsyncSession, rows: List[Dict[str, Any]]) -> BulkAdmissionResult:
    """
    Register valid rows as continuing students of the current academic year.
    Each row commits on its own; a failed row is reported and does not undo earlier rows.
    """
    ay = await get_current_academic_year_model(db)
    if not ay:
        raise ServiceError("No current academic year found", status.HTTP_400_BAD_REQUEST)

    existing_result = await db.execute(select(Student.admission_number))
    existing_numbers = {row[0] for row in existing_result.all()}

    errors = validate_rows(rows, existing_numbers)
    error_rows = {e.row - 2 for e in errors if e.severity == "error"}
    validation_errors = sum(1 for e in errors if e.severity == "error")

    class_result = await db.execute(
        select(func.lower(SchoolClass.name), SchoolClass.id).where(SchoolClass.academic_year_id == ay.id)
    )
    class_map = {name: class_id for name, class_id in class_result.all()}
    village_result = await db.execute(select(func.lower(Village.name), Village.id))
    village_map = {name: village_id for name, village_id in village_result.all()}

    successful = 0
    failed = 0
    duplicates = 0
    today = date.today()

    for index, row in enumerate(rows):
        if index in error_rows:
            continue
        admission_number = _cell(row, "admission_number")
        if admission_number in existing_numbers:
            duplicates += 1
            continue

        class_id = class_map.get(_cell(row, "promoted_class").lower())
        village_id: Optional[Any] = village_map.get(_cell(row, "village_name").lower())
        has_bus = _parse_bool(row.get("has_school_bus")) and village_id is not None
        try:
            payload = StudentCreate(
                admission_number=admission_number,
                student_name=_cell(row, "student_name"),
                gender=_cell(row, "gender").lower() or "male",
                date_of_birth=_cell(row, "date_of_birth")[:10] or None,
                class_id=class_id,
                section=_cell(row, "section") or "A",
                address=_cell(row, "address"),
                phone_number=_cell(row, "phone_number") or None,
                father_name=_cell(row, "father_name"),
                mother_name=_cell(row, "mother_name"),
                student_aadhar=_cell(row, "student_aadhar") or None,
                father_aadhar=_cell(row, "father_aadhar") or None,
                village_id=village_id,
                has_school_bus=has_bus,
                admission_date=today,
                registration_type="continuing",
            )
            await register_student(db, payload)
        except (ValidationError, ServiceError) as e:
            await db.rollback()
            failed += 1
            message = e.message if isinstance(e, ServiceError) else str(e.errors()[0].get("msg", e))
            errors.append(ImportErrorItem(row=index + 2, field="row", message=message))
            continue
        existing_numbers.add(admission_number)
        successful += 1

    logger.info(
        "Bulk admission: %d rows, %d imported, %d failed, %d duplicates",
        len(rows),
        successful,
        failed + len(error_rows),
        duplicates,
    )
    return BulkAdmissionResult(
        total_processed=len(rows),
        successful_imports=successful,
        failed_imports=failed + len(error_rows),
        duplicates=duplicates,
        validation_errors=validation_errors,
        errors=errors,
    )

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.core.exceptions import ServiceError
from school_admin.core.models import AcademicYear, AcademicYearSetting

from .schemas import (
    AcademicYearCreate,
    AcademicYearResponse,
    AcademicYearSettingResponse,
    AcademicYearUpdate,
)


def _to_response(ay: AcademicYear) -> AcademicYearResponse:
    return AcademicYearResponse.model_validate(ay)


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ServiceError("end_date must be after start_date", status.HTTP_400_BAD_REQUEST)


async def get_current_academic_year_model(db: AsyncSession) -> Optional[AcademicYear]:
    result = await db.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True)))
    return result.scalars().first()


async def resolve_academic_year(db: AsyncSession, academic_year_id: Optional[UUID] = None) -> AcademicYear:
    """Return the requested academic year, or the current one when no id is given."""
    if academic_year_id:
        ay = await db.get(AcademicYear, academic_year_id)
        if not ay:
            raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
        return ay
    ay = await get_current_academic_year_model(db)
    if not ay:
        raise ServiceError("No current academic year is set", status.HTTP_400_BAD_REQUEST)
    return ay


async def create_academic_year(db: AsyncSession, payload: AcademicYearCreate) -> AcademicYearResponse:
    """Create academic year. If set_as_current=true, unset current on all other years (transaction)."""
    _validate_dates(payload.start_date, payload.end_date)
    year_name = payload.year_name.strip()
    existing = await db.execute(select(AcademicYear).where(AcademicYear.year_name == year_name))
    if existing.scalar_one_or_none():
        raise ServiceError(
            f"Academic year with name '{year_name}' already exists",
            status.HTTP_409_CONFLICT,
        )

    previous_year_id = payload.previous_year_id
    if previous_year_id is None:
        current = await get_current_academic_year_model(db)
        previous_year_id = current.id if current else None
    elif not await db.get(AcademicYear, previous_year_id):
        raise ServiceError("Previous academic year not found", status.HTTP_404_NOT_FOUND)

    if payload.set_as_current:
        await db.execute(update(AcademicYear).values(is_current=False))
    ay = AcademicYear(
        year_name=year_name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_current=payload.set_as_current,
        previous_year_id=previous_year_id,
        transition_status="pending",
    )
    db.add(ay)
    try:
        await db.commit()
        await db.refresh(ay)
        return _to_response(ay)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            f"Academic year with name '{year_name}' already exists",
            status.HTTP_409_CONFLICT,
        )


async def list_academic_years(db: AsyncSession) -> List[AcademicYearResponse]:
    result = await db.execute(select(AcademicYear).order_by(AcademicYear.start_date.desc()))
    return [_to_response(ay) for ay in result.scalars().all()]


async def get_academic_year(db: AsyncSession, academic_year_id: UUID) -> Optional[AcademicYearResponse]:
    ay = await db.get(AcademicYear, academic_year_id)
    return _to_response(ay) if ay else None


async def get_current_academic_year(db: AsyncSession) -> Optional[AcademicYearResponse]:
    """Get the current academic year (is_current=true). Default for data operations."""
    ay = await get_current_academic_year_model(db)
    return _to_response(ay) if ay else None


async def update_academic_year(
    db: AsyncSession,
    academic_year_id: UUID,
    payload: AcademicYearUpdate,
) -> AcademicYearResponse:
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    if payload.year_name is not None:
        year_name = payload.year_name.strip()
        other = await db.execute(
            select(AcademicYear).where(
                AcademicYear.year_name == year_name,
                AcademicYear.id != academic_year_id,
            )
        )
        if other.scalar_one_or_none():
            raise ServiceError(
                f"Academic year with name '{year_name}' already exists",
                status.HTTP_409_CONFLICT,
            )
        ay.year_name = year_name
    if payload.start_date is not None:
        ay.start_date = payload.start_date
    if payload.end_date is not None:
        ay.end_date = payload.end_date
    if payload.start_date is not None or payload.end_date is not None:
        _validate_dates(ay.start_date, ay.end_date)
    if payload.previous_year_id is not None:
        if payload.previous_year_id == academic_year_id:
            raise ServiceError("An academic year cannot follow itself", status.HTTP_400_BAD_REQUEST)
        ay.previous_year_id = payload.previous_year_id
    await db.commit()
    await db.refresh(ay)
    return _to_response(ay)


async def set_academic_year_current(db: AsyncSession, academic_year_id: UUID) -> AcademicYearResponse:
    """Set this academic year as current. All others become is_current=false (transaction)."""
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    await db.execute(update(AcademicYear).values(is_current=False))
    ay.is_current = True
    await db.commit()
    await db.refresh(ay)
    return _to_response(ay)


async def upsert_setting(
    db: AsyncSession,
    academic_year_id: UUID,
    setting_key: str,
    setting_value: Dict[str, Any],
    commit: bool = True,
) -> AcademicYearSetting:
    """Insert or replace the (year, key) blob."""
    result = await db.execute(
        select(AcademicYearSetting).where(
            AcademicYearSetting.academic_year_id == academic_year_id,
            AcademicYearSetting.setting_key == setting_key,
        )
    )
    setting = result.scalar_one_or_none()
    if setting:
        setting.setting_value = setting_value
    else:
        setting = AcademicYearSetting(
            academic_year_id=academic_year_id,
            setting_key=setting_key,
            setting_value=setting_value,
        )
        db.add(setting)
    if commit:
        await db.commit()
        await db.refresh(setting)
    return setting


async def save_setting(
    db: AsyncSession,
    academic_year_id: UUID,
    setting_key: str,
    setting_value: Dict[str, Any],
) -> AcademicYearSettingResponse:
    if not await db.get(AcademicYear, academic_year_id):
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    setting = await upsert_setting(db, academic_year_id, setting_key.strip(), setting_value)
    return AcademicYearSettingResponse.model_validate(setting)


async def get_setting(
    db: AsyncSession,
    academic_year_id: UUID,
    setting_key: str,
) -> Optional[AcademicYearSettingResponse]:
    result = await db.execute(
        select(AcademicYearSetting).where(
            AcademicYearSetting.academic_year_id == academic_year_id,
            AcademicYearSetting.setting_key == setting_key,
        )
    )
    setting = result.scalar_one_or_none()
    return AcademicYearSettingResponse.model_validate(setting) if setting else None

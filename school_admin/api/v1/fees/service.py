import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import resolve_academic_year
from school_admin.api.v1.classes.service import find_class_by_name
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import (
    AcademicYear,
    BusFeeHistory,
    BusFeeStructure,
    FeeStructure,
    FeeType,
    SchoolClass,
    Village,
)

from .schemas import (
    BusFeeDraft,
    BusFeeResponse,
    BusFeeSave,
    FeeStructureDraft,
    FeeStructureResponse,
    FeeStructureSave,
    FeeTypeCreate,
    FeeTypeResponse,
    FeeTypeUpdate,
)

logger = logging.getLogger(__name__)


# ----- Fee types -----
async def _find_fee_type_by_name(db: AsyncSession, name: str) -> Optional[FeeType]:
    result = await db.execute(select(FeeType).where(func.lower(FeeType.name) == name.strip().lower()))
    return result.scalars().first()


async def create_fee_type(db: AsyncSession, payload: FeeTypeCreate, user_id: Optional[UUID] = None) -> FeeTypeResponse:
    name = payload.name.strip()
    if await _find_fee_type_by_name(db, name):
        raise ServiceError(f"Fee type '{name}' already exists", status.HTTP_409_CONFLICT)
    data = payload.model_dump(mode="json", exclude={"name", "effective_from", "effective_to"})
    fee_type = FeeType(
        name=name,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        last_updated_by=user_id,
        **data,
    )
    db.add(fee_type)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Fee type '{name}' already exists", status.HTTP_409_CONFLICT)
    await db.refresh(fee_type)
    return FeeTypeResponse.model_validate(fee_type)


async def list_fee_types(db: AsyncSession, category: Optional[str] = None) -> List[FeeTypeResponse]:
    stmt = select(FeeType).order_by(FeeType.name)
    if category:
        stmt = stmt.where(FeeType.category == category)
    result = await db.execute(stmt)
    return [FeeTypeResponse.model_validate(ft) for ft in result.scalars().all()]


async def update_fee_type(
    db: AsyncSession,
    fee_type_id: UUID,
    payload: FeeTypeUpdate,
    user_id: Optional[UUID] = None,
) -> FeeTypeResponse:
    fee_type = await db.get(FeeType, fee_type_id)
    if not fee_type:
        raise ServiceError("Fee type not found", status.HTTP_404_NOT_FOUND)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name"):
        name = data["name"].strip()
        other = await _find_fee_type_by_name(db, name)
        if other and other.id != fee_type.id:
            raise ServiceError(f"Fee type '{name}' already exists", status.HTTP_409_CONFLICT)
        data["name"] = name
    for field, value in data.items():
        if hasattr(value, "value"):
            value = value.value
        if value is None and field not in ("description", "effective_from", "effective_to"):
            continue
        setattr(fee_type, field, value)
    if fee_type.effective_from and fee_type.effective_to and fee_type.effective_to < fee_type.effective_from:
        raise ServiceError("effective_to must be on or after effective_from", status.HTTP_400_BAD_REQUEST)
    fee_type.last_updated_by = user_id
    await db.commit()
    await db.refresh(fee_type)
    return FeeTypeResponse.model_validate(fee_type)


async def delete_fee_type(db: AsyncSession, fee_type_id: UUID) -> None:
    fee_type = await db.get(FeeType, fee_type_id)
    if not fee_type:
        raise ServiceError("Fee type not found", status.HTTP_404_NOT_FOUND)
    in_use = await db.scalar(
        select(func.count()).select_from(FeeStructure).where(FeeStructure.fee_type_id == fee_type_id)
    )
    if in_use:
        raise ServiceError("Fee type is used by a fee structure", status.HTTP_409_CONFLICT)
    await db.delete(fee_type)
    await db.commit()


# ----- School fee structure -----
async def list_fee_structure(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
) -> List[FeeStructureResponse]:
    ay = await resolve_academic_year(db, academic_year_id)
    stmt = (
        select(FeeStructure, SchoolClass.name, FeeType.name)
        .join(SchoolClass, SchoolClass.id == FeeStructure.class_id)
        .join(FeeType, FeeType.id == FeeStructure.fee_type_id)
        .where(FeeStructure.academic_year_id == ay.id)
        .order_by(SchoolClass.display_order, SchoolClass.name, FeeType.name)
    )
    if class_id:
        stmt = stmt.where(FeeStructure.class_id == class_id)
    result = await db.execute(stmt)
    items: List[FeeStructureResponse] = []
    for line, class_name, fee_type_name in result.all():
        item = FeeStructureResponse.model_validate(line)
        item.class_name = class_name
        item.fee_type_name = fee_type_name
        items.append(item)
    return items


async def save_fee_structure(
    db: AsyncSession,
    payload: FeeStructureSave,
    user_id: Optional[UUID] = None,
) -> List[FeeStructureResponse]:
    """Replace the year's lines for each class in the payload (transaction)."""
    ay = await resolve_academic_year(db, payload.academic_year_id)

    seen = set()
    class_ids = set()
    for line in payload.lines:
        key = (line.class_id, line.fee_type_id)
        if key in seen:
            raise ServiceError("Each fee type can appear only once per class", status.HTTP_400_BAD_REQUEST)
        seen.add(key)
        class_ids.add(line.class_id)

    for class_id in class_ids:
        sc = await db.get(SchoolClass, class_id)
        if not sc or sc.academic_year_id != ay.id:
            raise ServiceError(
                f"Class {class_id} does not belong to academic year {ay.year_name}",
                status.HTTP_400_BAD_REQUEST,
            )
    for fee_type_id in {line.fee_type_id for line in payload.lines}:
        fee_type = await db.get(FeeType, fee_type_id)
        if not fee_type:
            raise ServiceError(f"Fee type {fee_type_id} not found", status.HTTP_404_NOT_FOUND)
        if fee_type.category != "school":
            raise ServiceError(
                f"Fee type '{fee_type.name}' is a bus fee; set bus fees per village",
                status.HTTP_400_BAD_REQUEST,
            )

    await db.execute(
        delete(FeeStructure).where(
            FeeStructure.academic_year_id == ay.id,
            FeeStructure.class_id.in_(class_ids),
        )
    )
    for line in payload.lines:
        db.add(FeeStructure(academic_year_id=ay.id, last_updated_by=user_id, **line.model_dump()))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Fee structure conflicts with existing lines", status.HTTP_409_CONFLICT)
    logger.info("Saved %d fee lines for %d classes in %s", len(payload.lines), len(class_ids), ay.year_name)
    return await list_fee_structure(db, ay.id)


async def _previous_year(db: AsyncSession, academic_year_id: Optional[UUID]) -> tuple:
    ay = await resolve_academic_year(db, academic_year_id)
    if not ay.previous_year_id:
        raise ServiceError("No previous academic year found", status.HTTP_404_NOT_FOUND)
    previous = await db.get(AcademicYear, ay.previous_year_id)
    if not previous:
        raise ServiceError("No previous academic year found", status.HTTP_404_NOT_FOUND)
    return ay, previous


async def copy_fee_structure_from_previous(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
) -> List[FeeStructureDraft]:
    """
    Previous year's lines mapped onto the same-named classes of the target year.
    Lines whose class does not exist in the target year are left out.
    """
    ay, previous = await _previous_year(db, academic_year_id)
    previous_lines = await list_fee_structure(db, previous.id)
    if not previous_lines:
        raise ServiceError("No fee structure found for previous year", status.HTTP_404_NOT_FOUND)

    drafts: List[FeeStructureDraft] = []
    for line in previous_lines:
        target_class = await find_class_by_name(db, ay.id, line.class_name or "")
        if not target_class:
            continue
        drafts.append(
            FeeStructureDraft(
                academic_year_id=ay.id,
                class_id=target_class.id,
                class_name=target_class.name,
                fee_type_id=line.fee_type_id,
                fee_type_name=line.fee_type_name,
                amount=line.amount,
                due_date=None,
                applicable_to_new_students_only=line.applicable_to_new_students_only,
                is_recurring_monthly=line.is_recurring_monthly,
                notes=line.notes,
            )
        )
    return drafts


# ----- Bus fees -----
async def list_bus_fees(db: AsyncSession, academic_year_id: Optional[UUID] = None) -> List[BusFeeResponse]:
    """Active bus fee per village for the year."""
    ay = await resolve_academic_year(db, academic_year_id)
    result = await db.execute(
        select(BusFeeStructure, Village.name)
        .join(Village, Village.id == BusFeeStructure.village_id)
        .where(BusFeeStructure.academic_year_id == ay.id, BusFeeStructure.is_active.is_(True))
        .order_by(Village.name)
    )
    items: List[BusFeeResponse] = []
    for fee, village_name in result.all():
        item = BusFeeResponse.model_validate(fee)
        item.village_name = village_name
        items.append(item)
    return items


async def save_bus_fees(
    db: AsyncSession,
    payload: BusFeeSave,
    user_id: Optional[UUID] = None,
) -> List[BusFeeResponse]:
    """
    For each village: deactivate the active row of the year, insert the new one and
    record the change in bus_fee_history (transaction).
    """
    ay = await resolve_academic_year(db, payload.academic_year_id)
    if len({fee.village_id for fee in payload.fees}) != len(payload.fees):
        raise ServiceError("Each village can appear only once", status.HTTP_400_BAD_REQUEST)

    today = date.today()
    for line in payload.fees:
        if not await db.get(Village, line.village_id):
            raise ServiceError(f"Village {line.village_id} not found", status.HTTP_404_NOT_FOUND)
        effective_from = line.effective_from_date or ay.start_date
        effective_to = line.effective_to_date or ay.end_date
        if effective_to < effective_from:
            raise ServiceError("effective_to_date must be on or after effective_from_date", status.HTTP_400_BAD_REQUEST)

        result = await db.execute(
            select(BusFeeStructure).where(
                BusFeeStructure.village_id == line.village_id,
                BusFeeStructure.academic_year_id == ay.id,
                BusFeeStructure.is_active.is_(True),
            )
        )
        previous_rows = result.scalars().all()
        previous_amount = previous_rows[-1].fee_amount if previous_rows else None
        for row in previous_rows:
            row.is_active = False

        db.add(
            BusFeeStructure(
                village_id=line.village_id,
                academic_year_id=ay.id,
                fee_amount=line.fee_amount,
                effective_from_date=effective_from,
                effective_to_date=effective_to,
                is_active=True,
                notes=line.notes,
                last_updated_by=user_id,
            )
        )
        if previous_amount is None or previous_amount != line.fee_amount:
            db.add(
                BusFeeHistory(
                    village_id=line.village_id,
                    academic_year_id=ay.id,
                    previous_amount=previous_amount,
                    new_amount=line.fee_amount,
                    change_date=today,
                    changed_by=user_id,
                    reason=payload.reason,
                )
            )
    await db.commit()
    logger.info("Saved bus fees for %d villages in %s", len(payload.fees), ay.year_name)
    return await list_bus_fees(db, ay.id)


async def copy_bus_fees_from_previous(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
) -> List[BusFeeDraft]:
    ay, previous = await _previous_year(db, academic_year_id)
    previous_fees = await list_bus_fees(db, previous.id)
    if not previous_fees:
        raise ServiceError("No bus fees found for previous year", status.HTTP_404_NOT_FOUND)
    return [
        BusFeeDraft(
            academic_year_id=ay.id,
            village_id=fee.village_id,
            village_name=fee.village_name,
            fee_amount=fee.fee_amount,
            effective_from_date=ay.start_date,
            effective_to_date=ay.end_date,
            notes=fee.notes,
        )
        for fee in previous_fees
    ]

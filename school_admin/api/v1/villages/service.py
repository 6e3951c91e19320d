from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.api.v1.academic_years.service import get_current_academic_year_model
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import BusFeeHistory, BusFeeStructure, Student, Village

from .schemas import BusFeeHistoryResponse, VillageCreate, VillageResponse, VillageUpdate, VillageWithStats


def _to_response(village: Village) -> VillageResponse:
    return VillageResponse.model_validate(village)


async def find_village_by_name(db: AsyncSession, name: str) -> Optional[Village]:
    result = await db.execute(select(Village).where(func.lower(Village.name) == name.strip().lower()))
    return result.scalars().first()


async def create_village(db: AsyncSession, payload: VillageCreate) -> VillageResponse:
    name = payload.name.strip()
    if await find_village_by_name(db, name):
        raise ServiceError(f"Village '{name}' already exists", status.HTTP_409_CONFLICT)
    village = Village(
        name=name,
        distance_from_school=payload.distance_from_school,
        bus_number=payload.bus_number,
        is_active=payload.is_active,
    )
    db.add(village)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(f"Village '{name}' already exists", status.HTTP_409_CONFLICT)
    await db.refresh(village)
    return _to_response(village)


async def list_villages(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
    active_only: bool = False,
) -> List[VillageWithStats]:
    """Villages with active student / bus student counts and the active bus fee for the year (default current)."""
    if academic_year_id is None:
        current = await get_current_academic_year_model(db)
        academic_year_id = current.id if current else None

    stmt = select(Village).order_by(Village.name)
    if active_only:
        stmt = stmt.where(Village.is_active.is_(True))
    villages = (await db.execute(stmt)).scalars().all()

    counts_result = await db.execute(
        select(
            Student.village_id,
            func.count(Student.id),
            func.sum(case((Student.has_school_bus.is_(True), 1), else_=0)),
        )
        .where(Student.status == "active", Student.village_id.is_not(None))
        .group_by(Student.village_id)
    )
    counts: Dict[UUID, tuple] = {row[0]: (row[1], row[2] or 0) for row in counts_result.all()}

    fees: Dict[UUID, object] = {}
    if academic_year_id:
        fee_result = await db.execute(
            select(BusFeeStructure.village_id, BusFeeStructure.fee_amount).where(
                BusFeeStructure.academic_year_id == academic_year_id,
                BusFeeStructure.is_active.is_(True),
            )
        )
        fees = {row[0]: row[1] for row in fee_result.all()}

    items: List[VillageWithStats] = []
    for village in villages:
        total, bus = counts.get(village.id, (0, 0))
        items.append(
            VillageWithStats(
                **_to_response(village).model_dump(),
                total_students=total,
                bus_students=int(bus),
                current_bus_fee=fees.get(village.id),
            )
        )
    return items


async def get_village(db: AsyncSession, village_id: UUID) -> Optional[VillageResponse]:
    village = await db.get(Village, village_id)
    return _to_response(village) if village else None


async def update_village(db: AsyncSession, village_id: UUID, payload: VillageUpdate) -> VillageResponse:
    village = await db.get(Village, village_id)
    if not village:
        raise ServiceError("Village not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None:
        name = payload.name.strip()
        other = await find_village_by_name(db, name)
        if other and other.id != village.id:
            raise ServiceError(f"Village '{name}' already exists", status.HTTP_409_CONFLICT)
        village.name = name
    if payload.distance_from_school is not None:
        village.distance_from_school = payload.distance_from_school
    if "bus_number" in payload.model_fields_set:
        village.bus_number = payload.bus_number
    if payload.is_active is not None:
        village.is_active = payload.is_active
    await db.commit()
    await db.refresh(village)
    return _to_response(village)


async def delete_village(db: AsyncSession, village_id: UUID) -> None:
    village = await db.get(Village, village_id)
    if not village:
        raise ServiceError("Village not found", status.HTTP_404_NOT_FOUND)
    in_use = await db.scalar(select(func.count()).select_from(Student).where(Student.village_id == village_id))
    if in_use:
        raise ServiceError(
            "Village has students assigned; deactivate it instead",
            status.HTTP_409_CONFLICT,
        )
    await db.delete(village)
    await db.commit()


async def list_bus_fee_history(db: AsyncSession, village_id: UUID) -> List[BusFeeHistoryResponse]:
    result = await db.execute(
        select(BusFeeHistory)
        .where(BusFeeHistory.village_id == village_id)
        .order_by(BusFeeHistory.change_date.desc(), BusFeeHistory.created_at.desc())
    )
    return [BusFeeHistoryResponse.model_validate(row) for row in result.scalars().all()]

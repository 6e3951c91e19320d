from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, FEE_STAFF, require_roles
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import BusFeeHistoryResponse, VillageCreate, VillageResponse, VillageUpdate, VillageWithStats
from . import service

router = APIRouter(prefix="/api/v1/villages", tags=["villages"])


@router.post(
    "",
    response_model=VillageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def create_village(
    payload: VillageCreate,
    db: AsyncSession = Depends(get_db),
) -> VillageResponse:
    try:
        return await service.create_village(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[VillageWithStats],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_villages(
    academic_year_id: Optional[UUID] = Query(None, description="Year for current_bus_fee; defaults to current"),
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> List[VillageWithStats]:
    return await service.list_villages(db, academic_year_id=academic_year_id, active_only=active_only)


@router.get(
    "/{village_id}",
    response_model=VillageResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_village(
    village_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> VillageResponse:
    village = await service.get_village(db, village_id)
    if not village:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Village not found")
    return village


@router.put(
    "/{village_id}",
    response_model=VillageResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def update_village(
    village_id: UUID,
    payload: VillageUpdate,
    db: AsyncSession = Depends(get_db),
) -> VillageResponse:
    try:
        return await service.update_village(db, village_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{village_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def delete_village(
    village_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_village(db, village_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{village_id}/bus-fee-history",
    response_model=List[BusFeeHistoryResponse],
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def list_bus_fee_history(
    village_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[BusFeeHistoryResponse]:
    return await service.list_bus_fee_history(db, village_id)

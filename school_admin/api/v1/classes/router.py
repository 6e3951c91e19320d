from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, require_roles
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import SchoolClassCreate, SchoolClassResponse, SchoolClassUpdate
from . import service

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.post(
    "",
    response_model=SchoolClassResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def create_class(
    payload: SchoolClassCreate,
    db: AsyncSession = Depends(get_db),
) -> SchoolClassResponse:
    try:
        return await service.create_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[SchoolClassResponse],
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def list_classes(
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the current academic year"),
    db: AsyncSession = Depends(get_db),
) -> List[SchoolClassResponse]:
    try:
        return await service.list_classes(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{class_id}",
    response_model=SchoolClassResponse,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SchoolClassResponse:
    sc = await service.get_class(db, class_id)
    if not sc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return sc


@router.put(
    "/{class_id}",
    response_model=SchoolClassResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def update_class(
    class_id: UUID,
    payload: SchoolClassUpdate,
    db: AsyncSession = Depends(get_db),
) -> SchoolClassResponse:
    try:
        return await service.update_class(db, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{class_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_class(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

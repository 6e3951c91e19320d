from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, ALL_STAFF, FEE_STAFF, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.enums import UserRole
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import ClassOutstanding, DailyCollectionReport, DashboardStats, YearEndReport
from . import service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.post(
    "/year-end",
    response_model=YearEndReport,
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)
async def generate_year_end_report(
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the current academic year"),
    db: AsyncSession = Depends(get_db),
) -> YearEndReport:
    """Generate the year-end report and save it with the academic year's settings."""
    try:
        return await service.generate_year_end_report(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/daily-collection",
    response_model=DailyCollectionReport,
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def daily_collection(
    report_date: Optional[date] = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
) -> DailyCollectionReport:
    return await service.daily_collection(db, report_date)


@router.get(
    "/outstanding",
    response_model=List[ClassOutstanding],
    dependencies=[Depends(require_roles(*FEE_STAFF))],
)
async def outstanding_by_class(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[ClassOutstanding]:
    try:
        return await service.outstanding_by_class(db, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/dashboard",
    response_model=DashboardStats,
    dependencies=[Depends(require_roles(*ALL_STAFF))],
)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DashboardStats:
    """Headline numbers. Administrators also get per-class defaulters."""
    return await service.dashboard_stats(
        db,
        include_defaulters=current_user.role == UserRole.ADMINISTRATOR,
    )

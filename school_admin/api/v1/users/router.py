from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.enums import UserRole
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import CreateUserResponse, LoginCodeResponse, LoginHistoryPage, UserCreate, UserResponse, UserUpdate
from . import service

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)


@router.post("", response_model=CreateUserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> CreateUserResponse:
    """Create a staff user and return their first login code (shown once)."""
    try:
        return await service.create_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[UserResponse]:
    return await service.list_users(db, role=role.value if role else None, is_active=is_active)


@router.get("/login-history", response_model=LoginHistoryPage)
async def list_login_history(
    user_id: Optional[UUID] = Query(None),
    success: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> LoginHistoryPage:
    return await service.list_login_history(db, user_id=user_id, success=success, limit=limit, offset=offset)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await service.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    try:
        return await service.update_user(db, user_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UserResponse:
    try:
        return await service.deactivate_user(db, user_id, acting_user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{user_id}/login-code", response_model=LoginCodeResponse)
async def issue_login_code(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> LoginCodeResponse:
    """Generate a fresh login code. The previous code stops working."""
    try:
        return await service.issue_login_code(db, user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

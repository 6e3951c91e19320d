from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.rbac import ADMIN_ONLY, require_roles
from school_admin.auth.schemas import CurrentUser
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

from .schemas import TransitionCreate, TransitionResponse, TransitionRunRequest, TransitionRunResponse
from . import service

router = APIRouter(
    prefix="/api/v1/transitions",
    tags=["academic-year-transitions"],
    dependencies=[Depends(require_roles(*ADMIN_ONLY))],
)


@router.post("", response_model=TransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_transition(
    payload: TransitionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TransitionResponse:
    try:
        return await service.create_transition(db, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[TransitionResponse])
async def list_transitions(
    db: AsyncSession = Depends(get_db),
) -> List[TransitionResponse]:
    return await service.list_transitions(db)


@router.get("/{transition_id}", response_model=TransitionResponse)
async def get_transition(
    transition_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TransitionResponse:
    """Status and counts of a transition."""
    transition = await service.get_transition(db, transition_id)
    if not transition:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transition not found")
    return transition


@router.post("/{transition_id}/run", response_model=TransitionRunResponse)
async def run_transition(
    transition_id: UUID,
    payload: TransitionRunRequest,
    db: AsyncSession = Depends(get_db),
) -> TransitionRunResponse:
    """Promote the source year's students. The target year becomes the current year."""
    try:
        return await service.run_transition(db, transition_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{transition_id}/reset", response_model=TransitionResponse)
async def reset_transition(
    transition_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TransitionResponse:
    """Mark a run that never finished as failed so it can be run again."""
    try:
        return await service.reset_transition(db, transition_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

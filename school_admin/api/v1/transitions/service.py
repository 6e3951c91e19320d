import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.security import as_utc
from school_admin.core.config import settings
from school_admin.core.enums import PromotionStatus, TransitionStatus
from school_admin.core.exceptions import ServiceError
from school_admin.core.models import (
    AcademicYear,
    AcademicYearTransition,
    SchoolClass,
    Student,
    StudentAcademicHistory,
    StudentPromotionHistory,
)

from .schemas import (
    SkippedStudent,
    StudentOutcomeOverride,
    TransitionCreate,
    TransitionResponse,
    TransitionRunRequest,
    TransitionRunResponse,
)

logger = logging.getLogger(__name__)

LEAVING_STATUSES = (PromotionStatus.TRANSFERRED_OUT, PromotionStatus.DROPPED_OUT)
ABANDONED_MESSAGE = "Run did not finish; marked failed so it can be run again"


def next_class_name(name: str, class_mapping: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Mapped name if the mapping has one, else numeric name + 1. None when neither applies."""
    name = name.strip()
    if class_mapping:
        for source, target in class_mapping.items():
            if source.strip().lower() == name.lower():
                return target.strip()
    if name.isdigit():
        return str(int(name) + 1)
    return None


def _skip(student: Student, reason: str) -> SkippedStudent:
    return SkippedStudent(student_id=student.id, student_name=student.student_name, reason=reason)


def _is_stale(transition: AcademicYearTransition) -> bool:
    """An in-progress run that has not finished within TRANSITION_STALE_MINUTES."""
    if transition.status != TransitionStatus.IN_PROGRESS.value:
        return False
    if transition.started_at is None:
        return True
    age = datetime.now(timezone.utc) - as_utc(transition.started_at)
    return age > timedelta(minutes=settings.transition_stale_minutes)


def _mark_failed(transition: AcademicYearTransition, message: str) -> None:
    transition.status = TransitionStatus.FAILED.value
    transition.error_message = message


def _to_response(transition: AcademicYearTransition) -> TransitionResponse:
    return TransitionResponse.model_validate(transition)


async def _get_transition(db: AsyncSession, transition_id: UUID) -> AcademicYearTransition:
    transition = await db.get(AcademicYearTransition, transition_id)
    if not transition:
        raise ServiceError("Transition not found", status.HTTP_404_NOT_FOUND)
    return transition


async def create_transition(
    db: AsyncSession,
    payload: TransitionCreate,
    created_by: Optional[UUID] = None,
) -> TransitionResponse:
    if payload.from_year_id == payload.to_year_id:
        raise ServiceError("Source and target academic years must differ", status.HTTP_400_BAD_REQUEST)
    from_year = await db.get(AcademicYear, payload.from_year_id)
    to_year = await db.get(AcademicYear, payload.to_year_id)
    if not from_year or not to_year:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    if to_year.start_date <= from_year.start_date:
        raise ServiceError("Target academic year must start after the source year", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(AcademicYearTransition).where(
            AcademicYearTransition.from_year_id == from_year.id,
            AcademicYearTransition.status != TransitionStatus.FAILED.value,
        )
    )
    current = existing.scalars().first()
    if current and _is_stale(current):
        logger.warning("Transition %s abandoned while in progress; marking failed", current.id)
        _mark_failed(current, ABANDONED_MESSAGE)
        current = None
    if current:
        raise ServiceError(
            f"A transition from {from_year.year_name} already exists ({current.status})",
            status.HTTP_409_CONFLICT,
        )

    transition = AcademicYearTransition(
        from_year_id=from_year.id,
        to_year_id=to_year.id,
        status=TransitionStatus.PENDING.value,
        created_by=created_by,
    )
    db.add(transition)
    await db.commit()
    await db.refresh(transition)
    return _to_response(transition)


async def get_transition(db: AsyncSession, transition_id: UUID) -> Optional[TransitionResponse]:
    transition = await db.get(AcademicYearTransition, transition_id)
    return _to_response(transition) if transition else None


async def list_transitions(db: AsyncSession) -> List[TransitionResponse]:
    result = await db.execute(select(AcademicYearTransition).order_by(AcademicYearTransition.created_at.desc()))
    return [_to_response(t) for t in result.scalars().all()]


async def run_transition(
    db: AsyncSession,
    transition_id: UUID,
    payload: TransitionRunRequest,
) -> TransitionRunResponse:
    """
    Promote the source year's active students into the target year.

    All student changes commit together. On any error they are rolled back and the
    transition is marked failed with the error message; a failed transition can be run again.
    """
    transition = await _get_transition(db, transition_id)
    if transition.status == TransitionStatus.COMPLETED.value:
        raise ServiceError("Transition has already been completed", status.HTTP_409_CONFLICT)
    if transition.status == TransitionStatus.IN_PROGRESS.value:
        if not _is_stale(transition):
            raise ServiceError("Transition is already in progress", status.HTTP_409_CONFLICT)
        logger.warning("Transition %s abandoned while in progress; running again", transition_id)

    transition.status = TransitionStatus.IN_PROGRESS.value
    transition.error_message = None
    transition.started_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("Transition %s started", transition_id)

    try:
        skipped = await _promote_students(db, transition, payload)
        await db.commit()
    except Exception as e:
        await db.rollback()
        failed = await _get_transition(db, transition_id)
        _mark_failed(failed, str(e))
        await db.commit()
        logger.exception("Transition %s failed", transition_id)
        if isinstance(e, ServiceError):
            raise
        raise ServiceError(f"Transition failed: {e}", status.HTTP_500_INTERNAL_SERVER_ERROR) from e

    await db.refresh(transition)
    logger.info(
        "Transition %s completed: %d students, %d promoted, %d retained, %d skipped",
        transition_id,
        transition.total_students,
        transition.promoted_students,
        transition.retained_students,
        transition.skipped_students,
    )
    return TransitionRunResponse(transition=_to_response(transition), skipped=skipped)


async def reset_transition(db: AsyncSession, transition_id: UUID) -> TransitionResponse:
    """Mark an in-progress run as failed so it can be run again."""
    transition = await _get_transition(db, transition_id)
    if transition.status != TransitionStatus.IN_PROGRESS.value:
        raise ServiceError("Only an in-progress transition can be reset", status.HTTP_409_CONFLICT)
    _mark_failed(transition, "Reset by administrator")
    await db.commit()
    await db.refresh(transition)
    logger.warning("Transition %s reset by administrator", transition_id)
    return _to_response(transition)


async def _promote_students(
    db: AsyncSession,
    transition: AcademicYearTransition,
    payload: TransitionRunRequest,
) -> List[SkippedStudent]:
    from_year = await db.get(AcademicYear, transition.from_year_id)
    to_year = await db.get(AcademicYear, transition.to_year_id)
    if not from_year or not to_year:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)

    overrides: Dict[UUID, StudentOutcomeOverride] = {o.student_id: o for o in payload.student_overrides}

    class_result = await db.execute(
        select(SchoolClass).where(SchoolClass.academic_year_id.in_([from_year.id, to_year.id]))
    )
    classes = class_result.scalars().all()
    from_classes = {c.id: c for c in classes if c.academic_year_id == from_year.id}
    to_classes_by_name = {c.name.strip().lower(): c for c in classes if c.academic_year_id == to_year.id}
    to_class_ids = {c.id for c in to_classes_by_name.values()}

    enrolled_result = await db.execute(
        select(StudentAcademicHistory.student_id).where(StudentAcademicHistory.academic_year_id == to_year.id)
    )
    already_enrolled = {row[0] for row in enrolled_result.all()}

    history_result = await db.execute(
        select(StudentAcademicHistory, Student)
        .join(Student, Student.id == StudentAcademicHistory.student_id)
        .where(
            StudentAcademicHistory.academic_year_id == from_year.id,
            StudentAcademicHistory.is_active_in_year.is_(True),
        )
        .order_by(Student.student_name)
    )
    rows = history_result.all()

    counts = {status_: 0 for status_ in PromotionStatus}
    skipped: List[SkippedStudent] = []
    now = datetime.now(timezone.utc)
    today = date.today()

    for history, student in rows:
        if student.id in already_enrolled:
            skipped.append(_skip(student, "Already enrolled in target year"))
            continue

        override = overrides.get(student.id)
        outcome = override.promotion_status if override else PromotionStatus.PROMOTED
        from_class = from_classes.get(history.class_id)

        to_class: Optional[SchoolClass] = None
        if outcome not in LEAVING_STATUSES:
            if override and override.to_class_id:
                if override.to_class_id not in to_class_ids:
                    skipped.append(_skip(student, "Target class is not in the target year"))
                    continue
                to_class = next(c for c in to_classes_by_name.values() if c.id == override.to_class_id)
            elif from_class:
                if outcome == PromotionStatus.PROMOTED:
                    target_name = next_class_name(from_class.name, payload.class_mapping)
                else:
                    target_name = from_class.name.strip()
                to_class = to_classes_by_name.get(target_name.lower()) if target_name else None
            if not to_class:
                name = from_class.name if from_class else "unknown class"
                skipped.append(_skip(student, f"No class in {to_year.year_name} follows '{name}'"))
                continue

        db.add(
            StudentPromotionHistory(
                student_id=student.id,
                academic_year_id=from_year.id,
                transition_id=transition.id,
                from_class_id=history.class_id,
                to_class_id=to_class.id if to_class else None,
                promotion_status=outcome.value,
                promotion_date=now,
                created_by=transition.created_by,
            )
        )
        history.promotion_status = outcome.value

        if to_class:
            db.add(
                StudentAcademicHistory(
                    student_id=student.id,
                    academic_year_id=to_year.id,
                    class_id=to_class.id,
                    section=history.section,
                    promotion_status=outcome.value,
                    registration_type="continuing",
                    has_school_bus=student.has_school_bus,
                    village_id=student.village_id,
                    registration_date_for_year=today,
                    is_active_in_year=True,
                )
            )
            student.class_id = to_class.id
            student.registration_type = "continuing"
            student.last_registration_date = today
            student.last_registration_type = "continuing"
        else:
            student.status = "inactive"
            student.exit_date = today
            history.is_active_in_year = False
        counts[outcome] += 1

    transition.total_students = len(rows)
    transition.promoted_students = counts[PromotionStatus.PROMOTED]
    transition.retained_students = counts[PromotionStatus.RETAINED]
    transition.transferred_students = counts[PromotionStatus.TRANSFERRED_OUT]
    transition.dropped_students = counts[PromotionStatus.DROPPED_OUT]
    transition.skipped_students = len(skipped)
    transition.status = TransitionStatus.COMPLETED.value
    transition.completed_at = now

    from_year.transition_status = "completed"
    from_year.transition_date = now
    await db.execute(update(AcademicYear).values(is_current=False))
    to_year.is_current = True
    from_year.is_current = False
    return skipped

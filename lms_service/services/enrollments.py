from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from engines import progress as progress_engine
from lms_service import models
from lms_service.authorization import Action
from lms_service.config import get_settings
from lms_service.database import transaction
from lms_service.errors import ConflictError, NotFoundError, ValidationError
from lms_service.hierarchy import EntityKind, resolve
from lms_service.identity import Principal
from lms_service.services.access import authorize, isoformat
from manager.batch import BatchRunner

logger = logging.getLogger(__name__)


def enrollment_to_dict(enrollment: models.Enrollment) -> Dict[str, Any]:
    return {
        "id": enrollment.id,
        "user_id": enrollment.user_id,
        "course_id": enrollment.course_id,
        "progress": enrollment.progress,
        "completed": enrollment.completed,
        "enrolled_at": isoformat(enrollment.enrolled_at),
        "completed_at": isoformat(enrollment.completed_at),
    }


async def find_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[models.Enrollment]:
    result = await db.execute(
        select(models.Enrollment)
        .where(models.Enrollment.user_id == user_id)
        .where(models.Enrollment.course_id == course_id)
    )
    return result.scalars().first()


async def _create_enrollment(db: AsyncSession, user_id: int, course_id: int) -> models.Enrollment:
    if await find_enrollment(db, user_id, course_id) is not None:
        raise ConflictError("Already enrolled in this course")
    enrollment = models.Enrollment(user_id=user_id, course_id=course_id, progress=0.0, completed=False)
    db.add(enrollment)
    await db.flush()
    return enrollment


async def enroll(db: AsyncSession, principal: Principal, course_id: int) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.ENROLL)
        chain = await resolve(db, EntityKind.COURSE, course_id)
        if not chain.is_course_published:
            raise ValidationError("Course is not available for enrollment")
        enrollment = await _create_enrollment(db, principal.id, course_id)
        payload = enrollment_to_dict(enrollment)
    logger.info("User %s enrolled in course %s", principal.id, course_id)
    return payload


async def unenroll(db: AsyncSession, principal: Principal, course_id: int) -> None:
    async with transaction(db):
        enrollment = await find_enrollment(db, principal.id, course_id)
        if enrollment is None:
            raise NotFoundError("enrollment", message="Enrollment not found")
        await db.delete(enrollment)
    logger.info("User %s left course %s", principal.id, course_id)


async def my_enrollments(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(models.Enrollment)
        .join(models.Course, models.Enrollment.course_id == models.Course.id)
        .where(models.Enrollment.user_id == principal.id)
        .where(models.Course.is_deleted.is_(False))
        .order_by(models.Enrollment.enrolled_at.desc())
    )
    return [enrollment_to_dict(enrollment) for enrollment in result.scalars().all()]


async def set_progress(
    db: AsyncSession, principal: Principal, course_id: int, new_progress: Any, user_id: Optional[int] = None
) -> Dict[str, Any]:
    """Record caller-supplied progress; the enrollment must already exist."""
    user_id = principal.id if user_id is None else user_id
    async with transaction(db):
        await resolve(db, EntityKind.COURSE, course_id)
        await authorize(db, principal, Action.UPDATE_PROGRESS, resource_owner_id=user_id)
        enrollment = await find_enrollment(db, user_id, course_id)
        if enrollment is None:
            raise NotFoundError("enrollment", message="Enrollment not found")
        progress_engine.set_progress(
            enrollment, new_progress, clear_completed_at=get_settings().clear_completed_at
        )
        await db.flush()
        payload = enrollment_to_dict(enrollment)
    return payload


async def bulk_enroll(
    db: AsyncSession, principal: Principal, course_id: int, user_ids: Sequence[int]
) -> Dict[str, Any]:
    await authorize(db, principal, Action.MANAGE_ENROLLMENTS, EntityKind.COURSE, course_id)
    await db.commit()

    async def enroll_user(user_id: int) -> Dict[str, Any]:
        async with transaction(db):
            user = await db.get(models.User, user_id)
            if user is None or user.is_deleted:
                raise NotFoundError("user", user_id)
            enrollment = await _create_enrollment(db, user_id, course_id)
            return enrollment_to_dict(enrollment)

    batch = await BatchRunner("bulk_enroll").run(user_ids, enroll_user)
    return batch.to_dict()


async def course_enrollment_stats(db: AsyncSession, principal: Principal, course_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_COURSE_REPORTS, EntityKind.COURSE, course_id)
    result = await db.execute(select(models.Enrollment).where(models.Enrollment.course_id == course_id))
    enrollments = result.scalars().all()

    total = len(enrollments)
    completed = sum(1 for enrollment in enrollments if enrollment.completed)
    return {
        "course_id": course_id,
        "total_enrollments": total,
        "completed_enrollments": completed,
        "average_progress": round(sum(e.progress for e in enrollments) / total, 2) if total else 0,
        "completion_rate": round(completed / total * 100, 2) if total else 0,
    }


async def course_roster(
    db: AsyncSession, principal: Principal, course_id: int, completed: Optional[bool] = None
) -> Dict[str, Any]:
    """Enrolled students of a course for its owner, newest first."""
    await authorize(db, principal, Action.VIEW_COURSE_REPORTS, EntityKind.COURSE, course_id)
    stmt = (
        select(models.Enrollment, models.User)
        .join(models.User, models.Enrollment.user_id == models.User.id)
        .where(models.Enrollment.course_id == course_id)
        .where(models.User.is_deleted.is_(False))
    )
    if completed is not None:
        stmt = stmt.where(models.Enrollment.completed.is_(completed))
    result = await db.execute(stmt.order_by(models.Enrollment.enrolled_at.desc(), models.Enrollment.id.desc()))

    roster = []
    for enrollment, user in result.all():
        entry = enrollment_to_dict(enrollment)
        entry["full_name"] = user.full_name
        entry["email"] = user.email
        roster.append(entry)
    return {"course_id": course_id, "total": len(roster), "enrollments": roster}


async def enrollment_status(db: AsyncSession, principal: Principal, course_id: int) -> Dict[str, Any]:
    await resolve(db, EntityKind.COURSE, course_id)
    enrollment = await find_enrollment(db, principal.id, course_id)
    return {
        "course_id": course_id,
        "user_id": principal.id,
        "is_enrolled": enrollment is not None,
        "enrollment": enrollment_to_dict(enrollment) if enrollment is not None else None,
    }

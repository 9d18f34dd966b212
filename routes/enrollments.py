from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import enrollments as enrollment_service
from routes.envelope import ok
from schemas.enrollment import BulkEnrollRequest, ProgressUpdate

router = APIRouter(tags=["enrollments"])


@router.post("/api/courses/{course_id}/enroll", status_code=201)
async def enroll(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await enrollment_service.enroll(db, principal, course_id), "Enrolled successfully")


@router.delete("/api/courses/{course_id}/enroll")
async def unenroll(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await enrollment_service.unenroll(db, principal, course_id)
    return ok(message="Unenrolled successfully")


@router.put("/api/courses/{course_id}/progress")
async def update_progress(
    course_id: int,
    payload: ProgressUpdate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    enrollment = await enrollment_service.set_progress(db, principal, course_id, payload.progress, user_id=user_id)
    return ok(enrollment, "Progress updated")


@router.post("/api/courses/{course_id}/enrollments/bulk")
async def bulk_enroll(
    course_id: int,
    payload: BulkEnrollRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    result = await enrollment_service.bulk_enroll(db, principal, course_id, payload.user_ids)
    return ok(result, f"Bulk enrollment completed. {result['summary']['succeeded']} users enrolled.")


@router.get("/api/courses/{course_id}/enrollments/stats")
async def enrollment_stats(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await enrollment_service.course_enrollment_stats(db, principal, course_id))


@router.get("/api/enrollments/me")
async def my_enrollments(db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await enrollment_service.my_enrollments(db, principal))


@router.get("/api/courses/{course_id}/enrollments")
async def course_roster(
    course_id: int,
    completed: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await enrollment_service.course_roster(db, principal, course_id, completed=completed))


@router.get("/api/courses/{course_id}/enrollment-status")
async def enrollment_status(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await enrollment_service.enrollment_status(db, principal, course_id))

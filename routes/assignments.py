from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import assignments as assignment_service
from routes.envelope import ok
from schemas.assignment import (
    AssignmentCreate,
    AssignmentUpdate,
    BulkGradeRequest,
    GradeRequest,
    SubmissionCreate,
    SubmissionUpdate,
)

router = APIRouter(tags=["assignments"])


@router.get("/api/lessons/{lesson_id}/assignments")
async def list_assignments(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await assignment_service.list_assignments(db, principal, lesson_id))


@router.post("/api/lessons/{lesson_id}/assignments", status_code=201)
async def create_assignment(
    lesson_id: int,
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    created = await assignment_service.create_assignment(db, principal, lesson_id, payload.model_dump())
    return ok(created, "Assignment created")


@router.get("/api/assignments/{assignment_id}")
async def get_assignment(assignment_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await assignment_service.get_assignment(db, principal, assignment_id))


@router.put("/api/assignments/{assignment_id}")
async def update_assignment(
    assignment_id: int,
    payload: AssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await assignment_service.update_assignment(db, principal, assignment_id, data), "Assignment updated")


@router.delete("/api/assignments/{assignment_id}")
async def delete_assignment(assignment_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await assignment_service.delete_assignment(db, principal, assignment_id)
    return ok(message="Assignment deleted")


@router.post("/api/assignments/{assignment_id}/submissions", status_code=201)
async def submit_assignment(
    assignment_id: int,
    payload: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    submission = await assignment_service.submit(db, principal, assignment_id, payload.content, payload.file_path)
    return ok(submission, "Assignment submitted")


@router.get("/api/assignments/{assignment_id}/submissions")
async def list_submissions(assignment_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await assignment_service.list_submissions(db, principal, assignment_id))


@router.post("/api/assignments/{assignment_id}/grades/bulk")
async def bulk_grade(
    assignment_id: int,
    payload: BulkGradeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    grades = [item.model_dump() for item in payload.grades]
    result = await assignment_service.bulk_grade(db, principal, assignment_id, grades)
    return ok(result, f"Bulk grading completed. {result['summary']['succeeded']} submissions graded.")


@router.get("/api/assignments/{assignment_id}/stats")
async def submission_stats(assignment_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await assignment_service.submission_stats(db, principal, assignment_id))


@router.get("/api/submissions/me")
async def my_submissions(
    course_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await assignment_service.my_submissions(db, principal, course_id=course_id))


@router.get("/api/submissions/{submission_id}")
async def get_submission(submission_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await assignment_service.get_submission(db, principal, submission_id))


@router.put("/api/submissions/{submission_id}")
async def update_submission(
    submission_id: int,
    payload: SubmissionUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    updated = await assignment_service.update_submission(db, principal, submission_id, payload.content, payload.file_path)
    return ok(updated, "Submission updated")


@router.delete("/api/submissions/{submission_id}")
async def delete_submission(submission_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await assignment_service.delete_submission(db, principal, submission_id)
    return ok(message="Submission deleted")


@router.post("/api/submissions/{submission_id}/grade")
async def grade_submission(
    submission_id: int,
    payload: GradeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    graded = await assignment_service.grade_submission(db, principal, submission_id, payload.grade, payload.feedback)
    return ok(graded, "Submission graded")

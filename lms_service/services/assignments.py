from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from engines import assignment_grading
from lms_service import models
from lms_service.authorization import Action
from lms_service.config import get_settings
from lms_service.database import transaction
from lms_service.errors import ConflictError, NotFoundError, ValidationError
from lms_service.hierarchy import EntityKind
from lms_service.identity import Principal
from lms_service.services.access import authorize, isoformat, load, require
from lms_service.timeutils import utcnow
from manager.batch import BatchRunner
from validators.assignment_validator import validate_assignment, validate_submission_payload

logger = logging.getLogger(__name__)

DEADLINE_PASSED = "Assignment submission deadline has passed"
ASSIGNMENT_FIELDS = (
    "title", "description", "due_date", "max_points", "allow_late_submission", "late_penalty_percent",
)
GRADE_THRESHOLDS = (("A", 90), ("B", 80), ("C", 70), ("D", 60))


def assignment_to_dict(assignment: models.Assignment) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "lesson_id": assignment.lesson_id,
        "title": assignment.title,
        "description": assignment.description,
        "due_date": isoformat(assignment.due_date),
        "max_points": assignment.max_points,
        "allow_late_submission": assignment.allow_late_submission,
        "late_penalty_percent": assignment.late_penalty_percent,
    }


def submission_to_dict(submission: models.Submission) -> Dict[str, Any]:
    return {
        "id": submission.id,
        "assignment_id": submission.assignment_id,
        "student_id": submission.student_id,
        "content": submission.content,
        "file_path": submission.file_path,
        "is_late": submission.is_late,
        "raw_grade": submission.raw_grade,
        "grade": submission.grade,
        "feedback": submission.feedback,
        "graded_by": submission.graded_by,
        "graded_at": isoformat(submission.graded_at),
        "submitted_at": isoformat(submission.submitted_at),
    }


def letter_grade(grade: float, max_points: float) -> str:
    percent = grade / max_points * 100 if max_points else 0
    for letter, threshold in GRADE_THRESHOLDS:
        if percent >= threshold:
            return letter
    return "F"


async def _ensure_unique_title(
    db: AsyncSession, lesson_id: int, title: str, exclude_id: Optional[int] = None
) -> None:
    stmt = (
        select(models.Assignment.id)
        .where(models.Assignment.lesson_id == lesson_id)
        .where(func.lower(models.Assignment.title) == title.strip().lower())
    )
    if exclude_id is not None:
        stmt = stmt.where(models.Assignment.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("An assignment with this title already exists in this lesson")


# Assignments

async def list_assignments(db: AsyncSession, principal: Principal, lesson_id: int) -> List[Dict[str, Any]]:
    await authorize(db, principal, Action.VIEW_ASSIGNMENT, EntityKind.LESSON, lesson_id, require_visible=True)
    result = await db.execute(
        select(models.Assignment).where(models.Assignment.lesson_id == lesson_id).order_by(models.Assignment.id)
    )
    return [assignment_to_dict(assignment) for assignment in result.scalars().all()]


async def get_assignment(db: AsyncSession, principal: Principal, assignment_id: int) -> Dict[str, Any]:
    await authorize(
        db, principal, Action.VIEW_ASSIGNMENT, EntityKind.ASSIGNMENT, assignment_id, require_visible=True
    )
    return assignment_to_dict(await load(db, models.Assignment, assignment_id, "assignment"))


async def create_assignment(db: AsyncSession, principal: Principal, lesson_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    ok, issues = validate_assignment(data)
    require(ok, issues, "Invalid assignment definition")
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_ASSIGNMENT, EntityKind.LESSON, lesson_id)
        await _ensure_unique_title(db, lesson_id, data["title"])
        values = {key: data[key] for key in ASSIGNMENT_FIELDS if data.get(key) is not None}
        values["title"] = values["title"].strip()
        assignment = models.Assignment(lesson_id=lesson_id, **values)
        db.add(assignment)
        await db.flush()
        payload = assignment_to_dict(assignment)
    return payload


async def update_assignment(db: AsyncSession, principal: Principal, assignment_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {key: value for key, value in data.items() if key in ASSIGNMENT_FIELDS}
    ok, issues = validate_assignment(changes, partial=True)
    require(ok, issues, "Invalid assignment definition")
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_ASSIGNMENT, EntityKind.ASSIGNMENT, assignment_id)
        assignment = await load(db, models.Assignment, assignment_id, "assignment")
        if changes.get("title"):
            await _ensure_unique_title(db, assignment.lesson_id, changes["title"], exclude_id=assignment_id)
            changes["title"] = changes["title"].strip()
        # existing submissions keep their is_late flag when the due date moves
        for key, value in changes.items():
            setattr(assignment, key, value)
        await db.flush()
        payload = assignment_to_dict(assignment)
    return payload


async def delete_assignment(db: AsyncSession, principal: Principal, assignment_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.DELETE_ASSIGNMENT, EntityKind.ASSIGNMENT, assignment_id)
        assignment = await load(db, models.Assignment, assignment_id, "assignment")
        await db.delete(assignment)


# Submissions

async def submit(
    db: AsyncSession,
    principal: Principal,
    assignment_id: int,
    content: Optional[str] = None,
    file_path: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    async with transaction(db):
        await authorize(
            db, principal, Action.SUBMIT_ASSIGNMENT, EntityKind.ASSIGNMENT, assignment_id, require_visible=True
        )
        ok, issues = validate_submission_payload(content, file_path)
        require(ok, issues, "Submission content or file is required")

        existing = await db.execute(
            select(models.Submission.id)
            .where(models.Submission.assignment_id == assignment_id)
            .where(models.Submission.student_id == principal.id)
        )
        if existing.first() is not None:
            raise ConflictError("You have already submitted this assignment")

        assignment = await load(db, models.Assignment, assignment_id, "assignment")
        is_late = assignment_grading.compute_is_late(assignment.due_date, now)
        if is_late and not assignment.allow_late_submission:
            raise ValidationError(DEADLINE_PASSED)

        submission = models.Submission(
            assignment_id=assignment_id,
            student_id=principal.id,
            content=content,
            file_path=file_path,
            is_late=is_late,
            submitted_at=now,
        )
        db.add(submission)
        await db.flush()
        payload = submission_to_dict(submission)
    logger.info("Submission %s created for assignment %s (late=%s)", payload["id"], assignment_id, is_late)
    return payload


async def _owned_ungraded_submission(
    db: AsyncSession, principal: Principal, submission_id: int
) -> models.Submission:
    chain = await authorize(db, principal, Action.UPDATE_SUBMISSION, EntityKind.SUBMISSION, submission_id)
    submission = await load(db, models.Submission, submission_id, "submission")
    if submission.grade is not None:
        raise ValidationError("Cannot modify a submission that has already been graded")
    logger.debug("Student %s editing submission %s in course %s", principal.id, submission_id, chain.course_id)
    return submission


async def update_submission(
    db: AsyncSession,
    principal: Principal,
    submission_id: int,
    content: Optional[str] = None,
    file_path: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    async with transaction(db):
        submission = await _owned_ungraded_submission(db, principal, submission_id)
        ok, issues = validate_submission_payload(content, file_path)
        require(ok, issues, "Submission content or file is required")

        assignment = await load(db, models.Assignment, submission.assignment_id, "assignment")
        late_now = assignment_grading.compute_is_late(assignment.due_date, now)
        if late_now and not assignment.allow_late_submission:
            raise ValidationError(DEADLINE_PASSED)

        submission.content = content
        submission.file_path = file_path
        submission.submitted_at = now
        # lateness only ever latches on
        submission.is_late = bool(submission.is_late) or late_now
        await db.flush()
        payload = submission_to_dict(submission)
    return payload


async def delete_submission(db: AsyncSession, principal: Principal, submission_id: int) -> None:
    async with transaction(db):
        submission = await _owned_ungraded_submission(db, principal, submission_id)
        await db.delete(submission)


async def get_submission(db: AsyncSession, principal: Principal, submission_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_SUBMISSION, EntityKind.SUBMISSION, submission_id)
    return submission_to_dict(await load(db, models.Submission, submission_id, "submission"))


async def list_submissions(db: AsyncSession, principal: Principal, assignment_id: int) -> List[Dict[str, Any]]:
    await authorize(db, principal, Action.VIEW_COURSE_REPORTS, EntityKind.ASSIGNMENT, assignment_id)
    result = await db.execute(
        select(models.Submission)
        .where(models.Submission.assignment_id == assignment_id)
        .order_by(models.Submission.submitted_at, models.Submission.id)
    )
    return [submission_to_dict(submission) for submission in result.scalars().all()]


async def my_submissions(
    db: AsyncSession, principal: Principal, course_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    """The caller's own submissions across live courses, newest first."""
    stmt = (
        select(models.Submission, models.Assignment.title, models.Course.id, models.Course.title)
        .join(models.Assignment, models.Submission.assignment_id == models.Assignment.id)
        .join(models.Lesson, models.Assignment.lesson_id == models.Lesson.id)
        .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
        .join(models.Course, models.CourseModule.course_id == models.Course.id)
        .where(models.Submission.student_id == principal.id)
        .where(models.Course.is_deleted.is_(False))
    )
    if course_id is not None:
        stmt = stmt.where(models.Course.id == course_id)
    result = await db.execute(stmt.order_by(models.Submission.submitted_at.desc(), models.Submission.id.desc()))

    submissions = []
    for submission, assignment_title, owning_course_id, course_title in result.all():
        entry = submission_to_dict(submission)
        entry.update(assignment_title=assignment_title, course_id=owning_course_id, course_title=course_title)
        submissions.append(entry)
    return submissions


def _grade_payload(submission: models.Submission, final: assignment_grading.FinalGrade) -> Dict[str, Any]:
    return {
        "submission_id": submission.id,
        "original_grade": final.raw_grade,
        "final_grade": final.final_grade,
        "late_penalty_applied": final.late_penalty_applied,
        "late_penalty_percent": final.late_penalty_percent if final.late_penalty_applied else 0,
        "graded_by": final.graded_by,
        "graded_at": isoformat(final.graded_at),
        "feedback": submission.feedback,
    }


async def _grade_one(
    db: AsyncSession,
    submission: models.Submission,
    assignment: models.Assignment,
    principal: Principal,
    grade: Any,
    feedback: Optional[str],
) -> Dict[str, Any]:
    final = assignment_grading.apply_grade(
        submission, grade, assignment, principal.id, precision=get_settings().late_grade_precision
    )
    assignment_grading.record_grade(submission, final, feedback)
    await db.flush()
    return _grade_payload(submission, final)


async def grade_submission(
    db: AsyncSession, principal: Principal, submission_id: int, grade: Any, feedback: Optional[str] = None
) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.GRADE_SUBMISSION, EntityKind.SUBMISSION, submission_id)
        submission = await load(db, models.Submission, submission_id, "submission")
        assignment = await load(db, models.Assignment, submission.assignment_id, "assignment")
        payload = await _grade_one(db, submission, assignment, principal, grade, feedback)
    return payload


async def bulk_grade(
    db: AsyncSession, principal: Principal, assignment_id: int, grades: Sequence[Dict[str, Any]]
) -> Dict[str, Any]:
    """Grade each entry on its own; a bad entry never undoes the others."""
    await authorize(db, principal, Action.GRADE_SUBMISSION, EntityKind.ASSIGNMENT, assignment_id)
    await db.commit()

    async def grade_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
        async with transaction(db):
            result = await db.execute(
                select(models.Submission)
                .where(models.Submission.id == entry["submission_id"])
                .where(models.Submission.assignment_id == assignment_id)
            )
            submission = result.scalars().first()
            if submission is None:
                raise NotFoundError("submission", entry["submission_id"], "Submission not found in this assignment")
            assignment = await load(db, models.Assignment, assignment_id, "assignment")
            return await _grade_one(db, submission, assignment, principal, entry.get("grade"), entry.get("feedback"))

    batch = await BatchRunner("bulk_grade").run(grades, grade_entry, key=lambda entry: entry.get("submission_id"))
    return batch.to_dict()


async def submission_stats(db: AsyncSession, principal: Principal, assignment_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_COURSE_REPORTS, EntityKind.ASSIGNMENT, assignment_id)
    assignment = await load(db, models.Assignment, assignment_id, "assignment")
    result = await db.execute(
        select(models.Submission).where(models.Submission.assignment_id == assignment_id)
    )
    submissions = result.scalars().all()

    grades = [submission.grade for submission in submissions if submission.grade is not None]
    distribution = {letter: 0 for letter, _ in GRADE_THRESHOLDS}
    distribution["F"] = 0
    for grade in grades:
        distribution[letter_grade(grade, assignment.max_points)] += 1

    total = len(submissions)
    return {
        "assignment_id": assignment_id,
        "total_submissions": total,
        "graded_submissions": len(grades),
        "pending_submissions": total - len(grades),
        "late_submissions": sum(1 for submission in submissions if submission.is_late),
        "average_grade": round(sum(grades) / len(grades), 2) if grades else None,
        "min_grade": min(grades) if grades else None,
        "max_grade": max(grades) if grades else None,
        "grade_distribution": distribution,
        "grading_progress": round(len(grades) / total * 100, 2) if total else 0,
    }

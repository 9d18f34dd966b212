from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from lms_service.errors import ValidationError
from lms_service.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalGrade:
    raw_grade: float
    final_grade: float
    late_penalty_applied: bool
    late_penalty_percent: float
    graded_by: int
    graded_at: datetime


def compute_is_late(due_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if due_date is None:
        return False
    return as_utc(now or utcnow()) > as_utc(due_date)


def apply_grade(
    submission: Any,
    raw_grade: Any,
    assignment: Any,
    grader_id: int,
    *,
    now: Optional[datetime] = None,
    precision: int = 2,
) -> FinalGrade:
    """Turn an instructor-entered grade into the stored grade.

    Late submissions lose ``late_penalty_percent`` of the raw grade, applied
    once against the raw value so re-grading never compounds it.
    """
    max_points = float(assignment.max_points)
    if isinstance(raw_grade, bool) or not isinstance(raw_grade, (int, float)):
        raise ValidationError("grade out of range", [f"Grade must be a number between 0 and {max_points:g}"])
    if not 0 <= raw_grade <= max_points:
        raise ValidationError("grade out of range", [f"Grade must be between 0 and {max_points:g}"])

    penalty = float(assignment.late_penalty_percent or 0)
    if not 0 <= penalty <= 100:
        raise ValidationError("late penalty out of range", ["Late penalty must be between 0 and 100 percent"])

    final_grade = float(raw_grade)
    if submission.is_late:
        final_grade = round(raw_grade * (1 - penalty / 100), precision)

    return FinalGrade(
        raw_grade=float(raw_grade),
        final_grade=final_grade,
        late_penalty_applied=bool(submission.is_late),
        late_penalty_percent=penalty,
        graded_by=grader_id,
        graded_at=now or utcnow(),
    )


def record_grade(submission: Any, final: FinalGrade, feedback: Optional[str] = None) -> Any:
    """Stamp ``final`` onto the submission; re-grading overwrites the previous grade."""
    submission.raw_grade = final.raw_grade
    submission.grade = final.final_grade
    submission.feedback = feedback.strip() if feedback else None
    submission.graded_by = final.graded_by
    submission.graded_at = final.graded_at
    logger.info(
        "Submission %s graded by %s: raw=%s final=%s late=%s",
        getattr(submission, "id", None), final.graded_by, final.raw_grade, final.final_grade,
        final.late_penalty_applied,
    )
    return submission

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from lms_service.errors import ValidationError
from lms_service.timeutils import utcnow

logger = logging.getLogger(__name__)

MIN_PROGRESS = 0
MAX_PROGRESS = 100
COMPLETION_THRESHOLD = 100


def set_progress(
    enrollment: Any,
    new_progress: Any,
    *,
    now: Optional[datetime] = None,
    clear_completed_at: bool = True,
) -> Any:
    """Write caller-supplied progress and derive the completion state.

    ``completed_at`` is stamped on the false -> true transition only. Dropping
    back below the threshold clears it unless ``clear_completed_at`` is off.
    """
    if isinstance(new_progress, bool) or not isinstance(new_progress, (int, float)):
        raise ValidationError("progress out of range", ["Progress must be a number between 0 and 100"])
    if not MIN_PROGRESS <= new_progress <= MAX_PROGRESS:
        raise ValidationError("progress out of range", ["Progress must be between 0 and 100"])

    was_completed = bool(enrollment.completed)
    completed = new_progress >= COMPLETION_THRESHOLD

    enrollment.progress = float(new_progress)
    enrollment.completed = completed

    if completed:
        if not was_completed or enrollment.completed_at is None:
            enrollment.completed_at = now or utcnow()
            logger.info(
                "Enrollment %s completed (user %s, course %s)",
                getattr(enrollment, "id", None), enrollment.user_id, enrollment.course_id,
            )
    elif clear_completed_at:
        enrollment.completed_at = None

    return enrollment

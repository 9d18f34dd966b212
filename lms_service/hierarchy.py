"""Ancestor-chain lookups for every entity that hangs off a course.

All ownership checks go through :func:`resolve`; nothing else in the service
joins a leaf entity back up to its course by hand.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service import models
from lms_service.errors import NotFoundError

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    COURSE = "course"
    MODULE = "module"
    LESSON = "lesson"
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"


@dataclass(frozen=True)
class AncestorChain:
    kind: EntityKind
    entity_id: int
    course_id: int
    course_instructor_id: int
    is_course_published: bool
    is_course_deleted: bool = False
    module_id: Optional[int] = None
    is_module_published: Optional[bool] = None
    lesson_id: Optional[int] = None
    is_lesson_published: Optional[bool] = None
    quiz_id: Optional[int] = None
    assignment_id: Optional[int] = None
    submission_id: Optional[int] = None
    resource_owner_id: Optional[int] = None  # submission author

    @property
    def is_published(self) -> bool:
        """True when the course and every resolved container are published."""
        flags = [self.is_course_published, self.is_module_published, self.is_lesson_published]
        return all(flag for flag in flags if flag is not None)


_MODELS = {
    EntityKind.COURSE: models.Course,
    EntityKind.MODULE: models.CourseModule,
    EntityKind.LESSON: models.Lesson,
    EntityKind.QUIZ: models.Quiz,
    EntityKind.ASSIGNMENT: models.Assignment,
    EntityKind.SUBMISSION: models.Submission,
}

# child kind -> (parent kind, join condition)
_PARENT_LINKS: Dict[EntityKind, Tuple[EntityKind, Any]] = {
    EntityKind.SUBMISSION: (EntityKind.ASSIGNMENT, models.Submission.assignment_id == models.Assignment.id),
    EntityKind.ASSIGNMENT: (EntityKind.LESSON, models.Assignment.lesson_id == models.Lesson.id),
    EntityKind.QUIZ: (EntityKind.LESSON, models.Quiz.lesson_id == models.Lesson.id),
    EntityKind.LESSON: (EntityKind.MODULE, models.Lesson.module_id == models.CourseModule.id),
    EntityKind.MODULE: (EntityKind.COURSE, models.CourseModule.course_id == models.Course.id),
}

_COLUMNS = {
    EntityKind.COURSE: [
        models.Course.id.label("course_id"),
        models.Course.instructor_id.label("course_instructor_id"),
        models.Course.is_published.label("is_course_published"),
        models.Course.is_deleted.label("is_course_deleted"),
    ],
    EntityKind.MODULE: [
        models.CourseModule.id.label("module_id"),
        models.CourseModule.is_published.label("is_module_published"),
    ],
    EntityKind.LESSON: [
        models.Lesson.id.label("lesson_id"),
        models.Lesson.is_published.label("is_lesson_published"),
    ],
    EntityKind.QUIZ: [models.Quiz.id.label("quiz_id")],
    EntityKind.ASSIGNMENT: [models.Assignment.id.label("assignment_id")],
    EntityKind.SUBMISSION: [
        models.Submission.id.label("submission_id"),
        models.Submission.student_id.label("resource_owner_id"),
    ],
}


def _path_to_course(kind: EntityKind) -> List[EntityKind]:
    path = [kind]
    while path[-1] is not EntityKind.COURSE:
        path.append(_PARENT_LINKS[path[-1]][0])
    return path


def build_chain_query(kind: EntityKind, entity_id: int):
    path = _path_to_course(kind)
    columns = [column for step in path for column in _COLUMNS[step]]
    stmt = select(*columns).select_from(_MODELS[kind])
    for step in path[:-1]:
        parent, on_clause = _PARENT_LINKS[step]
        stmt = stmt.join(_MODELS[parent], on_clause)
    # Soft-deleted courses hide their whole subtree.
    return stmt.where(_MODELS[kind].id == entity_id).where(models.Course.is_deleted.is_(False))


async def resolve(db: AsyncSession, kind: EntityKind | str, entity_id: int) -> AncestorChain:
    """Load the ancestor chain of ``entity_id`` or raise :class:`NotFoundError`.

    Read-only. A missing entity and one whose course is soft-deleted are
    indistinguishable to the caller.
    """
    kind = EntityKind(kind)
    result = await db.execute(build_chain_query(kind, entity_id))
    row = result.first()
    if row is None:
        raise NotFoundError(kind.value, entity_id)

    chain = AncestorChain(kind=kind, entity_id=entity_id, **dict(row._mapping))
    logger.debug("Resolved %s %s -> %s", kind.value, entity_id, chain)
    return chain

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from engines import quiz_grading
from lms_service import models
from lms_service.authorization import Action, get_policy_engine
from lms_service.database import transaction
from lms_service.errors import NotFoundError
from lms_service.hierarchy import EntityKind, resolve
from lms_service.identity import Principal
from lms_service.services.access import authorize, ensure_visible, is_course_owner, isoformat, load, require
from validators.quiz_validator import validate_quiz, validate_quiz_set
from validators.answer_validator import normalize_answer

logger = logging.getLogger(__name__)

QUIZ_FIELDS = ("question", "correct_answer", "quiz_type", "options", "points")


def quiz_to_dict(quiz: models.Quiz, include_answer: bool = True) -> Dict[str, Any]:
    data = {
        "id": quiz.id,
        "lesson_id": quiz.lesson_id,
        "question": quiz.question,
        "quiz_type": quiz.quiz_type,
        "options": quiz.options,
        "points": quiz.points,
    }
    if include_answer:
        data["correct_answer"] = quiz.correct_answer
    return data


def _quiz_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {key: data[key] for key in QUIZ_FIELDS if key in data}
    values.setdefault("quiz_type", "text")
    values.setdefault("points", 1)
    values["question"] = values["question"].strip()
    values["correct_answer"] = normalize_answer(values["correct_answer"])
    if values["quiz_type"] != "multiple_choice":
        values["options"] = None
    return values


async def _lesson_quizzes(db: AsyncSession, lesson_id: int) -> List[models.Quiz]:
    result = await db.execute(
        select(models.Quiz).where(models.Quiz.lesson_id == lesson_id).order_by(models.Quiz.id)
    )
    return list(result.scalars().all())


async def list_quizzes(db: AsyncSession, principal: Principal, lesson_id: int) -> List[Dict[str, Any]]:
    """Owners and admins get the answer key; everyone else gets the student view."""
    chain = await resolve(db, EntityKind.LESSON, lesson_id)
    ensure_visible(principal, chain)
    include_answer = is_course_owner(principal, chain)
    action = Action.VIEW_QUIZ_ANSWERS if include_answer else Action.VIEW_QUIZ
    await get_policy_engine().check(db, principal, action, chain)
    return [quiz_to_dict(quiz, include_answer) for quiz in await _lesson_quizzes(db, lesson_id)]


async def create_quiz(db: AsyncSession, principal: Principal, lesson_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    ok, issues = validate_quiz(data)
    require(ok, issues, "Invalid quiz definition")
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_QUIZ, EntityKind.LESSON, lesson_id)
        quiz = models.Quiz(lesson_id=lesson_id, **_quiz_values(data))
        db.add(quiz)
        await db.flush()
        payload = quiz_to_dict(quiz)
    return payload


async def bulk_create_quizzes(
    db: AsyncSession, principal: Principal, lesson_id: int, quizzes: Sequence[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """All-or-nothing: one invalid definition rejects the whole set."""
    ok, issues = validate_quiz_set(quizzes)
    require(ok, issues, "Invalid quiz definitions")
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_QUIZ, EntityKind.LESSON, lesson_id)
        created = [models.Quiz(lesson_id=lesson_id, **_quiz_values(data)) for data in quizzes]
        db.add_all(created)
        await db.flush()
        payload = [quiz_to_dict(quiz) for quiz in created]
    logger.info("Created %s quizzes in lesson %s", len(payload), lesson_id)
    return payload


async def update_quiz(db: AsyncSession, principal: Principal, quiz_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_QUIZ, EntityKind.QUIZ, quiz_id)
        quiz = await load(db, models.Quiz, quiz_id, "quiz")
        merged = {key: getattr(quiz, key) for key in QUIZ_FIELDS}
        merged.update({key: value for key, value in data.items() if key in QUIZ_FIELDS and value is not None})
        ok, issues = validate_quiz(merged)
        require(ok, issues, "Invalid quiz definition")
        for key, value in _quiz_values(merged).items():
            setattr(quiz, key, value)
        await db.flush()
        payload = quiz_to_dict(quiz)
    return payload


async def delete_quiz(db: AsyncSession, principal: Principal, quiz_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.DELETE_QUIZ, EntityKind.QUIZ, quiz_id)
        quiz = await load(db, models.Quiz, quiz_id, "quiz")
        await db.delete(quiz)


async def submit_answers(
    db: AsyncSession, principal: Principal, lesson_id: int, answers: Dict[Any, Any]
) -> Dict[str, Any]:
    """Grade the lesson's quiz set and record the attempt in one transaction."""
    async with transaction(db):
        await authorize(db, principal, Action.SUBMIT_QUIZ, EntityKind.LESSON, lesson_id, require_visible=True)
        quizzes = await _lesson_quizzes(db, lesson_id)
        if not quizzes:
            raise NotFoundError("quiz", message="No quizzes found for this lesson")

        snapshot = [quiz_grading.QuizDefinition.from_model(quiz) for quiz in quizzes]
        result = quiz_grading.grade(lesson_id, snapshot, answers)

        attempt = models.QuizAttempt(
            user_id=principal.id,
            lesson_id=lesson_id,
            earned_points=result.earned_points,
            total_points=result.total_points,
            score=result.score,
            answers={str(item.quiz_id): item.user_answer for item in result.results},
        )
        db.add(attempt)
        await db.flush()
        payload = result.to_dict()
        payload["attempt_id"] = attempt.id
        payload["attempted_at"] = isoformat(attempt.attempted_at)

    logger.info(
        "User %s scored %s on lesson %s (%s/%s)",
        principal.id, result.score, lesson_id, result.earned_points, result.total_points,
    )
    return payload


async def quiz_stats(db: AsyncSession, principal: Principal, lesson_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_COURSE_REPORTS, EntityKind.LESSON, lesson_id)
    quizzes = await _lesson_quizzes(db, lesson_id)

    by_type: Dict[str, int] = {quiz_type: 0 for quiz_type in quiz_grading.QUIZ_TYPES}
    for quiz in quizzes:
        by_type[quiz.quiz_type] = by_type.get(quiz.quiz_type, 0) + 1

    result = await db.execute(
        select(func.count(models.QuizAttempt.id), func.avg(models.QuizAttempt.score))
        .where(models.QuizAttempt.lesson_id == lesson_id)
    )
    attempts, average = result.one()

    return {
        "lesson_id": lesson_id,
        "total_quizzes": len(quizzes),
        "total_points": sum(quiz.points for quiz in quizzes),
        "by_type": by_type,
        "attempts": attempts or 0,
        "average_score": round(float(average), 2) if average is not None else None,
    }

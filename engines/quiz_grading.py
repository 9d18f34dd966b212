"""Automatic grading of a lesson's quiz set.

The engine is pure: the caller loads the quiz snapshot inside its
transaction and persists the returned result.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from lms_service.errors import ValidationError
from validators.answer_validator import lookup_answer, normalize_answer, validate_answers

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple_choice"
TRUE_FALSE = "true_false"
TEXT = "text"
QUIZ_TYPES = (MULTIPLE_CHOICE, TRUE_FALSE, TEXT)


@dataclass(frozen=True)
class QuizDefinition:
    id: int
    question: str
    correct_answer: str
    quiz_type: str = TEXT
    points: float = 1
    options: Optional[List[Any]] = None

    @classmethod
    def from_model(cls, quiz: Any) -> "QuizDefinition":
        return cls(
            id=quiz.id,
            question=quiz.question,
            correct_answer=quiz.correct_answer,
            quiz_type=quiz.quiz_type,
            points=quiz.points or 0,
            options=list(quiz.options) if quiz.options else None,
        )


@dataclass
class QuestionResult:
    quiz_id: int
    question: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    points_awarded: float
    max_points: float


@dataclass
class GradingResult:
    lesson_id: int
    total_questions: int
    total_points: float
    earned_points: float
    score: int
    results: List[QuestionResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def answers_match(quiz: QuizDefinition, answer: Any) -> bool:
    submitted = normalize_answer(answer)
    expected = normalize_answer(quiz.correct_answer)
    if quiz.quiz_type == MULTIPLE_CHOICE:
        return submitted.lower() == expected.lower()
    if quiz.quiz_type in (TRUE_FALSE, TEXT):
        return submitted.strip().lower() == expected.strip().lower()
    return submitted == expected


def compute_score(earned_points: float, total_points: float) -> int:
    if total_points <= 0:
        return 0
    # half-up rounding of the percentage
    return int(math.floor(earned_points / total_points * 100 + 0.5))


def grade(lesson_id: int, quizzes: Sequence[QuizDefinition], answers: Dict[Any, Any]) -> GradingResult:
    """Grade ``answers`` (quiz id -> answer) against every quiz of the lesson.

    Raises :class:`ValidationError` before scoring anything when an answer is
    missing or a selection falls outside the declared options.
    """
    ok, issues = validate_answers(answers, quizzes)
    if not ok:
        logger.warning("Rejected quiz answers for lesson %s: %s", lesson_id, issues)
        raise ValidationError("Quiz answers failed validation", issues)

    results: List[QuestionResult] = []
    total_points = 0.0
    earned_points = 0.0

    for quiz in quizzes:
        answer = lookup_answer(answers, quiz.id)
        correct = answers_match(quiz, answer)
        awarded = quiz.points if correct else 0
        total_points += quiz.points
        earned_points += awarded
        results.append(
            QuestionResult(
                quiz_id=quiz.id,
                question=quiz.question,
                user_answer=normalize_answer(answer),
                correct_answer=quiz.correct_answer,
                is_correct=correct,
                points_awarded=awarded,
                max_points=quiz.points,
            )
        )

    return GradingResult(
        lesson_id=lesson_id,
        total_questions=len(quizzes),
        total_points=total_points,
        earned_points=earned_points,
        score=compute_score(earned_points, total_points),
        results=results,
    )

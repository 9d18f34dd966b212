from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

Answer = Union[bool, int, float, str, None]


class QuizCreate(BaseModel):
    question: str = Field(..., min_length=1)
    correct_answer: Union[bool, str]
    quiz_type: str = "text"
    options: Optional[List[Any]] = None
    points: float = 1


class QuizUpdate(BaseModel):
    question: Optional[str] = Field(None, min_length=1)
    correct_answer: Optional[Union[bool, str]] = None
    quiz_type: Optional[str] = None
    options: Optional[List[Any]] = None
    points: Optional[float] = None


class QuizBulkCreate(BaseModel):
    quizzes: List[QuizCreate] = Field(..., min_length=1)


class QuizAnswers(BaseModel):
    # quiz id -> answer
    answers: Dict[str, Answer]

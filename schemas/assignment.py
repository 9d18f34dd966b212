from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: float = 100
    allow_late_submission: bool = True
    late_penalty_percent: float = 10


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: Optional[float] = None
    allow_late_submission: Optional[bool] = None
    late_penalty_percent: Optional[float] = None


class SubmissionCreate(BaseModel):
    content: Optional[str] = None
    file_path: Optional[str] = None


class SubmissionUpdate(SubmissionCreate):
    pass


class GradeRequest(BaseModel):
    grade: float
    feedback: Optional[str] = None


class BulkGradeItem(GradeRequest):
    submission_id: int


class BulkGradeRequest(BaseModel):
    grades: List[BulkGradeItem] = Field(..., min_length=1)

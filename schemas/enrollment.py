from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class ProgressUpdate(BaseModel):
    progress: float


class BulkEnrollRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)

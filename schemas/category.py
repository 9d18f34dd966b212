from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryBulkDelete(BaseModel):
    category_ids: List[int] = Field(..., min_length=1)


class CategoryMerge(BaseModel):
    source_ids: List[int] = Field(..., min_length=1)
    target_id: int

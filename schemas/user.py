from __future__ import annotations

from pydantic import BaseModel


class RoleUpdate(BaseModel):
    role: str

"""Error taxonomy shared by the resolver, the policy engine and the engines.

Every error here is recoverable by the caller; the HTTP boundary in
``lms_service.main`` decides the status code and message.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class DenyReason(str, Enum):
    NOT_OWNER = "not_owner"
    WRONG_ROLE = "wrong_role"
    NOT_ENROLLED = "not_enrolled"
    NOT_RESOURCE_OWNER = "not_resource_owner"


class LMSError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class NotFoundError(LMSError):
    def __init__(self, kind: str, entity_id: Any = None, message: Optional[str] = None) -> None:
        super().__init__(message or f"{kind.replace('_', ' ').capitalize()} not found")
        self.kind = kind
        self.entity_id = entity_id


class ValidationError(LMSError):
    def __init__(self, message: str, issues: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.issues:
            data["issues"] = self.issues
        return data


class AuthorizationDenied(LMSError):
    def __init__(self, reason: DenyReason, message: Optional[str] = None) -> None:
        super().__init__(message or _DEFAULT_DENY_MESSAGES[reason])
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class ConflictError(LMSError):
    pass


_DEFAULT_DENY_MESSAGES = {
    DenyReason.NOT_OWNER: "not course owner",
    DenyReason.WRONG_ROLE: "role not permitted",
    DenyReason.NOT_ENROLLED: "not enrolled",
    DenyReason.NOT_RESOURCE_OWNER: "not resource owner",
}

from __future__ import annotations

from typing import Any, Dict, List, Tuple


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float))


def validate_assignment(assignment: Dict[str, Any], partial: bool = False) -> Tuple[bool, List[str]]:
    """Business-rule checks for an assignment definition.

    With ``partial`` only the keys present are checked (update payloads).
    """
    issues: List[str] = []

    if not partial or "title" in assignment:
        title = (assignment.get("title") or "").strip()
        if not title:
            issues.append("Assignment must have a title.")

    if not partial or "max_points" in assignment:
        max_points = assignment.get("max_points", 100)
        if not _is_number(max_points) or max_points <= 0:
            issues.append("max_points must be greater than 0.")

    if not partial or "late_penalty_percent" in assignment:
        penalty = assignment.get("late_penalty_percent", 10)
        if not _is_number(penalty) or not 0 <= penalty <= 100:
            issues.append("late_penalty_percent must be between 0 and 100.")

    return (len(issues) == 0, issues)


def validate_submission_payload(content: Any, file_path: Any) -> Tuple[bool, List[str]]:
    issues: List[str] = []
    has_content = isinstance(content, str) and content.strip() != ""
    has_file = isinstance(file_path, str) and file_path.strip() != ""
    if not has_content and not has_file:
        issues.append("Either content or file_path is required.")
    return (len(issues) == 0, issues)

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from validators.answer_validator import TRUE_FALSE_VALUES, normalize_answer, option_values

QUIZ_TYPES = ("multiple_choice", "true_false", "text")


def validate_quiz(quiz: Dict[str, Any], label: str = "Quiz") -> Tuple[bool, List[str]]:
    issues: List[str] = []

    question = (quiz.get("question") or "").strip()
    if not question:
        issues.append(f"{label} must have a question.")

    correct_answer = quiz.get("correct_answer")
    if correct_answer is None or normalize_answer(correct_answer).strip() == "":
        issues.append(f"{label} must have a correct answer.")

    quiz_type = quiz.get("quiz_type") or "text"
    if quiz_type not in QUIZ_TYPES:
        issues.append(f"{label} has invalid quiz_type '{quiz_type}'. Must be one of: {', '.join(QUIZ_TYPES)}.")

    points = quiz.get("points", 1)
    if isinstance(points, bool) or not isinstance(points, (int, float)) or points < 0:
        issues.append(f"{label} points must be a non-negative number.")

    options = quiz.get("options") or []
    if quiz_type == "multiple_choice":
        if len(options) == 0:
            issues.append(f"{label} of type multiple_choice must have options.")
        elif correct_answer is not None:
            allowed = {value.lower() for value in option_values(options)}
            if normalize_answer(correct_answer).lower() not in allowed:
                issues.append(f"{label} correct answer must be one of the options.")
    elif quiz_type == "true_false" and correct_answer is not None:
        if normalize_answer(correct_answer).strip().lower() not in TRUE_FALSE_VALUES:
            issues.append(f"{label} correct answer must be 'true' or 'false'.")

    return (len(issues) == 0, issues)


def validate_quiz_set(quizzes: Sequence[Dict[str, Any]]) -> Tuple[bool, List[str]]:
    issues: List[str] = []
    if len(quizzes) == 0:
        issues.append("At least one quiz is required.")
    for i, quiz in enumerate(quizzes):
        _, quiz_issues = validate_quiz(quiz, label=f"Quiz {i}")
        issues.extend(quiz_issues)
    return (len(issues) == 0, issues)

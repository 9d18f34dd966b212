from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

QUESTION_SNIPPET_LENGTH = 50
TRUE_FALSE_VALUES = {"true", "false"}


def question_snippet(question: str) -> str:
    text = (question or "").strip()
    if len(text) <= QUESTION_SNIPPET_LENGTH:
        return text
    return text[:QUESTION_SNIPPET_LENGTH].rstrip()


def normalize_answer(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def option_values(options: Optional[Sequence[Any]]) -> List[str]:
    values: List[str] = []
    for option in options or []:
        if isinstance(option, dict):
            option = option.get("value", option.get("text", ""))
        values.append(normalize_answer(option))
    return values


def lookup_answer(answers: Dict[Any, Any], quiz_id: int) -> Any:
    if quiz_id in answers:
        return answers[quiz_id]
    return answers.get(str(quiz_id))


def is_blank(value: Any) -> bool:
    return value is None or normalize_answer(value).strip() == ""


def validate_answers(answers: Dict[Any, Any], quizzes: Sequence[Any]) -> Tuple[bool, List[str]]:
    """Check a student's answer map against the lesson's quiz definitions.

    Every quiz needs a non-blank answer; true/false answers must be true or
    false; a multiple-choice answer must be one of the declared options.
    """
    issues: List[str] = []

    for quiz in quizzes:
        snippet = question_snippet(quiz.question)
        answer = lookup_answer(answers, quiz.id)

        if is_blank(answer):
            issues.append(f'Answer required for question: "{snippet}"')
            continue

        normalized = normalize_answer(answer).lower()
        if quiz.quiz_type == "true_false" and normalized.strip() not in TRUE_FALSE_VALUES:
            issues.append(f'Invalid true/false answer for question: "{snippet}"')
        elif quiz.quiz_type == "multiple_choice":
            allowed = {value.lower() for value in option_values(quiz.options)}
            if allowed and normalized not in allowed:
                issues.append(f'Invalid option selected for question: "{snippet}"')

    return (len(issues) == 0, issues)

"""Data-driven access policy evaluated once per action.

Decision order (first match wins):

1. admin principals are always allowed;
2. role-gated actions deny principals outside the allowed roles;
3. course-ownership actions allow only the course instructor;
4. owner-readable actions let the course instructor through;
5. enrollment-gated actions allow students enrolled in the course
   (only enforced for actions listed in ``ENROLLMENT_GATED_ACTIONS``);
6. self-owned actions allow only the owner of the resource;
7. everything else is denied.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service import models
from lms_service.config import get_settings
from lms_service.errors import AuthorizationDenied, DenyReason
from lms_service.hierarchy import AncestorChain
from lms_service.identity import Principal, Role

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE_COURSE = "create_course"
    UPDATE_COURSE = "update_course"
    DELETE_COURSE = "delete_course"
    PUBLISH_COURSE = "publish_course"
    VIEW_COURSE_REPORTS = "view_course_reports"
    MANAGE_ENROLLMENTS = "manage_enrollments"

    CREATE_MODULE = "create_module"
    UPDATE_MODULE = "update_module"
    DELETE_MODULE = "delete_module"

    CREATE_LESSON = "create_lesson"
    UPDATE_LESSON = "update_lesson"
    DELETE_LESSON = "delete_lesson"
    VIEW_LESSON = "view_lesson"

    CREATE_QUIZ = "create_quiz"
    UPDATE_QUIZ = "update_quiz"
    DELETE_QUIZ = "delete_quiz"
    VIEW_QUIZ_ANSWERS = "view_quiz_answers"
    VIEW_QUIZ = "view_quiz"
    SUBMIT_QUIZ = "submit_quiz"

    CREATE_ASSIGNMENT = "create_assignment"
    UPDATE_ASSIGNMENT = "update_assignment"
    DELETE_ASSIGNMENT = "delete_assignment"
    VIEW_ASSIGNMENT = "view_assignment"
    SUBMIT_ASSIGNMENT = "submit_assignment"

    GRADE_SUBMISSION = "grade_submission"
    VIEW_SUBMISSION = "view_submission"
    UPDATE_SUBMISSION = "update_submission"

    ENROLL = "enroll"
    UPDATE_PROGRESS = "update_progress"
    VIEW_PROFILE = "view_profile"

    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_USERS = "manage_users"


@dataclass(frozen=True)
class Policy:
    roles: FrozenSet[Role] = frozenset()
    course_owner: bool = False
    owner_bypass: bool = False
    enrollment: bool = False
    self_owned: bool = False


_OWNER = Policy(course_owner=True)
_ENROLLED_READ = Policy(owner_bypass=True, enrollment=True)
_STUDENT_WRITE = Policy(roles=frozenset({Role.STUDENT}), enrollment=True)

POLICIES: Dict[Action, Policy] = {
    Action.CREATE_COURSE: Policy(roles=frozenset({Role.INSTRUCTOR})),
    Action.UPDATE_COURSE: _OWNER,
    Action.DELETE_COURSE: _OWNER,
    Action.PUBLISH_COURSE: _OWNER,
    Action.VIEW_COURSE_REPORTS: _OWNER,
    Action.MANAGE_ENROLLMENTS: _OWNER,
    Action.CREATE_MODULE: _OWNER,
    Action.UPDATE_MODULE: _OWNER,
    Action.DELETE_MODULE: _OWNER,
    Action.CREATE_LESSON: _OWNER,
    Action.UPDATE_LESSON: _OWNER,
    Action.DELETE_LESSON: _OWNER,
    Action.VIEW_LESSON: _ENROLLED_READ,
    Action.CREATE_QUIZ: _OWNER,
    Action.UPDATE_QUIZ: _OWNER,
    Action.DELETE_QUIZ: _OWNER,
    Action.VIEW_QUIZ_ANSWERS: _OWNER,
    Action.VIEW_QUIZ: _ENROLLED_READ,
    Action.SUBMIT_QUIZ: _STUDENT_WRITE,
    Action.CREATE_ASSIGNMENT: _OWNER,
    Action.UPDATE_ASSIGNMENT: _OWNER,
    Action.DELETE_ASSIGNMENT: _OWNER,
    Action.VIEW_ASSIGNMENT: _ENROLLED_READ,
    Action.SUBMIT_ASSIGNMENT: _STUDENT_WRITE,
    Action.GRADE_SUBMISSION: _OWNER,
    Action.VIEW_SUBMISSION: Policy(owner_bypass=True, self_owned=True),
    Action.UPDATE_SUBMISSION: Policy(self_owned=True),
    Action.ENROLL: Policy(roles=frozenset({Role.STUDENT, Role.INSTRUCTOR})),
    Action.UPDATE_PROGRESS: Policy(self_owned=True),
    Action.VIEW_PROFILE: Policy(self_owned=True),
    Action.MANAGE_CATEGORIES: Policy(roles=frozenset({Role.ADMIN})),
    Action.MANAGE_USERS: Policy(roles=frozenset({Role.ADMIN})),
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(False, reason)


def parse_actions(names: Iterable[str]) -> FrozenSet[Action]:
    actions = set()
    for name in names:
        try:
            actions.add(Action(name))
        except ValueError:
            raise ValueError(f"Unknown action in ENROLLMENT_GATED_ACTIONS: '{name}'") from None
    return frozenset(actions)


@dataclass
class PolicyEngine:
    gated_actions: FrozenSet[Action] = field(default_factory=frozenset)
    policies: Dict[Action, Policy] = field(default_factory=lambda: dict(POLICIES))

    def needs_enrollment_lookup(self, principal: Principal, action: Action, chain: Optional[AncestorChain]) -> bool:
        policy = self.policies[action]
        return (
            policy.enrollment
            and action in self.gated_actions
            and principal.role is Role.STUDENT
            and chain is not None
        )

    def decide(
        self,
        principal: Principal,
        action: Action,
        chain: Optional[AncestorChain] = None,
        *,
        enrolled: Optional[bool] = None,
        resource_owner_id: Optional[int] = None,
    ) -> Decision:
        policy = self.policies[action]

        if principal.is_admin:
            return Decision.allow()

        if policy.roles and not principal.satisfies(policy.roles):
            return Decision.deny(DenyReason.WRONG_ROLE)

        is_course_owner = chain is not None and chain.course_instructor_id == principal.id

        if policy.course_owner:
            return Decision.allow() if is_course_owner else Decision.deny(DenyReason.NOT_OWNER)

        if policy.owner_bypass and is_course_owner:
            return Decision.allow()

        if policy.enrollment and principal.role is Role.STUDENT:
            if action not in self.gated_actions:
                return Decision.allow()
            return Decision.allow() if enrolled else Decision.deny(DenyReason.NOT_ENROLLED)

        if policy.self_owned:
            owner_id = resource_owner_id
            if owner_id is None and chain is not None:
                owner_id = chain.resource_owner_id
            if owner_id is not None and owner_id == principal.id:
                return Decision.allow()
            return Decision.deny(DenyReason.NOT_RESOURCE_OWNER)

        if policy.roles:
            return Decision.allow()

        return Decision.deny(DenyReason.WRONG_ROLE)

    async def check(
        self,
        db: AsyncSession,
        principal: Principal,
        action: Action,
        chain: Optional[AncestorChain] = None,
        *,
        resource_owner_id: Optional[int] = None,
    ) -> None:
        """Raise :class:`AuthorizationDenied` unless ``principal`` may perform ``action``."""
        enrolled = None
        if self.needs_enrollment_lookup(principal, action, chain):
            enrolled = await is_enrolled(db, principal.id, chain.course_id)

        decision = self.decide(
            principal, action, chain, enrolled=enrolled, resource_owner_id=resource_owner_id
        )
        if not decision.allowed:
            logger.warning(
                "Denied %s for user %s (%s): %s",
                action.value, principal.id, principal.role.value, decision.reason.value,
            )
            raise AuthorizationDenied(decision.reason)


async def is_enrolled(db: AsyncSession, user_id: int, course_id: int) -> bool:
    result = await db.execute(
        select(models.Enrollment.id)
        .where(models.Enrollment.user_id == user_id)
        .where(models.Enrollment.course_id == course_id)
    )
    return result.first() is not None


@lru_cache(maxsize=1)
def get_policy_engine() -> PolicyEngine:
    return PolicyEngine(gated_actions=parse_actions(get_settings().enrollment_gated_actions))

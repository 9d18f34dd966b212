"""Shared resolve-then-authorize steps used by every service."""
from __future__ import annotations

from typing import Any, Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.authorization import Action, get_policy_engine
from lms_service.errors import NotFoundError, ValidationError
from lms_service.hierarchy import AncestorChain, EntityKind, resolve
from lms_service.identity import Principal


def is_course_owner(principal: Principal, chain: AncestorChain) -> bool:
    return principal.is_admin or chain.course_instructor_id == principal.id


def ensure_visible(principal: Principal, chain: AncestorChain) -> None:
    """Unpublished content only exists for its course owner and admins."""
    if not is_course_owner(principal, chain) and not chain.is_published:
        raise NotFoundError(chain.kind.value, chain.entity_id)


async def authorize(
    db: AsyncSession,
    principal: Principal,
    action: Action,
    kind: Optional[EntityKind] = None,
    entity_id: Optional[int] = None,
    *,
    require_visible: bool = False,
    resource_owner_id: Optional[int] = None,
) -> Optional[AncestorChain]:
    chain = None
    if kind is not None:
        chain = await resolve(db, kind, entity_id)
        if require_visible:
            ensure_visible(principal, chain)
    await get_policy_engine().check(db, principal, action, chain, resource_owner_id=resource_owner_id)
    return chain


async def load(db: AsyncSession, model: Type[Any], entity_id: int, kind: str) -> Any:
    instance = await db.get(model, entity_id)
    if instance is None:
        raise NotFoundError(kind, entity_id)
    return instance


def require(ok: bool, issues, message: str) -> None:
    if not ok:
        raise ValidationError(message, issues)


def isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None

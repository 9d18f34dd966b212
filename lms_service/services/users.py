from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service import models
from lms_service.authorization import Action
from lms_service.database import transaction
from lms_service.errors import NotFoundError, ValidationError
from lms_service.identity import Principal, Role
from lms_service.services.access import authorize, isoformat, load

logger = logging.getLogger(__name__)


def user_to_dict(user: models.User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "created_at": isoformat(user.created_at),
    }


async def get_profile(db: AsyncSession, principal: Principal, user_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_PROFILE, resource_owner_id=user_id)
    user = await load(db, models.User, user_id, "user")
    if user.is_deleted:
        raise NotFoundError("user", user_id)
    return user_to_dict(user)


async def list_users(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    await authorize(db, principal, Action.MANAGE_USERS)
    result = await db.execute(
        select(models.User).where(models.User.is_deleted.is_(False)).order_by(models.User.id)
    )
    return [user_to_dict(user) for user in result.scalars().all()]


async def change_role(db: AsyncSession, principal: Principal, user_id: int, role: str) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.MANAGE_USERS)
        new_role = Role.parse(role)
        if user_id == principal.id:
            raise ValidationError("You cannot change your own role")
        user = await load(db, models.User, user_id, "user")
        if user.is_deleted:
            raise NotFoundError("user", user_id)
        previous = user.role
        user.role = new_role.value
        await db.flush()
        payload = user_to_dict(user)
    logger.info("User %s role changed %s -> %s by %s", user_id, previous, new_role.value, principal.id)
    return payload


async def delete_user(db: AsyncSession, principal: Principal, user_id: int) -> None:
    """Soft-delete an account; the user can no longer authenticate."""
    async with transaction(db):
        await authorize(db, principal, Action.MANAGE_USERS)
        if user_id == principal.id:
            raise ValidationError("You cannot delete your own account")
        user = await load(db, models.User, user_id, "user")
        if user.is_deleted:
            raise NotFoundError("user", user_id)
        user.is_deleted = True
    logger.info("User %s deleted by %s", user_id, principal.id)

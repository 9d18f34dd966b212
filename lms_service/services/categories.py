from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service import models
from lms_service.authorization import Action
from lms_service.database import transaction
from lms_service.errors import ConflictError
from lms_service.identity import Principal
from lms_service.services.access import authorize, load
from manager.batch import BatchRunner

logger = logging.getLogger(__name__)


def category_to_dict(category: models.Category, course_count: Optional[int] = None) -> Dict[str, Any]:
    data = {"id": category.id, "name": category.name, "description": category.description}
    if course_count is not None:
        data["course_count"] = course_count
    return data


async def _active_course_count(db: AsyncSession, category_id: int) -> int:
    result = await db.execute(
        select(func.count(models.Course.id))
        .where(models.Course.category_id == category_id)
        .where(models.Course.is_deleted.is_(False))
    )
    return result.scalar() or 0


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(models.Category.id).where(func.lower(models.Category.name) == name.strip().lower())
    if exclude_id is not None:
        stmt = stmt.where(models.Category.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("Category name already exists")


async def list_categories(db: AsyncSession) -> List[Dict[str, Any]]:
    counts = (
        select(models.Course.category_id, func.count(models.Course.id).label("course_count"))
        .where(models.Course.is_deleted.is_(False))
        .group_by(models.Course.category_id)
        .subquery()
    )
    result = await db.execute(
        select(models.Category, func.coalesce(counts.c.course_count, 0))
        .outerjoin(counts, counts.c.category_id == models.Category.id)
        .order_by(models.Category.name)
    )
    return [category_to_dict(category, count) for category, count in result.all()]


async def get_category(db: AsyncSession, category_id: int) -> Dict[str, Any]:
    category = await load(db, models.Category, category_id, "category")
    return category_to_dict(category, await _active_course_count(db, category_id))


async def create_category(db: AsyncSession, principal: Principal, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.MANAGE_CATEGORIES)
        await _ensure_unique_name(db, data["name"])
        category = models.Category(name=data["name"].strip(), description=data.get("description"))
        db.add(category)
        await db.flush()
        payload = category_to_dict(category)
    logger.info("Category %s created", payload["name"])
    return payload


async def update_category(db: AsyncSession, principal: Principal, category_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.MANAGE_CATEGORIES)
        category = await load(db, models.Category, category_id, "category")
        if data.get("name"):
            await _ensure_unique_name(db, data["name"], exclude_id=category_id)
            category.name = data["name"].strip()
        if "description" in data:
            category.description = data["description"]
        await db.flush()
        payload = category_to_dict(category)
    return payload


async def _delete_category(db: AsyncSession, category_id: int) -> Dict[str, Any]:
    category = await load(db, models.Category, category_id, "category")
    active = await _active_course_count(db, category_id)
    if active:
        raise ConflictError(f"Cannot delete category with {active} active course(s)")
    # soft-deleted courses drop their reference
    await db.execute(
        update(models.Course).where(models.Course.category_id == category_id).values(category_id=None)
    )
    await db.delete(category)
    return {"id": category_id, "name": category.name}


async def delete_category(db: AsyncSession, principal: Principal, category_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.MANAGE_CATEGORIES)
        deleted = await _delete_category(db, category_id)
    logger.info("Category %s deleted", deleted["name"])


async def bulk_delete_categories(db: AsyncSession, principal: Principal, category_ids: Sequence[int]) -> Dict[str, Any]:
    await authorize(db, principal, Action.MANAGE_CATEGORIES)
    await db.commit()

    async def delete_one(category_id: int) -> Dict[str, Any]:
        async with transaction(db):
            return await _delete_category(db, category_id)

    batch = await BatchRunner("bulk_delete_categories").run(category_ids, delete_one)
    return batch.to_dict()


async def merge_categories(
    db: AsyncSession, principal: Principal, source_ids: Sequence[int], target_id: int
) -> Dict[str, Any]:
    """Move every active course of each source into the target, then drop the source."""
    await authorize(db, principal, Action.MANAGE_CATEGORIES)
    target = await load(db, models.Category, target_id, "category")
    target_payload = category_to_dict(target)
    await db.commit()

    async def merge_one(source_id: int) -> Dict[str, Any]:
        async with transaction(db):
            await load(db, models.Category, source_id, "category")
            moved = await db.execute(
                update(models.Course)
                .where(models.Course.category_id == source_id)
                .where(models.Course.is_deleted.is_(False))
                .values(category_id=target_id)
            )
            await _delete_category(db, source_id)
            return {"source_id": source_id, "moved_courses": moved.rowcount}

    sources = [source_id for source_id in source_ids if source_id != target_id]
    batch = await BatchRunner("merge_categories").run(sources, merge_one)
    moved_total = sum(item.result["moved_courses"] for item in batch.successes)
    logger.info("Merged %s categories into %s, %s courses moved", len(batch.successes), target_id, moved_total)

    payload = batch.to_dict()
    payload["target_category"] = target_payload
    payload["moved_courses"] = moved_total
    return payload

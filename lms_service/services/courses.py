from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service import models
from lms_service.authorization import Action
from lms_service.database import transaction
from lms_service.errors import NotFoundError, ValidationError
from lms_service.hierarchy import EntityKind, resolve
from lms_service.identity import Principal
from lms_service.services.access import authorize, is_course_owner, isoformat, load

logger = logging.getLogger(__name__)


def course_to_dict(course: models.Course) -> Dict[str, Any]:
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "instructor_id": course.instructor_id,
        "category_id": course.category_id,
        "is_published": course.is_published,
        "created_at": isoformat(course.created_at),
        "updated_at": isoformat(course.updated_at),
    }


def module_to_dict(module: models.CourseModule) -> Dict[str, Any]:
    return {
        "id": module.id,
        "course_id": module.course_id,
        "title": module.title,
        "description": module.description,
        "position": module.position,
        "is_published": module.is_published,
    }


def lesson_to_dict(lesson: models.Lesson) -> Dict[str, Any]:
    return {
        "id": lesson.id,
        "module_id": lesson.module_id,
        "title": lesson.title,
        "content": lesson.content,
        "position": lesson.position,
        "is_published": lesson.is_published,
        "video_duration_seconds": lesson.video_duration_seconds,
    }


async def _ensure_category(db: AsyncSession, category_id: Optional[int]) -> None:
    if category_id is not None:
        await load(db, models.Category, category_id, "category")


async def _next_position(db: AsyncSession, column, parent_column, parent_id: int) -> int:
    result = await db.execute(select(func.max(column)).where(parent_column == parent_id))
    current = result.scalar()
    return (current or 0) + 1


# Courses

async def list_courses(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    stmt = select(models.Course).where(models.Course.is_deleted.is_(False))
    if not principal.is_admin:
        stmt = stmt.where(
            or_(models.Course.is_published.is_(True), models.Course.instructor_id == principal.id)
        )
    result = await db.execute(stmt.order_by(models.Course.id))
    return [course_to_dict(course) for course in result.scalars().all()]


async def get_course(db: AsyncSession, principal: Principal, course_id: int) -> Dict[str, Any]:
    chain = await resolve(db, EntityKind.COURSE, course_id)
    if not chain.is_course_published and not is_course_owner(principal, chain):
        raise NotFoundError("course", course_id)

    course = await load(db, models.Course, course_id, "course")
    stmt = select(models.CourseModule).where(models.CourseModule.course_id == course_id)
    if not is_course_owner(principal, chain):
        stmt = stmt.where(models.CourseModule.is_published.is_(True))
    modules = (await db.execute(stmt.order_by(models.CourseModule.position, models.CourseModule.id))).scalars().all()

    data = course_to_dict(course)
    data["modules"] = [module_to_dict(module) for module in modules]
    return data


async def create_course(db: AsyncSession, principal: Principal, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_COURSE)
        await _ensure_category(db, data.get("category_id"))
        course = models.Course(
            title=data["title"],
            description=data.get("description"),
            category_id=data.get("category_id"),
            instructor_id=principal.id,
        )
        db.add(course)
        await db.flush()
        payload = course_to_dict(course)
    logger.info("Course %s created by %s", payload["id"], principal.id)
    return payload


async def update_course(db: AsyncSession, principal: Principal, course_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_COURSE, EntityKind.COURSE, course_id)
        course = await load(db, models.Course, course_id, "course")
        if "category_id" in data:
            await _ensure_category(db, data["category_id"])
            course.category_id = data["category_id"]
        if data.get("title") is not None:
            course.title = data["title"].strip()
        if "description" in data:
            course.description = data["description"]
        await db.flush()
        payload = course_to_dict(course)
    return payload


async def delete_course(db: AsyncSession, principal: Principal, course_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.DELETE_COURSE, EntityKind.COURSE, course_id)
        course = await load(db, models.Course, course_id, "course")
        course.is_deleted = True
    logger.info("Course %s soft-deleted by %s", course_id, principal.id)


async def toggle_course_publish(db: AsyncSession, principal: Principal, course_id: int) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.PUBLISH_COURSE, EntityKind.COURSE, course_id)
        course = await load(db, models.Course, course_id, "course")
        course.is_published = not course.is_published
        await db.flush()
        payload = course_to_dict(course)
    logger.info("Course %s published=%s", course_id, payload["is_published"])
    return payload


# Modules

async def list_modules(db: AsyncSession, principal: Principal, course_id: int) -> List[Dict[str, Any]]:
    return (await get_course(db, principal, course_id))["modules"]


async def create_module(db: AsyncSession, principal: Principal, course_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_MODULE, EntityKind.COURSE, course_id)
        position = await _next_position(
            db, models.CourseModule.position, models.CourseModule.course_id, course_id
        )
        module = models.CourseModule(
            course_id=course_id,
            title=data["title"].strip(),
            description=data.get("description"),
            position=position,
        )
        db.add(module)
        await db.flush()
        payload = module_to_dict(module)
    return payload


async def update_module(db: AsyncSession, principal: Principal, module_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_MODULE, EntityKind.MODULE, module_id)
        module = await load(db, models.CourseModule, module_id, "module")
        if data.get("title") is not None:
            module.title = data["title"].strip()
        if "description" in data:
            module.description = data["description"]
        await db.flush()
        payload = module_to_dict(module)
    return payload


async def delete_module(db: AsyncSession, principal: Principal, module_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.DELETE_MODULE, EntityKind.MODULE, module_id)
        module = await load(db, models.CourseModule, module_id, "module")
        await db.delete(module)


async def toggle_module_publish(db: AsyncSession, principal: Principal, module_id: int) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_MODULE, EntityKind.MODULE, module_id)
        module = await load(db, models.CourseModule, module_id, "module")
        module.is_published = not module.is_published
        await db.flush()
        payload = module_to_dict(module)
    return payload


async def _reorder(db: AsyncSession, model, parent_column, parent_id: int, items: Sequence[Dict[str, int]], label: str) -> None:
    ids = [item["id"] for item in items]
    result = await db.execute(select(model).where(model.id.in_(ids)).where(parent_column == parent_id))
    found = {row.id: row for row in result.scalars().all()}
    foreign = [entity_id for entity_id in ids if entity_id not in found]
    if foreign:
        raise ValidationError(
            f"Some {label}s do not belong to this parent",
            [f"{label.capitalize()} {entity_id} does not belong to this parent" for entity_id in foreign],
        )
    for item in items:
        found[item["id"]].position = item["position"]


async def reorder_modules(db: AsyncSession, principal: Principal, course_id: int, items: Sequence[Dict[str, int]]) -> List[Dict[str, Any]]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_COURSE, EntityKind.COURSE, course_id)
        await _reorder(db, models.CourseModule, models.CourseModule.course_id, course_id, items, "module")
        await db.flush()
        result = await db.execute(
            select(models.CourseModule)
            .where(models.CourseModule.course_id == course_id)
            .order_by(models.CourseModule.position, models.CourseModule.id)
        )
        payload = [module_to_dict(module) for module in result.scalars().all()]
    return payload


# Lessons

async def list_lessons(db: AsyncSession, principal: Principal, module_id: int) -> List[Dict[str, Any]]:
    chain = await authorize(db, principal, Action.VIEW_LESSON, EntityKind.MODULE, module_id, require_visible=True)
    stmt = select(models.Lesson).where(models.Lesson.module_id == module_id)
    if not is_course_owner(principal, chain):
        stmt = stmt.where(models.Lesson.is_published.is_(True))
    result = await db.execute(stmt.order_by(models.Lesson.position, models.Lesson.id))
    return [lesson_to_dict(lesson) for lesson in result.scalars().all()]


async def get_lesson(db: AsyncSession, principal: Principal, lesson_id: int) -> Dict[str, Any]:
    await authorize(db, principal, Action.VIEW_LESSON, EntityKind.LESSON, lesson_id, require_visible=True)
    lesson = await load(db, models.Lesson, lesson_id, "lesson")
    return lesson_to_dict(lesson)


async def create_lesson(db: AsyncSession, principal: Principal, module_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.CREATE_LESSON, EntityKind.MODULE, module_id)
        position = await _next_position(db, models.Lesson.position, models.Lesson.module_id, module_id)
        lesson = models.Lesson(
            module_id=module_id,
            title=data["title"].strip(),
            content=data.get("content"),
            video_duration_seconds=data.get("video_duration_seconds"),
            position=position,
        )
        db.add(lesson)
        await db.flush()
        payload = lesson_to_dict(lesson)
    return payload


async def update_lesson(db: AsyncSession, principal: Principal, lesson_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_LESSON, EntityKind.LESSON, lesson_id)
        lesson = await load(db, models.Lesson, lesson_id, "lesson")
        if data.get("title") is not None:
            lesson.title = data["title"].strip()
        for key in ("content", "video_duration_seconds"):
            if key in data:
                setattr(lesson, key, data[key])
        await db.flush()
        payload = lesson_to_dict(lesson)
    return payload


async def delete_lesson(db: AsyncSession, principal: Principal, lesson_id: int) -> None:
    async with transaction(db):
        await authorize(db, principal, Action.DELETE_LESSON, EntityKind.LESSON, lesson_id)
        lesson = await load(db, models.Lesson, lesson_id, "lesson")
        await db.delete(lesson)


async def toggle_lesson_publish(db: AsyncSession, principal: Principal, lesson_id: int) -> Dict[str, Any]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_LESSON, EntityKind.LESSON, lesson_id)
        lesson = await load(db, models.Lesson, lesson_id, "lesson")
        lesson.is_published = not lesson.is_published
        await db.flush()
        payload = lesson_to_dict(lesson)
    return payload


async def reorder_lessons(db: AsyncSession, principal: Principal, module_id: int, items: Sequence[Dict[str, int]]) -> List[Dict[str, Any]]:
    async with transaction(db):
        await authorize(db, principal, Action.UPDATE_MODULE, EntityKind.MODULE, module_id)
        await _reorder(db, models.Lesson, models.Lesson.module_id, module_id, items, "lesson")
        await db.flush()
        result = await db.execute(
            select(models.Lesson)
            .where(models.Lesson.module_id == module_id)
            .order_by(models.Lesson.position, models.Lesson.id)
        )
        payload = [lesson_to_dict(lesson) for lesson in result.scalars().all()]
    return payload

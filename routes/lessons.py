from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import courses as course_service
from routes.envelope import ok
from schemas.course import LessonCreate, LessonUpdate, ReorderRequest

router = APIRouter(tags=["lessons"])


@router.get("/api/modules/{module_id}/lessons")
async def list_lessons(module_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.list_lessons(db, principal, module_id))


@router.post("/api/modules/{module_id}/lessons", status_code=201)
async def create_lesson(
    module_id: int,
    payload: LessonCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await course_service.create_lesson(db, principal, module_id, payload.model_dump()), "Lesson created")


@router.put("/api/modules/{module_id}/lessons/reorder")
async def reorder_lessons(
    module_id: int,
    payload: ReorderRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    items = [item.model_dump() for item in payload.items]
    return ok(await course_service.reorder_lessons(db, principal, module_id, items), "Lessons reordered")


@router.get("/api/lessons/{lesson_id}")
async def get_lesson(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.get_lesson(db, principal, lesson_id))


@router.put("/api/lessons/{lesson_id}")
async def update_lesson(
    lesson_id: int,
    payload: LessonUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await course_service.update_lesson(db, principal, lesson_id, data), "Lesson updated")


@router.delete("/api/lessons/{lesson_id}")
async def delete_lesson(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await course_service.delete_lesson(db, principal, lesson_id)
    return ok(message="Lesson deleted")


@router.post("/api/lessons/{lesson_id}/publish")
async def toggle_lesson_publish(lesson_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.toggle_lesson_publish(db, principal, lesson_id))

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import courses as course_service
from routes.envelope import ok
from schemas.course import CourseCreate, CourseUpdate, ModuleCreate, ModuleUpdate, ReorderRequest

router = APIRouter(prefix="/api/courses", tags=["courses"])
module_router = APIRouter(prefix="/api/modules", tags=["modules"])


@router.get("")
async def list_courses(db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.list_courses(db, principal))


@router.post("", status_code=201)
async def create_course(
    payload: CourseCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await course_service.create_course(db, principal, payload.model_dump()), "Course created")


@router.get("/{course_id}")
async def get_course(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.get_course(db, principal, course_id))


@router.put("/{course_id}")
async def update_course(
    course_id: int,
    payload: CourseUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await course_service.update_course(db, principal, course_id, data), "Course updated")


@router.delete("/{course_id}")
async def delete_course(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await course_service.delete_course(db, principal, course_id)
    return ok(message="Course deleted")


@router.post("/{course_id}/publish")
async def toggle_course_publish(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.toggle_course_publish(db, principal, course_id))


@router.get("/{course_id}/modules")
async def list_modules(course_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.list_modules(db, principal, course_id))


@router.post("/{course_id}/modules", status_code=201)
async def create_module(
    course_id: int,
    payload: ModuleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await course_service.create_module(db, principal, course_id, payload.model_dump()), "Module created")


@router.put("/{course_id}/modules/reorder")
async def reorder_modules(
    course_id: int,
    payload: ReorderRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    items = [item.model_dump() for item in payload.items]
    return ok(await course_service.reorder_modules(db, principal, course_id, items), "Modules reordered")


@module_router.put("/{module_id}")
async def update_module(
    module_id: int,
    payload: ModuleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await course_service.update_module(db, principal, module_id, data), "Module updated")


@module_router.delete("/{module_id}")
async def delete_module(module_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await course_service.delete_module(db, principal, module_id)
    return ok(message="Module deleted")


@module_router.post("/{module_id}/publish")
async def toggle_module_publish(module_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await course_service.toggle_module_publish(db, principal, module_id))

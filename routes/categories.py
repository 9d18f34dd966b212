from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import categories as category_service
from routes.envelope import ok
from schemas.category import CategoryBulkDelete, CategoryCreate, CategoryMerge, CategoryUpdate

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return ok(await category_service.list_categories(db))


@router.get("/{category_id}")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return ok(await category_service.get_category(db, category_id))


@router.post("", status_code=201)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await category_service.create_category(db, principal, payload.model_dump()), "Category created")


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    data = payload.model_dump(exclude_unset=True)
    return ok(await category_service.update_category(db, principal, category_id, data), "Category updated")


@router.delete("/{category_id}")
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    await category_service.delete_category(db, principal, category_id)
    return ok(message="Category deleted")


@router.post("/bulk-delete")
async def bulk_delete_categories(
    payload: CategoryBulkDelete,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ok(await category_service.bulk_delete_categories(db, principal, payload.category_ids))


@router.post("/merge")
async def merge_categories(
    payload: CategoryMerge,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    result = await category_service.merge_categories(db, principal, payload.source_ids, payload.target_id)
    name = result["target_category"]["name"]
    return ok(result, f'Categories merged successfully. {result["moved_courses"]} courses moved to "{name}".')

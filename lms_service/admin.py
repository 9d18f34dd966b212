from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import users as user_service
from routes.envelope import ok
from schemas.user import RoleUpdate

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


@router.get("/users")
async def list_users(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return ok(await user_service.list_users(db, principal))


@router.put("/users/{user_id}/role")
async def change_user_role(
    user_id: int,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    user = await user_service.change_role(db, principal, user_id, payload.role)
    return ok(user, f"User role updated to {user['role']}")


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    await user_service.delete_user(db, principal, user_id)
    return ok(message="User deleted successfully")

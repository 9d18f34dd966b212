from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms_service.database import get_db
from lms_service.dependencies import get_current_principal
from lms_service.identity import Principal
from lms_service.services import users as user_service
from routes.envelope import ok

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me")
async def my_profile(db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await user_service.get_profile(db, principal, principal.id))


@router.get("/{user_id}")
async def user_profile(user_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return ok(await user_service.get_profile(db, principal, user_id))

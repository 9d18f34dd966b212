from fastapi import Request, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from lms_service.database import get_db
from lms_service.identity import Principal, Role
from lms_service import models


async def get_session_user(request: Request) -> int:
    """Dependency: the user id the identity provider stored in the session."""
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


async def get_current_principal(
    user_id: int = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    result = await db.execute(select(models.User).where(models.User.id == user_id))
    user = result.scalars().first()
    if not user or user.is_deleted:
        raise HTTPException(status_code=401, detail="User not found")
    return Principal(id=user.id, role=Role(user.role))

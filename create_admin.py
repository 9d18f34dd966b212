import asyncio
import sys
from sqlalchemy import func
from sqlalchemy.future import select
from lms_service.database import init_db
from lms_service.identity import Role
from lms_service.models import User


async def promote_user(email: str) -> bool:
    # No request scope here, so open the session by hand
    from lms_service.database import AsyncSessionLocal

    await init_db()
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
        user = result.scalars().first()

        if not user or user.is_deleted:
            print(f"Error: User with email '{email}' not found.")
            return False

        if user.role == Role.ADMIN.value:
            print(f"User '{email}' is already an admin.")
            return True

        user.role = Role.ADMIN.value
        await db.commit()
        print(f"Success: User '{email}' has been promoted to Admin.")
        return True


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python create_admin.py <email>")
        sys.exit(1)

    email = sys.argv[1]
    ok = asyncio.run(promote_user(email))
    sys.exit(0 if ok else 1)

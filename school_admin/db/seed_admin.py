"""
Seed script to create the tables and the first administrator.

Run once with env set:
  ADMIN_PHONE_NUMBER=9876543210
  ADMIN_NAME="School Admin"

Creates every table that does not exist yet, then the administrator user
(or reactivates it) and prints a fresh login code. The code is shown only here.
"""
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.models import User
from school_admin.auth.security import generate_login_code, hash_login_code, login_code_expiry
from school_admin.core import models  # noqa: F401  (registers tables on Base.metadata)
from school_admin.core.config import settings
from school_admin.core.validation import check_phone_number
from school_admin.db.session import AsyncSessionLocal, Base, engine

DEFAULT_ADMIN_NAME = "School Admin"


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_admin(db: AsyncSession) -> None:
    if not settings.admin_phone_number:
        print("ADMIN_PHONE_NUMBER is not set; skipping administrator user.")
        return
    phone_number = check_phone_number(settings.admin_phone_number)
    name = settings.admin_name or DEFAULT_ADMIN_NAME

    result = await db.execute(select(User).where(User.phone_number == phone_number))
    admin = result.scalar_one_or_none()
    if not admin:
        admin = User(name=name, phone_number=phone_number, role="administrator", is_active=True)
        db.add(admin)
        print("Created administrator:", phone_number)
    else:
        admin.role = "administrator"
        admin.is_active = True
        print("Updated existing user to administrator:", phone_number)

    code = generate_login_code()
    admin.login_code_hash = hash_login_code(code)
    admin.code_expires_at = login_code_expiry()
    await db.commit()
    print("Login code (valid until %s): %s" % (admin.code_expires_at.isoformat(), code))


async def main() -> None:
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise


if __name__ == "__main__":
    asyncio.run(main())

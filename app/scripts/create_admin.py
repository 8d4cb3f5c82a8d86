"""
One-time bootstrap script — creates the first super-admin.

Usage:
    python -m app.scripts.create_admin

You only need this ONCE. After the first super-admin exists, all other
admins are created via POST /api/admin/users.
"""

import asyncio
import getpass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.security import hash_password, validate_password_strength
from app.models.admin import Admin
from app.services.region_service import seed_default_regions


async def create_admin() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        # ── Collect input ────────────────────────────────────────────
        print("\nAdmin Backend — First Super-Admin Setup\n")
        username = input("  Username:  ").strip()
        email = input("  Email:     ").strip()
        full_name = input("  Full name: ").strip()
        password = getpass.getpass("  Password:  ")
        confirm = getpass.getpass("  Confirm:   ")

        if password != confirm:
            print("\nPasswords do not match.")
            await engine.dispose()
            return

        if not username or not email or not password:
            print("\nUsername, email and password are required.")
            await engine.dispose()
            return

        problems = validate_password_strength(password)
        if problems:
            print("\nPassword rejected:")
            for problem in problems:
                print(f"   - {problem}")
            await engine.dispose()
            return

        # ── Check for existing admin ─────────────────────────────────
        existing = (
            await session.execute(
                select(Admin).where(or_(Admin.username == username, Admin.email == email))
            )
        ).scalar_one_or_none()

        if existing:
            print(f"\nAn admin with username '{username}' or email '{email}' already exists.")
            await engine.dispose()
            return

        # ── Regions must exist before anyone can be assigned ─────────
        await seed_default_regions(session)

        admin = Admin(
            username=username,
            email=email,
            full_name=full_name or None,
            password_hash=hash_password(password),
            is_super_admin=True,
            is_active=True,
        )
        session.add(admin)
        await session.commit()

        print("\nSuper-admin created successfully!")
        print(f"    ID:       {admin.id}")
        print(f"    Username: {admin.username}")
        print(f"    Email:    {admin.email}")
        print("\n   You can now log in via POST /api/auth/login\n")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_admin())

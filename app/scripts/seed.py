"""
Seed довідника користувачів і ресурсів для dev-оточення.

    python -m app.scripts.seed                      # admin + демо-користувачі + ресурси
    python -m app.scripts.seed --no-demo-users
    python -m app.scripts.seed --issue-token tech@example.com

Паролів тут немає: токени видає identity provider, а --issue-token
лише підписує dev-токен тим самим секретом для локальних запитів.
"""
from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import create_access_token
from app.db.models import Resource, RoleEnum, User
from app.db.session import AsyncSessionLocal, engine

DEMO_USERS = (
    ("employee@example.com", "Employee", RoleEnum.employee),
    ("tech@example.com", "Technician", RoleEnum.technician),
    ("service@example.com", "Service Admin", RoleEnum.service_admin),
    ("procurement@example.com", "Procurement Admin", RoleEnum.procurement_admin),
)

DEMO_RESOURCES = (
    ("Zoom Room 1", "zoom", 100),
    ("Zoom Room 2", "zoom", 300),
    ("Meeting Room A", "room", 12),
)


async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def _ensure_user(db: AsyncSession, *, email: str, name: str, role: RoleEnum) -> User:
    """Створює користувача або вирівнює роль/ім'я/активність наявного."""
    user = await _get_user_by_email(db, email)
    if user is None:
        user = User(email=email, name=name, role=role, is_active=True)
        db.add(user)
        await db.commit()
        print(f"[seed] створено користувача: {email} ({role.value})")
        return user

    if (user.role, user.name, user.is_active) != (role, name, True):
        user.role, user.name, user.is_active = role, name, True
        await db.commit()
        print(f"[seed] оновлено користувача: {email}")
    else:
        print(f"[seed] існує без змін: {email} ({user.role.value})")
    return user


async def _ensure_resource(db: AsyncSession, *, name: str, category: str, capacity: int) -> None:
    res = await db.execute(select(Resource).where(Resource.name == name))
    if res.scalar_one_or_none() is not None:
        return
    db.add(Resource(name=name, category=category, capacity=capacity, is_active=True))
    await db.commit()
    print(f"[seed] створено ресурс: {name}")


async def _seed(db: AsyncSession, *, admin_email: str, admin_name: str, demo_users: bool, demo_resources: bool) -> None:
    await _ensure_user(db, email=admin_email, name=admin_name, role=RoleEnum.super_admin)
    if demo_users:
        for email, name, role in DEMO_USERS:
            await _ensure_user(db, email=email, name=name, role=role)
    if demo_resources:
        for name, category, capacity in DEMO_RESOURCES:
            await _ensure_resource(db, name=name, category=category, capacity=capacity)
    print("[seed] завершено")


async def _issue_token(db: AsyncSession, email: str) -> str:
    user = await _get_user_by_email(db, email)
    if user is None:
        raise SystemExit(f"Помилка: користувача {email} немає в довіднику")
    return create_access_token(
        subject=user.email,
        role=user.role.value,
        name=user.name,
        secret=settings.jwt_secret,
        expires_minutes=settings.jwt_expires_min,
        algorithm=settings.jwt_alg,
    )


async def _run(args: argparse.Namespace) -> None:
    async with AsyncSessionLocal() as db:
        if args.issue_token:
            print(await _issue_token(db, args.issue_token))
        else:
            await _seed(
                db,
                admin_email=args.email,
                admin_name=args.name,
                demo_users=args.demo_users,
                demo_resources=args.demo_resources,
            )
    await engine.dispose()


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed користувачів і ресурсів")
    p.add_argument("email", nargs="?", default=settings.admin_email, help="Email super admin")
    p.add_argument("-n", "--name", default=settings.admin_name, help="Ім'я super admin")

    p.add_argument("--demo-users", dest="demo_users", action="store_true", help="Створити демо-користувачів")
    p.add_argument("--no-demo-users", dest="demo_users", action="store_false", help="Не створювати демо-користувачів")
    p.set_defaults(demo_users=settings.create_demo_users)

    p.add_argument("--no-demo-resources", dest="demo_resources", action="store_false", help="Не створювати ресурси")
    p.set_defaults(demo_resources=True)

    p.add_argument("--issue-token", metavar="EMAIL", help="Надрукувати dev JWT для користувача і вийти")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    if not args.email:
        raise SystemExit("Помилка: не задано email адміністратора (аргумент або ADMIN_EMAIL у .env)")
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()

# app/api/routes/users.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func

from ..deps import CurrentUser, DBDep, require_role, require_staff
from app.schemas.users import UserOut, UsersPage, UserAdminUpdate
from app.db.models import RoleEnum as Role, User

router = APIRouter()


# ---------- SELF ----------
@router.get("/me", response_model=UserOut)
async def get_me(current: CurrentUser):
    return current


# ---------- STAFF ----------
@router.get("/technicians", response_model=list[UserOut], dependencies=[Depends(require_role(Role.service_admin))])
async def list_technicians(db: DBDep):
    """Кандидати для assign: лише активні техніки."""
    rows = (await db.execute(
        select(User)
        .where(User.role == Role.technician, User.is_active.is_(True))
        .order_by(User.name, User.id)
    )).scalars().all()
    return rows


@router.get("", response_model=UsersPage, dependencies=[Depends(require_staff())])
async def list_users(
    db: DBDep,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    q: Optional[str] = Query(None, description="search by email/name"),
    role: Optional[Role] = Query(None),
    is_active: Optional[bool] = Query(None),
):
    stmt = select(User)
    if q:
        like = f"%{q.lower()}%"
        stmt = stmt.where(func.lower(User.email).like(like) | func.lower(User.name).like(like))
    if role:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = (await db.execute(stmt.order_by(User.id.asc()).limit(limit).offset((page - 1) * limit))).scalars().all()

    return UsersPage(
        items=[UserOut.model_validate(u) for u in rows],
        total=int(total or 0),
        page=page,
        limit=limit,
    )


@router.get("/{user_id}", response_model=UserOut, dependencies=[Depends(require_staff())])
async def get_user(user_id: int, db: DBDep):
    u = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u


# ---------- SUPER ADMIN ----------
@router.patch("/{user_id}", response_model=UserOut, dependencies=[Depends(require_role(Role.super_admin))])
async def admin_update_user(user_id: int, payload: UserAdminUpdate, db: DBDep):
    u = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")

    if payload.name is not None:
        u.name = payload.name
    if payload.role is not None:
        u.role = payload.role
    if payload.is_active is not None:
        u.is_active = payload.is_active

    await db.commit()
    return u

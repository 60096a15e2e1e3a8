# app/api/routes/resources.py
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy import select

from ..deps import CurrentUser, DBDep, require_role
from app.db.models import Resource, RoleEnum as Role
from app.schemas.resources import (
    BookingEventOut,
    ConflictCheckIn,
    ConflictCheckOut,
    ResourceCreate,
    ResourceOut,
)
from app.services import availability

router = APIRouter()


@router.get("", response_model=list[ResourceOut])
async def list_resources(db: DBDep, current: CurrentUser, category: str | None = None, active_only: bool = True):
    q = select(Resource)
    if category:
        q = q.where(Resource.category == category)
    if active_only:
        q = q.where(Resource.is_active.is_(True))
    rows = (await db.execute(q.order_by(Resource.name, Resource.id))).scalars().all()
    return rows


@router.post(
    "",
    response_model=ResourceOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_role(Role.service_admin))],
)
async def create_resource(payload: ResourceCreate, db: DBDep):
    r = Resource(**payload.model_dump())
    db.add(r)
    await db.commit()
    return r


@router.get("/{resource_id}/events", response_model=list[BookingEventOut])
async def resource_events(
    resource_id: int,
    db: DBDep,
    current: CurrentUser,
    since: datetime | None = None,
    until: datetime | None = None,
):
    await availability.get_resource(db, resource_id)
    events = await availability.list_events(db, resource_id, since=since, until=until)
    return [BookingEventOut(**asdict(ev)) for ev in events]


@router.post("/{resource_id}/conflicts", response_model=ConflictCheckOut)
async def check_conflict(resource_id: int, payload: ConflictCheckIn, db: DBDep, current: CurrentUser):
    """Попередня перевірка для форми бронювання (без lock, нічого не пише)."""
    await availability.get_resource(db, resource_id)
    result = await availability.check_conflict(
        db, resource_id, payload.start_at, payload.end_at, exclude_ticket_id=payload.exclude_ticket_id,
    )
    return ConflictCheckOut(
        kind=result.kind.value,
        conflict=result.event.to_dict() if result.event else None,
    )

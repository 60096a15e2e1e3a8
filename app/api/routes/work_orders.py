# app/api/routes/work_orders.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, status

from ..deps import CurrentUser, DBDep, require_staff
from app.core.logging import log_extra
from app.db.models import WorkOrderStatusEnum, WorkOrderTypeEnum
from app.schemas.work_orders import (
    AssetConditionUpdate,
    WorkOrderCreate,
    WorkOrderOut,
    WorkOrderStatusUpdate,
)
from app.services import work_orders

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=WorkOrderOut, status_code=status.HTTP_201_CREATED)
async def create_work_order(payload: WorkOrderCreate, request: Request, db: DBDep, current: CurrentUser):
    wo = await work_orders.create_work_order(db, payload, current)
    logger.info("work_order_created", extra={**log_extra(request), "work_order_id": wo.id})
    return wo


@router.get("", response_model=list[WorkOrderOut], dependencies=[Depends(require_staff())])
async def list_work_orders(
    db: DBDep,
    ticket_id: int | None = None,
    status_: WorkOrderStatusEnum | None = Query(default=None, alias="status"),
    type_: WorkOrderTypeEnum | None = Query(default=None, alias="type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await work_orders.list_work_orders(
        db, ticket_id=ticket_id, status=status_, type=type_, limit=limit, offset=offset,
    )


@router.patch("/{work_order_id}/status", response_model=WorkOrderOut)
async def update_work_order_status(
    work_order_id: int,
    payload: WorkOrderStatusUpdate,
    request: Request,
    db: DBDep,
    current: CurrentUser,
):
    wo = await work_orders.transition_work_order(db, work_order_id, payload, current)
    logger.info(
        "work_order_status_changed",
        extra={**log_extra(request), "work_order_id": wo.id, "to": wo.status.value},
    )
    return wo


@router.patch("/{work_order_id}/asset-condition", response_model=WorkOrderOut)
async def change_asset_condition(
    work_order_id: int,
    payload: AssetConditionUpdate,
    db: DBDep,
    current: CurrentUser,
):
    return await work_orders.change_asset_condition(db, work_order_id, payload.asset_condition_change, current)

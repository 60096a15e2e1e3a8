"""
Work orders service (закупівлі для repair-тікета)

State machine:
    requested      -> in_procurement | unsuccessful
    in_procurement -> completed | unsuccessful
    completed, unsuccessful: термінальні

Тікет чекає в on_hold, доки всі work orders не завершаться (aggregate_readiness).
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    AssetConditionEnum,
    RepairStatusEnum,
    RepairTicket,
    RoleEnum,
    User,
    WorkOrder,
    WorkOrderStatusEnum,
    WorkOrderTypeEnum,
    utcnow,
)
from app.schemas.work_orders import WorkOrderCreate, WorkOrderStatusUpdate
from app.services import notifications
from app.services.diagnosis import permitted_work_order_types
from app.services.errors import (
    Forbidden,
    InvalidTransition,
    PreconditionFailed,
    ValidationError,
    WorkflowError,
)
from app.services.queries import get_repair_ticket, get_work_order_for_update
from app.services.timeline import actor_label, record_ticket_event, record_work_order_event

log = logging.getLogger(__name__)

S = WorkOrderStatusEnum

WORK_ORDER_TRANSITIONS: dict[WorkOrderStatusEnum, set[WorkOrderStatusEnum]] = {
    S.requested: {S.in_procurement, S.unsuccessful},
    S.in_procurement: {S.completed, S.unsuccessful},
    S.completed: set(),
    S.unsuccessful: set(),
}

del S

RESOLVED = frozenset({WorkOrderStatusEnum.completed, WorkOrderStatusEnum.unsuccessful})
OPEN_TICKET_STATUSES = frozenset({RepairStatusEnum.in_progress, RepairStatusEnum.on_hold})
PROCUREMENT_ROLES = frozenset({RoleEnum.procurement_admin, RoleEnum.super_admin})
# стан активу (BMN) змінюють лише vendor/sparepart
CONDITION_TYPES = frozenset({WorkOrderTypeEnum.vendor, WorkOrderTypeEnum.sparepart})


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def aggregate_readiness(work_orders: Iterable[WorkOrder]) -> bool:
    """True, якщо кожен work order completed або unsuccessful (порожній список теж)."""
    return all(wo.status in RESOLVED for wo in work_orders)


def can_transition(src: WorkOrderStatusEnum, dst: WorkOrderStatusEnum) -> bool:
    return dst in WORK_ORDER_TRANSITIONS.get(src, set())


def creation_blocker(
    ticket: RepairTicket,
    wo_type: Optional[WorkOrderTypeEnum] = None,
) -> Optional[WorkflowError]:
    kw = {"entity": "ticket", "entity_id": ticket.id}
    if ticket.status not in OPEN_TICKET_STATUSES:
        return PreconditionFailed(
            f"work orders cannot be created while ticket is '{_enum_key(ticket.status)}'", **kw
        )
    if ticket.diagnosis is None:
        return PreconditionFailed("diagnosis is required before creating work orders", **kw)
    permitted = permitted_work_order_types(ticket.diagnosis)
    if not permitted:
        return PreconditionFailed(
            f"repair type '{_enum_key(ticket.diagnosis.repair_type)}' does not use work orders", **kw
        )
    if wo_type is not None and wo_type not in permitted:
        return PreconditionFailed(
            f"work order type '{_enum_key(wo_type)}' is not permitted by the diagnosis", **kw
        )
    return None


def _payload_fields(data: WorkOrderCreate) -> dict:
    """Поля, специфічні для типу; решту ігноруємо."""
    kw = {"entity": "work_order"}
    if data.type is WorkOrderTypeEnum.sparepart:
        if not data.items:
            raise ValidationError("at least one sparepart item is required", field="items", **kw)
        return {"items": [item.model_dump() for item in data.items]}
    if data.type is WorkOrderTypeEnum.vendor:
        if _blank(data.description):
            raise ValidationError("description is required for vendor work orders", field="description", **kw)
        return {
            "vendor_name": data.vendor_name,
            "vendor_contact": data.vendor_contact,
            "description": data.description,
        }
    if _blank(data.license_name):
        raise ValidationError("license_name is required for license work orders", field="license_name", **kw)
    return {"license_name": data.license_name, "description": data.description}


async def _procurement_admin_ids(db: AsyncSession) -> list[int]:
    rows = await db.execute(
        select(User.id)
        .where(User.role == RoleEnum.procurement_admin, User.is_active.is_(True))
        .order_by(User.id)
    )
    return list(rows.scalars().all())


# ==== Операції ====


async def create_work_order(db: AsyncSession, data: WorkOrderCreate, actor: User) -> WorkOrder:
    ticket = await get_repair_ticket(db, data.ticket_id, lock=True)
    if actor.id != ticket.assignee_id:
        raise Forbidden("only the assigned technician can create work orders",
                        entity="ticket", entity_id=ticket.id)
    blocker = creation_blocker(ticket, data.type)
    if blocker is not None:
        raise blocker
    fields = _payload_fields(data)

    wo = WorkOrder(
        ticket=ticket,
        type=data.type,
        status=WorkOrderStatusEnum.requested,
        created_by_id=actor.id,
        events=[],
        **fields,
    )
    db.add(wo)
    await db.flush()
    record_work_order_event(wo, actor=actor, action="created", to_status=wo.status)

    # кожен новий work order скидає ручне підтвердження готовності
    ticket.work_orders_ready = False
    if ticket.status is RepairStatusEnum.in_progress:
        record_ticket_event(
            ticket, actor=actor, action="on_hold",
            details="waiting for work orders",
            from_status=ticket.status, to_status=RepairStatusEnum.on_hold,
        )
        ticket.status = RepairStatusEnum.on_hold
    record_ticket_event(
        ticket, actor=actor, action="work_order_created",
        details=f"{_enum_key(wo.type)} work order #{wo.id}",
        payload={"work_order_id": wo.id, "type": _enum_key(wo.type)},
    )

    recipients = await _procurement_admin_ids(db)
    await db.commit()
    log.info("work_order_created", extra={"work_order_id": wo.id, "ticket_id": ticket.id, "type": _enum_key(wo.type)})

    notifications.notify_many(
        recipients,
        f"New {_enum_key(wo.type)} work order",
        f"Ticket {ticket.ticket_number} needs procurement (work order #{wo.id}).",
    )
    return wo


async def transition_work_order(
    db: AsyncSession,
    work_order_id: int,
    data: WorkOrderStatusUpdate,
    actor: User,
) -> WorkOrder:
    ticket, wo = await get_work_order_for_update(db, work_order_id)
    kw = {"entity": "work_order", "entity_id": wo.id}

    if actor.role not in PROCUREMENT_ROLES:
        raise Forbidden("only procurement admins can update work orders", **kw)
    if not can_transition(wo.status, data.status):
        raise InvalidTransition(
            f"work order cannot move from '{_enum_key(wo.status)}' to '{_enum_key(data.status)}'",
            status=_enum_key(wo.status), action=_enum_key(data.status), **kw,
        )
    if data.status is WorkOrderStatusEnum.unsuccessful and _blank(data.failure_reason):
        raise ValidationError("failure_reason is required", field="failure_reason", **kw)
    if data.asset_condition_change is not None:
        if data.status is not WorkOrderStatusEnum.completed:
            raise ValidationError("asset condition can only be set on completion",
                                  field="asset_condition_change", **kw)
        if wo.type not in CONDITION_TYPES:
            raise ValidationError(f"{_enum_key(wo.type)} work orders do not change asset condition",
                                  field="asset_condition_change", **kw)

    # vendor уточнюється по ходу закупівлі
    if wo.type is WorkOrderTypeEnum.vendor:
        if data.vendor_name is not None:
            wo.vendor_name = data.vendor_name
        if data.vendor_contact is not None:
            wo.vendor_contact = data.vendor_contact
        if data.description is not None:
            wo.description = data.description

    old = wo.status
    wo.status = data.status
    if data.status is WorkOrderStatusEnum.completed:
        wo.completed_at = utcnow()
        wo.completed_by_id = actor.id
        wo.completed_by_name = actor_label(actor)
        wo.completion_notes = data.completion_notes
        wo.asset_condition_change = data.asset_condition_change
    elif data.status is WorkOrderStatusEnum.unsuccessful:
        wo.failure_reason = data.failure_reason

    details = data.failure_reason if data.status is WorkOrderStatusEnum.unsuccessful else data.completion_notes
    record_work_order_event(wo, actor=actor, action="status_changed", details=details,
                            from_status=old, to_status=wo.status)
    record_ticket_event(
        ticket, actor=actor, action="work_order_updated",
        details=f"work order #{wo.id}: {_enum_key(old)} -> {_enum_key(wo.status)}",
        payload={"work_order_id": wo.id, "status": _enum_key(wo.status)},
    )
    await db.commit()
    log.info("work_order_status_changed", extra={"work_order_id": wo.id, "from": _enum_key(old), "to": _enum_key(wo.status)})

    notifications.notify(
        ticket.assignee_id,
        f"Work order #{wo.id} {_enum_key(wo.status)}",
        f"Ticket {ticket.ticket_number}: work order is now {_enum_key(wo.status)}.",
        "warning" if wo.status is WorkOrderStatusEnum.unsuccessful else "info",
    )
    return wo


async def change_asset_condition(
    db: AsyncSession,
    work_order_id: int,
    condition: AssetConditionEnum,
    actor: User,
) -> WorkOrder:
    """Одноразове уточнення стану активу після завершення work order."""
    ticket, wo = await get_work_order_for_update(db, work_order_id)
    kw = {"entity": "work_order", "entity_id": wo.id}

    if actor.id != ticket.assignee_id and actor.role not in PROCUREMENT_ROLES:
        raise Forbidden("not allowed to change asset condition", **kw)
    if wo.type not in CONDITION_TYPES:
        raise PreconditionFailed(f"{_enum_key(wo.type)} work orders do not change asset condition", **kw)
    if wo.status is not WorkOrderStatusEnum.completed:
        raise PreconditionFailed("work order is not completed", **kw)
    if wo.asset_condition_change is not None:
        raise PreconditionFailed("asset condition was already changed", **kw)

    wo.asset_condition_change = condition
    record_work_order_event(wo, actor=actor, action="asset_condition_changed", details=_enum_key(condition))
    record_ticket_event(
        ticket, actor=actor, action="asset_condition_changed",
        details=f"work order #{wo.id}: {_enum_key(condition)}",
        payload={"work_order_id": wo.id, "condition": _enum_key(condition)},
    )
    await db.commit()
    return wo


async def list_work_orders(
    db: AsyncSession,
    *,
    ticket_id: int | None = None,
    status: WorkOrderStatusEnum | None = None,
    type: WorkOrderTypeEnum | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[WorkOrder]:
    q = select(WorkOrder)
    if ticket_id is not None:
        await get_repair_ticket(db, ticket_id)
        q = q.where(WorkOrder.ticket_id == ticket_id)
    if status is not None:
        q = q.where(WorkOrder.status == status)
    if type is not None:
        q = q.where(WorkOrder.type == type)
    q = q.order_by(WorkOrder.created_at, WorkOrder.id).limit(limit).offset(offset)
    return list((await db.execute(q)).scalars().all())

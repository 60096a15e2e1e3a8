"""
Maintenance ledger (Kartu Kendali)

Проекція лише для читання: repair-тікети одного активу, їхні timeline
і work orders. Нічого не пишемо і не флашимо. Порядок скрізь (created_at, id),
тож повторний виклик на тих самих даних дає байт-в-байт той самий JSON.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    RepairStatusEnum,
    RepairTicket,
    WorkOrder,
    WorkOrderStatusEnum,
    WorkOrderTypeEnum,
    as_utc,
)
from app.schemas.ledger import (
    LedgerConditionChange,
    LedgerEntry,
    LedgerLicense,
    LedgerSparepart,
    LedgerTicket,
    LedgerVendor,
    LedgerWorkOrderRef,
    MaintenanceLedger,
)
from app.services.timeline import actor_label

PENDING = frozenset({WorkOrderStatusEnum.requested, WorkOrderStatusEnum.in_procurement})


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def _technician_name(ticket: RepairTicket) -> Optional[str]:
    if ticket.diagnosis is not None and ticket.diagnosis.technician is not None:
        return actor_label(ticket.diagnosis.technician)
    return actor_label(ticket.assignee)


def closed_at(ticket: RepairTicket) -> Optional[datetime]:
    """Час останнього переходу в closed; None, якщо тікет зараз не закритий."""
    if ticket.status is not RepairStatusEnum.closed:
        return None
    closes = [ev for ev in ticket.events if ev.to_status == RepairStatusEnum.closed.value]
    if not closes:
        return None
    last = max(closes, key=lambda ev: (as_utc(ev.created_at), ev.id))
    return as_utc(last.created_at)


def _wo_ref(wo: WorkOrder, ticket: RepairTicket) -> LedgerWorkOrderRef:
    return LedgerWorkOrderRef(
        work_order_id=wo.id,
        ticket_number=ticket.ticket_number,
        type=_enum_key(wo.type),
        status=_enum_key(wo.status),
        created_at=as_utc(wo.created_at),
        failure_reason=wo.failure_reason,
    )


def _condition_changed_at(wo: WorkOrder) -> Optional[datetime]:
    for ev in sorted(wo.events, key=lambda e: (as_utc(e.created_at), e.id), reverse=True):
        if ev.action == "asset_condition_changed":
            return as_utc(ev.created_at)
    return _utc(wo.completed_at)


def assemble_ledger(
    asset_code: str,
    tickets: list[RepairTicket],
    asset_nup: Optional[str] = None,
) -> MaintenanceLedger:
    """Чиста функція: ті самі тікети -> той самий ledger."""
    tickets = sorted(tickets, key=lambda t: (as_utc(t.created_at), t.id))
    ledger = MaintenanceLedger(asset_code=asset_code, asset_nup=asset_nup)

    for ticket in tickets:
        if ledger.asset_nup is None and ticket.asset_nup:
            ledger.asset_nup = ticket.asset_nup
        if ticket.asset_location:
            ledger.asset_location = ticket.asset_location

        tech = _technician_name(ticket)
        diagnosis = ticket.diagnosis
        ticket_closed_at = closed_at(ticket)
        ledger.related_tickets.append(LedgerTicket(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            status=_enum_key(ticket.status),
            created_at=as_utc(ticket.created_at),
            closed_at=ticket_closed_at,
            technician_name=tech,
            problem_category=_enum_key(diagnosis.problem_category) if diagnosis else None,
            problem_description=diagnosis.problem_description if diagnosis else None,
            repair_type=_enum_key(diagnosis.repair_type) if diagnosis else None,
        ))
        ledger.entries.append(LedgerEntry(
            date=as_utc(ticket.created_at),
            kind="ticket_created",
            ticket_number=ticket.ticket_number,
            created_by=actor_label(ticket.requester),
            remarks=ticket.title,
        ))
        if ticket_closed_at is not None:
            ledger.entries.append(LedgerEntry(
                date=ticket_closed_at,
                kind="ticket_closed",
                ticket_number=ticket.ticket_number,
                created_by=tech,
                remarks=diagnosis.repair_description if diagnosis else None,
            ))

        for wo in sorted(ticket.work_orders, key=lambda w: (as_utc(w.created_at), w.id)):
            ledger.total_work_orders += 1
            if wo.status in PENDING:
                ledger.pending_work_orders.append(_wo_ref(wo, ticket))
                continue
            if wo.status is WorkOrderStatusEnum.unsuccessful:
                ledger.unsuccessful_work_orders.append(_wo_ref(wo, ticket))
                continue

            ledger.completed_work_orders += 1
            done_at = _utc(wo.completed_at)
            if done_at is not None and (ledger.last_completed_at is None or done_at > ledger.last_completed_at):
                ledger.last_completed_at = done_at
            common = {
                "work_order_id": wo.id,
                "ticket_number": ticket.ticket_number,
                "completed_at": done_at,
                "technician_name": tech,
                "notes": wo.completion_notes,
            }
            if wo.type is WorkOrderTypeEnum.sparepart:
                for item in wo.items or []:
                    ledger.spareparts.append(LedgerSparepart(
                        name=item["name"], quantity=item["quantity"], unit=item["unit"], **common,
                    ))
            elif wo.type is WorkOrderTypeEnum.vendor:
                ledger.vendors.append(LedgerVendor(
                    vendor_name=wo.vendor_name,
                    vendor_contact=wo.vendor_contact,
                    description=wo.description,
                    **common,
                ))
            else:
                ledger.licenses.append(LedgerLicense(
                    license_name=wo.license_name, description=wo.description, **common,
                ))

            if wo.asset_condition_change is not None:
                ledger.asset_condition_changes.append(LedgerConditionChange(
                    work_order_id=wo.id,
                    ticket_number=ticket.ticket_number,
                    condition=_enum_key(wo.asset_condition_change),
                    changed_at=_condition_changed_at(wo),
                ))
            if done_at is not None:
                ledger.entries.append(LedgerEntry(
                    date=done_at,
                    kind="work_order_completed",
                    ticket_number=ticket.ticket_number,
                    work_order_id=wo.id,
                    work_order_type=_enum_key(wo.type),
                    created_by=wo.completed_by_name or tech,
                    remarks=wo.completion_notes,
                ))

    # відхилені тікети не є обслуговуванням
    ledger.maintenance_count = sum(1 for t in tickets if t.status is not RepairStatusEnum.rejected)
    ledger.pending_count = len(ledger.pending_work_orders)
    ledger.unsuccessful_count = len(ledger.unsuccessful_work_orders)
    ledger.entries.sort(key=lambda e: (e.date, e.ticket_number, e.work_order_id or 0, e.kind))
    return ledger


async def build_ledger(db: AsyncSession, asset_code: str, asset_nup: Optional[str] = None) -> MaintenanceLedger:
    q = select(RepairTicket).where(RepairTicket.asset_code == asset_code)
    if asset_nup is not None:
        q = q.where(RepairTicket.asset_nup == asset_nup)
    q = q.order_by(RepairTicket.created_at, RepairTicket.id)

    with db.no_autoflush:
        tickets = list((await db.execute(q)).scalars().all())
    return assemble_ledger(asset_code, tickets, asset_nup)

# app/services/queries.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import RepairTicket, Ticket, WorkOrder
from app.services.errors import NotFound


def ticket_query(ticket_id: int, *, lock: bool = False):
    q = select(Ticket).where(Ticket.id == ticket_id)
    if lock:
        # FOR UPDATE OF tickets: серіалізує всі мутації одного тікета;
        # populate_existing перечитує стан, навіть якщо об'єкт уже в identity map
        q = q.with_for_update(of=Ticket.__table__).execution_options(populate_existing=True)
    return q


async def get_ticket(db: AsyncSession, ticket_id: int, *, lock: bool = False) -> Ticket:
    ticket = (await db.execute(ticket_query(ticket_id, lock=lock))).scalar_one_or_none()
    if ticket is None:
        raise NotFound("Ticket not found", entity="ticket", entity_id=ticket_id)
    return ticket


async def get_repair_ticket(db: AsyncSession, ticket_id: int, *, lock: bool = False) -> RepairTicket:
    ticket = await get_ticket(db, ticket_id, lock=lock)
    if not isinstance(ticket, RepairTicket):
        raise NotFound("Repair ticket not found", entity="repair_ticket", entity_id=ticket_id)
    return ticket


async def get_work_order_for_update(db: AsyncSession, work_order_id: int) -> tuple[RepairTicket, WorkOrder]:
    """
    Work order мутуємо під блокуванням батьківського тікета,
    тож спершу дізнаємось ticket_id, а потім беремо lock.
    """
    ticket_id = (
        await db.execute(select(WorkOrder.ticket_id).where(WorkOrder.id == work_order_id))
    ).scalar_one_or_none()
    if ticket_id is None:
        raise NotFound("Work order not found", entity="work_order", entity_id=work_order_id)

    ticket = await get_repair_ticket(db, ticket_id, lock=True)
    for wo in ticket.work_orders:
        if wo.id == work_order_id:
            return ticket, wo
    raise NotFound("Work order not found", entity="work_order", entity_id=work_order_id)


"""
Timeline helpers.

Події лише додаються (див. _append_only у моделях). created_at ставимо явно,
щоб порядок у відповіді не залежав від server_default.
"""
from __future__ import annotations

from typing import Any, Optional

from app.db.models import Ticket, TicketEvent, User, WorkOrder, WorkOrderEvent, utcnow


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


def actor_label(user: Optional[User]) -> Optional[str]:
    if user is None:
        return None
    return user.name or user.email


def touch(ticket: Ticket) -> None:
    ticket.updated_at = utcnow()


def record_ticket_event(
    ticket: Ticket,
    *,
    actor: Optional[User],
    action: str,
    details: Optional[str] = None,
    from_status: Any = None,
    to_status: Any = None,
    payload: Optional[dict[str, Any]] = None,
) -> TicketEvent:
    ev = TicketEvent(
        created_at=utcnow(),
        actor_id=actor.id if actor else None,
        actor_name=actor_label(actor),
        action=action,
        details=details,
        from_status=_enum_key(from_status),
        to_status=_enum_key(to_status),
        payload=payload,
    )
    ticket.events.append(ev)
    touch(ticket)
    return ev


def record_work_order_event(
    work_order: WorkOrder,
    *,
    actor: Optional[User],
    action: str,
    details: Optional[str] = None,
    from_status: Any = None,
    to_status: Any = None,
) -> WorkOrderEvent:
    ev = WorkOrderEvent(
        created_at=utcnow(),
        actor_id=actor.id if actor else None,
        actor_name=actor_label(actor),
        action=action,
        details=details,
        from_status=_enum_key(from_status),
        to_status=_enum_key(to_status),
    )
    work_order.events.append(ev)
    return ev

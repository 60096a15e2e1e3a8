"""
Workflow service: транзакційні операції над тікетами.

Кожна мутація:
  1) бере lock на рядок тікета (SELECT ... FOR UPDATE OF tickets);
  2) перевіряє дію проти щойно прочитаного стану (app.services.tickets);
  3) валідує payload, і лише потім змінює об'єкти;
  4) пише подію в timeline і комітить;
  5) після commit кладе сповіщення в чергу.

Сервіс не робить rollback сам: власник сесії (get_session / тест) її закриває.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.models import (
    Attachment,
    BookingStatusEnum,
    BookingTicket,
    RepairStatusEnum,
    RepairTicket,
    RoleEnum,
    Ticket,
    TicketTypeEnum,
    User,
    utcnow,
)
from app.schemas.tickets import (
    AttachmentIn,
    BookingTicketCreate,
    FeedbackIn,
    RepairTicketCreate,
    TransitionRequest,
)
from app.services import availability, notifications
from app.services.availability import ConflictKind
from app.services.diagnosis import apply_diagnosis
from app.services.errors import (
    Forbidden,
    PreconditionFailed,
    ScheduleConflict,
    ScheduleWarning,
    ValidationError,
)
from app.services.queries import get_repair_ticket, get_ticket
from app.services.tickets import (
    AnyTicket,
    REASON_REQUIRED,
    TicketAction,
    ensure_allowed,
    is_admin,
)
from app.services.timeline import record_ticket_event

log = logging.getLogger(__name__)

MEETING_ID_RE = re.compile(r"/j/(\d+)")

# скільки разів пробуємо наступний номер, якщо паралельний запит зайняв наш
NUMBER_ATTEMPTS = 3


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


# ==== Нумерація ====


async def _next_ticket_number(db: AsyncSession, prefix: str, now: datetime) -> str:
    """PREFIX-YYYYMMDD-NNNN, лічильник окремий на день і префікс."""
    stem = f"{prefix}-{now:%Y%m%d}-"
    last = (
        await db.execute(
            select(func.max(Ticket.ticket_number)).where(Ticket.ticket_number.like(f"{stem}%"))
        )
    ).scalar_one_or_none()
    seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{stem}{seq:04d}"


async def _insert_numbered(db: AsyncSession, ticket: Ticket, prefix: str, now: datetime) -> None:
    """
    Вставка під savepoint: якщо паралельний запит уже закомітив той самий номер,
    unique-індекс відхилить insert, і ми беремо наступний замість 500.
    """
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        ticket.ticket_number = await _next_ticket_number(db, prefix, now)
        try:
            async with db.begin_nested():
                db.add(ticket)
            return
        except IntegrityError:
            if attempt == NUMBER_ATTEMPTS:
                raise
            log.warning("ticket_number_taken", extra={"ticket_number": ticket.ticket_number, "attempt": attempt})


def _attachments(items: list[AttachmentIn], now: datetime) -> list[Attachment]:
    return [
        Attachment(name=a.name, url=a.url, content_type=a.content_type, uploaded_at=now)
        for a in items
    ]


async def _admin_ids(db: AsyncSession) -> list[int]:
    rows = await db.execute(
        select(User.id)
        .where(User.role == RoleEnum.service_admin, User.is_active.is_(True))
        .order_by(User.id)
    )
    return list(rows.scalars().all())


# ==== Створення ====


async def create_repair_ticket(db: AsyncSession, actor: User, data: RepairTicketCreate) -> RepairTicket:
    now = utcnow()
    ticket = RepairTicket(
        title=data.title,
        description=data.description,
        severity=data.severity,
        asset_code=data.asset_code,
        asset_nup=data.asset_nup,
        asset_location=data.asset_location,
        status=RepairStatusEnum.submitted,
        work_orders_ready=False,
        requester_id=actor.id,
        requester=actor,
        assignee=None,
        diagnosis=None,
        work_orders=[],
        events=[],
        attachments=_attachments(data.attachments, now),
        created_at=now,
        updated_at=now,
    )
    record_ticket_event(ticket, actor=actor, action="created", to_status=ticket.status)
    await _insert_numbered(db, ticket, settings.repair_ticket_prefix, now)

    recipients = await _admin_ids(db)
    await db.commit()
    log.info("ticket_created", extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "type": "repair"})

    notifications.notify_many(
        recipients,
        "New repair ticket",
        f"{ticket.ticket_number}: {ticket.title}",
        "warning" if ticket.severity.value in ("high", "critical") else "info",
    )
    return ticket


async def create_booking_ticket(db: AsyncSession, actor: User, data: BookingTicketCreate) -> BookingTicket:
    start, end = availability.validate_interval(data.start_at, data.end_at)

    # lock ресурсу: два одночасні запити на той самий ресурс не пройдуть перевірку разом
    resource = await availability.get_resource(db, data.resource_id, lock=True)
    if not resource.is_active:
        raise PreconditionFailed("resource is not active", entity="resource", entity_id=resource.id)
    if resource.capacity is not None and data.participants > resource.capacity:
        raise ValidationError(
            f"participants exceed resource capacity ({resource.capacity})",
            entity="booking", field="participants",
        )

    conflict = await availability.check_conflict(db, resource.id, start, end)
    if conflict.kind is ConflictKind.hard:
        raise ScheduleConflict(
            f"resource is already booked by {conflict.event.ticket_number}",
            event=conflict.event.to_dict(), entity="resource", entity_id=resource.id,
        )
    if conflict.kind is ConflictKind.soft and not data.override:
        raise ScheduleWarning(
            f"{conflict.event.ticket_number} is pending review for an overlapping interval",
            event=conflict.event.to_dict(), entity="resource", entity_id=resource.id,
        )

    now = utcnow()
    ticket = BookingTicket(
        title=data.title,
        description=data.description,
        status=BookingStatusEnum.pending_review,
        resource_id=resource.id,
        resource=resource,
        start_at=start,
        end_at=end,
        participants=data.participants,
        breakout_rooms=data.breakout_rooms,
        co_hosts=[c.model_dump(mode="json") for c in data.co_hosts],
        requester_id=actor.id,
        requester=actor,
        assignee=None,
        events=[],
        attachments=_attachments(data.attachments, now),
        created_at=now,
        updated_at=now,
    )
    payload = None
    if conflict.kind is ConflictKind.soft:
        payload = {"override": True, "conflict": conflict.event.to_dict()}
    record_ticket_event(ticket, actor=actor, action="created", to_status=ticket.status, payload=payload)
    await _insert_numbered(db, ticket, settings.booking_ticket_prefix, now)

    recipients = await _admin_ids(db)
    await db.commit()
    log.info("ticket_created", extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "type": "booking"})

    notifications.notify_many(recipients, "New booking request", f"{ticket.ticket_number}: {resource.name}")
    return ticket


# ==== Переходи ====


@dataclass
class _Effect:
    details: Optional[str] = None
    payload: Optional[dict] = None
    # (user_id, title, message)
    notify: list[tuple[Optional[int], str, str]] = field(default_factory=list)


Handler = Callable[[AsyncSession, AnyTicket, TransitionRequest, User], Awaitable[_Effect]]


async def _assign(db: AsyncSession, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    if req.assignee_id is None:
        raise ValidationError("assignee_id is required", entity="ticket", entity_id=ticket.id, field="assignee_id")
    assignee = await db.get(User, req.assignee_id)
    if assignee is None or not assignee.is_active or assignee.role is not RoleEnum.technician:
        raise PreconditionFailed(
            "assignee must be an active technician",
            entity="user", entity_id=req.assignee_id, field="assignee_id",
        )
    ticket.assignee_id = assignee.id
    ticket.assignee = assignee
    return _Effect(
        details=f"assigned to {assignee.name}",
        payload={"assignee_id": assignee.id},
        notify=[
            (assignee.id, "Ticket assigned", f"{ticket.ticket_number} is assigned to you."),
            (ticket.requester_id, "Ticket assigned", f"{ticket.ticket_number} is assigned to {assignee.name}."),
        ],
    )


async def _start_work(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    return _Effect(
        details=req.notes,
        notify=[(ticket.requester_id, "Work started", f"{ticket.ticket_number} is in progress.")],
    )


async def _diagnose(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    if req.diagnosis is None:
        raise ValidationError("diagnosis is required", entity="ticket", entity_id=ticket.id, field="diagnosis")
    rediagnosis = ticket.diagnosis is not None
    diagnosis = apply_diagnosis(ticket, req.diagnosis, actor)
    db.add(diagnosis)
    repair_type = _enum_key(diagnosis.repair_type)
    return _Effect(
        details=f"{'re-diagnosed' if rediagnosis else 'diagnosed'}: {repair_type}",
        payload={"repair_type": repair_type, "problem_category": _enum_key(diagnosis.problem_category)},
    )


async def _request_procurement(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    ticket.work_orders_ready = False
    return _Effect(
        details=req.notes,
        notify=[(ticket.requester_id, "Waiting for procurement", f"{ticket.ticket_number} is on hold.")],
    )


async def _mark_ready(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    ticket.work_orders_ready = True
    return _Effect(details=req.notes)


async def _resume_work(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    return _Effect(
        details=req.notes,
        notify=[(ticket.requester_id, "Work resumed", f"{ticket.ticket_number} is in progress again.")],
    )


async def _close(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    return _Effect(
        details=req.notes,
        notify=[(ticket.requester_id, "Please confirm", f"{ticket.ticket_number} is done, please confirm.")],
    )


async def _confirm_close(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    return _Effect(
        details=req.notes,
        notify=[(ticket.assignee_id, "Ticket closed", f"{ticket.ticket_number} was confirmed by the requester.")],
    )


async def _reopen(db, ticket: RepairTicket, req: TransitionRequest, actor: User) -> _Effect:
    return _Effect(
        details=req.reason,
        notify=[(ticket.assignee_id, "Ticket reopened", f"{ticket.ticket_number}: {req.reason}")],
    )


async def _reject(db, ticket: AnyTicket, req: TransitionRequest, actor: User) -> _Effect:
    ticket.rejection_reason = req.reason
    return _Effect(
        details=req.reason,
        notify=[(ticket.requester_id, "Ticket rejected", f"{ticket.ticket_number}: {req.reason}")],
    )


def extract_meeting_id(link: str) -> Optional[str]:
    m = MEETING_ID_RE.search(link)
    return m.group(1) if m else None


async def _approve(db: AsyncSession, ticket: BookingTicket, req: TransitionRequest, actor: User) -> _Effect:
    kw = {"entity": "ticket", "entity_id": ticket.id}
    creds = req.credentials
    if creds is None:
        raise ValidationError("meeting credentials are required", field="credentials", **kw)
    meeting_id = creds.meeting_id or extract_meeting_id(creds.meeting_link)
    if not meeting_id:
        raise ValidationError("meeting_id is required when the link does not contain it", field="meeting_id", **kw)

    # повторна перевірка під lock ресурсу: поки заявка чекала, інша могла бути погоджена
    await availability.get_resource(db, ticket.resource_id, lock=True)
    conflict = await availability.check_conflict(
        db, ticket.resource_id, ticket.start_at, ticket.end_at, exclude_ticket_id=ticket.id,
    )
    if conflict.kind is ConflictKind.hard:
        raise ScheduleConflict(
            f"resource is already booked by {conflict.event.ticket_number}",
            event=conflict.event.to_dict(), **kw,
        )

    ticket.meeting_link = creds.meeting_link
    ticket.meeting_id = meeting_id
    ticket.passcode = creds.passcode
    ticket.host_key = creds.host_key
    return _Effect(
        details=req.notes,
        payload={"meeting_id": meeting_id},
        notify=[(ticket.requester_id, "Booking approved", f"{ticket.ticket_number} is approved.")],
    )


async def _cancel(db, ticket: BookingTicket, req: TransitionRequest, actor: User) -> _Effect:
    recipient = ticket.requester_id if actor.id != ticket.requester_id else None
    return _Effect(
        details=req.reason,
        notify=[(recipient, "Booking cancelled", f"{ticket.ticket_number} was cancelled.")],
    )


_HANDLERS: dict[TicketAction, Handler] = {
    TicketAction.assign: _assign,
    TicketAction.start_work: _start_work,
    TicketAction.diagnose: _diagnose,
    TicketAction.request_procurement: _request_procurement,
    TicketAction.mark_ready: _mark_ready,
    TicketAction.resume_work: _resume_work,
    TicketAction.close: _close,
    TicketAction.confirm_close: _confirm_close,
    TicketAction.reopen: _reopen,
    TicketAction.reject: _reject,
    TicketAction.approve: _approve,
    TicketAction.cancel: _cancel,
}


async def transition(db: AsyncSession, ticket_id: int, req: TransitionRequest, actor: User) -> AnyTicket:
    """Єдиний шлях зміни статусу тікета."""
    ticket = await get_ticket(db, ticket_id, lock=True)
    action = req.action
    target = ensure_allowed(ticket, action, actor)

    if action in REASON_REQUIRED and _blank(req.reason):
        raise ValidationError(
            f"reason is required for '{action.value}'", entity="ticket", entity_id=ticket.id, field="reason",
        )

    effect = await _HANDLERS[action](db, ticket, req, actor)

    old = ticket.status
    ticket.status = target
    record_ticket_event(
        ticket, actor=actor, action=action.value,
        details=effect.details, from_status=old, to_status=target, payload=effect.payload,
    )
    await db.commit()
    log.info(
        "status_changed",
        extra={"ticket_id": ticket.id, "action": action.value, "from": _enum_key(old), "to": _enum_key(target)},
    )

    for user_id, title, message in effect.notify:
        notifications.notify(user_id, title, message)
    return ticket


# ==== Коментарі, відгук ====


def _can_view(ticket: Ticket, user: User) -> bool:
    if user.role is RoleEnum.employee:
        return ticket.requester_id == user.id
    return True


async def add_comment(db: AsyncSession, ticket_id: int, actor: User, body: str):
    ticket = await get_ticket(db, ticket_id, lock=True)
    if not _can_view(ticket, actor):
        raise Forbidden("Forbidden", entity="ticket", entity_id=ticket.id)
    if _blank(body):
        raise ValidationError("comment body is empty", entity="comment", field="body")

    ev = record_ticket_event(ticket, actor=actor, action="comment", details=body.strip())
    await db.commit()

    # сповіщаємо "іншу сторону" розмови
    recipient = ticket.assignee_id if actor.id == ticket.requester_id else ticket.requester_id
    if recipient != actor.id:
        notifications.notify(recipient, "New comment", f"{ticket.ticket_number}: new comment")
    return ev


async def submit_feedback(db: AsyncSession, ticket_id: int, actor: User, data: FeedbackIn) -> RepairTicket:
    ticket = await get_repair_ticket(db, ticket_id, lock=True)
    kw = {"entity": "ticket", "entity_id": ticket.id}
    if actor.id != ticket.requester_id:
        raise Forbidden("only the requester can leave feedback", **kw)
    if ticket.status is not RepairStatusEnum.closed:
        raise PreconditionFailed("feedback is accepted only for closed tickets", **kw)
    if ticket.feedback_rating is not None:
        raise PreconditionFailed("feedback was already submitted", **kw)

    ticket.feedback_rating = data.rating
    ticket.feedback_text = data.text
    record_ticket_event(
        ticket, actor=actor, action="feedback",
        details=data.text, payload={"rating": data.rating},
    )
    await db.commit()
    notifications.notify(ticket.assignee_id, "Feedback received", f"{ticket.ticket_number}: {data.rating}/5")
    return ticket


# ==== Читання ====


async def get_ticket_for(db: AsyncSession, ticket_id: int, user: User) -> AnyTicket:
    ticket = await get_ticket(db, ticket_id)
    if not _can_view(ticket, user):
        raise Forbidden("Forbidden", entity="ticket", entity_id=ticket.id)
    return ticket


async def list_tickets(
    db: AsyncSession,
    user: User,
    *,
    type_: TicketTypeEnum | None = None,
    status: str | None = None,
    assignee_id: int | None = None,
    requester_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AnyTicket]:
    q = select(Ticket)
    if user.role is RoleEnum.employee:
        q = q.where(Ticket.requester_id == user.id)
    elif requester_id is not None:
        q = q.where(Ticket.requester_id == requester_id)
    if type_ is not None:
        q = q.where(Ticket.type == type_)
    if assignee_id is not None:
        q = q.where(Ticket.assignee_id == assignee_id)

    if status is not None:
        # статус живе в таблиці варіанта, фільтруємо через підзапити
        conds = []
        repair_t, booking_t = RepairTicket.__table__, BookingTicket.__table__
        if type_ in (None, TicketTypeEnum.repair) and status in RepairStatusEnum.__members__:
            conds.append(Ticket.id.in_(select(repair_t.c.id).where(repair_t.c.status == RepairStatusEnum[status])))
        if type_ in (None, TicketTypeEnum.booking) and status in BookingStatusEnum.__members__:
            conds.append(Ticket.id.in_(select(booking_t.c.id).where(booking_t.c.status == BookingStatusEnum[status])))
        if not conds:
            return []
        q = q.where(or_(*conds))

    q = q.order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(limit).offset(offset)
    return list((await db.execute(q)).scalars().all())

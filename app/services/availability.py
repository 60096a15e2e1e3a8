"""
Resource availability service (бронювання ресурсів)

Перетин напіввідкритих інтервалів [s1, e1) і [s2, e2): s1 < e2 AND s2 < e1.
Суміжні інтервали (10:00-11:00 і 11:00-12:00) не конфліктують.

Політика:
  - перетин із бронюванням у статусі з HARD_BLOCK_STATUSES → жорсткий конфлікт;
  - перетин із будь-яким іншим нетермінальним (pending) → м'який конфлікт,
    заявник може подати повторно з override.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import BookingTicket, Resource, as_utc
from app.services.errors import NotFound, ValidationError

# рядки, а не BookingStatusEnum: календар спільний з іншими типами заявок,
# у яких свої статуси (assigned, resolved, ...)
TERMINAL_STATUSES = frozenset({"rejected", "cancelled", "closed_unrepairable"})
HARD_BLOCK_STATUSES = frozenset({"approved", "assigned", "in_progress", "completed", "resolved", "closed"})


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


@dataclass(frozen=True)
class BookingEvent:
    ticket_id: int
    ticket_number: str
    title: str
    start: datetime
    end: datetime
    status: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "ticket_number": self.ticket_number,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "status": self.status,
        }


class ConflictKind(str, enum.Enum):
    clear = "clear"
    soft = "soft"
    hard = "hard"


@dataclass(frozen=True)
class ConflictResult:
    kind: ConflictKind
    event: Optional[BookingEvent] = None

    @property
    def is_clear(self) -> bool:
        return self.kind is ConflictKind.clear


CLEAR = ConflictResult(ConflictKind.clear)


def overlaps(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    return s1 < e2 and s2 < e1


def classify_conflict(
    events: Iterable[BookingEvent],
    start: datetime,
    end: datetime,
    *,
    exclude_ticket_id: int | None = None,
) -> ConflictResult:
    """
    Чиста функція. Перший жорсткий конфлікт (за часом початку, потім id) має
    пріоритет; інакше повертаємо перший м'який.
    """
    start, end = as_utc(start), as_utc(end)
    conflicts = sorted(
        (
            ev for ev in events
            if ev.ticket_id != exclude_ticket_id
            and ev.status not in TERMINAL_STATUSES
            and overlaps(start, end, ev.start, ev.end)
        ),
        key=lambda ev: (ev.start, ev.ticket_id),
    )
    for ev in conflicts:
        if ev.status in HARD_BLOCK_STATUSES:
            return ConflictResult(ConflictKind.hard, ev)
    if conflicts:
        return ConflictResult(ConflictKind.soft, conflicts[0])
    return CLEAR


def validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(start), as_utc(end)
    if end <= start:
        raise ValidationError("end must be after start", entity="booking", field="end_at")
    return start, end


def _events_query(resource_id: int):
    return (
        select(
            BookingTicket.id,
            BookingTicket.ticket_number,
            BookingTicket.title,
            BookingTicket.start_at,
            BookingTicket.end_at,
            BookingTicket.status,
        )
        .where(BookingTicket.resource_id == resource_id)
        .order_by(BookingTicket.start_at, BookingTicket.id)
    )


def _to_event(row) -> BookingEvent:
    return BookingEvent(
        ticket_id=row.id,
        ticket_number=row.ticket_number,
        title=row.title,
        start=as_utc(row.start_at),
        end=as_utc(row.end_at),
        status=str(_enum_key(row.status)),
    )


async def get_resource(db: AsyncSession, resource_id: int, *, lock: bool = False) -> Resource:
    q = select(Resource).where(Resource.id == resource_id)
    if lock:
        # серіалізує бронювання одного ресурсу: перевірка + insert в одній транзакції
        q = q.with_for_update()
    resource = (await db.execute(q)).scalar_one_or_none()
    if resource is None:
        raise NotFound("Resource not found", entity="resource", entity_id=resource_id)
    return resource


async def list_events(
    db: AsyncSession,
    resource_id: int,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[BookingEvent]:
    """Усі бронювання ресурсу (для календаря і перевірки конфліктів)."""
    q = _events_query(resource_id)
    if since is not None:
        q = q.where(BookingTicket.end_at > as_utc(since))
    if until is not None:
        q = q.where(BookingTicket.start_at < as_utc(until))
    rows = (await db.execute(q)).all()
    return [_to_event(r) for r in rows]


async def check_conflict(
    db: AsyncSession,
    resource_id: int,
    start: datetime,
    end: datetime,
    *,
    exclude_ticket_id: int | None = None,
) -> ConflictResult:
    start, end = validate_interval(start, end)
    # кандидати звужуємо в SQL, остаточно класифікуємо в classify_conflict
    events = await list_events(db, resource_id, since=start, until=end)
    return classify_conflict(events, start, end, exclude_ticket_id=exclude_ticket_id)

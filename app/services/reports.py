"""
Reports service

Агреговані зрізи по тікетах. Без збереження у таблицю snapshot,
рендер/друк звітів не наша справа.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    BookingStatusEnum,
    BookingTicket,
    RepairStatusEnum,
    RepairTicket,
    RoleEnum,
    User,
)

# "активне" навантаження техніка
ACTIVE_REPAIR_STATUSES = (
    RepairStatusEnum.assigned,
    RepairStatusEnum.in_progress,
    RepairStatusEnum.on_hold,
    RepairStatusEnum.waiting_for_submitter,
)


def _enum_key(v):
    # Повертаємо string-значення навіть якщо SQLAlchemy віддасть Enum-об'єкт
    return v.value if hasattr(v, "value") else v


async def ticket_counts(db: AsyncSession) -> Dict[str, Dict[str, int]]:
    """Кількість тікетів за статусом окремо для repair і booking (нулі теж)."""
    repair_rows = (await db.execute(
        select(RepairTicket.status, func.count(RepairTicket.id)).group_by(RepairTicket.status)
    )).all()
    booking_rows = (await db.execute(
        select(BookingTicket.status, func.count(BookingTicket.id)).group_by(BookingTicket.status)
    )).all()

    repair = {s.value: 0 for s in RepairStatusEnum}
    repair.update({_enum_key(s): int(c) for s, c in repair_rows})
    booking = {s.value: 0 for s in BookingStatusEnum}
    booking.update({_enum_key(s): int(c) for s, c in booking_rows})
    return {"repair": repair, "booking": booking}


async def technician_workload(db: AsyncSession) -> Dict[str, Any]:
    techs = (await db.execute(
        select(User)
        .where(User.role == RoleEnum.technician, User.is_active.is_(True))
        .order_by(User.name, User.id)
    )).scalars().all()

    rows = (await db.execute(
        select(RepairTicket.assignee_id, RepairTicket.status, func.count(RepairTicket.id))
        .where(RepairTicket.status.in_(ACTIVE_REPAIR_STATUSES), RepairTicket.assignee_id.is_not(None))
        .group_by(RepairTicket.assignee_id, RepairTicket.status)
    )).all()
    by_tech: Dict[int, Dict[str, int]] = {}
    for assignee_id, st, c in rows:
        by_tech.setdefault(assignee_id, {})[_enum_key(st)] = int(c)

    items: List[Dict[str, Any]] = []
    for tech in techs:
        counts = {s.value: by_tech.get(tech.id, {}).get(s.value, 0) for s in ACTIVE_REPAIR_STATUSES}
        items.append({
            "technician_id": tech.id,
            "name": tech.name,
            "email": tech.email,
            "by_status": counts,
            "total": sum(counts.values()),
        })

    return {
        "items": items,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }

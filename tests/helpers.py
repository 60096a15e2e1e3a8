# tests/helpers.py
from datetime import datetime, timezone

from app.schemas.tickets import (
    BookingTicketCreate,
    DiagnosisIn,
    MeetingCredentials,
    RepairTicketCreate,
    TransitionRequest,
)
from app.schemas.work_orders import SparepartItem, WorkOrderCreate
from app.services import work_orders, workflow


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


CREDENTIALS = MeetingCredentials(
    meeting_link="https://zoom.us/j/81234567890?pwd=abc",
    passcode="secret",
    host_key="123456",
)


def booking_request(resource_id: int, start: datetime, end: datetime, **kw) -> BookingTicketCreate:
    return BookingTicketCreate(
        title=kw.pop("title", "Weekly sync"),
        resource_id=resource_id,
        start_at=start,
        end_at=end,
        **kw,
    )


def act(action: str, **kw) -> TransitionRequest:
    return TransitionRequest(action=action, **kw)


def diagnosis(repair_type: str, **kw) -> DiagnosisIn:
    return DiagnosisIn(
        problem_category=kw.pop("problem_category", "hardware"),
        problem_description=kw.pop("problem_description", "disk failure"),
        repair_type=repair_type,
        **kw,
    )


async def in_progress_ticket(db, users, *, asset_code: str = "LAP-001", title: str = "Laptop does not boot"):
    """submitted -> assigned -> in_progress."""
    t = await workflow.create_repair_ticket(
        db, users.employee,
        RepairTicketCreate(title=title, description="black screen", asset_code=asset_code,
                           asset_nup="0001", asset_location="Room 101"),
    )
    await workflow.transition(db, t.id, act("assign", assignee_id=users.tech.id), users.admin)
    await workflow.transition(db, t.id, act("start_work"), users.tech)
    return t


async def on_hold_with_sparepart(db, users, **kw):
    """in_progress + need_sparepart + request_procurement + один sparepart work order."""
    t = await in_progress_ticket(db, users, **kw)
    await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("need_sparepart")), users.tech)
    await workflow.transition(db, t.id, act("request_procurement"), users.tech)
    wo = await work_orders.create_work_order(
        db,
        WorkOrderCreate(ticket_id=t.id, type="sparepart",
                        items=[SparepartItem(name="SSD 512GB", quantity=1, unit="pcs")]),
        users.tech,
    )
    return t, wo

import pytest

from app.db.models import RepairStatusEnum, RepairTypeEnum, User, WorkOrderStatusEnum
from app.schemas.tickets import FeedbackIn, RepairTicketCreate
from app.schemas.work_orders import SparepartItem, WorkOrderCreate, WorkOrderStatusUpdate
from app.services import queries, work_orders, workflow
from app.services.errors import (
    Forbidden,
    InvalidTransition,
    PreconditionFailed,
    ValidationError,
)
from app.services.tickets import REPAIR_TRANSITIONS, TicketAction

from tests.helpers import act, diagnosis, in_progress_ticket, on_hold_with_sparepart

pytestmark = pytest.mark.asyncio


def assert_valid_walk(ticket):
    """Кожна подія зі зміною статусу є ребром графа переходів."""
    status_events = [ev for ev in ticket.events if ev.to_status is not None and ev.action != "created"]
    previous = RepairStatusEnum.submitted.value
    for ev in status_events:
        assert ev.from_status == previous
        if ev.action in TicketAction.__members__:
            row = REPAIR_TRANSITIONS[RepairStatusEnum(ev.from_status)]
            assert row[TicketAction(ev.action)].value == ev.to_status
        else:
            # автоматичний on_hold при першому work order
            assert (ev.action, ev.from_status, ev.to_status) == ("on_hold", "in_progress", "on_hold")
        previous = ev.to_status


async def test_create_repair_ticket_numbers_and_timeline(db, users, sent):
    first = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Printer jam", description="paper stuck")
    )
    second = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Mouse", description="broken")
    )
    assert first.status is RepairStatusEnum.submitted
    assert first.ticket_number.startswith("REP-") and first.ticket_number.endswith("-0001")
    assert second.ticket_number.endswith("-0002")
    assert [ev.action for ev in first.events] == ["created"]
    # service admin отримує сповіщення про новий тікет
    assert any(p["user_id"] == users.admin.id for _, p in sent)


async def test_ticket_number_clash_takes_next_number(db, users, monkeypatch):
    first = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Printer jam", description="paper stuck")
    )
    real_next = workflow._next_ticket_number
    calls = []

    async def _stale_then_real(session, prefix, now):
        # перша спроба бачить номер, який паралельний запит уже закомітив
        calls.append(prefix)
        if len(calls) == 1:
            return first.ticket_number
        return await real_next(session, prefix, now)

    monkeypatch.setattr(workflow, "_next_ticket_number", _stale_then_real)
    second = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Mouse", description="broken")
    )
    assert len(calls) == 2
    assert second.ticket_number.endswith("-0002")
    assert [ev.action for ev in second.events] == ["created"]

    stored = await queries.get_ticket(db, second.id)
    assert stored.ticket_number == second.ticket_number


async def test_sparepart_scenario_ready_flag_gates_resume(db, users):
    t = await in_progress_ticket(db, users)
    assert t.status is RepairStatusEnum.in_progress

    await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("need_sparepart")), users.tech)
    t = await workflow.transition(db, t.id, act("request_procurement"), users.tech)
    assert t.status is RepairStatusEnum.on_hold
    assert t.work_orders_ready is False

    w1 = await work_orders.create_work_order(
        db,
        WorkOrderCreate(ticket_id=t.id, type="sparepart", items=[SparepartItem(name="RAM", quantity=2, unit="pcs")]),
        users.tech,
    )
    t = await queries.get_ticket(db, t.id)
    assert t.status is RepairStatusEnum.on_hold

    await work_orders.transition_work_order(db, w1.id, WorkOrderStatusUpdate(status="in_procurement"), users.procurement)
    w1 = await work_orders.transition_work_order(
        db, w1.id, WorkOrderStatusUpdate(status="completed", completion_notes="installed"), users.procurement
    )
    assert w1.status is WorkOrderStatusEnum.completed
    assert w1.completed_at is not None and w1.completed_by_name == "Procurement"

    with pytest.raises(PreconditionFailed):
        await workflow.transition(db, t.id, act("resume_work"), users.tech)

    t = await workflow.transition(db, t.id, act("mark_ready"), users.tech)
    assert t.status is RepairStatusEnum.on_hold and t.work_orders_ready is True

    t = await workflow.transition(db, t.id, act("resume_work"), users.tech)
    assert t.status is RepairStatusEnum.in_progress

    t = await workflow.transition(db, t.id, act("close"), users.tech)
    assert t.status is RepairStatusEnum.waiting_for_submitter
    t = await workflow.transition(db, t.id, act("confirm_close"), users.employee)
    assert t.status is RepairStatusEnum.closed

    assert_valid_walk(t)


async def test_first_work_order_while_in_progress_puts_ticket_on_hold(db, users):
    t = await in_progress_ticket(db, users)
    await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("need_license")), users.tech)

    await work_orders.create_work_order(
        db, WorkOrderCreate(ticket_id=t.id, type="license", license_name="Office 365"), users.tech
    )
    t = await queries.get_ticket(db, t.id)
    assert t.status is RepairStatusEnum.on_hold
    assert [ev.action for ev in t.events][-2:] == ["on_hold", "work_order_created"]
    assert_valid_walk(t)


async def test_direct_repair_closes_without_work_orders(db, users, sent):
    t = await in_progress_ticket(db, users)
    await workflow.transition(
        db, t.id,
        act("diagnose", diagnosis=diagnosis("direct_repair", repair_description="reseated the cable")),
        users.tech,
    )
    with pytest.raises(PreconditionFailed):
        await workflow.transition(db, t.id, act("request_procurement"), users.tech)

    t = await workflow.transition(db, t.id, act("close"), users.tech)
    assert t.status is RepairStatusEnum.waiting_for_submitter
    assert any(p["user_id"] == users.employee.id and p["title"] == "Please confirm" for _, p in sent)


async def test_need_procurement_cannot_close_without_work_orders(db, users):
    t = await in_progress_ticket(db, users)
    await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("need_vendor")), users.tech)
    with pytest.raises(PreconditionFailed):
        await workflow.transition(db, t.id, act("close"), users.tech)


async def test_diagnosis_conditional_fields(db, users):
    t = await in_progress_ticket(db, users)
    with pytest.raises(ValidationError) as exc:
        await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("unrepairable")), users.tech)
    assert exc.value.field == "unrepairable_reason"

    with pytest.raises(ValidationError) as exc:
        await workflow.transition(db, t.id, act("diagnose"), users.tech)
    assert exc.value.field == "diagnosis"

    t = await queries.get_ticket(db, t.id)
    assert t.diagnosis is None


async def test_rediagnosis_overwrites_until_work_orders_exist(db, users):
    fresh = await in_progress_ticket(db, users, asset_code="PC-7")
    await workflow.transition(db, fresh.id, act("diagnose", diagnosis=diagnosis("need_vendor")), users.tech)
    fresh = await workflow.transition(
        db, fresh.id, act("diagnose", diagnosis=diagnosis("direct_repair", repair_description="fixed")), users.tech
    )
    assert fresh.diagnosis.repair_type is RepairTypeEnum.direct_repair
    assert fresh.diagnosis.unrepairable_reason is None
    assert fresh.events[-1].details.startswith("re-diagnosed")

    t, wo = await on_hold_with_sparepart(db, users)
    for status in ("in_procurement", "completed"):
        await work_orders.transition_work_order(db, wo.id, WorkOrderStatusUpdate(status=status), users.procurement)
    await workflow.transition(db, t.id, act("mark_ready"), users.tech)
    await workflow.transition(db, t.id, act("resume_work"), users.tech)
    with pytest.raises(PreconditionFailed):
        await workflow.transition(
            db, t.id, act("diagnose", diagnosis=diagnosis("direct_repair", repair_description="x")), users.tech
        )
    t = await queries.get_ticket(db, t.id)
    assert t.diagnosis.repair_type is RepairTypeEnum.need_sparepart


async def test_diagnosis_persists_across_sessions(db, users, session_factory):
    t = await in_progress_ticket(db, users, asset_code="PC-9")
    await workflow.transition(db, t.id, act("diagnose", diagnosis=diagnosis("need_sparepart")), users.tech)

    async with session_factory() as s:
        stored = await queries.get_ticket(s, t.id)
        assert stored.diagnosis is not None
        assert stored.diagnosis.repair_type is RepairTypeEnum.need_sparepart
        assert stored.diagnosis.technician_id == users.tech.id

        tech = await s.get(User, users.tech.id)
        stored = await workflow.transition(s, t.id, act("request_procurement"), tech)
        assert stored.status is RepairStatusEnum.on_hold


async def test_invalid_and_forbidden_transitions(db, users):
    t = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Monitor", description="flicker")
    )
    with pytest.raises(InvalidTransition) as exc:
        await workflow.transition(db, t.id, act("close"), users.tech)
    assert exc.value.status == "submitted" and exc.value.action == "close"

    with pytest.raises(Forbidden):
        await workflow.transition(db, t.id, act("assign", assignee_id=users.tech.id), users.employee)

    with pytest.raises(PreconditionFailed):
        await workflow.transition(db, t.id, act("assign", assignee_id=users.procurement.id), users.admin)

    with pytest.raises(ValidationError):
        await workflow.transition(db, t.id, act("assign"), users.admin)

    t = await workflow.transition(db, t.id, act("assign", assignee_id=users.tech.id), users.admin)
    with pytest.raises(Forbidden):
        await workflow.transition(db, t.id, act("start_work"), users.tech2)


async def test_reject_and_reopen_require_reason(db, users):
    t = await workflow.create_repair_ticket(
        db, users.employee, RepairTicketCreate(title="Chair", description="not IT")
    )
    with pytest.raises(ValidationError) as exc:
        await workflow.transition(db, t.id, act("reject"), users.admin)
    assert exc.value.field == "reason"

    t = await workflow.transition(db, t.id, act("reject", reason="out of scope"), users.admin)
    assert t.status is RepairStatusEnum.rejected
    assert t.rejection_reason == "out of scope"

    t2 = await in_progress_ticket(db, users, asset_code="PC-9")
    await workflow.transition(
        db, t2.id, act("diagnose", diagnosis=diagnosis("direct_repair", repair_description="ok")), users.tech
    )
    await workflow.transition(db, t2.id, act("close"), users.tech)
    with pytest.raises(ValidationError):
        await workflow.transition(db, t2.id, act("reopen", reason="  "), users.employee)
    t2 = await workflow.transition(db, t2.id, act("reopen", reason="still broken"), users.employee)
    assert t2.status is RepairStatusEnum.in_progress


async def test_comments_and_feedback(db, users, sent):
    t = await in_progress_ticket(db, users)
    ev = await workflow.add_comment(db, t.id, users.employee, "any news?")
    assert ev.action == "comment" and ev.details == "any news?"
    assert sent[-1][1]["user_id"] == users.tech.id

    with pytest.raises(Forbidden):
        await workflow.add_comment(db, t.id, users.other, "hello")

    with pytest.raises(PreconditionFailed):
        await workflow.submit_feedback(db, t.id, users.employee, FeedbackIn(rating=5))

    await workflow.transition(
        db, t.id, act("diagnose", diagnosis=diagnosis("direct_repair", repair_description="ok")), users.tech
    )
    await workflow.transition(db, t.id, act("close"), users.tech)
    await workflow.transition(db, t.id, act("confirm_close"), users.employee)

    with pytest.raises(Forbidden):
        await workflow.submit_feedback(db, t.id, users.tech, FeedbackIn(rating=5))
    t = await workflow.submit_feedback(db, t.id, users.employee, FeedbackIn(rating=4, text="quick"))
    assert t.feedback_rating == 4
    with pytest.raises(PreconditionFailed):
        await workflow.submit_feedback(db, t.id, users.employee, FeedbackIn(rating=1))


async def test_list_tickets_scoping_and_status_filter(db, users):
    await in_progress_ticket(db, users)
    await workflow.create_repair_ticket(db, users.other, RepairTicketCreate(title="Other", description="x"))

    mine = await workflow.list_tickets(db, users.employee)
    assert {t.requester_id for t in mine} == {users.employee.id}

    in_progress = await workflow.list_tickets(db, users.admin, status="in_progress")
    assert [t.status for t in in_progress] == [RepairStatusEnum.in_progress]

    assert await workflow.list_tickets(db, users.admin, status="pending_review") == []
    assert await workflow.list_tickets(db, users.admin, status="nonsense") == []

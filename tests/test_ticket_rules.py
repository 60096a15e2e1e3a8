from app.db.models import (
    BookingStatusEnum,
    BookingTicket,
    Diagnosis,
    RepairStatusEnum,
    RepairTicket,
    RepairTypeEnum,
    RoleEnum,
    User,
    WorkOrder,
    WorkOrderStatusEnum,
    WorkOrderTypeEnum,
)
from app.services.errors import Forbidden, InvalidTransition, PreconditionFailed
from app.services.tickets import (
    BOOKING_TRANSITIONS,
    REPAIR_TRANSITIONS,
    TicketAction,
    can_transition,
    derive_actionability,
    find_blocker,
)
from app.services.work_orders import aggregate_readiness
from app.services.workflow import extract_meeting_id

REQUESTER = User(id=1, email="e@example.com", name="E", role=RoleEnum.employee, is_active=True)
TECH = User(id=2, email="t@example.com", name="T", role=RoleEnum.technician, is_active=True)
ADMIN = User(id=3, email="a@example.com", name="A", role=RoleEnum.service_admin, is_active=True)


def repair(status, *, repair_type=None, work_orders=(), ready=False):
    t = RepairTicket(
        id=10, ticket_number="REP-20260302-0001", status=status,
        requester_id=REQUESTER.id, assignee_id=TECH.id,
        work_orders_ready=ready, work_orders=[], diagnosis=None,
    )
    if repair_type is not None:
        t.diagnosis = Diagnosis(repair_type=repair_type, problem_category="hardware", problem_description="x")
    for st in work_orders:
        t.work_orders.append(WorkOrder(type=WorkOrderTypeEnum.sparepart, status=st))
    return t


def test_every_status_has_a_transition_row():
    assert set(REPAIR_TRANSITIONS) == set(RepairStatusEnum)
    assert set(BOOKING_TRANSITIONS) == set(BookingStatusEnum)
    # legacy approved: жоден перехід сюди не веде
    targets = {dst for row in REPAIR_TRANSITIONS.values() for dst in row.values()}
    assert RepairStatusEnum.approved not in targets


def test_undefined_action_is_invalid_transition():
    t = repair(RepairStatusEnum.submitted)
    assert not can_transition(t, TicketAction.close)
    assert isinstance(find_blocker(t, TicketAction.close), InvalidTransition)


def test_resume_work_needs_resolved_orders_and_ready_flag():
    open_wo = repair(RepairStatusEnum.on_hold, repair_type=RepairTypeEnum.need_sparepart,
                     work_orders=[WorkOrderStatusEnum.completed, WorkOrderStatusEnum.in_procurement], ready=True)
    assert isinstance(find_blocker(open_wo, TicketAction.resume_work), PreconditionFailed)

    not_ready = repair(RepairStatusEnum.on_hold, repair_type=RepairTypeEnum.need_sparepart,
                       work_orders=[WorkOrderStatusEnum.completed, WorkOrderStatusEnum.unsuccessful])
    blocker = find_blocker(not_ready, TicketAction.resume_work)
    assert isinstance(blocker, PreconditionFailed)
    assert "ready" in blocker.reason

    ready = repair(RepairStatusEnum.on_hold, repair_type=RepairTypeEnum.need_sparepart,
                   work_orders=[WorkOrderStatusEnum.completed, WorkOrderStatusEnum.unsuccessful], ready=True)
    assert find_blocker(ready, TicketAction.resume_work) is None


def test_close_rules_depend_on_repair_type():
    assert isinstance(find_blocker(repair(RepairStatusEnum.in_progress), TicketAction.close), PreconditionFailed)
    assert find_blocker(
        repair(RepairStatusEnum.in_progress, repair_type=RepairTypeEnum.direct_repair), TicketAction.close
    ) is None
    # need_* без жодного work order закрити не можна
    assert isinstance(
        find_blocker(repair(RepairStatusEnum.in_progress, repair_type=RepairTypeEnum.need_vendor), TicketAction.close),
        PreconditionFailed,
    )
    assert find_blocker(
        repair(RepairStatusEnum.in_progress, repair_type=RepairTypeEnum.need_vendor,
               work_orders=[WorkOrderStatusEnum.completed]),
        TicketAction.close,
    ) is None


def test_rediagnosis_locked_once_work_orders_exist():
    t = repair(RepairStatusEnum.in_progress, repair_type=RepairTypeEnum.need_sparepart)
    assert find_blocker(t, TicketAction.diagnose) is None
    t.work_orders.append(WorkOrder(type=WorkOrderTypeEnum.sparepart, status=WorkOrderStatusEnum.requested))
    assert isinstance(find_blocker(t, TicketAction.diagnose), PreconditionFailed)


def test_actor_checks_only_when_actor_given():
    t = repair(RepairStatusEnum.waiting_for_submitter, repair_type=RepairTypeEnum.direct_repair)
    assert find_blocker(t, TicketAction.confirm_close) is None
    assert isinstance(find_blocker(t, TicketAction.confirm_close, TECH), Forbidden)
    assert find_blocker(t, TicketAction.confirm_close, REQUESTER) is None


def test_derive_actionability_for_on_hold_ticket():
    t = repair(RepairStatusEnum.on_hold, repair_type=RepairTypeEnum.need_sparepart,
               work_orders=[WorkOrderStatusEnum.completed])
    actions = derive_actionability(t, TECH)

    assert actions["mark_ready"].enabled
    assert not actions["resume_work"].enabled
    assert not actions["close"].enabled
    assert actions["create_work_order"].enabled
    assert not actions["assign"].enabled
    assert actions["assign"].reason

    t.work_orders_ready = True
    assert derive_actionability(t, TECH)["resume_work"].enabled
    # заявник бачить ті самі статуси, але без прав техніка
    assert not derive_actionability(t, REQUESTER)["resume_work"].enabled


def test_booking_actionability():
    b = BookingTicket(id=20, ticket_number="BKG-20260302-0001", status=BookingStatusEnum.pending_review,
                      requester_id=REQUESTER.id)
    by_admin = derive_actionability(b, ADMIN)
    assert set(by_admin) == {"approve", "reject", "cancel"}
    assert by_admin["approve"].enabled and by_admin["cancel"].enabled

    by_requester = derive_actionability(b, REQUESTER)
    assert not by_requester["approve"].enabled
    assert by_requester["cancel"].enabled

    b.status = BookingStatusEnum.approved
    assert not derive_actionability(b, ADMIN)["approve"].enabled


def test_aggregate_readiness_is_vacuous_for_no_orders():
    assert aggregate_readiness([]) is True


def test_extract_meeting_id():
    assert extract_meeting_id("https://zoom.us/j/123456?pwd=x") == "123456"
    assert extract_meeting_id("https://zoom.us/my/room") is None

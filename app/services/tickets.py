"""
Tickets service (бізнес-правила для заявок)

Тут живе state machine обох варіантів тікета і перевірка передумов.
Це чисті функції без БД: workflow.py викликає їх під блокуванням,
API віддає derive_actionability() як button_status, тож правила не дублюються.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from app.db.models import (
    BookingStatusEnum,
    BookingTicket,
    RepairStatusEnum,
    RepairTicket,
    RoleEnum,
    User,
)
from app.services.diagnosis import SELF_CONTAINED_REPAIR_TYPES, needs_procurement
from app.services.errors import Forbidden, InvalidTransition, PreconditionFailed, WorkflowError
from app.services.work_orders import aggregate_readiness, creation_blocker

AnyTicket = Union[RepairTicket, BookingTicket]


class TicketAction(str, enum.Enum):
    # repair
    assign = "assign"
    start_work = "start_work"
    diagnose = "diagnose"
    request_procurement = "request_procurement"
    mark_ready = "mark_ready"
    resume_work = "resume_work"
    close = "close"
    confirm_close = "confirm_close"
    reopen = "reopen"
    # обидва варіанти
    reject = "reject"
    # booking
    approve = "approve"
    cancel = "cancel"


A, R, B = TicketAction, RepairStatusEnum, BookingStatusEnum

# Допустимі переходи: статус -> {дія -> цільовий статус}
REPAIR_TRANSITIONS: dict[RepairStatusEnum, dict[TicketAction, RepairStatusEnum]] = {
    R.submitted: {A.assign: R.assigned, A.reject: R.rejected},
    R.assigned: {A.start_work: R.in_progress, A.reject: R.rejected},
    R.in_progress: {
        A.diagnose: R.in_progress,
        A.request_procurement: R.on_hold,
        A.close: R.waiting_for_submitter,
        A.reject: R.rejected,
    },
    R.on_hold: {A.mark_ready: R.on_hold, A.resume_work: R.in_progress},
    R.waiting_for_submitter: {A.confirm_close: R.closed, A.reopen: R.in_progress},
    R.closed: {},
    R.approved: {},
    R.rejected: {},
}

BOOKING_TRANSITIONS: dict[BookingStatusEnum, dict[TicketAction, BookingStatusEnum]] = {
    B.pending_review: {A.approve: B.approved, A.reject: B.rejected, A.cancel: B.cancelled},
    B.approved: {A.cancel: B.cancelled},
    B.rejected: {},
    B.cancelled: {},
}

del A, R, B

REPAIR_ACTIONS = (
    TicketAction.assign,
    TicketAction.start_work,
    TicketAction.diagnose,
    TicketAction.request_procurement,
    TicketAction.mark_ready,
    TicketAction.resume_work,
    TicketAction.close,
    TicketAction.confirm_close,
    TicketAction.reopen,
    TicketAction.reject,
)
BOOKING_ACTIONS = (TicketAction.approve, TicketAction.reject, TicketAction.cancel)

ADMIN_ROLES = frozenset({RoleEnum.service_admin, RoleEnum.super_admin})

# дії, які виконує лише призначений технік
ASSIGNEE_ACTIONS = frozenset({
    TicketAction.start_work,
    TicketAction.diagnose,
    TicketAction.request_procurement,
    TicketAction.mark_ready,
    TicketAction.resume_work,
    TicketAction.close,
})
REQUESTER_ACTIONS = frozenset({TicketAction.confirm_close, TicketAction.reopen})
ADMIN_ACTIONS = frozenset({TicketAction.assign, TicketAction.approve, TicketAction.reject})
# дії, для яких потрібна причина в payload
REASON_REQUIRED = frozenset({TicketAction.reject, TicketAction.reopen})


def _enum_key(v):
    return v.value if hasattr(v, "value") else v


def transitions_for(ticket: AnyTicket) -> dict:
    if isinstance(ticket, RepairTicket):
        return REPAIR_TRANSITIONS[ticket.status]
    if isinstance(ticket, BookingTicket):
        return BOOKING_TRANSITIONS[ticket.status]
    raise TypeError(f"unsupported ticket variant: {type(ticket).__name__}")


def actions_for(ticket: AnyTicket) -> tuple[TicketAction, ...]:
    if isinstance(ticket, RepairTicket):
        return REPAIR_ACTIONS
    if isinstance(ticket, BookingTicket):
        return BOOKING_ACTIONS
    raise TypeError(f"unsupported ticket variant: {type(ticket).__name__}")


def can_transition(ticket: AnyTicket, action: TicketAction) -> bool:
    """Чи визначена дія для поточного статусу (без бізнес-передумов)."""
    return action in transitions_for(ticket)


def _invalid_transition(ticket: AnyTicket, action: TicketAction) -> InvalidTransition:
    return InvalidTransition(
        f"action '{_enum_key(action)}' is not allowed from status '{_enum_key(ticket.status)}'",
        entity="ticket",
        entity_id=ticket.id,
        status=_enum_key(ticket.status),
        action=_enum_key(action),
    )


def target_status(ticket: AnyTicket, action: TicketAction):
    target = transitions_for(ticket).get(action)
    if target is None:
        raise _invalid_transition(ticket, action)
    return target


def is_admin(user: User) -> bool:
    return user.role in ADMIN_ROLES


# паролі зустрічі бачать лише заявник та адміни
MEETING_SECRETS = ("passcode", "host_key")


def can_see_meeting_secrets(ticket: AnyTicket, user: User) -> bool:
    return ticket.requester_id == user.id or is_admin(user)


# ==== Передумови ====


def _actor_blocker(ticket: AnyTicket, action: TicketAction, actor: User) -> Optional[WorkflowError]:
    kw = {"entity": "ticket", "entity_id": ticket.id}
    if action in ADMIN_ACTIONS:
        if not is_admin(actor):
            return Forbidden("only service admins can do this", **kw)
    elif action is TicketAction.cancel:
        if actor.id != ticket.requester_id and not is_admin(actor):
            return Forbidden("only the requester or an admin can cancel", **kw)
    elif action in ASSIGNEE_ACTIONS:
        if actor.id != ticket.assignee_id:
            return Forbidden("only the assigned technician can do this", **kw)
    elif action in REQUESTER_ACTIONS:
        if actor.id != ticket.requester_id:
            return Forbidden("only the requester can do this", **kw)
    return None


def _repair_state_blocker(ticket: RepairTicket, action: TicketAction) -> Optional[WorkflowError]:
    kw = {"entity": "ticket", "entity_id": ticket.id}
    diagnosis = ticket.diagnosis
    work_orders = ticket.work_orders

    if action is TicketAction.diagnose:
        if diagnosis is not None and work_orders:
            return PreconditionFailed("diagnosis cannot change once work orders exist", **kw)

    elif action is TicketAction.request_procurement:
        if diagnosis is None:
            return PreconditionFailed("diagnosis is required first", **kw)
        if not needs_procurement(diagnosis):
            return PreconditionFailed(
                f"repair type '{_enum_key(diagnosis.repair_type)}' does not need procurement", **kw
            )

    elif action is TicketAction.mark_ready:
        if not aggregate_readiness(work_orders):
            return PreconditionFailed("some work orders are still open", **kw)

    elif action is TicketAction.resume_work:
        if not aggregate_readiness(work_orders):
            return PreconditionFailed("some work orders are still open", **kw)
        if not ticket.work_orders_ready:
            return PreconditionFailed("work orders are not marked ready", **kw)

    elif action is TicketAction.close:
        if diagnosis is None:
            return PreconditionFailed("diagnosis is required before closing", **kw)
        if diagnosis.repair_type not in SELF_CONTAINED_REPAIR_TYPES:
            if not work_orders:
                return PreconditionFailed("at least one work order is required", **kw)
            if not aggregate_readiness(work_orders):
                return PreconditionFailed("some work orders are still open", **kw)

    return None


def find_blocker(
    ticket: AnyTicket,
    action: TicketAction,
    actor: Optional[User] = None,
) -> Optional[WorkflowError]:
    """
    Повертає (не піднімає) першу причину, чому дію зараз виконати не можна,
    або None. Перевірки актора робимо лише коли actor переданий.
    """
    if not can_transition(ticket, action):
        return _invalid_transition(ticket, action)
    if actor is not None:
        blocker = _actor_blocker(ticket, action, actor)
        if blocker is not None:
            return blocker
    if isinstance(ticket, RepairTicket):
        return _repair_state_blocker(ticket, action)
    return None


def ensure_allowed(ticket: AnyTicket, action: TicketAction, actor: Optional[User] = None):
    """Піднімає першу знайдену помилку; інакше повертає цільовий статус."""
    blocker = find_blocker(ticket, action, actor)
    if blocker is not None:
        raise blocker
    return target_status(ticket, action)


# ==== Actionability (button_status) ====


@dataclass(frozen=True)
class Actionability:
    enabled: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "reason": self.reason}


def derive_actionability(ticket: AnyTicket, actor: Optional[User] = None) -> dict[str, Actionability]:
    result: dict[str, Actionability] = {}
    for action in actions_for(ticket):
        blocker = find_blocker(ticket, action, actor)
        result[action.value] = Actionability(blocker is None, blocker.reason if blocker else None)

    if isinstance(ticket, RepairTicket):
        blocker = creation_blocker(ticket)
        if blocker is None and actor is not None and actor.id != ticket.assignee_id:
            blocker = Forbidden("only the assigned technician can do this")
        result["create_work_order"] = Actionability(blocker is None, blocker.reason if blocker else None)
    return result

# app/api/routes/tickets.py
from __future__ import annotations

import logging
from typing import Dict, Union

from fastapi import APIRouter, Depends, Query, Request, status

from ..deps import CurrentUser, DBDep, require_staff
from app.db.models import RepairTicket, TicketTypeEnum, User
from app.core.logging import log_extra
from app.schemas.tickets import (
    ActionabilityOut,
    BookingTicketCreate,
    BookingTicketOut,
    FeedbackIn,
    RepairTicketCreate,
    RepairTicketOut,
    TicketCounts,
    TransitionRequest,
)
from app.schemas.work_orders import WorkOrderOut
from app.services import reports, work_orders, workflow
from app.services.tickets import MEETING_SECRETS, AnyTicket, can_see_meeting_secrets, derive_actionability

router = APIRouter()
logger = logging.getLogger(__name__)

TicketOut = Union[RepairTicketOut, BookingTicketOut]


def _actions(ticket: AnyTicket, actor: User) -> Dict[str, ActionabilityOut]:
    return {
        name: ActionabilityOut(**a.to_dict())
        for name, a in derive_actionability(ticket, actor).items()
    }


def ticket_out(ticket: AnyTicket, actor: User):
    model = RepairTicketOut if isinstance(ticket, RepairTicket) else BookingTicketOut
    out = model.model_validate(ticket)
    if model is BookingTicketOut and not can_see_meeting_secrets(ticket, actor):
        for field in MEETING_SECRETS:
            setattr(out, field, None)
    out.button_status = _actions(ticket, actor)
    return out


@router.post("/repair", response_model=RepairTicketOut, status_code=status.HTTP_201_CREATED)
async def create_repair_ticket(payload: RepairTicketCreate, request: Request, db: DBDep, current: CurrentUser):
    t = await workflow.create_repair_ticket(db, current, payload)
    logger.info("repair_ticket_created", extra={**log_extra(request), "ticket_id": t.id})
    return ticket_out(t, current)


@router.post("/booking", response_model=BookingTicketOut, status_code=status.HTTP_201_CREATED)
async def create_booking_ticket(payload: BookingTicketCreate, request: Request, db: DBDep, current: CurrentUser):
    t = await workflow.create_booking_ticket(db, current, payload)
    logger.info("booking_ticket_created", extra={**log_extra(request), "ticket_id": t.id})
    return ticket_out(t, current)


@router.get("", response_model=list[TicketOut])
async def list_tickets(
    db: DBDep,
    current: CurrentUser,
    type_: TicketTypeEnum | None = Query(default=None, alias="type"),
    status_: str | None = Query(default=None, alias="status"),
    assignee_id: int | None = None,
    requester_id: int | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    rows = await workflow.list_tickets(
        db, current,
        type_=type_, status=status_,
        assignee_id=assignee_id, requester_id=requester_id,
        limit=limit, offset=offset,
    )
    return [ticket_out(t, current) for t in rows]


@router.get("/counts", response_model=TicketCounts, dependencies=[Depends(require_staff())])
async def ticket_counts(db: DBDep):
    return TicketCounts(**await reports.ticket_counts(db))


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(ticket_id: int, db: DBDep, current: CurrentUser):
    t = await workflow.get_ticket_for(db, ticket_id, current)
    return ticket_out(t, current)


@router.get("/{ticket_id}/actions", response_model=Dict[str, ActionabilityOut])
async def get_ticket_actions(ticket_id: int, db: DBDep, current: CurrentUser):
    t = await workflow.get_ticket_for(db, ticket_id, current)
    return _actions(t, current)


@router.post("/{ticket_id}/transitions", response_model=TicketOut)
async def transition_ticket(
    ticket_id: int,
    payload: TransitionRequest,
    request: Request,
    db: DBDep,
    current: CurrentUser,
):
    t = await workflow.transition(db, ticket_id, payload, current)
    logger.info(
        "ticket_transition",
        extra={**log_extra(request), "ticket_id": t.id, "action": payload.action.value},
    )
    return ticket_out(t, current)


@router.post("/{ticket_id}/feedback", response_model=RepairTicketOut)
async def submit_feedback(ticket_id: int, payload: FeedbackIn, db: DBDep, current: CurrentUser):
    t = await workflow.submit_feedback(db, ticket_id, current, payload)
    return ticket_out(t, current)


@router.get("/{ticket_id}/work-orders", response_model=list[WorkOrderOut])
async def list_ticket_work_orders(ticket_id: int, db: DBDep, current: CurrentUser):
    await workflow.get_ticket_for(db, ticket_id, current)
    return await work_orders.list_work_orders(db, ticket_id=ticket_id, limit=200)

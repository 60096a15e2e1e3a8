# app/schemas/tickets.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.db.models import (
    BookingStatusEnum,
    ProblemCategoryEnum,
    RepairStatusEnum,
    RepairTypeEnum,
    SeverityEnum,
    TicketTypeEnum,
)
from app.schemas.work_orders import WorkOrderOut
from app.services.tickets import TicketAction


# ==== Вхідні моделі ====


class AttachmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1024)
    content_type: Optional[str] = Field(default=None, max_length=128)


class RepairTicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    severity: SeverityEnum = Field(default=SeverityEnum.normal)

    asset_code: Optional[str] = Field(default=None, max_length=64)
    asset_nup: Optional[str] = Field(default=None, max_length=64, description="Інвентарний номер (NUP)")
    asset_location: Optional[str] = Field(default=None, max_length=255)

    attachments: List[AttachmentIn] = Field(default_factory=list)


class CoHost(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class BookingTicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    resource_id: int
    start_at: datetime
    end_at: datetime
    participants: int = Field(default=1, ge=1)
    breakout_rooms: int = Field(default=0, ge=0)
    co_hosts: List[CoHost] = Field(default_factory=list)
    attachments: List[AttachmentIn] = Field(default_factory=list)

    # повторна подача після ScheduleWarning
    override: bool = False


class DiagnosisIn(BaseModel):
    problem_category: ProblemCategoryEnum
    problem_description: str = Field(..., min_length=1)
    repair_type: RepairTypeEnum

    repair_description: Optional[str] = None
    unrepairable_reason: Optional[str] = None
    alternative_solution: Optional[str] = None
    technician_notes: Optional[str] = None
    estimated_days: Optional[int] = Field(default=None, ge=0)


class MeetingCredentials(BaseModel):
    meeting_link: str = Field(..., max_length=512)
    meeting_id: Optional[str] = Field(default=None, max_length=64)
    passcode: str = Field(..., min_length=1, max_length=64)
    host_key: str = Field(..., pattern=r"^\d{6}$")

    @field_validator("meeting_link")
    @classmethod
    def _https_only(cls, v: str) -> str:
        parsed = urlparse(v.strip())
        if parsed.scheme != "https" or not parsed.netloc:
            raise ValueError("meeting_link must be a full https:// URL")
        return v.strip()


class TransitionRequest(BaseModel):
    action: TicketAction

    assignee_id: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    diagnosis: Optional[DiagnosisIn] = None
    credentials: Optional[MeetingCredentials] = None


class FeedbackIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    text: Optional[str] = None


# ==== Вихідні моделі ====


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    url: str
    content_type: Optional[str] = None
    uploaded_at: datetime


class TimelineEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    action: str
    details: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class DiagnosisOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    technician_id: Optional[int] = None
    problem_category: ProblemCategoryEnum
    problem_description: str
    repair_type: RepairTypeEnum
    repair_description: Optional[str] = None
    unrepairable_reason: Optional[str] = None
    alternative_solution: Optional[str] = None
    technician_notes: Optional[str] = None
    estimated_days: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ActionabilityOut(BaseModel):
    enabled: bool
    reason: Optional[str] = None


class TicketBaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_number: str
    type: TicketTypeEnum
    title: str
    description: str
    requester_id: int
    assignee_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    attachments: List[AttachmentOut] = Field(default_factory=list)
    events: List[TimelineEventOut] = Field(default_factory=list)
    button_status: Dict[str, ActionabilityOut] = Field(default_factory=dict)


class RepairTicketOut(TicketBaseOut):
    status: RepairStatusEnum
    severity: SeverityEnum
    asset_code: Optional[str] = None
    asset_nup: Optional[str] = None
    asset_location: Optional[str] = None
    work_orders_ready: bool
    rejection_reason: Optional[str] = None
    feedback_rating: Optional[int] = None
    feedback_text: Optional[str] = None
    diagnosis: Optional[DiagnosisOut] = None
    work_orders: List[WorkOrderOut] = Field(default_factory=list)


class BookingTicketOut(TicketBaseOut):
    status: BookingStatusEnum
    resource_id: int
    start_at: datetime
    end_at: datetime
    participants: int
    breakout_rooms: int
    co_hosts: List[Dict[str, Any]] = Field(default_factory=list)
    rejection_reason: Optional[str] = None
    meeting_link: Optional[str] = None
    meeting_id: Optional[str] = None
    passcode: Optional[str] = None
    host_key: Optional[str] = None


class TicketCounts(BaseModel):
    repair: Dict[str, int]
    booking: Dict[str, int]

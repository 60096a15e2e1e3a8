# app/db/models.py
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    event,
    func,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

# JSONB на Postgres, звичайний JSON деінде (sqlite у тестах)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """sqlite повертає naive datetime; вважаємо такі значення UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ==== Енуми (python + sqlalchemy) ====


class RoleEnum(str, enum.Enum):
    employee = "employee"                    # заявник
    technician = "technician"
    service_admin = "service_admin"          # розподіляє тікети
    procurement_admin = "procurement_admin"  # веде закупівлі (work orders)
    super_admin = "super_admin"


class TicketTypeEnum(str, enum.Enum):
    repair = "repair"
    booking = "booking"


class SeverityEnum(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    critical = "critical"


class RepairStatusEnum(str, enum.Enum):
    submitted = "submitted"
    assigned = "assigned"
    in_progress = "in_progress"
    on_hold = "on_hold"                              # чекаємо work orders
    waiting_for_submitter = "waiting_for_submitter"  # чекаємо підтвердження заявника
    closed = "closed"
    approved = "approved"  # legacy-значення, жоден перехід сюди не веде
    rejected = "rejected"


class BookingStatusEnum(str, enum.Enum):
    pending_review = "pending_review"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class ProblemCategoryEnum(str, enum.Enum):
    hardware = "hardware"
    software = "software"
    other = "other"


class RepairTypeEnum(str, enum.Enum):
    direct_repair = "direct_repair"
    need_sparepart = "need_sparepart"
    need_vendor = "need_vendor"
    need_license = "need_license"
    unrepairable = "unrepairable"


class WorkOrderTypeEnum(str, enum.Enum):
    sparepart = "sparepart"
    vendor = "vendor"
    license = "license"


class WorkOrderStatusEnum(str, enum.Enum):
    requested = "requested"
    in_procurement = "in_procurement"
    completed = "completed"
    unsuccessful = "unsuccessful"


class AssetConditionEnum(str, enum.Enum):
    good = "good"
    minor_damage = "minor_damage"
    major_damage = "major_damage"


# ==== Міксини ====


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# ==== Довідник користувачів (дзеркало identity provider) ====


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(
        Enum(RoleEnum, name="role_enum"),
        default=RoleEnum.employee,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


# ==== Ресурси для бронювання ====


class Resource(TimestampMixin, Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(64), index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Resource id={self.id} name={self.name} active={self.is_active}>"


# ==== Тікети (joined-table inheritance: repair | booking) ====


class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    type: Mapped[TicketTypeEnum] = mapped_column(
        Enum(TicketTypeEnum, name="ticket_type_enum"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        index=True,
    )
    assignee_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    requester: Mapped["User"] = relationship(foreign_keys=[requester_id], lazy="selectin")
    assignee: Mapped[Optional["User"]] = relationship(foreign_keys=[assignee_id], lazy="selectin")
    events: Mapped[List["TicketEvent"]] = relationship(
        back_populates="ticket",
        order_by="TicketEvent.id",
        lazy="selectin",
    )
    attachments: Mapped[List["Attachment"]] = relationship(
        back_populates="ticket",
        order_by="Attachment.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"polymorphic_on": "type"}
    __table_args__ = (
        Index("ix_tickets_type_created_at", "type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} number={self.ticket_number} type={self.type}>"


class RepairTicket(Ticket):
    __tablename__ = "repair_tickets"

    id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
    status: Mapped[RepairStatusEnum] = mapped_column(
        Enum(RepairStatusEnum, name="repair_status_enum"),
        default=RepairStatusEnum.submitted,
        nullable=False,
        index=True,
    )
    severity: Mapped[SeverityEnum] = mapped_column(
        Enum(SeverityEnum, name="severity_enum"),
        default=SeverityEnum.normal,
        nullable=False,
    )
    asset_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    asset_nup: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    asset_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ручне підтвердження "work orders готові" перед resume_work
    work_orders_ready: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feedback_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    diagnosis: Mapped[Optional["Diagnosis"]] = relationship(
        back_populates="ticket",
        uselist=False,
        lazy="selectin",
    )
    work_orders: Mapped[List["WorkOrder"]] = relationship(
        back_populates="ticket",
        order_by="WorkOrder.id",
        lazy="selectin",
    )

    __mapper_args__ = {
        "polymorphic_identity": TicketTypeEnum.repair,
        "polymorphic_load": "inline",
    }

    def __repr__(self) -> str:
        return f"<RepairTicket id={self.id} status={self.status} asset={self.asset_code}>"


class BookingTicket(Ticket):
    __tablename__ = "booking_tickets"

    id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
    status: Mapped[BookingStatusEnum] = mapped_column(
        Enum(BookingStatusEnum, name="booking_status_enum"),
        default=BookingStatusEnum.pending_review,
        nullable=False,
        index=True,
    )
    resource_id: Mapped[int] = mapped_column(
        ForeignKey("resources.id", ondelete="RESTRICT"),
        index=True,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    participants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    breakout_rooms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    co_hosts: Mapped[List[dict]] = mapped_column(JSONType, default=list, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # видаються при approve
    meeting_link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    meeting_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    passcode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    host_key: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    resource: Mapped["Resource"] = relationship(lazy="selectin")

    __mapper_args__ = {
        "polymorphic_identity": TicketTypeEnum.booking,
        "polymorphic_load": "inline",
    }
    __table_args__ = (
        Index("ix_booking_tickets_resource_interval", "resource_id", "start_at", "end_at"),
    )

    def __repr__(self) -> str:
        return f"<BookingTicket id={self.id} status={self.status} resource={self.resource_id}>"


class Attachment(Base):
    """Посилання на файл у зовнішньому сховищі; вміст ми не відкриваємо."""

    __tablename__ = "ticket_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(1024))
    content_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="attachments")


# ==== Timeline (append-only) ====


class TicketEvent(Base):
    __tablename__ = "ticket_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    actor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    ticket: Mapped["Ticket"] = relationship(back_populates="events")


# ==== Діагноз ====


class Diagnosis(TimestampMixin, Base):
    __tablename__ = "diagnoses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("repair_tickets.id", ondelete="CASCADE"),
        unique=True,
        index=True,
    )
    technician_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    problem_category: Mapped[ProblemCategoryEnum] = mapped_column(
        Enum(ProblemCategoryEnum, name="problem_category_enum"),
        nullable=False,
    )
    problem_description: Mapped[str] = mapped_column(Text)
    repair_type: Mapped[RepairTypeEnum] = mapped_column(
        Enum(RepairTypeEnum, name="repair_type_enum"),
        nullable=False,
    )
    repair_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unrepairable_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    alternative_solution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    technician_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    ticket: Mapped["RepairTicket"] = relationship(back_populates="diagnosis")
    technician: Mapped[Optional["User"]] = relationship(lazy="selectin")


# ==== Work orders ====


class WorkOrder(TimestampMixin, Base):
    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("repair_tickets.id", ondelete="CASCADE"),
        index=True,
    )
    type: Mapped[WorkOrderTypeEnum] = mapped_column(
        Enum(WorkOrderTypeEnum, name="work_order_type_enum"),
        nullable=False,
    )
    status: Mapped[WorkOrderStatusEnum] = mapped_column(
        Enum(WorkOrderStatusEnum, name="work_order_status_enum"),
        default=WorkOrderStatusEnum.requested,
        nullable=False,
    )

    # sparepart: [{name, quantity, unit}]
    items: Mapped[Optional[List[dict]]] = mapped_column(JSONType, nullable=True)
    # vendor
    vendor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    vendor_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # license
    license_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # vendor | license
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    asset_condition_change: Mapped[Optional[AssetConditionEnum]] = mapped_column(
        Enum(AssetConditionEnum, name="asset_condition_enum"),
        nullable=True,
    )

    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    completed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    ticket: Mapped["RepairTicket"] = relationship(back_populates="work_orders", lazy="selectin")
    events: Mapped[List["WorkOrderEvent"]] = relationship(
        back_populates="work_order",
        order_by="WorkOrderEvent.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_work_orders_status_type", "status", "type"),
    )

    def __repr__(self) -> str:
        return f"<WorkOrder id={self.id} ticket={self.ticket_id} type={self.type} status={self.status}>"


class WorkOrderEvent(Base):
    __tablename__ = "work_order_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(
        ForeignKey("work_orders.id", ondelete="CASCADE"),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    actor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="events")


# --- timeline незмінний: забороняємо UPDATE/DELETE на рівні ORM ---


def _append_only(mapper, connection, target) -> None:
    raise RuntimeError(f"{type(target).__name__} rows are append-only")


for _model in (TicketEvent, WorkOrderEvent):
    event.listen(_model, "before_update", _append_only)
    event.listen(_model, "before_delete", _append_only)

"""init schema: users, resources, tickets (repair | booking), timeline, diagnoses, work orders

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "role_enum": ("employee", "technician", "service_admin", "procurement_admin", "super_admin"),
    "ticket_type_enum": ("repair", "booking"),
    "severity_enum": ("low", "normal", "high", "critical"),
    "repair_status_enum": (
        "submitted", "assigned", "in_progress", "on_hold",
        "waiting_for_submitter", "closed", "approved", "rejected",
    ),
    "booking_status_enum": ("pending_review", "approved", "rejected", "cancelled"),
    "problem_category_enum": ("hardware", "software", "other"),
    "repair_type_enum": ("direct_repair", "need_sparepart", "need_vendor", "need_license", "unrepairable"),
    "work_order_type_enum": ("sparepart", "vendor", "license"),
    "work_order_status_enum": ("requested", "in_procurement", "completed", "unsuccessful"),
    "asset_condition_enum": ("good", "minor_damage", "major_damage"),
}


def _enum(name: str) -> sa.Enum:
    # типи створюємо явно нижче, тож create_type=False
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False).with_variant(
        sa.Enum(*ENUMS[name], name=name), "sqlite"
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    # ---------- 1) ENUM типи (лише Postgres) ----------
    if bind.dialect.name == "postgresql":
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

    # ---------- 2) Довідники ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", _enum("role_enum"), nullable=False, server_default="employee"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_resources_category", "resources", ["category"])

    # ---------- 3) Тікети: базова таблиця + варіанти ----------
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_number", sa.String(32), nullable=False),
        sa.Column("type", _enum("ticket_type_enum"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("assignee_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tickets_ticket_number", "tickets", ["ticket_number"], unique=True)
    op.create_index("ix_tickets_requester_id", "tickets", ["requester_id"])
    op.create_index("ix_tickets_assignee_id", "tickets", ["assignee_id"])
    op.create_index("ix_tickets_type_created_at", "tickets", ["type", "created_at"])

    op.create_table(
        "repair_tickets",
        sa.Column("id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("status", _enum("repair_status_enum"), nullable=False, server_default="submitted"),
        sa.Column("severity", _enum("severity_enum"), nullable=False, server_default="normal"),
        sa.Column("asset_code", sa.String(64), nullable=True),
        sa.Column("asset_nup", sa.String(64), nullable=True),
        sa.Column("asset_location", sa.String(255), nullable=True),
        sa.Column("work_orders_ready", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("feedback_rating", sa.Integer(), nullable=True),
        sa.Column("feedback_text", sa.Text(), nullable=True),
    )
    op.create_index("ix_repair_tickets_status", "repair_tickets", ["status"])
    op.create_index("ix_repair_tickets_asset_code", "repair_tickets", ["asset_code"])

    op.create_table(
        "booking_tickets",
        sa.Column("id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("status", _enum("booking_status_enum"), nullable=False, server_default="pending_review"),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("participants", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("breakout_rooms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("co_hosts", json_type, nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("meeting_link", sa.String(512), nullable=True),
        sa.Column("meeting_id", sa.String(64), nullable=True),
        sa.Column("passcode", sa.String(64), nullable=True),
        sa.Column("host_key", sa.String(16), nullable=True),
    )
    op.create_index("ix_booking_tickets_status", "booking_tickets", ["status"])
    op.create_index("ix_booking_tickets_resource_id", "booking_tickets", ["resource_id"])
    op.create_index(
        "ix_booking_tickets_resource_interval", "booking_tickets", ["resource_id", "start_at", "end_at"]
    )

    op.create_table(
        "ticket_attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1024), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ticket_attachments_ticket_id", "ticket_attachments", ["ticket_id"])

    op.create_table(
        "ticket_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("from_status", sa.String(32), nullable=True),
        sa.Column("to_status", sa.String(32), nullable=True),
        sa.Column("payload", json_type, nullable=True),
    )
    op.create_index("ix_ticket_events_ticket_id", "ticket_events", ["ticket_id"])

    # ---------- 4) Діагноз і work orders ----------
    op.create_table(
        "diagnoses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("repair_tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("technician_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("problem_category", _enum("problem_category_enum"), nullable=False),
        sa.Column("problem_description", sa.Text(), nullable=False),
        sa.Column("repair_type", _enum("repair_type_enum"), nullable=False),
        sa.Column("repair_description", sa.Text(), nullable=True),
        sa.Column("unrepairable_reason", sa.Text(), nullable=True),
        sa.Column("alternative_solution", sa.Text(), nullable=True),
        sa.Column("technician_notes", sa.Text(), nullable=True),
        sa.Column("estimated_days", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_diagnoses_ticket_id", "diagnoses", ["ticket_id"], unique=True)

    op.create_table(
        "work_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("repair_tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", _enum("work_order_type_enum"), nullable=False),
        sa.Column("status", _enum("work_order_status_enum"), nullable=False, server_default="requested"),
        sa.Column("items", json_type, nullable=True),
        sa.Column("vendor_name", sa.String(255), nullable=True),
        sa.Column("vendor_contact", sa.String(255), nullable=True),
        sa.Column("license_name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("asset_condition_change", _enum("asset_condition_enum"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("completed_by_name", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_work_orders_ticket_id", "work_orders", ["ticket_id"])
    op.create_index("ix_work_orders_status_type", "work_orders", ["status", "type"])

    op.create_table(
        "work_order_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("from_status", sa.String(32), nullable=True),
        sa.Column("to_status", sa.String(32), nullable=True),
    )
    op.create_index("ix_work_order_events_work_order_id", "work_order_events", ["work_order_id"])


def downgrade() -> None:
    for table in (
        "work_order_events",
        "work_orders",
        "diagnoses",
        "ticket_events",
        "ticket_attachments",
        "booking_tickets",
        "repair_tickets",
        "tickets",
        "resources",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in reversed(list(ENUMS)):
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)

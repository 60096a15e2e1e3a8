# app/schemas/ledger.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LedgerTicket(BaseModel):
    ticket_id: int
    ticket_number: str
    title: str
    status: str
    created_at: datetime
    closed_at: Optional[datetime] = None
    technician_name: Optional[str] = None
    # короткий підсумок діагнозу
    problem_category: Optional[str] = None
    problem_description: Optional[str] = None
    repair_type: Optional[str] = None


class _CompletedItem(BaseModel):
    work_order_id: int
    ticket_number: str
    completed_at: Optional[datetime] = None
    technician_name: Optional[str] = None
    notes: Optional[str] = None


class LedgerSparepart(_CompletedItem):
    name: str
    quantity: int
    unit: str


class LedgerVendor(_CompletedItem):
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None
    description: Optional[str] = None


class LedgerLicense(_CompletedItem):
    license_name: Optional[str] = None
    description: Optional[str] = None


class LedgerWorkOrderRef(BaseModel):
    work_order_id: int
    ticket_number: str
    type: str
    status: str
    created_at: datetime
    failure_reason: Optional[str] = None


class LedgerConditionChange(BaseModel):
    work_order_id: int
    ticket_number: str
    condition: str
    changed_at: Optional[datetime] = None


class LedgerEntry(BaseModel):
    date: datetime
    kind: str  # ticket_created | work_order_completed | ticket_closed
    ticket_number: str
    work_order_id: Optional[int] = None
    work_order_type: Optional[str] = None
    created_by: Optional[str] = None
    remarks: Optional[str] = None


class MaintenanceLedger(BaseModel):
    """Kartu Kendali: похідний запис, ніколи не зберігається."""

    asset_code: str
    asset_nup: Optional[str] = None
    asset_location: Optional[str] = None

    maintenance_count: int = 0
    related_tickets: List[LedgerTicket] = Field(default_factory=list)

    spareparts: List[LedgerSparepart] = Field(default_factory=list)
    vendors: List[LedgerVendor] = Field(default_factory=list)
    licenses: List[LedgerLicense] = Field(default_factory=list)

    pending_work_orders: List[LedgerWorkOrderRef] = Field(default_factory=list)
    pending_count: int = 0
    unsuccessful_work_orders: List[LedgerWorkOrderRef] = Field(default_factory=list)
    unsuccessful_count: int = 0

    total_work_orders: int = 0
    completed_work_orders: int = 0
    last_completed_at: Optional[datetime] = None

    asset_condition_changes: List[LedgerConditionChange] = Field(default_factory=list)
    entries: List[LedgerEntry] = Field(default_factory=list)

# app/schemas/work_orders.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.db.models import AssetConditionEnum, WorkOrderStatusEnum, WorkOrderTypeEnum


class SparepartItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit: str = Field(..., min_length=1, max_length=32)


class WorkOrderCreate(BaseModel):
    ticket_id: int
    type: WorkOrderTypeEnum

    # sparepart
    items: Optional[List[SparepartItem]] = None
    # vendor
    vendor_name: Optional[str] = Field(default=None, max_length=255)
    vendor_contact: Optional[str] = Field(default=None, max_length=255)
    # license
    license_name: Optional[str] = Field(default=None, max_length=255)
    # vendor | license
    description: Optional[str] = None


class WorkOrderStatusUpdate(BaseModel):
    status: WorkOrderStatusEnum
    failure_reason: Optional[str] = None
    completion_notes: Optional[str] = None
    asset_condition_change: Optional[AssetConditionEnum] = None

    # vendor може уточнюватись під час закупівлі
    vendor_name: Optional[str] = Field(default=None, max_length=255)
    vendor_contact: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None


class AssetConditionUpdate(BaseModel):
    asset_condition_change: AssetConditionEnum


class WorkOrderEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    action: str
    details: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None


class WorkOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    type: WorkOrderTypeEnum
    status: WorkOrderStatusEnum
    items: Optional[List[SparepartItem]] = None
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None
    license_name: Optional[str] = None
    description: Optional[str] = None
    completion_notes: Optional[str] = None
    failure_reason: Optional[str] = None
    asset_condition_change: Optional[AssetConditionEnum] = None
    created_by_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    completed_by_id: Optional[int] = None
    completed_by_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    events: List[WorkOrderEventOut] = Field(default_factory=list)

# app/schemas/resources.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class ResourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    description: Optional[str] = None
    capacity: Optional[int] = None
    is_active: bool


class BookingEventOut(BaseModel):
    ticket_id: int
    ticket_number: str
    title: str
    start: datetime
    end: datetime
    status: str


class ConflictCheckIn(BaseModel):
    start_at: datetime
    end_at: datetime
    exclude_ticket_id: Optional[int] = None


class ConflictCheckOut(BaseModel):
    kind: str  # clear | soft | hard
    conflict: Optional[Dict[str, Any]] = None

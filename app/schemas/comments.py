# app/schemas/comments.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    body: str = Field(min_length=1, max_length=10_000)


class CommentOut(BaseModel):
    """Коментар = подія timeline з action='comment'."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    ticket_id: int
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    body: str = Field(validation_alias="details")
    created_at: datetime

# app/schemas/users.py
from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict

from app.db.models import RoleEnum


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    email: str
    role: RoleEnum
    name: str
    is_active: bool

class UserAdminUpdate(BaseModel):
    # довідник дзеркалить IdP; вручну правимо лише роль, активність та ім'я
    role: RoleEnum | None = None
    is_active: bool | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)

class UsersPage(BaseModel):
    items: list[UserOut]
    total: int
    page: int
    limit: int

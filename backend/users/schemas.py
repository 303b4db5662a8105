# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the user management endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from auth.schemas import RoleInfo


# -- Requests --------------------------------------------------------------


class CreateUserRequest(BaseModel):
    email: str
    password: str
    role_id: int
    full_name: str = ""
    username: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    new_password: str


class ChangeRoleRequest(BaseModel):
    role_id: int


# -- Responses -------------------------------------------------------------


class UserRow(BaseModel):
    id: int
    email: str
    username: Optional[str] = None
    full_name: str
    role: RoleInfo
    is_active: bool
    is_locked: bool
    login_attempts: int
    last_login: Optional[datetime] = None
    last_login_ip: Optional[str] = None
    password_last_changed: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

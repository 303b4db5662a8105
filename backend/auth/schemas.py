# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


# -- Requests --------------------------------------------------------------


class LoginRequest(BaseModel):
    # Email address or username
    identifier: str = Field(validation_alias=AliasChoices("identifier", "email", "username"))
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ForceLogoutRequest(BaseModel):
    session_id: Optional[int] = None  # omit to end every session


class CleanupSessionsRequest(BaseModel):
    max_idle_minutes: Optional[int] = Field(None, ge=1)


# -- Responses -------------------------------------------------------------


class RoleInfo(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class UserInfo(BaseModel):
    id: int
    email: str
    username: Optional[str] = None
    full_name: str
    role: RoleInfo
    is_active: bool
    last_login: Optional[datetime] = None
    password_last_changed: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SessionInfo(BaseModel):
    id: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    login_time: datetime
    last_activity: datetime

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserInfo
    permissions: List[str]
    session: SessionInfo

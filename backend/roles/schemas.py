# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the role and permission endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


# -- Requests --------------------------------------------------------------


class CreateRoleRequest(BaseModel):
    name: str
    description: str
    permissions: List[int] = []


class UpdateRoleRequest(BaseModel):
    # Omitted fields are left untouched
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[List[int]] = None


class UpdateRolePermissionsRequest(BaseModel):
    permissions: List[int]


class PermissionStatusRequest(BaseModel):
    is_active: bool


# -- Responses -------------------------------------------------------------


class PermissionRow(BaseModel):
    id: int
    name: str
    module: str
    action: str
    description: str
    is_active: bool

    model_config = {"from_attributes": True}


class RoleRow(BaseModel):
    id: int
    name: str
    description: str
    is_default: bool
    is_active: bool
    permissions: List[PermissionRow]
    created_by_id: Optional[int] = None
    updated_by_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoleOption(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}

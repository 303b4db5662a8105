# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Pydantic response models for the audit endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class AuditLogRow(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_email: Optional[str] = None       # resolved from the user join
    action: str
    module: str
    resource_type: str
    resource_id: str
    description: str
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[int] = None
    meta: Optional[Any] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, row) -> dict:
        return cls(
            id=row.id,
            user_id=row.user_id,
            user_email=row.user.email if row.user else None,
            action=row.action,
            module=row.module,
            resource_type=row.resource_type,
            resource_id=row.resource_id,
            description=row.description,
            old_values=row.old_values,
            new_values=row.new_values,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            session_id=row.session_id,
            meta=row.meta,
            created_at=row.created_at,
        ).model_dump()

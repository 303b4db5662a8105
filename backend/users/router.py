# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
User management endpoints – account lifecycle for administrators.

Every endpoint is guarded by an ``authorize`` dependency; the business
rules (self-protection, role checks, session termination) live in
``users.service``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from audit.schemas import AuditLogRow
from auth.context import AuthContext
from auth.gates import authorize
from core.responses import success
from database import get_db
from users import service
from users.schemas import ChangeRoleRequest, CreateUserRequest, ResetPasswordRequest, UserRow

router = APIRouter(prefix="/api/users", tags=["users"])


def _user(user) -> dict:
    return UserRow.model_validate(user).model_dump()


# ---------------------------------------------------------------------------
# GET /api/users  – paginated list
# ---------------------------------------------------------------------------


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = Query(""),
    role_id: Optional[int] = Query(None),
    is_active: Optional[bool] = Query(None),
    ctx: AuthContext = Depends(authorize("users.read")),
    db: Session = Depends(get_db),
):
    result = service.list_users(db, page=page, limit=limit, search=search, role_id=role_id, is_active=is_active)
    return success(data=[_user(u) for u in result["users"]], pagination=result["pagination"])


# ---------------------------------------------------------------------------
# POST /api/users  – create
# ---------------------------------------------------------------------------


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    ctx: AuthContext = Depends(authorize("users.create")),
    db: Session = Depends(get_db),
):
    user = service.create_user(
        db,
        ctx,
        email=body.email,
        password=body.password,
        role_id=body.role_id,
        full_name=body.full_name,
        username=body.username,
    )
    return success(data=_user(user), message="User created successfully")


@router.get("/{user_id}")
def get_user(
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.read")),
    db: Session = Depends(get_db),
):
    user, active_sessions = service.get_user(db, user_id)
    data = _user(user)
    data["active_sessions_count"] = active_sessions
    return success(data=data)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.put("/{user_id}/role")
def change_role(
    user_id: int,
    body: ChangeRoleRequest,
    ctx: AuthContext = Depends(authorize("users.update")),
    db: Session = Depends(get_db),
):
    user = service.change_user_role(db, user_id, body.role_id, ctx)
    return success(data=_user(user), message="Role updated")


@router.put("/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.update")),
    db: Session = Depends(get_db),
):
    user = service.set_user_active(db, user_id, False, ctx)
    return success(data=_user(user), message="User deactivated")


@router.put("/{user_id}/activate")
def activate_user(
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.update")),
    db: Session = Depends(get_db),
):
    user = service.set_user_active(db, user_id, True, ctx)
    return success(data=_user(user), message="User activated")


@router.put("/{user_id}/unlock")
def unlock_user(
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.update")),
    db: Session = Depends(get_db),
):
    user = service.unlock_user(db, user_id, ctx)
    return success(data=_user(user), message="User unlocked")


@router.put("/{user_id}/reset-password")
def reset_password(
    user_id: int,
    body: ResetPasswordRequest,
    ctx: AuthContext = Depends(authorize("users.manage")),
    db: Session = Depends(get_db),
):
    ended = service.reset_user_password(db, user_id, body.new_password, ctx)
    return success(data={"sessions_ended": ended}, message="Password reset successfully")


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.delete")),
    db: Session = Depends(get_db),
):
    service.delete_user(db, user_id, ctx)
    return success(message="User deleted")


# ---------------------------------------------------------------------------
# GET /api/users/{id}/audit-trail
# ---------------------------------------------------------------------------


@router.get("/{user_id}/audit-trail")
def audit_trail(
    user_id: int,
    limit: int = Query(100, ge=1, le=1000),
    skip: int = Query(0, ge=0),
    ctx: AuthContext = Depends(authorize("audit.read")),
    db: Session = Depends(get_db),
):
    result = service.get_user_audit_trail(db, user_id, limit=limit, skip=skip)
    return success(
        data={
            "logs": [AuditLogRow.from_entry(row) for row in result["logs"]],
            "total": result["total"],
            "has_more": result["has_more"],
        }
    )

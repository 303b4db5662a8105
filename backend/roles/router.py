# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Role endpoints – role CRUD, role permission sets and the permission catalog.

Every endpoint is guarded by an ``authorize*`` dependency.  A caller whose
role lacks the permission receives 403 before any business logic runs, and
the denial is recorded in the audit log.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.context import AuthContext
from auth.gates import authorize, authorize_any
from core.responses import success
from database import get_db
from roles import catalog, service
from roles.schemas import (
    CreateRoleRequest,
    PermissionRow,
    PermissionStatusRequest,
    RoleOption,
    RoleRow,
    UpdateRolePermissionsRequest,
    UpdateRoleRequest,
)

router = APIRouter(prefix="/api/roles", tags=["roles"])


def _role(role) -> dict:
    return RoleRow.model_validate(role).model_dump()


# ---------------------------------------------------------------------------
# GET /api/roles  – paginated list
# ---------------------------------------------------------------------------


@router.get("")
def list_roles(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    is_active: Optional[bool] = Query(None),
    ctx: AuthContext = Depends(authorize_any(["roles.read", "users.create"])),
    db: Session = Depends(get_db),
):
    result = service.get_all_roles(db, page=page, limit=limit, search=search, is_active=is_active)
    return success(
        data=[_role(r) for r in result["roles"]],
        pagination=result["pagination"],
    )


@router.get("/simple")
def list_roles_simple(
    ctx: AuthContext = Depends(authorize_any(["roles.read", "orders.read"])),
    db: Session = Depends(get_db),
):
    """Active roles as ``{id, name}`` pairs for dropdowns."""
    roles = service.get_all_roles_simple(db)
    return success(data=[RoleOption.model_validate(r).model_dump() for r in roles])


# ---------------------------------------------------------------------------
# Permission catalog
# ---------------------------------------------------------------------------
# Declared before /{role_id} so that "permissions" is not parsed as an id.


@router.get("/permissions/available")
def available_permissions(
    ctx: AuthContext = Depends(authorize("roles.read")),
    db: Session = Depends(get_db),
):
    result = service.get_available_permissions(db)
    grouped = {
        module: [PermissionRow.model_validate(p).model_dump() for p in perms]
        for module, perms in result["permissions"].items()
    }
    return success(data={"permissions": grouped, "total_permissions": result["total_permissions"]})


@router.put("/permissions/{permission_id}/status")
def set_permission_status(
    permission_id: int,
    body: PermissionStatusRequest,
    ctx: AuthContext = Depends(authorize("settings.manage")),
    db: Session = Depends(get_db),
):
    perm = catalog.set_permission_active(db, permission_id, body.is_active, ctx)
    return success(
        data=PermissionRow.model_validate(perm).model_dump(),
        message=f"Permission {'activated' if perm.is_active else 'deactivated'} successfully",
    )


# ---------------------------------------------------------------------------
# Single role
# ---------------------------------------------------------------------------


@router.get("/{role_id}")
def get_role(
    role_id: int,
    ctx: AuthContext = Depends(authorize("roles.read")),
    db: Session = Depends(get_db),
):
    role, user_count = service.get_role_by_id(db, role_id)
    data = _role(role)
    data["user_count"] = user_count
    return success(data=data)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_role(
    body: CreateRoleRequest,
    ctx: AuthContext = Depends(authorize("roles.create")),
    db: Session = Depends(get_db),
):
    role = service.create_role(db, body.name, body.description, body.permissions, ctx)
    return success(data=_role(role), message="Role created successfully")


@router.put("/{role_id}")
def update_role(
    role_id: int,
    body: UpdateRoleRequest,
    ctx: AuthContext = Depends(authorize("roles.update")),
    db: Session = Depends(get_db),
):
    role = service.update_role(
        db,
        role_id,
        ctx,
        name=body.name,
        description=body.description,
        permission_ids=body.permissions,
    )
    return success(data=_role(role), message="Role updated successfully")


@router.delete("/{role_id}")
def delete_role(
    role_id: int,
    ctx: AuthContext = Depends(authorize("roles.delete")),
    db: Session = Depends(get_db),
):
    service.delete_role(db, role_id, ctx)
    return success(message="Role deactivated successfully")


@router.put("/{role_id}/activate")
def activate_role(
    role_id: int,
    ctx: AuthContext = Depends(authorize("roles.update")),
    db: Session = Depends(get_db),
):
    role = service.reactivate_role(db, role_id, ctx)
    return success(data=_role(role), message="Role reactivated successfully")


# ---------------------------------------------------------------------------
# Role permission set
# ---------------------------------------------------------------------------


@router.get("/{role_id}/permissions")
def get_role_permissions(
    role_id: int,
    ctx: AuthContext = Depends(authorize("roles.read")),
    db: Session = Depends(get_db),
):
    role = service.get_role_permissions(db, role_id)
    return success(
        data={
            "role_id": role.id,
            "role_name": role.name,
            "permissions": [PermissionRow.model_validate(p).model_dump() for p in role.permissions],
        }
    )


@router.put("/{role_id}/permissions")
def update_role_permissions(
    role_id: int,
    body: UpdateRolePermissionsRequest,
    ctx: AuthContext = Depends(authorize("roles.update")),
    db: Session = Depends(get_db),
):
    role = service.update_role_permissions(db, role_id, body.permissions, ctx)
    return success(data=_role(role), message="Role permissions updated successfully")

# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Role store – named, revisable bundles of permissions.

Rules enforced here
-------------------
* Default (system-seeded) roles cannot be renamed, re-permissioned or
  deleted.  Reactivation is always allowed.
* Every permission id handed in must resolve to an *active* permission.
  Validation happens before anything on the role is touched, so a rejected
  request leaves the stored role as it was.
* A role held by at least one active user cannot be deleted.
* Deletion is a soft delete (``is_active = False``).
* Every mutation is followed by an audit entry (module ``roles``).
"""

import math
from collections.abc import Iterable
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.service import log_action
from auth.context import AuthContext
from core.errors import (
    CannotModifyDefault,
    DuplicateRole,
    InvalidPermission,
    RoleInUse,
    RoleNotFound,
    ValidationError,
)
from core.logger import logger
from models.audit_log import AuditAction
from models.permission import Permission
from models.role import Role
from models.user import User
from roles import catalog

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_role(db: Session, role_id: int) -> Role:
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise RoleNotFound()
    return role


def _required_text(value, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


def _ensure_name_free(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    q = db.query(Role.id).filter(Role.name == name)
    if exclude_id is not None:
        q = q.filter(Role.id != exclude_id)
    if q.first():
        raise DuplicateRole(f"Role '{name}' already exists")


def resolve_permissions(db: Session, permission_ids: Iterable[int]) -> list[Permission]:
    """
    Map ids to active Permission rows, or raise InvalidPermission naming
    every id that is unknown or inactive.
    """
    if isinstance(permission_ids, (str, bytes)) or not isinstance(permission_ids, Iterable):
        raise ValidationError("Permissions must be an array")
    ids = list(dict.fromkeys(permission_ids))
    if not ids:
        return []
    found = (
        db.query(Permission)
        .filter(Permission.id.in_(ids), Permission.is_active.is_(True))
        .all()
    )
    by_id = {p.id: p for p in found}
    invalid = [i for i in ids if i not in by_id]
    if invalid:
        raise InvalidPermission(
            "One or more permissions are invalid: " + ", ".join(str(i) for i in invalid)
        )
    return [by_id[i] for i in ids]


def _guard_default(role: Role, message: str) -> None:
    if role.is_default:
        raise CannotModifyDefault(message)


def _summary(role: Role) -> dict:
    return {
        "name": role.name,
        "description": role.description,
        "permission_count": len(role.permissions),
    }


def _commit(db: Session, name: str) -> None:
    """Commit, turning a unique-name race into DuplicateRole."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateRole(f"Role '{name}' already exists")


def count_active_holders(db: Session, role_id: int) -> int:
    return (
        db.query(func.count(User.id))
        .filter(User.role_id == role_id, User.is_active.is_(True))
        .scalar()
        or 0
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_all_roles(
    db: Session,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    is_active: Optional[bool] = None,
) -> dict:
    """Paginated role list with case-insensitive search over name and description."""
    q = db.query(Role)
    if search:
        needle = search.lower()
        q = q.filter(
            or_(
                func.lower(Role.name).contains(needle, autoescape=True),
                func.lower(Role.description).contains(needle, autoescape=True),
            )
        )
    if is_active is not None:
        q = q.filter(Role.is_active.is_(is_active))

    total = q.count()
    roles = (
        q.order_by(Role.created_at.desc(), Role.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "roles": roles,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_roles": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_all_roles_simple(db: Session) -> list[Role]:
    """Active roles only, ordered by name – for assignment dropdowns."""
    return db.query(Role).filter(Role.is_active.is_(True)).order_by(Role.name).all()


def get_role_by_id(db: Session, role_id: int) -> tuple[Role, int]:
    """Return the role and the number of active users holding it."""
    role = _get_role(db, role_id)
    return role, count_active_holders(db, role.id)


def get_role_permissions(db: Session, role_id: int) -> Role:
    return _get_role(db, role_id)


def get_available_permissions(db: Session) -> dict:
    return catalog.list_active(db)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_role(
    db: Session,
    name: str,
    description: str,
    permission_ids: Iterable[int],
    actor: AuthContext,
) -> Role:
    name = _required_text(name, "Role name")
    description = _required_text(description, "Role description")
    permissions = resolve_permissions(db, permission_ids)
    _ensure_name_free(db, name)

    role = Role(
        name=name,
        description=description,
        permissions=permissions,
        is_default=False,
        is_active=True,
        created_by_id=actor.user_id,
    )
    db.add(role)
    _commit(db, name)
    db.refresh(role)

    log_action(
        db,
        action=AuditAction.CREATE,
        module="roles",
        resource_type="Role",
        resource_id=role.id,
        description=f"Created new role: {role.name}",
        new_values=_summary(role),
        **actor.audit_fields(),
    )
    logger.info("Role %r created by user_id=%s", role.name, actor.user_id)
    return role


def update_role(
    db: Session,
    role_id: int,
    actor: AuthContext,
    name: Optional[str] = None,
    description: Optional[str] = None,
    permission_ids: Optional[Iterable[int]] = None,
) -> Role:
    """Overwrite only the fields that were supplied (``None`` means untouched)."""
    role = _get_role(db, role_id)
    _guard_default(role, "Cannot modify default system roles")

    # Validate everything before touching the row
    new_name = _required_text(name, "Role name") if name is not None else None
    new_description = _required_text(description, "Role description") if description is not None else None
    new_permissions = resolve_permissions(db, permission_ids) if permission_ids is not None else None
    if new_name is not None and new_name != role.name:
        _ensure_name_free(db, new_name, exclude_id=role.id)

    old_values = _summary(role)
    if new_name is not None:
        role.name = new_name
    if new_description is not None:
        role.description = new_description
    if new_permissions is not None:
        role.permissions = new_permissions
    role.updated_by_id = actor.user_id
    _commit(db, role.name)
    db.refresh(role)

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="roles",
        resource_type="Role",
        resource_id=role.id,
        description=f"Updated role: {role.name}",
        old_values=old_values,
        new_values=_summary(role),
        **actor.audit_fields(),
    )
    return role


def update_role_permissions(
    db: Session,
    role_id: int,
    permission_ids: Iterable[int],
    actor: AuthContext,
) -> Role:
    """Replace the role's whole permission set (not a merge)."""
    role = _get_role(db, role_id)
    _guard_default(role, "Cannot modify permissions of default system roles")
    permissions = resolve_permissions(db, permission_ids)

    old_count = len(role.permissions)
    role.permissions = permissions
    role.updated_by_id = actor.user_id
    db.commit()
    db.refresh(role)

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="roles",
        resource_type="Role",
        resource_id=role.id,
        description=f"Updated permissions for role: {role.name}",
        old_values={"permission_count": old_count},
        new_values={"permission_count": len(role.permissions)},
        **actor.audit_fields(),
    )
    return role


def delete_role(db: Session, role_id: int, actor: AuthContext) -> Role:
    """Soft delete.  Refused for default roles and roles held by active users."""
    role = _get_role(db, role_id)
    _guard_default(role, "Cannot delete default system roles")

    holders = count_active_holders(db, role.id)
    if holders > 0:
        raise RoleInUse(
            f"Cannot delete role. {holders} user(s) are currently assigned to this role."
        )

    role.is_active = False
    role.updated_by_id = actor.user_id
    db.commit()

    log_action(
        db,
        action=AuditAction.DELETE,
        module="roles",
        resource_type="Role",
        resource_id=role.id,
        description=f"Deactivated role: {role.name}",
        old_values={"is_active": True},
        new_values={"is_active": False},
        **actor.audit_fields(),
    )
    return role


def reactivate_role(db: Session, role_id: int, actor: AuthContext) -> Role:
    role = _get_role(db, role_id)
    was_active = role.is_active
    role.is_active = True
    role.updated_by_id = actor.user_id
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="roles",
        resource_type="Role",
        resource_id=role.id,
        description=f"Reactivated role: {role.name}",
        old_values={"is_active": was_active},
        new_values={"is_active": True},
        **actor.audit_fields(),
    )
    return role


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

SUPER_ADMIN = "Super Admin"


def _in(module: str, *actions: str):
    return lambda p: p.module == module and p.action in actions


def _any(*preds):
    return lambda p: any(pred(p) for pred in preds)


# name → (description, permission filter over active catalog rows)
DEFAULT_ROLES = {
    SUPER_ADMIN: (
        "Full system access with all permissions",
        lambda p: True,
    ),
    "Admin": (
        "Administrative access with most permissions",
        lambda p: p.name not in ("settings.manage", "users.delete"),
    ),
    "Manager": (
        "Management level access",
        _any(
            lambda p: p.action in ("read", "update", "approve"),
            _in("orders", "create", "manage"),
            _in("customers", "create", "manage"),
            _in("attendance", "create", "read", "update", "manage"),
            _in("godowns", "read"),
        ),
    ),
    "Sales Executive": (
        "Sales operations access",
        _any(
            _in("orders", "create", "read", "update"),
            _in("customers", "create", "read", "update"),
            _in("stock", "read"),
            _in("attendance", "create", "read"),
            _in("godowns", "read"),
        ),
    ),
    "Staff": (
        "Basic staff access",
        lambda p: p.action == "read" and p.module in ("orders", "stock", "production", "attendance", "godowns"),
    ),
    "Driver": (
        "Delivery driver access",
        _any(
            _in("orders", "read", "update", "manage"),
            _in("attendance", "create", "read"),
            _in("godowns", "read"),
        ),
    ),
}


def seed_default_roles(db: Session) -> dict:
    """
    Create the system roles, or refresh the permission set of existing ones.

    A non-default role that happens to carry a system name is left alone.
    """
    active = db.query(Permission).filter(Permission.is_active.is_(True)).all()
    created = refreshed = 0
    for name, (description, wanted) in DEFAULT_ROLES.items():
        perms = [p for p in active if wanted(p)]
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            db.add(Role(name=name, description=description, permissions=perms, is_default=True, is_active=True))
            created += 1
        elif role.is_default:
            role.description = description
            role.permissions = perms
            refreshed += 1
        else:
            logger.warning("Role %r exists but is not a default role – not seeding it", name)
    db.commit()
    logger.info("Default roles seeded: %d created, %d refreshed", created, refreshed)
    return {"created": created, "refreshed": refreshed}

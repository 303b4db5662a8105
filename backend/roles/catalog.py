# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Permission catalog – the fixed set of ``module.action`` capabilities.

The catalog is seeded at boot by ``core.bootstrap.initialize``.  Seeding is
an upsert by name: descriptive fields are refreshed, ``is_active`` is never
overwritten, so an administrator's deactivation survives restarts.
"""

from collections import OrderedDict

from sqlalchemy.orm import Session

from audit.service import log_action
from auth.context import AuthContext
from core.errors import NotFoundError
from core.logger import logger
from models.audit_log import AuditAction
from models.permission import Permission

# (name, module, action, description)
DEFAULT_PERMISSIONS = [
    # User management
    ("users.create", "users", "create", "Create new users"),
    ("users.read", "users", "read", "View users"),
    ("users.update", "users", "update", "Update user details"),
    ("users.delete", "users", "delete", "Delete users"),
    ("users.manage", "users", "manage", "Full user management access"),
    # Role management
    ("roles.create", "roles", "create", "Create new roles"),
    ("roles.read", "roles", "read", "View roles"),
    ("roles.update", "roles", "update", "Update roles"),
    ("roles.delete", "roles", "delete", "Delete roles"),
    # Customers
    ("customers.create", "customers", "create", "Create new customers"),
    ("customers.read", "customers", "read", "View customers"),
    ("customers.update", "customers", "update", "Update customers"),
    ("customers.delete", "customers", "delete", "Delete customers"),
    # Orders
    ("orders.create", "orders", "create", "Create new orders"),
    ("orders.read", "orders", "read", "View orders"),
    ("orders.update", "orders", "update", "Update orders"),
    ("orders.delete", "orders", "delete", "Delete orders"),
    ("orders.approve", "orders", "approve", "Approve orders"),
    ("orders.manage", "orders", "manage", "Manage order assignments and delivery workflow"),
    ("orders.editPrice", "orders", "editPrice", "Edit order price"),
    ("orders.manageStatus", "orders", "manageStatus", "Edit order status"),
    ("orders.manageDeliveryStatus", "orders", "manageDeliveryStatus", "Edit order delivery status"),
    # Stock
    ("stock.create", "stock", "create", "Add stock entries"),
    ("stock.read", "stock", "read", "View stock"),
    ("stock.update", "stock", "update", "Update stock"),
    ("stock.delete", "stock", "delete", "Delete stock entries"),
    # Production
    ("production.create", "production", "create", "Create production batches"),
    ("production.read", "production", "read", "View production data"),
    ("production.update", "production", "update", "Update production status"),
    ("production.delete", "production", "delete", "Delete production batches"),
    ("production.manage", "production", "manage", "Manage production batches"),
    # Godowns
    ("godowns.create", "godowns", "create", "Create new godowns"),
    ("godowns.read", "godowns", "read", "View godowns"),
    ("godowns.update", "godowns", "update", "Update godown details"),
    ("godowns.delete", "godowns", "delete", "Delete godowns"),
    # Billing
    ("billing.create", "billing", "create", "Create invoices"),
    ("billing.read", "billing", "read", "View billing information"),
    ("billing.update", "billing", "update", "Update billing details"),
    # Reports / settings
    ("reports.read", "reports", "read", "View reports"),
    ("settings.manage", "settings", "manage", "Manage system settings"),
    # Attendance
    ("attendance.create", "attendance", "create", "Mark attendance"),
    ("attendance.read", "attendance", "read", "View attendance records"),
    ("attendance.update", "attendance", "update", "Update attendance records"),
    ("attendance.delete", "attendance", "delete", "Delete attendance records"),
    ("attendance.manage", "attendance", "manage", "Full attendance management access"),
    # Audit
    ("audit.read", "audit", "read", "View system activity and audit logs"),
    ("audit.manage", "audit", "manage", "Full audit and activity management access"),
    # Transits
    ("transits.create", "transits", "create", "Create new transits"),
    ("transits.read", "transits", "read", "View transits"),
    ("transits.update", "transits", "update", "Update transits"),
    ("transits.delete", "transits", "delete", "Delete transits"),
    ("transits.manage", "transits", "manage", "Manage transit assignments and status"),
]


def seed_default_permissions(db: Session) -> dict:
    """
    Ensure every default permission exists.  Safe to run on every boot.

    Returns ``{"created": n, "existing": m}``.  Errors propagate: the caller
    must not serve traffic with a partial catalog.
    """
    existing = {p.name: p for p in db.query(Permission).all()}
    created = 0
    for name, module, action, description in DEFAULT_PERMISSIONS:
        perm = existing.get(name)
        if perm is None:
            db.add(Permission(name=name, module=module, action=action, description=description, is_active=True))
            created += 1
        else:
            perm.module = module
            perm.action = action
            perm.description = description
    db.commit()
    logger.info("Permission catalog seeded: %d created, %d existing", created, len(existing))
    return {"created": created, "existing": len(existing)}


def list_active(db: Session) -> dict:
    """Active permissions grouped by module, sorted by module then action."""
    perms = (
        db.query(Permission)
        .filter(Permission.is_active.is_(True))
        .order_by(Permission.module, Permission.action)
        .all()
    )
    grouped: "OrderedDict[str, list[Permission]]" = OrderedDict()
    for perm in perms:
        grouped.setdefault(perm.module, []).append(perm)
    return {"permissions": grouped, "total_permissions": len(perms)}


def set_permission_active(db: Session, permission_id: int, is_active: bool, actor: AuthContext) -> Permission:
    """Administrative toggle – the only change a catalog row accepts after seeding."""
    perm = db.query(Permission).filter(Permission.id == permission_id).first()
    if not perm:
        raise NotFoundError("Permission not found")
    was_active = perm.is_active
    perm.is_active = is_active
    db.commit()
    db.refresh(perm)

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="permissions",
        resource_type="Permission",
        resource_id=perm.id,
        description=f"{'Activated' if is_active else 'Deactivated'} permission: {perm.name}",
        old_values={"is_active": was_active},
        new_values={"is_active": is_active},
        **actor.audit_fields(),
    )
    return perm

# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Boot-time seeding: permission catalog, default roles, first Super Admin.

``initialize`` is called by the FastAPI startup hook and by
``bin/seed.py``.  Every step is idempotent.  Errors propagate so that a
process with a partial catalog refuses to start.
"""

from sqlalchemy.orm import Session

from core.config import settings
from core.logger import logger
from core.security import hash_password, validate_password_strength
from database import utcnow
from models.role import Role
from models.user import User
from roles.catalog import seed_default_permissions
from roles.service import SUPER_ADMIN, seed_default_roles


def seed_super_admin(db: Session) -> bool:
    """
    Create the first Super Admin from ``FIRST_ADMIN_*`` settings.

    Returns True if a user was created.  Skipped when the settings are
    empty or the email is already registered.
    """
    email = settings.first_admin_email.strip().lower()
    if not email or not settings.first_admin_password:
        logger.info("FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD not set – skipping Super Admin seed")
        return False

    if db.query(User.id).filter(User.email == email).first():
        logger.info("Super Admin '%s' already exists – skipping", email)
        return False

    validate_password_strength(settings.first_admin_password)
    role = db.query(Role).filter(Role.name == SUPER_ADMIN).one()
    db.add(
        User(
            email=email,
            full_name=settings.first_admin_name,
            password_hash=hash_password(settings.first_admin_password),
            role_id=role.id,
            is_active=True,
            password_last_changed=utcnow(),
        )
    )
    db.commit()
    logger.info("Super Admin '%s' created", email)
    return True


def initialize(db: Session) -> dict:
    """Seed permissions, then roles, then the Super Admin, in that order."""
    permissions = seed_default_permissions(db)
    roles = seed_default_roles(db)
    admin_created = seed_super_admin(db)
    return {"permissions": permissions, "roles": roles, "admin_created": admin_created}

# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
User lifecycle – the administrator side of account management.

Guards
------
* An administrator cannot change their own role, deactivate or delete
  their own account (prevents accidental self-lockout).
* A user can only be given an existing, active role.
* A password reset ends every session of the target user, so tokens
  issued before the reset stop working immediately.
"""

import math
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from audit.service import get_user_activity_log, log_action
from auth.context import AuthContext
from auth.sessions import terminate_user_sessions
from core.errors import AccountNotFound, DuplicateUser, RoleNotFound, ValidationError
from core.logger import logger
from core.security import hash_password, validate_password_strength
from database import utcnow
from models.audit_log import AuditAction
from models.role import Role
from models.user import User
from models.user_session import LogoutReason, UserSession


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).options(joinedload(User.role)).filter(User.id == user_id).first()
    if not user:
        raise AccountNotFound()
    return user


def _assignable_role(db: Session, role_id: int) -> Role:
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise RoleNotFound()
    if not role.is_active:
        raise ValidationError("Cannot assign an inactive role")
    return role


def _not_self(actor: AuthContext, user_id: int, message: str) -> None:
    if actor.user_id == user_id:
        raise ValidationError(message)


def _snapshot(user: User) -> dict:
    return {
        "email": user.email,
        "username": user.username,
        "full_name": user.full_name,
        "role": user.role.name if user.role else None,
        "is_active": user.is_active,
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_users(
    db: Session,
    page: int = 1,
    limit: int = 20,
    search: str = "",
    role_id: Optional[int] = None,
    is_active: Optional[bool] = None,
) -> dict:
    q = db.query(User).options(joinedload(User.role))
    if search:
        needle = search.lower()
        q = q.filter(
            or_(
                func.lower(User.email).contains(needle, autoescape=True),
                func.lower(User.username).contains(needle, autoescape=True),
                func.lower(User.full_name).contains(needle, autoescape=True),
            )
        )
    if role_id is not None:
        q = q.filter(User.role_id == role_id)
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))

    total = q.count()
    users = q.order_by(User.id).offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "users": users,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_users": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_user(db: Session, user_id: int) -> tuple[User, int]:
    """Return the user and its number of active sessions."""
    user = _get_user(db, user_id)
    active = (
        db.query(func.count(UserSession.id))
        .filter(UserSession.user_id == user.id, UserSession.is_active.is_(True))
        .scalar()
    )
    return user, active or 0


def get_user_audit_trail(db: Session, user_id: int, limit: int = 100, skip: int = 0) -> dict:
    _get_user(db, user_id)
    return get_user_activity_log(db, user_id, limit=limit, skip=skip)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_user(
    db: Session,
    actor: AuthContext,
    email: str,
    password: str,
    role_id: int,
    full_name: str = "",
    username: Optional[str] = None,
) -> User:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    username = username.strip().lower() if username and username.strip() else None
    validate_password_strength(password)
    role = _assignable_role(db, role_id)

    clash = db.query(User.id).filter(
        or_(User.email == email, User.username == username) if username else User.email == email
    )
    if clash.first():
        raise DuplicateUser()

    user = User(
        email=email,
        username=username,
        full_name=(full_name or "").strip(),
        password_hash=hash_password(password),
        role_id=role.id,
        is_active=True,
        password_last_changed=utcnow(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateUser()
    db.refresh(user)

    log_action(
        db,
        action=AuditAction.CREATE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"Created user: {user.email}",
        new_values=_snapshot(user),
        **actor.audit_fields(),
    )
    logger.info("User %s created by user_id=%s with role %r", user.email, actor.user_id, role.name)
    return user


def change_user_role(db: Session, user_id: int, role_id: int, actor: AuthContext) -> User:
    _not_self(actor, user_id, "Cannot change your own role")
    user = _get_user(db, user_id)
    role = _assignable_role(db, role_id)

    old_role = user.role.name
    user.role_id = role.id
    db.commit()
    db.refresh(user)

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"Changed role of {user.email}: {old_role} -> {role.name}",
        old_values={"role": old_role},
        new_values={"role": role.name},
        **actor.audit_fields(),
    )
    return user


def set_user_active(db: Session, user_id: int, is_active: bool, actor: AuthContext) -> User:
    """
    Deactivate or reactivate an account.  A deactivated user fails the
    authentication gate on the next request, so no session cleanup is needed.
    """
    if not is_active:
        _not_self(actor, user_id, "Cannot deactivate your own account")
    user = _get_user(db, user_id)
    was_active = user.is_active
    user.is_active = is_active
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"{'Reactivated' if is_active else 'Deactivated'} user: {user.email}",
        old_values={"is_active": was_active},
        new_values={"is_active": is_active},
        **actor.audit_fields(),
    )
    return user


def unlock_user(db: Session, user_id: int, actor: AuthContext) -> User:
    user = _get_user(db, user_id)
    user.login_attempts = 0
    user.lock_until = None
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"Unlocked user: {user.email}",
        **actor.audit_fields(),
    )
    return user


def reset_user_password(db: Session, user_id: int, new_password: str, actor: AuthContext) -> int:
    """Overwrite the password and end every session.  Returns the number ended."""
    user = _get_user(db, user_id)
    validate_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    user.password_last_changed = utcnow()
    user.login_attempts = 0
    user.lock_until = None
    ended = terminate_user_sessions(db, user.id, LogoutReason.PASSWORD_RESET_BY_ADMIN)
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"Admin reset password for {user.email}",
        meta={"sessions_ended": ended},
        **actor.audit_fields(),
    )
    logger.info("Password of %s reset by user_id=%s (%d sessions ended)", user.email, actor.user_id, ended)
    return ended


def delete_user(db: Session, user_id: int, actor: AuthContext) -> None:
    """
    Hard delete.  The audit entry is written first, while the row it
    describes still exists; the user's sessions go with it.  Audit entries
    are left untouched and keep pointing at the deleted ids.
    """
    _not_self(actor, user_id, "Cannot delete your own account")
    user = _get_user(db, user_id)

    log_action(
        db,
        action=AuditAction.DELETE,
        module="users",
        resource_type="User",
        resource_id=user.id,
        description=f"Deleted user: {user.email}",
        old_values=_snapshot(user),
        **actor.audit_fields(),
    )

    db.query(UserSession).filter(UserSession.user_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("User id=%s deleted by user_id=%s", user_id, actor.user_id)

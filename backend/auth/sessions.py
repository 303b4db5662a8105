# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Session manager – issues, tracks and terminates bearer-token sessions.

A session goes ``active → terminated`` exactly once.  Termination happens on
logout, forced logout by an administrator, a password reset or change, or
the idle-session cleanup job.  Terminated rows are kept for the record;
they are only removed together with their user.

Security notes
--------------
* Login returns the *same* error message whether the identifier doesn't
  exist or the password is wrong.  This prevents user-enumeration attacks.
* ``max_login_attempts`` consecutive failures lock the account for
  ``lockout_minutes``.  Once a lock has expired the counter restarts.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit.service import log_action
from auth.context import AuthContext
from auth.gates import build_context, load_user_with_permissions
from core.config import settings
from core.errors import (
    AccountDeactivated,
    AccountLocked,
    AccountNotFound,
    InvalidCredentials,
    SessionInvalid,
    SessionNotFound,
    ValidationError,
)
from core.logger import logger
from core.security import (
    create_access_token,
    hash_password,
    validate_password_strength,
    verify_password,
)
from database import utcnow
from models.audit_log import AuditAction
from models.user import User
from models.user_session import LogoutReason, UserSession


def _issue_token(user: User) -> str:
    return create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.name})


def _register_failed_attempt(user: User) -> None:
    now = utcnow()
    if user.lock_until is not None and user.lock_until <= now:
        # Previous lock has run out – start counting again
        user.lock_until = None
        user.login_attempts = 1
        return
    user.login_attempts = (user.login_attempts or 0) + 1
    if user.login_attempts >= settings.max_login_attempts:
        user.lock_until = now + timedelta(minutes=settings.lockout_minutes)
        logger.warning("Account %s locked after %d failed logins", user.email, user.login_attempts)


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


def login(
    db: Session,
    identifier: str,
    password: str,
    ip_address: str = "Unknown",
    user_agent: str = "Unknown",
) -> dict:
    """
    Verify credentials, open a session and return the signed token.

    *identifier* is an email address or a username, matched
    case-insensitively.
    """
    ident = (identifier or "").strip().lower()
    if not ident or not password:
        raise ValidationError("Identifier and password are required")

    user = (
        db.query(User)
        .filter(or_(func.lower(User.email) == ident, func.lower(User.username) == ident))
        .first()
    )
    if not user:
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountDeactivated("Account is deactivated. Please contact administrator.")
    if user.is_locked:
        raise AccountLocked(
            "Account is locked due to multiple failed login attempts. "
            "Please try again later or contact administrator."
        )

    if not verify_password(password, user.password_hash):
        _register_failed_attempt(user)
        db.commit()
        log_action(
            db,
            user_id=user.id,
            action=AuditAction.LOGIN,
            module="auth",
            resource_type="User",
            resource_id=user.id,
            description="Failed login attempt - invalid password",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise InvalidCredentials()

    user.login_attempts = 0
    user.lock_until = None
    user.last_login = utcnow()
    user.last_login_ip = ip_address

    token = _issue_token(user)
    session = UserSession(
        user_id=user.id,
        session_token=token,
        ip_address=ip_address,
        user_agent=user_agent,
        is_active=True,
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    log_action(
        db,
        user_id=user.id,
        action=AuditAction.LOGIN,
        module="auth",
        resource_type="User",
        resource_id=user.id,
        description="Successful login",
        ip_address=ip_address,
        user_agent=user_agent,
        session_id=session.id,
    )
    logger.info("User %s logged in (session=%s)", user.email, session.id)

    user = load_user_with_permissions(db, user.id)
    return {"token": token, "user": user, "session": session}


def logout(db: Session, ctx: AuthContext) -> None:
    session = (
        db.query(UserSession)
        .filter(UserSession.id == ctx.session_id, UserSession.is_active.is_(True))
        .first()
    )
    if not session:
        return
    session.end(LogoutReason.MANUAL)
    db.commit()
    log_action(
        db,
        action=AuditAction.LOGOUT,
        module="auth",
        resource_type="User",
        resource_id=ctx.user_id,
        description="User logout",
        **ctx.audit_fields(),
    )


def refresh_token(db: Session, ctx: AuthContext) -> dict:
    """Issue a new token and rebind the current session to it."""
    session = (
        db.query(UserSession)
        .filter(
            UserSession.id == ctx.session_id,
            UserSession.session_token == ctx.token,
            UserSession.is_active.is_(True),
        )
        .first()
    )
    if not session:
        raise SessionInvalid("Invalid session")

    user = load_user_with_permissions(db, ctx.user_id)
    if not user or not user.is_active:
        raise SessionInvalid("User not found or inactive")

    token = _issue_token(user)
    session.session_token = token
    session.last_activity = utcnow()
    db.commit()
    db.refresh(session)

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="auth",
        resource_type="UserSession",
        resource_id=session.id,
        description="Token refreshed",
        **ctx.audit_fields(),
    )
    return {"token": token, "session": session}


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


def terminate_user_sessions(db: Session, user_id: int, reason: LogoutReason) -> int:
    """
    Close every active session of *user_id* in one statement.

    The caller commits.  Returns the number of sessions closed.
    """
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        .update(
            {
                UserSession.is_active: False,
                UserSession.logout_time: utcnow(),
                UserSession.auto_logout_reason: reason.value,
            },
            synchronize_session="fetch",
        )
    )


def force_logout(
    db: Session,
    target_user_id: int,
    actor: AuthContext,
    session_id: Optional[int] = None,
) -> int:
    """
    Administrator action: end one session of the target user, or all of
    them when *session_id* is omitted.  Returns the number ended.
    """
    target = db.query(User).filter(User.id == target_user_id).first()
    if not target:
        raise AccountNotFound()

    q = db.query(UserSession).filter(
        UserSession.user_id == target_user_id,
        UserSession.is_active.is_(True),
    )
    if session_id is not None:
        q = q.filter(UserSession.id == session_id)
    sessions = q.all()
    if session_id is not None and not sessions:
        raise SessionNotFound("Active session not found")

    for session in sessions:
        session.end(LogoutReason.FORCED)
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="users",
        resource_type="UserSession",
        resource_id=target_user_id,
        description=f"Admin forced logout - {len(sessions)} session(s) ended",
        meta={"target_user_id": target_user_id, "sessions_ended": len(sessions), "session_id": session_id},
        **actor.audit_fields(),
    )
    logger.info("user_id=%s forced logout of user_id=%s (%d sessions)", actor.user_id, target_user_id, len(sessions))
    return len(sessions)


def cleanup_expired_sessions(db: Session, max_idle_minutes: Optional[int] = None) -> dict:
    """
    Close active sessions idle for longer than the threshold.

    Sessions are handled one at a time; a failure on one is recorded and
    the sweep carries on.  Returns ``{"cleaned": n, "failed": [ids]}``.
    """
    idle = max_idle_minutes if max_idle_minutes is not None else settings.session_idle_minutes
    cutoff = utcnow() - timedelta(minutes=idle)
    stale_ids = [
        sid
        for (sid,) in db.query(UserSession.id)
        .filter(UserSession.is_active.is_(True), UserSession.last_activity < cutoff)
        .all()
    ]

    cleaned, failed = 0, []
    for sid in stale_ids:
        try:
            session = db.query(UserSession).filter(UserSession.id == sid).first()
            if session is None or not session.is_active:
                continue
            session.end(LogoutReason.EXPIRED)
            db.commit()
            cleaned += 1
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not expire session %s", sid)
            failed.append(sid)

    logger.info("Session cleanup: %d expired, %d failed", cleaned, len(failed))
    return {"cleaned": cleaned, "failed": failed}


# ---------------------------------------------------------------------------
# Profile / password
# ---------------------------------------------------------------------------


def get_profile(db: Session, ctx: AuthContext) -> dict:
    user = load_user_with_permissions(db, ctx.user_id)
    if not user:
        raise AccountNotFound()
    active_sessions = (
        db.query(func.count(UserSession.id))
        .filter(UserSession.user_id == user.id, UserSession.is_active.is_(True))
        .scalar()
    )
    return {
        "user": user,
        "permissions": sorted(ctx.permissions),
        "active_sessions_count": active_sessions or 0,
    }


def change_password(db: Session, ctx: AuthContext, current_password: str, new_password: str) -> None:
    """
    Change the caller's own password.  Every session – the current one
    included – is closed, so the user has to log in again.
    """
    user = db.query(User).filter(User.id == ctx.user_id).first()
    if not user:
        raise AccountNotFound()
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    validate_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    user.password_last_changed = utcnow()
    ended = terminate_user_sessions(db, user.id, LogoutReason.PASSWORD_CHANGE)
    db.commit()

    log_action(
        db,
        action=AuditAction.UPDATE,
        module="auth",
        resource_type="User",
        resource_id=user.id,
        description="Password changed",
        meta={"sessions_ended": ended},
        **ctx.audit_fields(),
    )


def context_for_session(db: Session, session: UserSession) -> AuthContext:
    """Build an AuthContext for an already-open session (scripts, tests)."""
    user = load_user_with_permissions(db, session.user_id)
    return build_context(user, session)

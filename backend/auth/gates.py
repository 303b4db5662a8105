# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Authentication and authorization gates.

``authenticate`` runs before every protected endpoint and resolves the
caller into an :class:`AuthContext`.  The checks run in a fixed order:

1. bearer header present                       → MissingToken
2. signature and expiry (no DB access yet)     → TokenExpired / InvalidToken
3. user exists (role + permissions joined)     → UserNotFound
4. user active                                 → AccountDeactivated
5. user not locked                             → AccountLocked
6. matching *active* session for this token    → SessionInvalid

The session check is last on purpose: a session terminated early (logout,
forced logout, password reset) beats a cryptographically valid token.

The ``require_*`` functions evaluate a policy against an AuthContext.  A
denial appends exactly one audit entry (module ``auth``) before raising
403; a grant writes nothing.  Anything unexpected during evaluation is
turned into a 500 – access is never granted by accident.

``authorize*`` wrap those functions as FastAPI dependencies::

    @router.get("/roles", dependencies=[Depends(authorize("roles.read"))])
"""

from functools import wraps
from typing import Optional, Sequence

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from audit.service import log_action
from auth.context import AuthContext
from core.errors import (
    AccountDeactivated,
    AccountLocked,
    AppError,
    AuthenticationFailed,
    AuthenticationRequired,
    AuthorizationFailed,
    InsufficientPermissions,
    MissingToken,
    SessionInvalid,
    UserNotFound,
)
from core.logger import logger
from core.security import decode_access_token, get_client_ip, get_user_agent
from database import get_db, utcnow
from models.audit_log import AuditAction
from models.role import Role
from models.user import User
from models.user_session import UserSession

# The tokenUrl here is only used by the auto-generated OpenAPI docs;
# the actual login endpoint takes JSON at POST /api/auth/login.
# auto_error=False so that a missing header maps to our own MissingToken.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def load_user_with_permissions(db: Session, user_id: int) -> Optional[User]:
    """Fetch a user with its role and the role's permissions in one go."""
    return (
        db.query(User)
        .options(joinedload(User.role).selectinload(Role.permissions))
        .filter(User.id == user_id)
        .first()
    )


def build_context(user: User, session: UserSession, request: Optional[Request] = None) -> AuthContext:
    role = user.role
    return AuthContext(
        user_id=user.id,
        email=user.email,
        role_id=role.id,
        role_name=role.name,
        permissions=role.permission_names,
        session_id=session.id,
        token=session.session_token,
        ip_address=get_client_ip(request) if request is not None else "Unknown",
        user_agent=get_user_agent(request) if request is not None else "Unknown",
    )


def authenticate(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Dependency: resolve the bearer token into an AuthContext.

    On success ``request.state`` carries ``auth`` (the context), ``user``
    and ``session`` (the ORM rows) for downstream handlers.
    """
    if not token:
        raise MissingToken()

    payload = decode_access_token(token)

    try:
        user = load_user_with_permissions(db, payload["user_id"])
        if not user:
            raise UserNotFound()
        if not user.is_active:
            raise AccountDeactivated()
        if user.is_locked:
            raise AccountLocked()

        session = (
            db.query(UserSession)
            .filter(
                UserSession.user_id == user.id,
                UserSession.session_token == token,
                UserSession.is_active.is_(True),
            )
            .first()
        )
        if not session:
            raise SessionInvalid()

        ctx = build_context(user, session, request)

        session.last_activity = utcnow()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Authentication lookup failed for user_id=%s", payload.get("user_id"))
        raise AuthenticationFailed()

    request.state.auth = ctx
    request.state.user = user
    request.state.session = session
    return ctx


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def _fail_closed(check):
    """No context → 401; typed errors pass through; anything else → 500."""

    @wraps(check)
    def wrapper(db: Session, ctx: Optional[AuthContext], *args, **kwargs):
        if ctx is None:
            raise AuthenticationRequired()
        try:
            return check(db, ctx, *args, **kwargs)
        except AppError:
            raise
        except Exception:
            logger.exception("%s failed for user_id=%s", check.__name__, ctx.user_id)
            raise AuthorizationFailed()

    return wrapper


def _audit_denial(db: Session, ctx: AuthContext, resource_type: str, resource_id: str, description: str) -> None:
    log_action(
        db,
        action=AuditAction.READ,
        module="auth",
        resource_type=resource_type,
        resource_id=resource_id,
        description=description,
        **ctx.audit_fields(),
    )


@_fail_closed
def require_permission(db: Session, ctx: AuthContext, name: str) -> None:
    if ctx.has_permission(name):
        return
    _audit_denial(db, ctx, "Permission", name, f"Unauthorized access attempt to {name}")
    raise InsufficientPermissions()


@_fail_closed
def require_any_permission(db: Session, ctx: AuthContext, names: Sequence[str]) -> None:
    if any(ctx.has_permission(n) for n in names):
        return
    _audit_denial(
        db, ctx, "Permission", ",".join(names),
        f"Unauthorized access attempt to any of: {', '.join(names)}",
    )
    raise InsufficientPermissions()


@_fail_closed
def require_all_permissions(db: Session, ctx: AuthContext, names: Sequence[str]) -> None:
    for name in names:
        if not ctx.has_permission(name):
            _audit_denial(
                db, ctx, "Permission", ",".join(names),
                f"Unauthorized access attempt - missing: {name}",
            )
            raise InsufficientPermissions()


@_fail_closed
def require_role(db: Session, ctx: AuthContext, names: Sequence[str]) -> None:
    if ctx.role_name in names:
        return
    _audit_denial(
        db, ctx, "Role", str(ctx.role_id),
        f"Unauthorized role access attempt. Required: {', '.join(names)}, Has: {ctx.role_name}",
    )
    raise InsufficientPermissions("Insufficient role permissions")


# -- FastAPI dependency factories ---------------------------------------------


def _as_list(names) -> list[str]:
    names = [names] if isinstance(names, str) else list(names)
    if not names:
        raise ValueError("at least one name is required")
    return names


def authorize(name: str):
    """Dependency: the caller must hold permission *name*."""

    def _guard(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)) -> AuthContext:
        require_permission(db, ctx, name)
        return ctx

    return _guard


def authorize_any(names: Sequence[str]):
    """Dependency: the caller must hold at least one of *names*."""
    names = _as_list(names)

    def _guard(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)) -> AuthContext:
        require_any_permission(db, ctx, names)
        return ctx

    return _guard


def authorize_all(names: Sequence[str]):
    """Dependency: the caller must hold every one of *names*."""
    names = _as_list(names)

    def _guard(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)) -> AuthContext:
        require_all_permissions(db, ctx, names)
        return ctx

    return _guard


def authorize_role(names: Sequence[str] | str):
    """Dependency: the caller's role name must be one of *names*."""
    names = _as_list(names)

    def _guard(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)) -> AuthContext:
        require_role(db, ctx, names)
        return ctx

    return _guard

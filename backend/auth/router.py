# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – login, logout, token refresh, profile, password change and
the administrative session controls.

Security notes
--------------
* change-password verifies the current password before accepting the new
  one, so a stolen (but not yet expired) token alone cannot reset it.
* Changing the password ends every session including the caller's own.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from auth import sessions
from auth.context import AuthContext
from auth.gates import authenticate, authorize
from auth.schemas import (
    ChangePasswordRequest,
    CleanupSessionsRequest,
    ForceLogoutRequest,
    LoginRequest,
    LoginResponse,
    SessionInfo,
    UserInfo,
)
from core.responses import success
from core.security import get_client_ip, get_user_agent
from database import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# POST /api/auth/login
# ---------------------------------------------------------------------------


@router.post("/login")
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate and return a signed JWT bound to a new session."""
    result = sessions.login(
        db,
        body.identifier,
        body.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    user = result["user"]
    payload = LoginResponse(
        token=result["token"],
        user=UserInfo.model_validate(user),
        permissions=sorted(user.role.permission_names),
        session=SessionInfo.model_validate(result["session"]),
    )
    return success(data=payload.model_dump(), message="Login successful")


# ---------------------------------------------------------------------------
# POST /api/auth/logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)):
    sessions.logout(db, ctx)
    return success(message="Logout successful")


# ---------------------------------------------------------------------------
# POST /api/auth/refresh-token
# ---------------------------------------------------------------------------


@router.post("/refresh-token")
def refresh_token(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)):
    result = sessions.refresh_token(db, ctx)
    return success(
        data={"token": result["token"], "session": SessionInfo.model_validate(result["session"]).model_dump()},
        message="Token refreshed successfully",
    )


# ---------------------------------------------------------------------------
# GET /api/auth/profile
# ---------------------------------------------------------------------------


@router.get("/profile")
def profile(ctx: AuthContext = Depends(authenticate), db: Session = Depends(get_db)):
    """Return the authenticated user's public profile (no secrets)."""
    result = sessions.get_profile(db, ctx)
    return success(
        data={
            "user": UserInfo.model_validate(result["user"]).model_dump(),
            "permissions": result["permissions"],
            "active_sessions_count": result["active_sessions_count"],
        }
    )


# ---------------------------------------------------------------------------
# PUT /api/auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    ctx: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    sessions.change_password(db, ctx, body.current_password, body.new_password)
    return success(message="Password changed successfully. Please log in again.")


# ---------------------------------------------------------------------------
# Administrative session controls
# ---------------------------------------------------------------------------


@router.post("/force-logout/{user_id}")
def force_logout(
    user_id: int,
    body: Optional[ForceLogoutRequest] = Body(None),
    ctx: AuthContext = Depends(authorize("users.manage")),
    db: Session = Depends(get_db),
):
    session_id = body.session_id if body else None
    ended = sessions.force_logout(db, user_id, ctx, session_id=session_id)
    return success(data={"sessions_ended": ended}, message=f"{ended} session(s) terminated")


@router.post("/cleanup-sessions")
def cleanup_sessions(
    body: Optional[CleanupSessionsRequest] = Body(None),
    ctx: AuthContext = Depends(authorize("users.manage")),
    db: Session = Depends(get_db),
):
    idle = body.max_idle_minutes if body else None
    result = sessions.cleanup_expired_sessions(db, max_idle_minutes=idle)
    return success(data=result, message=f"Cleaned up {result['cleaned']} expired session(s)")

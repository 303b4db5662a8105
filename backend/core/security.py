# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives live here.  No other
module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification / policy   (passlib pbkdf2_sha256)
2. JWT creation / decoding                     (PyJWT / HS256)
3. Request metadata helpers                    (client IP, user agent)

The FastAPI guards that build on these primitives live in ``auth.gates``.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps
from fastapi import Request

from core.config import settings
from core.errors import InvalidToken, TokenExpired, ValidationError

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """
    Hash a plaintext password with PBKDF2-SHA256.

    The salt is embedded inside the returned hash string (passlib convention).
    The round count comes from ``settings.password_hash_rounds``.
    """
    return _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)


def verify_password(plain: str, stored_hash: str) -> bool:
    """
    Constant-time verification of a plaintext password against a
    pbkdf2_sha256 hash produced by :func:`hash_password`.
    """
    if not plain or not stored_hash:
        return False
    try:
        return _pbkdf2.verify(plain, stored_hash)
    except ValueError:
        # Malformed hash in the database – treat as a mismatch
        return False


def validate_password_strength(pw: str) -> None:
    """
    Raise ``ValidationError`` if the password does not meet the minimum policy.

    Policy: >= 8 chars, at least one uppercase, one lowercase, one digit.
    """
    if len(pw) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", pw):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", pw):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", pw):
        raise ValidationError("Password must contain at least one digit")


# ---------------------------------------------------------------------------
# 2.  JWT – access tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a JWT with HS256.

    *data* should contain at minimum: sub (email), user_id, role.
    ``exp`` and a random ``jti`` are added automatically; the jti keeps two
    tokens issued in the same second distinct, which the unique
    session_token column relies on.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode["exp"] = expire
    to_encode["jti"] = uuid.uuid4().hex
    return _jwt.encode(to_encode, settings.secret_key, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT.

    Raises ``TokenExpired`` when the signature is valid but ``exp`` has
    passed, ``InvalidToken`` for every other failure (bad signature,
    malformed, missing ``user_id`` claim).
    """
    try:
        payload = _jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    except _jwt.ExpiredSignatureError:
        raise TokenExpired()
    except _jwt.InvalidTokenError:
        raise InvalidToken()
    if not isinstance(payload.get("user_id"), int):
        raise InvalidToken()
    return payload


# ---------------------------------------------------------------------------
# 3.  Request metadata
# ---------------------------------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    Returns the IP address as a string (supports both IPv4 and IPv6).
    """
    # Check X-Forwarded-For header (common when behind proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    # Fall back to direct client address
    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent") or "Unknown"

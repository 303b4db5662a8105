# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""The immutable identity value produced by the authentication gate."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class AuthContext:
    """
    Who is calling, resolved once per request.

    ``permissions`` is the set of permission names attached to the user's
    role at the moment the request was authenticated.  It is rebuilt on every
    request, so role edits take effect without re-issuing tokens.
    """

    user_id: int
    email: str
    role_id: int
    role_name: str
    permissions: frozenset = field(default_factory=frozenset)
    session_id: Optional[int] = None
    token: str = ""
    ip_address: str = "Unknown"
    user_agent: str = "Unknown"

    def has_permission(self, name: str) -> bool:
        return name in self.permissions

    def audit_fields(self) -> dict:
        """Keyword arguments for ``audit.service.log_action`` identifying the actor."""
        return {
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
        }

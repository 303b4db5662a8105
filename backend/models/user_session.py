# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""UserSession ORM model – binds one issued bearer token to one user."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from database import Base, utcnow
from models.user import User


class LogoutReason(str, enum.Enum):
    MANUAL = "manual"
    PASSWORD_RESET_BY_ADMIN = "password_reset_by_admin"
    PASSWORD_CHANGE = "password_change"
    EXPIRED = "expired"
    FORCED = "forced"


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Cascade delete: hard-deleting a user removes its sessions.
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # The exact bearer string handed to the client
    session_token = Column(String(512), unique=True, nullable=False)
    ip_address = Column(String(45), nullable=False, default="Unknown")
    user_agent = Column(String(512), nullable=False, default="Unknown")
    login_time = Column(DateTime, default=utcnow, nullable=False, index=True)
    logout_time = Column(DateTime, nullable=True)
    last_activity = Column(DateTime, default=utcnow, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    auto_logout_reason = Column(String(32), nullable=True)

    user = relationship(User)

    def end(self, reason: LogoutReason = LogoutReason.MANUAL) -> None:
        """Terminate the session.  There is no way back to active."""
        self.is_active = False
        self.logout_time = utcnow()
        self.auto_logout_reason = reason.value

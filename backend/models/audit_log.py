# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""AuditLog ORM model – append-only trail of every audited action."""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from database import Base, utcnow
from models.user import User


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    TRANSFER = "TRANSFER"
    EXPORT = "EXPORT"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_resource", "resource_type", "resource_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Plain ids rather than foreign keys: rows are never rewritten, so the
    # actor and session survive a hard delete of either.
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(16), nullable=False, index=True)       # AuditAction value
    module = Column(String(50), nullable=False, index=True)       # e.g. "roles", "auth"
    resource_type = Column(String(50), nullable=False)            # e.g. "Role"
    resource_id = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=False, default="Unknown")
    user_agent = Column(String(512), nullable=False, default="Unknown")
    session_id = Column(Integer, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # None once the acting user has been deleted
    user = relationship(
        User,
        primaryjoin="foreign(AuditLog.user_id) == User.id",
        viewonly=True,
    )

# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Permission ORM model – one named capability of the form ``module.action``."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint

from database import Base, utcnow


class Permission(Base):
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("module", "action", name="uq_permissions_module_action"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)   # e.g. "users.read"
    module = Column(String(50), nullable=False, index=True)               # e.g. "users"
    action = Column(String(50), nullable=False)                           # e.g. "read", "editPrice"
    description = Column(String(255), nullable=False)
    # Catalog rows are never deleted; deactivation is the only toggle.
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Permission {self.name}>"

# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Role ORM model and the role ↔ permission association table."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Table
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import relationship

from database import Base, utcnow
from models.permission import Permission

ROLE_NAME_TYPE = String(100).with_variant(mysql.VARCHAR(100, collation="utf8mb4_bin"), "mysql", "mariadb")

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Uniqueness is case-sensitive: "Manager" and "manager" may coexist.
    # MySQL compares with a case-insensitive collation unless told otherwise.
    name = Column(ROLE_NAME_TYPE, unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    # System-seeded roles: never renamed, re-permissioned or deleted.
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Plain ids rather than foreign keys: users already reference roles, and
    # the attribution must survive the acting user being hard-deleted.
    created_by_id = Column(Integer, nullable=True)
    updated_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    permissions = relationship(
        Permission,
        secondary=role_permissions,
        order_by=(Permission.module, Permission.action),
        lazy="selectin",
    )

    @property
    def permission_names(self) -> frozenset[str]:
        return frozenset(p.name for p in self.permissions)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"

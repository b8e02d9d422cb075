"""School SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid, func, true

from .base import Base, TenantScopedMixin


class School(TenantScopedMixin, Base):
    """School model - a site that holds inventory and places orders.

    Schools were created before tenancy existed, so tenant_id may be NULL on
    legacy rows until reconciliation assigns an owner.
    """
    __tablename__ = "school"
    __ownable_kind__ = "school"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(Text, nullable=False)
    code = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @classmethod
    def active_clause(cls):
        return cls.active.is_(True)

    def to_dict(self):
        """Convert school to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "active": self.active,
        }

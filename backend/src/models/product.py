"""Product SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid, func, true

from .base import Base, TenantScopedMixin, PortableJSONB


class Product(TenantScopedMixin, Base):
    """Product model representing catalogue items a tenant supplies to its schools.

    Each product belongs to one tenant. Inactive products stay readable but
    cannot be referenced by new inventory movements or orders.
    """
    __tablename__ = "product"
    __ownable_kind__ = "product"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    sku = Column(Text, nullable=True)
    name = Column(Text, nullable=False)
    unit = Column(Text, nullable=False, default="un")
    active = Column(Boolean, nullable=False, default=True, server_default=true())
    attributes_json = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @classmethod
    def active_clause(cls):
        return cls.active.is_(True)

    def to_dict(self):
        """Convert product to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "active": self.active,
            "attributes_json": self.attributes_json,
        }

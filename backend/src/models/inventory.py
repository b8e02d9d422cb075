"""Inventory SQLAlchemy models: stock batches and inventory movement records"""

import enum
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, Text, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base, TenantScopedMixin


class BatchStatus(str, enum.Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"
    EXPIRED = "expired"


class MovementType(str, enum.Enum):
    ENTRY = "entry"
    EXIT = "exit"
    ADJUSTMENT = "adjustment"


class Batch(TenantScopedMixin, Base):
    """A lot of one product received by one school, tracked until depleted or expired."""
    __tablename__ = "batch"
    __ownable_kind__ = "batch"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("school.id", ondelete="RESTRICT"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="RESTRICT"), nullable=False)
    lot_code = Column(Text, nullable=False)
    expires_on = Column(Date, nullable=True)
    status = Column(Text, nullable=False, default=BatchStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    school = relationship("School")
    product = relationship("Product")

    @classmethod
    def active_clause(cls):
        return cls.status == BatchStatus.ACTIVE.value


class InventoryRecord(TenantScopedMixin, Base):
    """One stock movement of a product at a school.

    The school, the product and (when present) the batch must all belong to
    the same tenant as the record itself.
    """
    __tablename__ = "inventory_record"
    __ownable_kind__ = "inventory_record"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("school.id", ondelete="RESTRICT"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="RESTRICT"), nullable=False)
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batch.id", ondelete="SET NULL"), nullable=True)
    movement_type = Column(Text, nullable=False)
    quantity = Column(Numeric(precision=14, scale=3), nullable=False)
    notes = Column(Text, nullable=True)
    recorded_by = Column(Uuid(as_uuid=True), nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    school = relationship("School")
    product = relationship("Product")
    batch = relationship("Batch")

    def to_dict(self):
        """Convert inventory record to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "school_id": str(self.school_id),
            "product_id": str(self.product_id),
            "batch_id": str(self.batch_id) if self.batch_id else None,
            "movement_type": self.movement_type,
            "quantity": str(self.quantity),
            "notes": self.notes,
            "recorded_by": str(self.recorded_by) if self.recorded_by else None,
        }

"""Contract and Order SQLAlchemy models"""

from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base, TenantScopedMixin


class Contract(TenantScopedMixin, Base):
    """Supply contract signed by a tenant with a supplier."""
    __tablename__ = "contract"
    __ownable_kind__ = "contract"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    number = Column(Text, nullable=False)
    supplier_name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="active")
    starts_on = Column(Date, nullable=True)
    ends_on = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @classmethod
    def active_clause(cls):
        return cls.status == "active"


class Order(TenantScopedMixin, Base):
    """Delivery order for a school, optionally drawn against a contract."""
    __tablename__ = "supply_order"
    __ownable_kind__ = "order"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("school.id", ondelete="RESTRICT"), nullable=False)
    contract_id = Column(Uuid(as_uuid=True), ForeignKey("contract.id", ondelete="SET NULL"), nullable=True)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    school = relationship("School")
    contract = relationship("Contract")

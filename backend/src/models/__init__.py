"""SQLAlchemy models for the tenant isolation core"""

from .base import Base, TenantScopedMixin
from .tenant import Institution, Tenant, TenantMembership, TenantStatus
from .audit_log import AuditLog
from .school import School
from .product import Product
from .inventory import Batch, BatchStatus, InventoryRecord, MovementType
from .contract import Contract, Order

__all__ = [
    "Base",
    "TenantScopedMixin",
    "Institution",
    "Tenant",
    "TenantMembership",
    "TenantStatus",
    "AuditLog",
    "School",
    "Product",
    "Batch",
    "BatchStatus",
    "InventoryRecord",
    "MovementType",
    "Contract",
    "Order",
]

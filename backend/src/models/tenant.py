"""Tenant, Institution and TenantMembership models - roots of multi-tenant isolation"""

import enum
import re
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship, validates

from .base import Base


class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


# Allowed lifecycle moves. Only suspended -> active goes "backwards".
ALLOWED_STATUS_TRANSITIONS = {
    TenantStatus.ACTIVE: {TenantStatus.SUSPENDED, TenantStatus.ARCHIVED},
    TenantStatus.SUSPENDED: {TenantStatus.ACTIVE, TenantStatus.ARCHIVED},
    TenantStatus.ARCHIVED: set(),
}


class Institution(Base):
    """Optional grouping of several tenants (e.g. a municipality owning many school networks)."""
    __tablename__ = "institution"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenants = relationship("Tenant", back_populates="institution")

    def __repr__(self):
        return f"<Institution(id={self.id}, name='{self.name}')>"


class Tenant(Base):
    """
    Tenant model - organizational boundary for all ownable data.

    The identifier never changes once assigned. Status follows a
    one-directional lifecycle (active -> suspended -> archived) with the
    single exception that a suspended tenant may be reactivated.
    """
    __tablename__ = "tenant"
    __table_args__ = (
        Index("ix_tenant_status", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    subdomain = Column(Text, nullable=True, unique=True)
    domain = Column(Text, nullable=True, unique=True)
    status = Column(Text, nullable=False, default=TenantStatus.ACTIVE.value)
    institution_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("institution.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    institution = relationship("Institution", back_populates="tenants")
    memberships = relationship("TenantMembership", back_populates="tenant")

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    @validates('slug')
    def validate_slug(self, key, value):
        """
        Ensure slug is URL-friendly.

        Raises:
            ValueError: If slug doesn't match ^[a-z0-9-]+$ or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Slug must be between 2 and 100 characters")
        return value

    @validates('subdomain', 'domain')
    def validate_host(self, key, value):
        """Hostnames are stored lowercase without a port."""
        if value is None:
            return None
        value = value.strip().lower()
        if not value or ":" in value or "/" in value:
            raise ValueError(f"Tenant {key} must be a bare hostname")
        if key == "subdomain" and "." in value:
            raise ValueError("Tenant subdomain must be a single label")
        return value

    @validates('name')
    def validate_name(self, key, value):
        if not value or len(value.strip()) == 0:
            raise ValueError("Tenant name cannot be empty")
        if len(value) > 200:
            raise ValueError("Tenant name cannot exceed 200 characters")
        return value.strip()

    @validates('status')
    def validate_status(self, key, value):
        """
        Enforce the tenant lifecycle.

        Raises:
            ValueError: If the status is unknown or the transition is not allowed
        """
        new_status = TenantStatus(value)
        current = self.status
        if current is not None and current != new_status.value:
            if new_status not in ALLOWED_STATUS_TRANSITIONS[TenantStatus(current)]:
                raise ValueError(
                    f"Tenant status cannot change from '{current}' to '{new_status.value}'"
                )
        return new_status.value

    @validates('id')
    def validate_id(self, key, value):
        if self.id is not None and value != self.id:
            raise ValueError("Tenant identifier is immutable")
        return value

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', status='{self.status}')>"


class TenantMembership(Base):
    """Links an authenticated principal to a tenant it may act for."""
    __tablename__ = "tenant_membership"
    __table_args__ = (
        UniqueConstraint("principal_id", "tenant_id", name="uq_tenant_membership_principal_tenant"),
        Index("ix_tenant_membership_principal_id", "principal_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    principal_id = Column(Uuid(as_uuid=True), nullable=False)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False)
    role = Column(Text, nullable=False, default="user")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship("Tenant", back_populates="memberships")

    def __repr__(self):
        return f"<TenantMembership(principal_id={self.principal_id}, tenant_id={self.tenant_id}, role='{self.role}')>"

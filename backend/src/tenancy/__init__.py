"""Tenancy module - multi-tenant isolation core.

This module provides:
- Tenant context resolution from the authenticated principal
- Transaction-scoped tenant binding (SessionBinder)
- Automatic tenant filtering of ORM statements and PostgreSQL row security
- Cross-entity ownership validation for compound writes

Importing the package registers the session listeners.
"""

from .context import Principal, ResolutionSource, TenantContext
from .errors import (
    AmbiguousTenantError,
    EntityNotFoundError,
    OwnershipViolation,
    TenantAccessDeniedError,
    TenantBindingError,
    TenantContextMissingError,
    TenantError,
    TenantImmutableError,
    TenantInactiveError,
    TenantOwnershipError,
)
from .ownership import EntityRef, OwnershipMode, OwnershipReport, OwnershipValidator
from .policy import RowFilteringPolicy, TablePolicy
from .resolver import MembershipDirectory, SqlMembershipDirectory, TenantContextResolver
from .session import SessionBinder

__all__ = [
    "Principal",
    "ResolutionSource",
    "TenantContext",
    "AmbiguousTenantError",
    "EntityNotFoundError",
    "OwnershipViolation",
    "TenantAccessDeniedError",
    "TenantBindingError",
    "TenantContextMissingError",
    "TenantError",
    "TenantImmutableError",
    "TenantInactiveError",
    "TenantOwnershipError",
    "EntityRef",
    "OwnershipMode",
    "OwnershipReport",
    "OwnershipValidator",
    "RowFilteringPolicy",
    "TablePolicy",
    "MembershipDirectory",
    "SqlMembershipDirectory",
    "TenantContextResolver",
    "SessionBinder",
]

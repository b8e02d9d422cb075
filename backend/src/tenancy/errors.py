"""Tenant isolation error taxonomy.

Every error carries an HTTP status code and a machine-readable ``error_kind``
so the HTTP layer can render a response without inspecting the message.

Messages never name the tenant that actually owns a row: an ownership
failure looks the same whether the entity belongs to another tenant or to
no tenant at all.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import status


class TenantError(Exception):
    """Base class for all tenant isolation errors."""

    error_kind = "tenant_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_kind,
            "message": self.message,
            "details": self.details,
        }


class TenantContextMissingError(TenantError):
    """No tenant could be resolved or bound for an operation that requires one."""

    error_kind = "tenant_context_missing"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Tenant context is missing", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class AmbiguousTenantError(TenantContextMissingError):
    """Principal belongs to several tenants and supplied neither an override nor a default."""

    error_kind = "tenant_ambiguous"

    def __init__(self, candidate_count: int):
        super().__init__(
            f"Principal belongs to {candidate_count} tenants; select one with the tenant header",
            {"candidate_count": candidate_count},
        )


class TenantAccessDeniedError(TenantError):
    """Principal asked for a tenant it is not a member of."""

    error_kind = "tenant_access_denied"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Principal is not a member of the requested tenant"):
        super().__init__(message)


class TenantInactiveError(TenantError):
    """Resolved tenant is suspended or archived."""

    error_kind = "tenant_inactive"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, tenant_id: UUID, tenant_status: str):
        super().__init__(
            f"Tenant is {tenant_status}",
            {"tenant_id": str(tenant_id), "status": tenant_status},
        )


@dataclass(frozen=True)
class OwnershipViolation:
    """One entity reference that failed ownership validation.

    reason is one of ``foreign_tenant``, ``unowned``, ``inactive`` or
    ``not_found``. It is kept for logs and metrics; the HTTP body only
    exposes kind and id.
    """

    kind: str
    entity_id: UUID
    reason: str

    def to_public_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "id": str(self.entity_id)}


class TenantOwnershipError(TenantError):
    """One or more referenced entities do not belong to the expected tenant."""

    error_kind = "tenant_ownership"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, violations: List[OwnershipViolation], expected_tenant: UUID):
        self.violations = list(violations)
        self.expected_tenant = expected_tenant
        refs = ", ".join(f"{v.kind}:{v.entity_id}" for v in self.violations)
        super().__init__(
            f"Referenced entities do not belong to the current tenant: {refs}",
            {
                "expected_tenant": str(expected_tenant),
                "violations": [v.to_public_dict() for v in self.violations],
            },
        )

    @property
    def kind(self) -> Optional[str]:
        return self.violations[0].kind if self.violations else None

    @property
    def entity_id(self) -> Optional[UUID]:
        return self.violations[0].entity_id if self.violations else None


class EntityNotFoundError(TenantError):
    """Referenced ids do not exist at all."""

    error_kind = "entity_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, violations: List[OwnershipViolation], expected_tenant: Optional[UUID] = None):
        self.violations = list(violations)
        self.expected_tenant = expected_tenant
        refs = ", ".join(f"{v.kind}:{v.entity_id}" for v in self.violations)
        super().__init__(
            f"Referenced entities not found: {refs}",
            {"violations": [v.to_public_dict() for v in self.violations]},
        )


class TenantImmutableError(TenantError):
    """Attempt to change the tenant of a row that already has one."""

    error_kind = "tenant_immutable"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"Tenant of {entity_type} {entity_id} cannot be changed",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class TenantBindingError(TenantError):
    """Transaction could not be opened and bound to the tenant (transient)."""

    error_kind = "tenant_binding_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, attempts: int, cause: Optional[BaseException] = None):
        self.attempts = attempts
        super().__init__(
            "Database is temporarily unavailable",
            {"attempts": attempts, "cause": type(cause).__name__ if cause else None},
        )

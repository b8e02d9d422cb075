"""Tenant context resolution.

Turns an authenticated principal plus an optional override header into the
single ``TenantContext`` a request may use. Resolution order, first match
wins:

1. explicit override, honored only when the principal is entitled to it
   (listed in the token or confirmed by the membership directory)
2. the tenant owning the request host, by custom domain or subdomain, under
   the same entitlement rule; unknown hosts fall through
3. the token's default tenant
4. the principal's only membership, or its directory default when it has
   several
5. several memberships and no default -> ``AmbiguousTenantError``;
   nothing -> ``TenantContextMissingError`` (or ``None`` when not required)

The resolved tenant must exist and be active.
"""

import logging
from typing import Optional, Protocol, Set, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.tenant import Tenant, TenantMembership, TenantStatus
from observability.metrics import tenant_resolutions_total

from .context import Principal, ResolutionSource, TenantContext
from .errors import (
    AmbiguousTenantError,
    TenantAccessDeniedError,
    TenantContextMissingError,
    TenantInactiveError,
)

logger = logging.getLogger(__name__)


def split_hostname(host: str) -> Optional[str]:
    """Lowercase hostname without port; None for empty hosts and IPv6 literals."""
    host = host.strip().lower()
    if not host or host.startswith("["):
        return None
    return host.split(":", 1)[0].rstrip(".") or None


def extract_subdomain(hostname: str) -> Optional[str]:
    """First label of a host with at least three labels (``north.example.org``).

    ``www`` and IPv4 addresses carry no tenant.
    """
    labels = hostname.split(".")
    if len(labels) < 3 or labels[0] == "www" or all(label.isdigit() for label in labels):
        return None
    return labels[0]


class MembershipDirectory(Protocol):
    """Answers membership and tenant status questions for the resolver."""

    def is_member(self, principal_id: UUID, tenant_id: UUID) -> bool:
        ...

    def tenant_ids_for(self, principal_id: UUID) -> Set[UUID]:
        ...

    def default_tenant_for(self, principal_id: UUID) -> Optional[UUID]:
        ...

    def tenant_status(self, tenant_id: UUID) -> Optional[str]:
        """Return the tenant's status, or None if the tenant does not exist."""
        ...

    def tenant_id_for_domain(self, domain: str) -> Optional[UUID]:
        ...

    def tenant_id_for_subdomain(self, subdomain: str) -> Optional[UUID]:
        ...


class SqlMembershipDirectory:
    """Membership directory backed by the ``tenant`` and ``tenant_membership`` tables.

    Both tables are global (not tenant-scoped), so a plain session works.
    """

    def __init__(self, db: Session):
        self.db = db

    def is_member(self, principal_id: UUID, tenant_id: UUID) -> bool:
        stmt = (
            select(TenantMembership.id)
            .where(TenantMembership.principal_id == principal_id)
            .where(TenantMembership.tenant_id == tenant_id)
            .limit(1)
        )
        return self.db.scalar(stmt) is not None

    def tenant_ids_for(self, principal_id: UUID) -> Set[UUID]:
        stmt = select(TenantMembership.tenant_id).where(TenantMembership.principal_id == principal_id)
        return set(self.db.scalars(stmt))

    def default_tenant_for(self, principal_id: UUID) -> Optional[UUID]:
        stmt = (
            select(TenantMembership.tenant_id)
            .where(TenantMembership.principal_id == principal_id)
            .where(TenantMembership.is_default.is_(True))
            .limit(1)
        )
        return self.db.scalar(stmt)

    def tenant_status(self, tenant_id: UUID) -> Optional[str]:
        return self.db.scalar(select(Tenant.status).where(Tenant.id == tenant_id))

    def tenant_id_for_domain(self, domain: str) -> Optional[UUID]:
        return self.db.scalar(select(Tenant.id).where(Tenant.domain == domain))

    def tenant_id_for_subdomain(self, subdomain: str) -> Optional[UUID]:
        return self.db.scalar(select(Tenant.id).where(Tenant.subdomain == subdomain))


class TenantContextResolver:
    """Resolves the tenant a request acts for."""

    def __init__(self, directory: MembershipDirectory):
        self.directory = directory

    def resolve(
        self,
        principal: Optional[Principal],
        override: Optional[Union[str, UUID]] = None,
        required: bool = True,
        host: Optional[str] = None,
    ) -> Optional[TenantContext]:
        """Resolve the tenant context for one request.

        Args:
            principal: Authenticated caller
            override: Raw value of the tenant header, if sent
            required: Raise instead of returning None when nothing resolves
            host: Raw Host header, when host-based resolution is enabled

        Raises:
            TenantContextMissingError: Nothing resolved (or malformed override)
            AmbiguousTenantError: Several memberships and no default
            TenantAccessDeniedError: Override or host tenant not allowed, or tenant unknown
            TenantInactiveError: Tenant suspended or archived
        """
        if principal is None:
            if required:
                self._count("none", "missing")
                raise TenantContextMissingError("No authenticated principal")
            return None

        if override is not None and str(override).strip():
            tenant_id = self._parse_override(override)
            self._require_entitled(principal, tenant_id, ResolutionSource.OVERRIDE)
            return self._finish(principal, tenant_id, ResolutionSource.OVERRIDE)

        if host:
            tenant_id = self._tenant_for_host(host)
            if tenant_id is not None:
                self._require_entitled(principal, tenant_id, ResolutionSource.HOST)
                return self._finish(principal, tenant_id, ResolutionSource.HOST)

        if principal.default_tenant_id is not None:
            return self._finish(principal, principal.default_tenant_id, ResolutionSource.TOKEN)

        candidates = set(principal.tenant_ids) | self.directory.tenant_ids_for(principal.principal_id)
        if len(candidates) == 1:
            return self._finish(principal, next(iter(candidates)), ResolutionSource.MEMBERSHIP)

        if len(candidates) > 1:
            default = self.directory.default_tenant_for(principal.principal_id)
            if default is not None and default in candidates:
                return self._finish(principal, default, ResolutionSource.MEMBERSHIP)
            self._count(ResolutionSource.MEMBERSHIP.value, "ambiguous")
            raise AmbiguousTenantError(len(candidates))

        if required:
            self._count("none", "missing")
            raise TenantContextMissingError("Principal has no tenant")
        return None

    def _require_entitled(self, principal: Principal, tenant_id: UUID, source: ResolutionSource) -> None:
        if principal.claims_tenant(tenant_id) or self.directory.is_member(principal.principal_id, tenant_id):
            return
        self._count(source.value, "denied")
        logger.warning(
            "Tenant selection denied",
            extra={
                "principal_id": str(principal.principal_id),
                "requested_tenant_id": str(tenant_id),
                "source": source.value,
            },
        )
        raise TenantAccessDeniedError()

    def _tenant_for_host(self, host: str) -> Optional[UUID]:
        """Custom domain match first, then the leading subdomain label."""
        hostname = split_hostname(host)
        if hostname is None:
            return None
        tenant_id = self.directory.tenant_id_for_domain(hostname)
        if tenant_id is None:
            subdomain = extract_subdomain(hostname)
            if subdomain is not None:
                tenant_id = self.directory.tenant_id_for_subdomain(subdomain)
        return tenant_id

    @staticmethod
    def _parse_override(override: Union[str, UUID]) -> UUID:
        if isinstance(override, UUID):
            return override
        try:
            return UUID(str(override).strip())
        except ValueError:
            tenant_resolutions_total.labels(source=ResolutionSource.OVERRIDE.value, outcome="missing").inc()
            raise TenantContextMissingError(
                "Tenant header is not a valid tenant id",
                {"header_value": str(override)[:64]},
            ) from None

    def _finish(self, principal: Principal, tenant_id: UUID, source: ResolutionSource) -> TenantContext:
        tenant_status = self.directory.tenant_status(tenant_id)
        if tenant_status is None:
            self._count(source.value, "denied")
            raise TenantAccessDeniedError("Tenant does not exist or is not accessible")
        if tenant_status != TenantStatus.ACTIVE.value:
            self._count(source.value, "inactive")
            raise TenantInactiveError(tenant_id, tenant_status)

        self._count(source.value, "resolved")
        return TenantContext(tenant_id=tenant_id, principal_id=principal.principal_id, source=source)

    @staticmethod
    def _count(source: str, outcome: str) -> None:
        tenant_resolutions_total.labels(source=source, outcome=outcome).inc()

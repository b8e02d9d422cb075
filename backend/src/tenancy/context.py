"""Request-scoped tenant values.

``Principal`` is what authentication hands us; ``TenantContext`` is what the
resolver produces from it. Neither is ever stored globally: the context is
passed explicitly to the session binder, which attaches it to exactly one
transaction.
"""

import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Optional
from uuid import UUID


class ResolutionSource(str, enum.Enum):
    OVERRIDE = "override"
    TOKEN = "token"
    HOST = "host"
    MEMBERSHIP = "membership"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller.

    Attributes:
        principal_id: Stable user/service identifier (token ``sub``)
        default_tenant_id: Tenant the token was issued for, if any
        tenant_ids: Tenants the token says the principal may access
        role: Role claim, informational only
    """

    principal_id: UUID
    default_tenant_id: Optional[UUID] = None
    tenant_ids: FrozenSet[UUID] = field(default_factory=frozenset)
    role: Optional[str] = None

    def claims_tenant(self, tenant_id: UUID) -> bool:
        return tenant_id == self.default_tenant_id or tenant_id in self.tenant_ids


@dataclass(frozen=True)
class TenantContext:
    """The single tenant a request may touch."""

    tenant_id: UUID
    principal_id: Optional[UUID] = None
    source: ResolutionSource = ResolutionSource.TOKEN

    def __str__(self) -> str:
        return str(self.tenant_id)

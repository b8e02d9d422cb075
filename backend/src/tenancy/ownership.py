"""Cross-entity ownership validation.

Compound operations reference several entities (a movement points at a
school, a product and a batch). Before anything is written the validator
checks that every reference belongs to the caller's tenant, using one query
per entity kind no matter how many ids are referenced:

1. owned query: ``id IN (...) AND tenant_id = :tenant`` (plus the kind's
   active flag)
2. the set difference between requested and returned ids gives the
   violating ids
3. only when there are violations, a classification lookup reads
   ``(id, tenant_id)`` for those ids to tell a foreign row from a legacy
   row (NULL tenant) from a missing one

The lookup goes through Core table columns, so it is not subject to the ORM
tenant filter. It never leaves this module with more than a reason code:
errors name the reference, never the tenant that owns it. Under PostgreSQL
row security the lookup cannot see foreign rows either, and they classify as
``not_found``.
"""

import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from observability.metrics import ownership_violations_total

from .binding import get_admin_scope, get_bound_tenant
from .errors import EntityNotFoundError, OwnershipViolation, TenantContextMissingError, TenantOwnershipError
from .registry import get_kind

logger = logging.getLogger(__name__)

FOREIGN_TENANT = "foreign_tenant"
UNOWNED = "unowned"
INACTIVE = "inactive"
NOT_FOUND = "not_found"


class OwnershipMode(str, enum.Enum):
    STRICT = "strict"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class EntityRef:
    """Reference to one ownable entity, e.g. ``EntityRef("school", id)``."""

    kind: str
    id: UUID


@dataclass
class OwnershipReport:
    tenant_id: UUID
    mode: OwnershipMode
    owned: List[EntityRef] = field(default_factory=list)
    violations: List[OwnershipViolation] = field(default_factory=list)
    adoptable: List[EntityRef] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


def _group_by_kind(refs: Iterable[EntityRef]) -> "OrderedDict[str, List[UUID]]":
    grouped: "OrderedDict[str, List[UUID]]" = OrderedDict()
    for ref in refs:
        ids = grouped.setdefault(ref.kind, [])
        if ref.id not in ids:
            ids.append(ref.id)
    return grouped


class OwnershipValidator:
    """Validates that referenced entities belong to one tenant.

    Args:
        session: Session bound to the tenant being validated (or an admin scope)
    """

    def __init__(self, session: Session):
        self.session = session

    def _check_binding(self, tenant_id: Optional[UUID]) -> None:
        if tenant_id is None:
            raise TenantContextMissingError("Ownership validation requires a tenant")
        if get_admin_scope(self.session) is not None:
            return
        bound = get_bound_tenant(self.session)
        if bound is None or bound != tenant_id:
            raise TenantContextMissingError("Validated tenant is not the tenant bound to this session")

    def validate(
        self,
        tenant_id: Optional[UUID],
        refs: Iterable[EntityRef],
        mode: OwnershipMode = OwnershipMode.STRICT,
        require_active: bool = True,
    ) -> OwnershipReport:
        """Classify every reference as owned, adoptable or violating.

        Raises:
            TenantContextMissingError: No tenant, or not the session's tenant
            ValueError: Unknown entity kind
        """
        self._check_binding(tenant_id)
        grouped = _group_by_kind(refs)
        # Resolve every kind before the first query
        kinds = {name: get_kind(name) for name in grouped}

        report = OwnershipReport(tenant_id=tenant_id, mode=OwnershipMode(mode))
        for name, ids in grouped.items():
            ownable = kinds[name]
            model = ownable.model
            active = ownable.active_clause() if require_active else None

            columns = [model.id]
            if active is not None:
                columns.append(case((active, True), else_=False).label("is_active"))
            stmt = select(*columns).where(model.id.in_(ids)).where(model.tenant_id == tenant_id)

            owned: Dict[UUID, bool] = {}
            for row in self.session.execute(stmt):
                owned[row[0]] = bool(row[1]) if active is not None else True

            for entity_id in ids:
                if entity_id in owned:
                    if owned[entity_id]:
                        report.owned.append(EntityRef(name, entity_id))
                    else:
                        report.violations.append(OwnershipViolation(name, entity_id, INACTIVE))

            missing = [entity_id for entity_id in ids if entity_id not in owned]
            if missing:
                self._classify(report, ownable, missing)

        if report.violations:
            for violation in report.violations:
                ownership_violations_total.labels(kind=violation.kind, reason=violation.reason).inc()
            logger.warning(
                "Ownership validation failed",
                extra={
                    "tenant_id": str(tenant_id),
                    "violations": [f"{v.kind}:{v.entity_id}:{v.reason}" for v in report.violations],
                },
            )
        return report

    def _classify(self, report: OwnershipReport, ownable, missing: List[UUID]) -> None:
        table = ownable.model.__table__
        lookup = select(table.c.id, table.c.tenant_id).where(table.c.id.in_(missing))
        found = {row.id: row.tenant_id for row in self.session.execute(lookup)}

        for entity_id in missing:
            if entity_id not in found:
                report.violations.append(OwnershipViolation(ownable.kind, entity_id, NOT_FOUND))
            elif found[entity_id] is None:
                if report.mode == OwnershipMode.RECONCILIATION:
                    report.adoptable.append(EntityRef(ownable.kind, entity_id))
                else:
                    report.violations.append(OwnershipViolation(ownable.kind, entity_id, UNOWNED))
            else:
                report.violations.append(OwnershipViolation(ownable.kind, entity_id, FOREIGN_TENANT))

    def require(
        self,
        tenant_id: Optional[UUID],
        refs: Iterable[EntityRef],
        mode: OwnershipMode = OwnershipMode.STRICT,
        require_active: bool = True,
    ) -> OwnershipReport:
        """Validate and raise on any violation.

        Raises:
            TenantOwnershipError: Any reference is foreign, unowned or inactive
            EntityNotFoundError: Every violating reference does not exist
        """
        report = self.validate(tenant_id, refs, mode=mode, require_active=require_active)
        if report.violations:
            if all(v.reason == NOT_FOUND for v in report.violations):
                raise EntityNotFoundError(report.violations, tenant_id)
            raise TenantOwnershipError(report.violations, tenant_id)
        return report

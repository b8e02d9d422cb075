"""Pydantic schemas for tenant reconciliation.

This module defines:
- ReconciliationPolicy: how orphans without a single inferable tenant are handled
- OrphanFinding / MismatchFinding: one detected problem each
- ReconciliationReport: result of one run (dry run or apply)
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from config import get_settings


class ReconciliationAction(str, Enum):
    ASSIGN_INFERRED = "assign_inferred"
    ASSIGN_DEFAULT = "assign_default"
    AMBIGUOUS = "ambiguous"
    UNRESOLVED = "unresolved"


ASSIGNING_ACTIONS = {ReconciliationAction.ASSIGN_INFERRED, ReconciliationAction.ASSIGN_DEFAULT}


class ReconciliationPolicy(BaseModel):
    """Decision rules for orphans.

    An orphan with exactly one candidate tenant is always assigned to it.
    """

    default_tenant_id: Optional[UUID] = Field(
        default=None,
        description="Tenant for orphans with no candidate at all; None leaves them unresolved"
    )
    assign_on_clear_majority: bool = Field(
        default=False,
        description="Assign an orphan with several candidates to the one with strictly most references"
    )

    @classmethod
    def from_settings(cls) -> "ReconciliationPolicy":
        settings = get_settings()
        return cls(
            default_tenant_id=settings.RECONCILIATION_DEFAULT_TENANT_ID,
            assign_on_clear_majority=settings.RECONCILIATION_ASSIGN_ON_MAJORITY,
        )


class CandidateTenant(BaseModel):
    tenant_id: UUID
    references: int = Field(ge=1, description="Related rows carrying this tenant")


class OrphanFinding(BaseModel):
    """A row with no tenant and what reconciliation does (or would do) with it."""

    kind: str
    entity_id: UUID
    action: ReconciliationAction
    candidates: List[CandidateTenant] = Field(default_factory=list)
    assigned_tenant_id: Optional[UUID] = None
    applied: bool = False


class MismatchFinding(BaseModel):
    """Two related rows owned by different tenants. Reported, never fixed automatically."""

    relation: str
    child_kind: str
    child_id: UUID
    child_tenant_id: UUID
    parent_kind: str
    parent_id: UUID
    parent_tenant_id: UUID


class ReconciliationReport(BaseModel):
    """Result of one reconciliation run."""

    dry_run: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    orphans: List[OrphanFinding] = Field(default_factory=list)
    mismatches: List[MismatchFinding] = Field(default_factory=list)

    def _count(self, *actions: ReconciliationAction) -> int:
        return sum(1 for finding in self.orphans if finding.action in actions)

    @property
    def assigned_count(self) -> int:
        return self._count(ReconciliationAction.ASSIGN_INFERRED, ReconciliationAction.ASSIGN_DEFAULT)

    @property
    def ambiguous_count(self) -> int:
        return self._count(ReconciliationAction.AMBIGUOUS)

    @property
    def unresolved_count(self) -> int:
        return self._count(ReconciliationAction.UNRESOLVED)

    @property
    def applied_count(self) -> int:
        return sum(1 for finding in self.orphans if finding.applied)

    def summary(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "orphans": len(self.orphans),
            "assigned": self.assigned_count,
            "applied": self.applied_count,
            "ambiguous": self.ambiguous_count,
            "unresolved": self.unresolved_count,
            "mismatches": len(self.mismatches),
        }

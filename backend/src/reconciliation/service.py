"""Reconciliation of legacy and inconsistent tenant ownership.

Runs offline inside an admin scope and looks for two kinds of problems:

Orphans
    Rows of an ownable kind whose ``tenant_id`` is NULL. Candidate tenants
    are inferred from relations: the tenants of the rows an orphan
    references and of the rows that reference it, each weighted by the
    number of such rows. Inference is repeated until it stops making
    progress, so a chain of orphans (a legacy batch of a legacy school)
    resolves in a single run.

Mismatches
    A foreign key between two ownable rows whose tenants are both set and
    differ. These are reported only.

In apply mode every assignment is written through the ORM (so cache
invalidation and flush checks apply) and recorded in the audit log. A second
run finds nothing left to assign.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import RECONCILIATION_APPLIED, TENANT_ASSIGNED, log_audit_event
from models.tenant import Tenant
from observability.metrics import reconciliation_actions_total
from tenancy.binding import get_admin_scope
from tenancy.registry import OwnableKind, TenantRelation, ownable_kinds, tenant_relations
from tenancy.session import SessionBinder
from .schemas import (
    ASSIGNING_ACTIONS,
    CandidateTenant,
    MismatchFinding,
    OrphanFinding,
    ReconciliationAction,
    ReconciliationPolicy,
    ReconciliationReport,
)

logger = logging.getLogger(__name__)

# Rows per IN (...) list
CHUNK_SIZE = 500

RowKey = Tuple[str, UUID]


def _chunks(ids: List[UUID]):
    for start in range(0, len(ids), CHUNK_SIZE):
        yield ids[start:start + CHUNK_SIZE]


class ReconciliationJob:
    """Detects orphans and mismatches and, in apply mode, assigns orphans.

    Args:
        session: Session opened with ``SessionBinder.admin_scope``
        policy: Decision rules; defaults to the configured policy
        actor: Recorded in the audit log

    Raises:
        RuntimeError: If the session is not an admin scope
    """

    def __init__(self, session: Session, policy: Optional[ReconciliationPolicy] = None, actor: str = "system"):
        if get_admin_scope(session) is None:
            raise RuntimeError("Reconciliation must run inside an admin scope")
        self.session = session
        self.policy = policy or ReconciliationPolicy.from_settings()
        self.actor = actor
        self.kinds = ownable_kinds()
        self.relations = tenant_relations()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def find_orphans(self) -> List[RowKey]:
        orphans = []
        for name, ownable in self.kinds.items():
            table = ownable.model.__table__
            stmt = select(table.c.id).where(table.c.tenant_id.is_(None)).order_by(table.c.id)
            orphans.extend((name, row_id) for row_id in self.session.scalars(stmt))
        return orphans

    def find_mismatches(self) -> List[MismatchFinding]:
        findings = []
        for relation in self.relations:
            child = relation.child.model.__table__.alias("child")
            parent = relation.parent.model.__table__.alias("parent")
            stmt = (
                select(child.c.id, child.c.tenant_id, parent.c.id, parent.c.tenant_id)
                .select_from(child.join(parent, child.c[relation.column] == parent.c.id))
                .where(child.c.tenant_id.is_not(None))
                .where(parent.c.tenant_id.is_not(None))
                .where(child.c.tenant_id != parent.c.tenant_id)
                .order_by(child.c.id)
            )
            for child_id, child_tenant, parent_id, parent_tenant in self.session.execute(stmt):
                findings.append(
                    MismatchFinding(
                        relation=str(relation),
                        child_kind=relation.child.kind,
                        child_id=child_id,
                        child_tenant_id=child_tenant,
                        parent_kind=relation.parent.kind,
                        parent_id=parent_id,
                        parent_tenant_id=parent_tenant,
                    )
                )
        return findings

    def infer_candidates(self, orphans: List[RowKey], overlay: Dict[RowKey, UUID]) -> Dict[RowKey, Counter]:
        """Count candidate tenants for each orphan.

        ``overlay`` holds assignments decided earlier in this run; a related
        row that is itself an orphan counts with its decided tenant.
        """
        by_kind: Dict[str, List[UUID]] = defaultdict(list)
        for kind, row_id in orphans:
            by_kind[kind].append(row_id)

        counts: Dict[RowKey, Counter] = {orphan: Counter() for orphan in orphans}
        for relation in self.relations:
            if relation.child.kind in by_kind:
                self._count_referenced(relation, by_kind[relation.child.kind], overlay, counts)
            if relation.parent.kind in by_kind:
                self._count_referencing(relation, by_kind[relation.parent.kind], overlay, counts)
        return counts

    def _count_referenced(self, relation: TenantRelation, ids: List[UUID], overlay, counts) -> None:
        # Orphan is the child: the row it points at is a candidate
        child = relation.child.model.__table__.alias("child")
        parent = relation.parent.model.__table__.alias("parent")
        for chunk in _chunks(ids):
            stmt = (
                select(child.c.id, parent.c.id, parent.c.tenant_id)
                .select_from(child.join(parent, child.c[relation.column] == parent.c.id))
                .where(child.c.id.in_(chunk))
            )
            for child_id, parent_id, parent_tenant in self.session.execute(stmt):
                tenant_id = parent_tenant or overlay.get((relation.parent.kind, parent_id))
                if tenant_id is not None:
                    counts[(relation.child.kind, child_id)][tenant_id] += 1

    def _count_referencing(self, relation: TenantRelation, ids: List[UUID], overlay, counts) -> None:
        # Orphan is the parent: every row pointing at it is a candidate
        child = relation.child.model.__table__
        column = child.c[relation.column]
        for chunk in _chunks(ids):
            stmt = select(column, child.c.id, child.c.tenant_id).where(column.in_(chunk))
            for parent_id, child_id, child_tenant in self.session.execute(stmt):
                tenant_id = child_tenant or overlay.get((relation.child.kind, child_id))
                if tenant_id is not None:
                    counts[(relation.parent.kind, parent_id)][tenant_id] += 1

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def decide(self, counts: Counter) -> Tuple[ReconciliationAction, Optional[UUID]]:
        if len(counts) == 1:
            return ReconciliationAction.ASSIGN_INFERRED, next(iter(counts))
        if len(counts) > 1:
            ranked = counts.most_common()
            if self.policy.assign_on_clear_majority and ranked[0][1] > ranked[1][1]:
                return ReconciliationAction.ASSIGN_INFERRED, ranked[0][0]
            return ReconciliationAction.AMBIGUOUS, None
        if self.policy.default_tenant_id is not None:
            return ReconciliationAction.ASSIGN_DEFAULT, self.policy.default_tenant_id
        return ReconciliationAction.UNRESOLVED, None

    def plan(self, orphans: List[RowKey]) -> List[OrphanFinding]:
        """Decide every orphan, propagating assignments until stable."""
        overlay: Dict[RowKey, UUID] = {}
        decided: Dict[RowKey, OrphanFinding] = {}

        while True:
            remaining = [orphan for orphan in orphans if orphan not in overlay]
            if not remaining:
                break
            counts = self.infer_candidates(remaining, overlay)

            progress = False
            pending_defaults = []
            for orphan in remaining:
                action, tenant_id = self.decide(counts[orphan])
                finding = OrphanFinding(
                    kind=orphan[0],
                    entity_id=orphan[1],
                    action=action,
                    candidates=[
                        CandidateTenant(tenant_id=t, references=n)
                        for t, n in sorted(counts[orphan].items(), key=lambda item: (-item[1], str(item[0])))
                    ],
                    assigned_tenant_id=tenant_id,
                )
                decided[orphan] = finding
                if action == ReconciliationAction.ASSIGN_INFERRED:
                    overlay[orphan] = tenant_id
                    progress = True
                elif action == ReconciliationAction.ASSIGN_DEFAULT:
                    pending_defaults.append(orphan)

            if progress:
                continue
            # Defaults only once inference is exhausted; a defaulted row may
            # become evidence for its neighbours
            if not pending_defaults:
                break
            for orphan in pending_defaults:
                overlay[orphan] = decided[orphan].assigned_tenant_id

        return [decided[orphan] for orphan in orphans]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = True) -> ReconciliationReport:
        """Detect problems and, unless ``dry_run``, assign orphans.

        Raises:
            ValueError: If the configured default tenant does not exist
        """
        report = ReconciliationReport(dry_run=dry_run, started_at=datetime.now(timezone.utc))
        if self.policy.default_tenant_id is not None and self.session.get(Tenant, self.policy.default_tenant_id) is None:
            raise ValueError(f"Default tenant {self.policy.default_tenant_id} does not exist")

        report.orphans = self.plan(self.find_orphans())
        report.mismatches = self.find_mismatches()

        if not dry_run:
            self.apply(report.orphans)

        mode = "dry_run" if dry_run else "apply"
        for finding in report.orphans:
            reconciliation_actions_total.labels(kind=finding.kind, action=finding.action.value, mode=mode).inc()
        for mismatch in report.mismatches:
            reconciliation_actions_total.labels(kind=mismatch.child_kind, action="mismatch", mode=mode).inc()

        report.completed_at = datetime.now(timezone.utc)
        summary = report.summary()
        if not dry_run:
            log_audit_event(self.session, action=RECONCILIATION_APPLIED, actor=self.actor, metadata=summary)
        logger.info("Tenant reconciliation finished", extra=summary)
        return report

    def apply(self, findings: List[OrphanFinding]) -> int:
        """Write assignments for every assigning finding still unowned."""
        applied = 0
        for finding in findings:
            if finding.action not in ASSIGNING_ACTIONS:
                continue
            ownable: OwnableKind = self.kinds[finding.kind]
            row = self.session.get(ownable.model, finding.entity_id)
            if row is None or row.tenant_id is not None:
                # Changed since detection
                continue
            row.tenant_id = finding.assigned_tenant_id
            log_audit_event(
                self.session,
                action=TENANT_ASSIGNED,
                actor=self.actor,
                tenant_id=finding.assigned_tenant_id,
                entity_type=finding.kind,
                entity_id=finding.entity_id,
                metadata={
                    "action": finding.action.value,
                    "candidates": [
                        {"tenant_id": str(c.tenant_id), "references": c.references} for c in finding.candidates
                    ],
                },
            )
            finding.applied = True
            applied += 1
        self.session.flush()
        return applied


def run_reconciliation(
    binder: SessionBinder,
    dry_run: bool = True,
    actor: str = "system",
    policy: Optional[ReconciliationPolicy] = None,
) -> ReconciliationReport:
    """Open an admin scope and run one reconciliation."""
    mode = "dry run" if dry_run else "apply"
    with binder.admin_scope(reason=f"tenant reconciliation ({mode})", actor=actor) as session:
        return ReconciliationJob(session, policy=policy, actor=actor).run(dry_run=dry_run)

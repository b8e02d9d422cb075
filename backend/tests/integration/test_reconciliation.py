"""Integration tests for tenant reconciliation

Tests cover:
- Dry run reports without writing
- Apply assigns inferred tenants, audits each assignment, and is idempotent
- Chains of orphans resolve in one run
- Ambiguous orphans (optionally by clear majority)
- Default tenant for orphans with no candidates
- Cross-tenant mismatches are reported, never fixed
- Celery task and CLI entry points
"""

import importlib.util
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select

import database
from audit.service import RECONCILIATION_APPLIED, TENANT_ASSIGNED
from models.audit_log import AuditLog
from models.contract import Contract
from models.inventory import Batch
from models.product import Product
from models.school import School
from models.tenant import Tenant
from reconciliation.schemas import ReconciliationAction, ReconciliationPolicy
from reconciliation.service import ReconciliationJob, run_reconciliation
from reconciliation.tasks import reconciliation_task
from tenancy.context import TenantContext


pytestmark = pytest.mark.integration

SCRIPT_PATH = Path(__file__).parent.parent.parent / "scripts" / "reconcile_tenants.py"


@pytest.fixture
def legacy_dataset(session_factory, binder):
    """Tenants A and B plus legacy rows with known expected outcomes.

    - school_s1: legacy, referenced by one batch of A -> A
    - batch_x: legacy, points at A's product and at legacy school_s2 -> A
    - school_s2: legacy, referenced only by legacy batch_x -> A (second pass)
    - product_p1: legacy, referenced by two batches of A and one of B -> ambiguous
    - contract_c: legacy, unrelated -> unresolved (or default tenant)
    - batch_b2: owned by B but points at A's school -> mismatch
    """
    ids = SimpleNamespace(
        tenant_a=uuid4(), tenant_b=uuid4(),
        school_a=uuid4(), school_b=uuid4(), product_a=uuid4(), product_b=uuid4(),
        school_s1=uuid4(), school_s2=uuid4(), product_p1=uuid4(), batch_x=uuid4(),
        contract_c=uuid4(), batch_b2=uuid4(),
    )

    db = session_factory()
    try:
        db.add_all([
            Tenant(id=ids.tenant_a, name="North District Schools", slug="north-district"),
            Tenant(id=ids.tenant_b, name="South District Schools", slug="south-district"),
        ])
        db.commit()
    finally:
        db.close()

    with binder.admin_scope(reason="seed reconciliation dataset", actor="seed") as session:
        session.add_all([
            School(id=ids.school_a, name="North Primary", tenant_id=ids.tenant_a),
            School(id=ids.school_b, name="South Primary", tenant_id=ids.tenant_b),
            Product(id=ids.product_a, name="Rice", tenant_id=ids.tenant_a),
            Product(id=ids.product_b, name="Rice", tenant_id=ids.tenant_b),
            School(id=ids.school_s1, name="Legacy One"),
            School(id=ids.school_s2, name="Legacy Two"),
            Product(id=ids.product_p1, name="Legacy Beans"),
            Contract(id=ids.contract_c, number="OLD-1", supplier_name="Old Supplier"),
        ])
        session.flush()
        session.add_all([
            Batch(tenant_id=ids.tenant_a, school_id=ids.school_s1, product_id=ids.product_a, lot_code="A-S1"),
            Batch(id=ids.batch_x, school_id=ids.school_s2, product_id=ids.product_a, lot_code="X"),
            Batch(tenant_id=ids.tenant_a, school_id=ids.school_a, product_id=ids.product_p1, lot_code="A-P1-1"),
            Batch(tenant_id=ids.tenant_a, school_id=ids.school_a, product_id=ids.product_p1, lot_code="A-P1-2"),
            Batch(tenant_id=ids.tenant_b, school_id=ids.school_b, product_id=ids.product_p1, lot_code="B-P1-1"),
            Batch(id=ids.batch_b2, tenant_id=ids.tenant_b, school_id=ids.school_a, product_id=ids.product_b, lot_code="B2"),
        ])
    return ids


def findings_by_id(report):
    return {finding.entity_id: finding for finding in report.orphans}


def tenant_of(binder, model, entity_id):
    with binder.admin_scope(reason="inspect", actor="tests") as session:
        return session.get(model, entity_id).tenant_id


def audit_actions(db_session, action):
    return db_session.scalars(select(AuditLog).where(AuditLog.action == action)).all()


class TestDryRun:
    def test_reports_expected_actions(self, binder, legacy_dataset):
        ids = legacy_dataset

        report = run_reconciliation(binder, dry_run=True, actor="tests")
        findings = findings_by_id(report)

        assert report.dry_run
        assert findings[ids.school_s1].action == ReconciliationAction.ASSIGN_INFERRED
        assert findings[ids.school_s1].assigned_tenant_id == ids.tenant_a
        assert findings[ids.batch_x].assigned_tenant_id == ids.tenant_a
        assert findings[ids.school_s2].assigned_tenant_id == ids.tenant_a
        assert findings[ids.product_p1].action == ReconciliationAction.AMBIGUOUS
        assert [(c.tenant_id, c.references) for c in findings[ids.product_p1].candidates] == [
            (ids.tenant_a, 2),
            (ids.tenant_b, 1),
        ]
        assert findings[ids.contract_c].action == ReconciliationAction.UNRESOLVED
        assert report.summary() == {
            "dry_run": True,
            "orphans": 5,
            "assigned": 3,
            "applied": 0,
            "ambiguous": 1,
            "unresolved": 1,
            "mismatches": 1,
        }

    def test_writes_nothing(self, binder, db_session, legacy_dataset):
        run_reconciliation(binder, dry_run=True, actor="tests")

        assert tenant_of(binder, School, legacy_dataset.school_s1) is None
        assert tenant_of(binder, Batch, legacy_dataset.batch_x) is None
        assert audit_actions(db_session, TENANT_ASSIGNED) == []
        assert audit_actions(db_session, RECONCILIATION_APPLIED) == []

    def test_mismatch_is_reported(self, binder, legacy_dataset):
        ids = legacy_dataset

        report = run_reconciliation(binder, dry_run=True, actor="tests")

        assert len(report.mismatches) == 1
        mismatch = report.mismatches[0]
        assert (mismatch.child_kind, mismatch.child_id, mismatch.child_tenant_id) == ("batch", ids.batch_b2, ids.tenant_b)
        assert (mismatch.parent_kind, mismatch.parent_id, mismatch.parent_tenant_id) == ("school", ids.school_a, ids.tenant_a)


class TestApply:
    def test_assigns_and_audits(self, binder, db_session, legacy_dataset):
        ids = legacy_dataset

        report = run_reconciliation(binder, dry_run=False, actor="ops@example.org")

        assert report.applied_count == 3
        for model, entity_id in ((School, ids.school_s1), (School, ids.school_s2), (Batch, ids.batch_x)):
            assert tenant_of(binder, model, entity_id) == ids.tenant_a
        assert tenant_of(binder, Product, ids.product_p1) is None
        assert tenant_of(binder, Contract, ids.contract_c) is None

        assigned = audit_actions(db_session, TENANT_ASSIGNED)
        assert {entry.entity_id for entry in assigned} == {ids.school_s1, ids.school_s2, ids.batch_x}
        assert {entry.actor for entry in assigned} == {"ops@example.org"}
        applied = audit_actions(db_session, RECONCILIATION_APPLIED)
        assert len(applied) == 1
        assert applied[0].metadata_json["applied"] == 3

    def test_assigned_rows_become_visible_to_tenant(self, binder, legacy_dataset):
        ids = legacy_dataset

        run_reconciliation(binder, dry_run=False, actor="tests")

        with binder.bind(TenantContext(ids.tenant_a)) as session:
            assert session.get(School, ids.school_s1) is not None

    def test_second_run_is_a_no_op(self, binder, db_session, legacy_dataset):
        run_reconciliation(binder, dry_run=False, actor="tests")
        second = run_reconciliation(binder, dry_run=False, actor="tests")

        assert second.assigned_count == 0
        assert second.applied_count == 0
        assert {f.action for f in second.orphans} == {ReconciliationAction.AMBIGUOUS, ReconciliationAction.UNRESOLVED}
        assert len(audit_actions(db_session, TENANT_ASSIGNED)) == 3

    def test_mismatch_is_not_changed(self, binder, legacy_dataset):
        run_reconciliation(binder, dry_run=False, actor="tests")

        assert tenant_of(binder, Batch, legacy_dataset.batch_b2) == legacy_dataset.tenant_b


class TestPolicy:
    def test_clear_majority_assigns_ambiguous(self, binder, legacy_dataset):
        ids = legacy_dataset
        policy = ReconciliationPolicy(assign_on_clear_majority=True)

        report = run_reconciliation(binder, dry_run=False, actor="tests", policy=policy)

        assert findings_by_id(report)[ids.product_p1].action == ReconciliationAction.ASSIGN_INFERRED
        assert tenant_of(binder, Product, ids.product_p1) == ids.tenant_a

    def test_default_tenant_for_unrelated_orphans(self, binder, legacy_dataset):
        ids = legacy_dataset
        policy = ReconciliationPolicy(default_tenant_id=ids.tenant_b)

        report = run_reconciliation(binder, dry_run=False, actor="tests", policy=policy)
        findings = findings_by_id(report)

        assert findings[ids.contract_c].action == ReconciliationAction.ASSIGN_DEFAULT
        assert tenant_of(binder, Contract, ids.contract_c) == ids.tenant_b
        # inference still wins over the default
        assert findings[ids.school_s2].assigned_tenant_id == ids.tenant_a
        assert findings[ids.product_p1].action == ReconciliationAction.AMBIGUOUS

    def test_unknown_default_tenant(self, binder, legacy_dataset):
        with pytest.raises(ValueError):
            run_reconciliation(binder, dry_run=True, actor="tests", policy=ReconciliationPolicy(default_tenant_id=uuid4()))

    def test_policy_from_settings(self, override_settings):
        tenant_id = uuid4()
        override_settings(RECONCILIATION_DEFAULT_TENANT_ID=tenant_id, RECONCILIATION_ASSIGN_ON_MAJORITY="true")

        policy = ReconciliationPolicy.from_settings()

        assert policy.default_tenant_id == tenant_id
        assert policy.assign_on_clear_majority is True


class TestEntryPoints:
    def test_job_requires_admin_scope(self, binder, legacy_dataset):
        with binder.bind(TenantContext(legacy_dataset.tenant_a)) as session:
            with pytest.raises(RuntimeError):
                ReconciliationJob(session)

    def test_celery_task_defaults_to_dry_run(self, monkeypatch, binder, legacy_dataset):
        monkeypatch.setattr(database, "session_binder", binder)

        result = reconciliation_task()

        assert result["status"] == "completed"
        assert result["dry_run"] is True
        assert tenant_of(binder, School, legacy_dataset.school_s1) is None

    def test_celery_task_applies_when_adopting(self, monkeypatch, override_settings, binder, legacy_dataset):
        monkeypatch.setattr(database, "session_binder", binder)
        override_settings(LEGACY_ROW_POLICY="adopt")

        result = reconciliation_task()

        assert result["dry_run"] is False
        assert result["applied"] == 3

    def test_cli_dry_run(self, capsys, binder, legacy_dataset):
        spec = importlib.util.spec_from_file_location("reconcile_tenants_cli", SCRIPT_PATH)
        cli = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(cli)
        cli.session_binder = binder

        exit_code = cli.main(["--dry-run", "--actor", "cli-test"])

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "Dry run" in output
        assert str(legacy_dataset.school_s1) in output
        assert tenant_of(binder, School, legacy_dataset.school_s1) is None

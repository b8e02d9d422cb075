#!/usr/bin/env python
"""Detect and repair missing or inconsistent tenant ownership.

Runs one reconciliation inside an audited admin scope and prints the report.
Nothing is written unless --apply is given.

Usage:
    python backend/scripts/reconcile_tenants.py --dry-run
    python backend/scripts/reconcile_tenants.py --apply --actor ops@example.org
    python backend/scripts/reconcile_tenants.py --apply --default-tenant <uuid>

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    RECONCILIATION_DEFAULT_TENANT_ID: Tenant for orphans with no candidate
    RECONCILIATION_ASSIGN_ON_MAJORITY: Assign ambiguous orphans to a strict majority
"""

import argparse
import getpass
import json
import sys
from pathlib import Path
from uuid import UUID

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from database import session_binder  # noqa: E402
from observability.logging_config import configure_logging  # noqa: E402
from reconciliation.schemas import ReconciliationPolicy  # noqa: E402
from reconciliation.service import run_reconciliation  # noqa: E402
from tenancy.errors import TenantBindingError  # noqa: E402


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--apply", dest="dry_run", action="store_false", help="Write tenant assignments")
    mode.add_argument("--dry-run", dest="dry_run", action="store_true", help="Report only (default)")
    parser.set_defaults(dry_run=True)
    parser.add_argument("--actor", default=None, help="Name recorded in the audit log (default: OS user)")
    parser.add_argument("--default-tenant", type=UUID, default=None, help="Tenant for orphans with no candidate")
    parser.add_argument(
        "--assign-on-majority",
        action="store_true",
        default=None,
        help="Assign ambiguous orphans to the candidate with strictly most references",
    )
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level="WARNING", json_format=False)

    policy = ReconciliationPolicy.from_settings()
    if args.default_tenant is not None:
        policy.default_tenant_id = args.default_tenant
    if args.assign_on_majority:
        policy.assign_on_clear_majority = True

    actor = args.actor or f"cli:{getpass.getuser()}"
    try:
        report = run_reconciliation(session_binder, dry_run=args.dry_run, actor=actor, policy=policy)
    except TenantBindingError as e:
        print(f"ERROR: {e.message}")
        return 2
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    if args.json:
        print(report.model_dump_json(indent=2))
        return 0

    print(json.dumps(report.summary(), indent=2))
    for finding in report.orphans:
        target = finding.assigned_tenant_id or "-"
        print(f"  {finding.action.value:16} {finding.kind}:{finding.entity_id} -> {target}")
    for mismatch in report.mismatches:
        print(
            f"  {'mismatch':16} {mismatch.child_kind}:{mismatch.child_id} "
            f"({mismatch.child_tenant_id}) -> {mismatch.parent_kind}:{mismatch.parent_id} "
            f"({mismatch.parent_tenant_id})"
        )
    if args.dry_run:
        print("Dry run: nothing was written. Re-run with --apply to assign.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Offline reconciliation of legacy rows and cross-tenant mismatches"""

from .schemas import ReconciliationAction, ReconciliationPolicy, ReconciliationReport
from .service import ReconciliationJob, run_reconciliation

__all__ = [
    "ReconciliationAction",
    "ReconciliationPolicy",
    "ReconciliationReport",
    "ReconciliationJob",
    "run_reconciliation",
]

"""Prometheus metrics for tenant isolation.

Labels never carry tenant ids, which keeps series cardinality bounded.
"""

from prometheus_client import Counter

tenant_resolutions_total = Counter(
    "tenancy_resolutions_total",
    "Tenant context resolutions",
    ["source", "outcome"]  # source: override|token|membership|none, outcome: resolved|denied|missing|ambiguous|inactive
)

ownership_violations_total = Counter(
    "tenancy_ownership_violations_total",
    "Entity references rejected by the ownership validator",
    ["kind", "reason"]  # reason: foreign_tenant|unowned|inactive|not_found
)

cache_requests_total = Counter(
    "tenancy_cache_requests_total",
    "Tenant-scoped cache lookups",
    ["kind", "result"]  # result: hit|miss
)

cache_errors_total = Counter(
    "tenancy_cache_errors_total",
    "Cache backend failures degraded to a miss or no-op",
    ["operation"]
)

cache_invalidations_total = Counter(
    "tenancy_cache_invalidations_total",
    "Cache invalidations",
    ["kind", "scope"]  # scope: key|all
)

session_bind_retries_total = Counter(
    "tenancy_session_bind_retries_total",
    "Retried attempts to open a tenant-bound transaction",
    ["scope"]  # scope: tenant|admin
)

session_bind_failures_total = Counter(
    "tenancy_session_bind_failures_total",
    "Tenant-bound transactions that could not be opened after all retries",
    ["scope"]
)

admin_scopes_total = Counter(
    "tenancy_admin_scopes_total",
    "Sessions opened with full-dataset access",
)

reconciliation_actions_total = Counter(
    "tenancy_reconciliation_actions_total",
    "Reconciliation findings by action",
    ["kind", "action", "mode"]  # action: assign_inferred|assign_default|ambiguous|unresolved|mismatch, mode: dry_run|apply
)

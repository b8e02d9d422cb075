"""Observability module.

Provides structured logging, metrics, request correlation and health checks.
"""

from .logging_config import configure_logging
from .metrics import (
    admin_scopes_total,
    cache_errors_total,
    cache_invalidations_total,
    cache_requests_total,
    ownership_violations_total,
    reconciliation_actions_total,
    session_bind_failures_total,
    session_bind_retries_total,
    tenant_resolutions_total,
)
from .request_id import request_id_var, tenant_id_var, get_request_id, set_request_id, generate_request_id

__all__ = [
    # Logging
    "configure_logging",
    # Metrics
    "admin_scopes_total",
    "cache_errors_total",
    "cache_invalidations_total",
    "cache_requests_total",
    "ownership_violations_total",
    "reconciliation_actions_total",
    "session_bind_failures_total",
    "session_bind_retries_total",
    "tenant_resolutions_total",
    # Request ID
    "request_id_var",
    "tenant_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
]

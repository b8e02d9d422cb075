"""Audit logging service for privileged tenancy events.

Audit events:
- ADMIN_SCOPE_OPENED: a session with full-dataset access was opened
- TENANT_ASSIGNED: reconciliation assigned a tenant to a legacy row
- RECONCILIATION_APPLIED: summary of one applied reconciliation run
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models.audit_log import AuditLog

ADMIN_SCOPE_OPENED = "ADMIN_SCOPE_OPENED"
TENANT_ASSIGNED = "TENANT_ASSIGNED"
RECONCILIATION_APPLIED = "RECONCILIATION_APPLIED"


def log_audit_event(
    db: Session,
    action: str,
    actor: str,
    tenant_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Create an audit log entry.

    The entry joins the caller's transaction; it is persisted when that
    transaction commits.

    Args:
        db: Database session
        action: Event action (one of the constants above)
        actor: Who performed the action (principal id, "system", CLI user)
        tenant_id: Tenant concerned, None for dataset-wide events
        entity_type: Kind of entity affected (e.g. "school")
        entity_id: ID of affected entity
        metadata: Additional context as JSON

    Returns:
        AuditLog: The created audit log entry
    """
    audit_entry = AuditLog(
        tenant_id=tenant_id,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
    )

    db.add(audit_entry)
    db.flush()  # Get ID without committing transaction

    return audit_entry

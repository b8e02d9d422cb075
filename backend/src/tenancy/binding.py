"""Where a session keeps its tenant binding.

The binding lives in ``Session.info`` of a session that is opened for one
transaction and closed right after it (see ``tenancy.session``). Nothing is
ever written to the pooled connection, so a connection returned to the pool
carries no tenant state into the next request.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .context import TenantContext

TENANT_BINDING_KEY = "tenant_binding"
ADMIN_SCOPE_KEY = "tenant_admin_scope"


@dataclass(frozen=True)
class AdminScope:
    """Marks a session opened on the audited full-dataset path."""

    reason: str
    actor: str
    allow_retenant: bool = False


def bind_context(session: Session, context: TenantContext) -> None:
    """Attach a tenant context to a session.

    Raises:
        RuntimeError: If the session already carries a binding or an admin scope
    """
    if TENANT_BINDING_KEY in session.info or ADMIN_SCOPE_KEY in session.info:
        raise RuntimeError("Session is already bound")
    session.info[TENANT_BINDING_KEY] = context


def bind_admin_scope(session: Session, scope: AdminScope) -> None:
    if TENANT_BINDING_KEY in session.info or ADMIN_SCOPE_KEY in session.info:
        raise RuntimeError("Session is already bound")
    session.info[ADMIN_SCOPE_KEY] = scope


def clear_binding(session: Session) -> None:
    session.info.pop(TENANT_BINDING_KEY, None)
    session.info.pop(ADMIN_SCOPE_KEY, None)


def get_bound_context(session: Session) -> Optional[TenantContext]:
    return session.info.get(TENANT_BINDING_KEY)


def get_bound_tenant(session: Session) -> Optional[UUID]:
    context = session.info.get(TENANT_BINDING_KEY)
    return context.tenant_id if context is not None else None


def get_admin_scope(session: Session) -> Optional[AdminScope]:
    return session.info.get(ADMIN_SCOPE_KEY)

"""Commit-triggered cache invalidation.

``after_flush`` records which (tenant, kind) pairs a transaction wrote;
``after_commit`` invalidates exactly those pairs. A tenant whose status
changed has all of its kinds cleared. A rollback discards the record, so
an aborted transaction invalidates nothing.
"""

import logging
from itertools import chain
from typing import Set, Tuple
from uuid import UUID

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session

from models.base import TenantScopedMixin
from models.tenant import Tenant
from tenancy.binding import get_bound_tenant
from tenancy.registry import kind_for_model, ownable_kinds

from .tenant_cache import WILDCARD, TenantScopedCache, get_tenant_cache

logger = logging.getLogger(__name__)

PENDING_INVALIDATIONS_KEY = "tenant_cache_pending"
PENDING_TENANT_CLEARS_KEY = "tenant_cache_pending_clears"
SESSION_CACHE_KEY = "tenant_cache"


def _pending(session: Session) -> Set[Tuple[UUID, str]]:
    return session.info.setdefault(PENDING_INVALIDATIONS_KEY, set())


def _session_cache(session: Session) -> TenantScopedCache:
    return session.info.get(SESSION_CACHE_KEY) or get_tenant_cache()


@event.listens_for(Session, "after_flush")
def collect_written_kinds(session: Session, flush_context):
    """Record the (tenant, kind) pairs touched by this flush."""
    pending = _pending(session)
    for obj in session.dirty:
        if isinstance(obj, Tenant) and inspect(obj).attrs.status.history.has_changes():
            session.info.setdefault(PENDING_TENANT_CLEARS_KEY, set()).add(obj.id)

    for obj in chain(session.new, session.dirty, session.deleted):
        if not isinstance(obj, TenantScopedMixin):
            continue
        if obj in session.dirty and not session.is_modified(obj):
            continue
        ownable = kind_for_model(type(obj))
        if ownable is None:
            continue
        tenants = {obj.tenant_id}
        # A reassigned row leaves the previous tenant's cached views stale too
        tenants.update(inspect(obj).attrs.tenant_id.history.deleted or ())
        for tenant_id in tenants:
            if tenant_id is not None:
                pending.add((tenant_id, ownable.kind))


# Inserted ahead of the row filter, which may answer the statement itself
@event.listens_for(Session, "do_orm_execute", insert=True)
def collect_bulk_writes(execute_state: ORMExecuteState):
    if not (execute_state.is_insert or execute_state.is_update or execute_state.is_delete):
        return
    tenant_id = get_bound_tenant(execute_state.session)
    if tenant_id is None:
        return
    pending = _pending(execute_state.session)
    for mapper in execute_state.all_mappers:
        ownable = kind_for_model(mapper.class_)
        if ownable is not None:
            pending.add((tenant_id, ownable.kind))


@event.listens_for(Session, "after_commit")
def invalidate_written_kinds(session: Session):
    pending = session.info.pop(PENDING_INVALIDATIONS_KEY, None)
    cleared = session.info.pop(PENDING_TENANT_CLEARS_KEY, None)
    if not (pending or cleared):
        return
    cache = _session_cache(session)
    for tenant_id in cleared or ():
        cache.clear_tenant(tenant_id, sorted(ownable_kinds()))
    if not pending:
        return
    for tenant_id, kind in sorted(pending, key=lambda pair: (str(pair[0]), pair[1])):
        cache.invalidate(tenant_id, kind, WILDCARD)
    logger.debug("Invalidated cached kinds after commit", extra={"pairs": len(pending)})


@event.listens_for(Session, "after_rollback")
def discard_written_kinds(session: Session):
    session.info.pop(PENDING_INVALIDATIONS_KEY, None)
    session.info.pop(PENDING_TENANT_CLEARS_KEY, None)

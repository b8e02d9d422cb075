"""Global FastAPI dependencies for tenant isolation and database access.

This module provides:
- get_tenant_context: resolve the request's tenant from token, header and host
- get_tenant_session: session bound to that tenant for the request's transaction
- get_ownership_validator: validator sharing the request's session
- get_cache: tenant-scoped cache

All tenant-scoped endpoints should take their session from
get_tenant_session. The administrative (unfiltered) path has no dependency.
A request holds at most one pooled connection at a time: resolution runs on
a short-lived session that is closed before the bound session opens.
"""

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from auth.dependencies import get_current_principal
from cache.tenant_cache import TenantScopedCache, get_tenant_cache
from config import get_settings
from database import session_binder
from tenancy.context import Principal, TenantContext
from tenancy.ownership import OwnershipValidator
from tenancy.resolver import SqlMembershipDirectory, TenantContextResolver
from tenancy.session import SessionBinder


def get_session_binder() -> SessionBinder:
    return session_binder


def get_tenant_context(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    binder: SessionBinder = Depends(get_session_binder),
) -> TenantContext:
    """Resolve the tenant for this request.

    Raises:
        TenantContextMissingError: No tenant resolvable (400)
        TenantAccessDeniedError: Override or host not permitted (403)
        TenantInactiveError: Tenant suspended or archived (403)
    """
    settings = get_settings()
    override = request.headers.get(settings.TENANT_HEADER)
    host = request.headers.get("host") if settings.TENANT_HOST_RESOLUTION else None

    with binder.session_factory() as db:
        resolver = TenantContextResolver(SqlMembershipDirectory(db))
        context = resolver.resolve(principal, override=override, required=True, host=host)

    # Read by the request logging middleware
    request.state.tenant_id = context.tenant_id
    return context


def get_tenant_session(
    context: TenantContext = Depends(get_tenant_context),
    binder: SessionBinder = Depends(get_session_binder),
) -> Generator[Session, None, None]:
    """Session bound to the request's tenant.

    Commits when the endpoint returns, rolls back when it raises, and
    always releases the connection.
    """
    with binder.bind(context) as session:
        yield session


def get_ownership_validator(session: Session = Depends(get_tenant_session)) -> OwnershipValidator:
    return OwnershipValidator(session)


def get_cache() -> TenantScopedCache:
    return get_tenant_cache()

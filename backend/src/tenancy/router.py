"""FastAPI router exposing the resolved tenant context.

- GET /tenant/context - tenant the request would act for
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from dependencies import get_tenant_context
from models.tenant import Tenant
from .context import TenantContext
from .errors import TenantAccessDeniedError
from .schemas import TenantContextResponse


router = APIRouter(prefix="/tenant", tags=["Tenancy"])


@router.get("/context", response_model=TenantContextResponse)
def read_tenant_context(
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> TenantContextResponse:
    """Return the tenant resolved from the bearer token and tenant header."""
    tenant = db.get(Tenant, context.tenant_id)
    if tenant is None:
        raise TenantAccessDeniedError("Tenant does not exist or is not accessible")

    return TenantContextResponse(
        tenant_id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        status=tenant.status,
        principal_id=context.principal_id,
        source=context.source.value,
    )

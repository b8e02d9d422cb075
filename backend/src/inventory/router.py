"""Inventory API endpoints"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dependencies import get_ownership_validator, get_tenant_context, get_tenant_session
from tenancy.context import TenantContext
from tenancy.ownership import OwnershipValidator
from .schemas import InventoryMovementCreate, InventoryMovementResponse
from .service import record_inventory_movement

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.post(
    "/movements",
    response_model=InventoryMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_movement(
    data: InventoryMovementCreate,
    context: TenantContext = Depends(get_tenant_context),
    session: Session = Depends(get_tenant_session),
    validator: OwnershipValidator = Depends(get_ownership_validator),
):
    """Record a stock movement.

    Raises:
        TenantOwnershipError 403: School, product or batch not owned by the tenant
    """
    record = record_inventory_movement(
        session,
        validator,
        context.tenant_id,
        data,
        recorded_by=context.principal_id,
    )
    session.commit()
    return InventoryMovementResponse(**record.to_dict())

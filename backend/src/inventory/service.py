"""Inventory movement recording.

The one compound write of the service: a movement references a school, a
product and optionally a batch, all of which must belong to the caller's
tenant. Ownership is validated before anything is added to the session, so
a rejected movement writes nothing.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models.inventory import InventoryRecord
from tenancy.ownership import EntityRef, OwnershipValidator
from .schemas import InventoryMovementCreate

logger = logging.getLogger(__name__)


def movement_refs(data: InventoryMovementCreate):
    refs = [
        EntityRef("school", data.school_id),
        EntityRef("product", data.product_id),
    ]
    if data.batch_id is not None:
        refs.append(EntityRef("batch", data.batch_id))
    return refs


def record_inventory_movement(
    session: Session,
    validator: OwnershipValidator,
    tenant_id: UUID,
    data: InventoryMovementCreate,
    recorded_by: Optional[UUID] = None,
) -> InventoryRecord:
    """Validate ownership of every reference, then create the record.

    Raises:
        TenantOwnershipError: A reference belongs to another tenant, to no
            tenant, or is inactive
        EntityNotFoundError: Every failing reference does not exist
    """
    validator.require(tenant_id, movement_refs(data))

    record = InventoryRecord(
        school_id=data.school_id,
        product_id=data.product_id,
        batch_id=data.batch_id,
        movement_type=data.movement_type.value,
        quantity=data.quantity,
        notes=data.notes,
        recorded_by=recorded_by,
    )
    session.add(record)
    session.flush()

    logger.info(
        "Inventory movement recorded",
        extra={
            "inventory_record_id": str(record.id),
            "movement_type": record.movement_type,
        },
    )
    return record

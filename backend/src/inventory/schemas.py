"""Pydantic schemas for inventory movements"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from models.inventory import MovementType


class InventoryMovementCreate(BaseModel):
    """Schema for recording a stock movement"""
    school_id: UUID
    product_id: UUID
    batch_id: Optional[UUID] = None
    movement_type: MovementType
    quantity: Decimal = Field(..., max_digits=14, decimal_places=3)
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_quantity(self):
        """Entries and exits move a positive amount; adjustments may be negative but not zero"""
        if self.movement_type == MovementType.ADJUSTMENT:
            if self.quantity == 0:
                raise ValueError("Adjustment quantity cannot be zero")
        elif self.quantity <= 0:
            raise ValueError(f"{self.movement_type.value} quantity must be positive")
        return self


class InventoryMovementResponse(BaseModel):
    """Schema for InventoryRecord response"""
    id: UUID
    tenant_id: UUID
    school_id: UUID
    product_id: UUID
    batch_id: Optional[UUID] = None
    movement_type: MovementType
    quantity: Decimal
    notes: Optional[str] = None
    recorded_by: Optional[UUID] = None

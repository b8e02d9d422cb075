"""Pydantic schemas for school responses"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class SchoolResponse(BaseModel):
    """Schema for School response"""
    id: UUID
    tenant_id: UUID
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    active: bool

"""Pydantic schemas for tenant context responses"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class TenantContextResponse(BaseModel):
    """Tenant the current request acts for"""
    tenant_id: UUID
    name: str
    slug: str
    status: str
    principal_id: Optional[UUID] = None
    source: str

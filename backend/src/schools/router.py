"""School API endpoints.

Reads go through the tenant-bound session, so a school of another tenant
(or a legacy school without a tenant) is simply not found. Single-school
reads are served from the tenant-scoped cache.
"""

from typing import List
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from cache.tenant_cache import TenantScopedCache
from dependencies import get_cache, get_tenant_context, get_tenant_session
from models.school import School
from tenancy.context import TenantContext
from .schemas import SchoolResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schools", tags=["schools"])

CACHE_KIND = "school"


@router.get("", response_model=List[SchoolResponse])
def list_schools(session: Session = Depends(get_tenant_session)):
    """List the current tenant's schools."""
    schools = session.scalars(select(School).order_by(School.name)).all()
    return [SchoolResponse(**school.to_dict()) for school in schools]


@router.get("/{school_id}", response_model=SchoolResponse)
def get_school(
    school_id: UUID,
    context: TenantContext = Depends(get_tenant_context),
    session: Session = Depends(get_tenant_session),
    cache: TenantScopedCache = Depends(get_cache),
):
    """Get one school of the current tenant.

    Raises:
        HTTPException 404: If the school does not exist in this tenant
    """
    def load():
        school = session.get(School, school_id)
        return school.to_dict() if school is not None else None

    data = cache.get_or_load(context.tenant_id, CACHE_KIND, school_id, load)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="School not found"
        )
    return SchoolResponse(**data)

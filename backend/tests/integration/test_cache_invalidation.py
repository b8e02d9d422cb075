"""Integration tests for commit-triggered cache invalidation

Tests cover:
- A committed write invalidates the written (tenant, kind) only
- A rolled back write invalidates nothing
- Bulk statements invalidate the bound tenant's kind
- Reassigning a row invalidates both tenants
- A tenant status change clears every kind of that tenant
"""

import pytest
from sqlalchemy import insert, update

from models.product import Product
from models.school import School
from models.tenant import Tenant, TenantStatus
from tenancy.context import TenantContext


pytestmark = pytest.mark.integration


@pytest.fixture
def primed(cache, multi_tenant):
    """Cache one school and one product entry for each tenant."""
    for seeded in (multi_tenant.tenant_a, multi_tenant.tenant_b):
        cache.set(seeded.tenant_id, "school", seeded.school_id, {"name": "cached"})
        cache.set(seeded.tenant_id, "product", seeded.product_id, {"name": "cached"})
    return multi_tenant


def cached(cache, seeded, kind):
    key = seeded.school_id if kind == "school" else seeded.product_id
    return cache.get(seeded.tenant_id, kind, key)


def test_commit_invalidates_written_kind(binder, cache, primed):
    a, b = primed.tenant_a, primed.tenant_b

    with binder.bind(TenantContext(a.tenant_id)) as session:
        session.get(School, a.school_id).name = "Renamed"

    assert cached(cache, a, "school") is None
    assert cached(cache, a, "product") is not None
    assert cached(cache, b, "school") is not None


def test_insert_invalidates_kind(binder, cache, primed):
    a = primed.tenant_a

    with binder.bind(TenantContext(a.tenant_id)) as session:
        session.add(Product(name="Lentils"))

    assert cached(cache, a, "product") is None
    assert cached(cache, a, "school") is not None


def test_rollback_invalidates_nothing(binder, cache, primed):
    a = primed.tenant_a

    with pytest.raises(RuntimeError):
        with binder.bind(TenantContext(a.tenant_id)) as session:
            session.get(School, a.school_id).name = "Never Saved"
            session.flush()
            raise RuntimeError("abort")

    assert cached(cache, a, "school") is not None


def test_reads_invalidate_nothing(binder, cache, primed):
    a = primed.tenant_a

    with binder.bind(TenantContext(a.tenant_id)) as session:
        session.get(School, a.school_id)

    assert cached(cache, a, "school") is not None


def test_bulk_update_invalidates_bound_tenant(binder, cache, primed):
    a, b = primed.tenant_a, primed.tenant_b

    with binder.bind(TenantContext(a.tenant_id)) as session:
        session.execute(update(Product).values(unit="kg").execution_options(synchronize_session=False))

    assert cached(cache, a, "product") is None
    assert cached(cache, b, "product") is not None


def test_retenant_invalidates_both_tenants(binder, cache, primed):
    a, b = primed.tenant_a, primed.tenant_b

    with binder.admin_scope(reason="tenant merge", actor="tests", allow_retenant=True) as session:
        session.get(School, a.inactive_school_id).tenant_id = b.tenant_id

    assert cached(cache, a, "school") is None
    assert cached(cache, b, "school") is None


def test_bulk_insert_invalidates_kind(binder, cache, primed):
    a, b = primed.tenant_a, primed.tenant_b

    with binder.bind(TenantContext(a.tenant_id)) as session:
        session.execute(insert(Product), [{"name": "Oats"}])

    assert cached(cache, a, "product") is None
    assert cached(cache, a, "school") is not None
    assert cached(cache, b, "product") is not None


def test_status_change_clears_tenant(binder, cache, primed):
    a, b = primed.tenant_a, primed.tenant_b

    with binder.admin_scope(reason="suspend for non-payment", actor="tests") as session:
        session.get(Tenant, a.tenant_id).status = TenantStatus.SUSPENDED.value

    assert cached(cache, a, "school") is None
    assert cached(cache, a, "product") is None
    assert cached(cache, b, "school") is not None
    assert cached(cache, b, "product") is not None

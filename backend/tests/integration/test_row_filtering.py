"""Integration tests for automatic tenant row filtering

Tests cover:
- Reads only return rows of the bound tenant (get, select, joins, relationships)
- Unbound sessions fail closed
- Inserts receive the bound tenant; foreign tenants are rejected
- tenant_id is immutable outside the audited admin path
- Bulk UPDATE/DELETE are restricted to the bound tenant
- Legacy rows (tenant_id NULL) stay invisible
"""

from uuid import uuid4

import pytest
from sqlalchemy import delete, func, insert, select, update

from models.contract import Order
from models.inventory import Batch, InventoryRecord
from models.product import Product
from models.school import School
from models.tenant import Tenant
from tenancy.context import TenantContext
from tenancy.errors import TenantContextMissingError, TenantImmutableError, TenantOwnershipError


pytestmark = pytest.mark.integration


class TestFilteredReads:
    def test_list_returns_only_bound_tenant(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            school_ids = {s.id for s in session.scalars(select(School))}

        assert school_ids == {a.school_id, a.inactive_school_id}

    def test_get_foreign_row_returns_none(self, binder, multi_tenant):
        with binder.bind(TenantContext(multi_tenant.tenant_a.tenant_id)) as session:
            assert session.get(School, multi_tenant.tenant_b.school_id) is None
            assert session.get(Product, multi_tenant.tenant_b.product_id) is None

    def test_legacy_rows_are_invisible(self, binder, multi_tenant):
        with binder.bind(TenantContext(multi_tenant.tenant_a.tenant_id)) as session:
            assert session.get(School, multi_tenant.legacy_school_id) is None
            names = session.scalars(select(School.name)).all()

        assert "Legacy School" not in names

    def test_aggregate_is_filtered(self, binder, multi_tenant):
        with binder.bind(TenantContext(multi_tenant.tenant_b.tenant_id)) as session:
            count = session.scalar(select(func.count(School.id)))

        assert count == 2

    def test_join_filters_both_sides(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            rows = session.execute(
                select(InventoryRecord.id, School.name).join(School, InventoryRecord.school_id == School.id)
            ).all()

        assert [row.id for row in rows] == [a.record_id]

    def test_relationship_load_is_filtered(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        # A batch pointing at another tenant's school can only be created on the admin path
        with binder.admin_scope(reason="create inconsistent row", actor="tests") as session:
            batch = Batch(
                tenant_id=a.tenant_id,
                school_id=b.school_id,
                product_id=a.product_id,
                lot_code="CROSS-1",
            )
            session.add(batch)
            session.flush()
            batch_id = batch.id

        with binder.bind(TenantContext(a.tenant_id)) as session:
            loaded = session.get(Batch, batch_id)
            assert loaded is not None
            assert loaded.product.id == a.product_id
            assert loaded.school is None

    def test_global_tables_are_not_filtered(self, binder, multi_tenant):
        with binder.bind(TenantContext(multi_tenant.tenant_a.tenant_id)) as session:
            tenants = session.scalars(select(Tenant)).all()

        assert len(tenants) == 3


class TestUnboundSession:
    def test_select_without_binding_raises(self, db_session, multi_tenant):
        with pytest.raises(TenantContextMissingError):
            db_session.scalars(select(School)).all()

    def test_get_without_binding_raises(self, db_session, multi_tenant):
        with pytest.raises(TenantContextMissingError):
            db_session.get(School, multi_tenant.tenant_a.school_id)

    def test_insert_without_binding_raises(self, db_session):
        db_session.add(School(name="Nobody's School"))

        with pytest.raises(TenantContextMissingError):
            db_session.flush()
        db_session.rollback()

    def test_bind_without_context_raises(self, binder):
        with pytest.raises(TenantContextMissingError):
            with binder.bind(None):
                pass


class TestWrites:
    def test_insert_receives_bound_tenant(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            school = School(name="New School")
            session.add(school)
            session.flush()
            school_id = school.id

        with binder.admin_scope(reason="verify insert", actor="tests") as session:
            assert session.get(School, school_id).tenant_id == a.tenant_id

    def test_insert_with_same_tenant_is_accepted(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            session.add(Product(name="Beans", tenant_id=a.tenant_id))

    def test_insert_for_other_tenant_is_rejected(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with pytest.raises(TenantOwnershipError) as exc_info:
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.add(School(name="Injected", tenant_id=b.tenant_id))
                session.flush()

        assert exc_info.value.expected_tenant == a.tenant_id
        with binder.bind(TenantContext(b.tenant_id)) as session:
            assert session.scalars(select(School).where(School.name == "Injected")).first() is None

    def test_update_within_tenant(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            session.get(School, a.school_id).name = "Renamed"

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, a.school_id).name == "Renamed"

    def test_tenant_change_is_rejected(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with pytest.raises(TenantImmutableError):
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.get(School, a.school_id).tenant_id = b.tenant_id
                session.flush()

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, a.school_id) is not None

    def test_clearing_tenant_is_rejected(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with pytest.raises(TenantImmutableError):
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.get(Product, a.product_id).tenant_id = None

    def test_admin_scope_cannot_retenant_by_default(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with pytest.raises(TenantImmutableError):
            with binder.admin_scope(reason="attempt retenant", actor="tests") as session:
                session.get(School, a.school_id).tenant_id = b.tenant_id

    def test_admin_scope_with_retenant_flag(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with binder.admin_scope(reason="tenant merge", actor="tests", allow_retenant=True) as session:
            session.get(School, a.inactive_school_id).tenant_id = b.tenant_id

        with binder.bind(TenantContext(b.tenant_id)) as session:
            assert session.get(School, a.inactive_school_id) is not None

    def test_admin_scope_can_adopt_legacy_row(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.admin_scope(reason="adopt legacy", actor="tests") as session:
            session.get(School, multi_tenant.legacy_school_id).tenant_id = a.tenant_id

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, multi_tenant.legacy_school_id) is not None


class TestBulkStatements:
    def test_bulk_update_only_touches_bound_tenant(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with binder.bind(TenantContext(a.tenant_id)) as session:
            result = session.execute(
                update(School).values(address="Rua Nova 1").execution_options(synchronize_session=False)
            )
            assert result.rowcount == 2

        with binder.bind(TenantContext(b.tenant_id)) as session:
            addresses = session.scalars(select(School.address)).all()
        assert "Rua Nova 1" not in addresses

    def test_bulk_delete_only_touches_bound_tenant(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with binder.bind(TenantContext(a.tenant_id)) as session:
            session.execute(delete(Order).execution_options(synchronize_session=False))

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(Order, a.order_id) is None
        with binder.bind(TenantContext(b.tenant_id)) as session:
            assert session.get(Order, b.order_id) is not None

    def test_bulk_update_cannot_move_rows_to_another_tenant(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with pytest.raises(TenantImmutableError):
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.execute(
                    update(School)
                    .where(School.id == a.school_id)
                    .values(tenant_id=b.tenant_id)
                    .execution_options(synchronize_session=False)
                )

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, a.school_id) is not None

    def test_bulk_update_may_restate_bound_tenant(self, binder, multi_tenant):
        a = multi_tenant.tenant_a

        with binder.bind(TenantContext(a.tenant_id)) as session:
            result = session.execute(
                update(School)
                .where(School.id == a.school_id)
                .values(tenant_id=a.tenant_id, address="Rua Velha 2")
                .execution_options(synchronize_session=False)
            )
            assert result.rowcount == 1

    def test_bulk_retenant_in_admin_scope_requires_allow_retenant(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b
        statement = (
            update(School)
            .where(School.id == a.school_id)
            .values(tenant_id=b.tenant_id)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(TenantImmutableError):
            with binder.admin_scope(reason="bulk move", actor="tests") as session:
                session.execute(statement)

        with binder.admin_scope(reason="bulk move", actor="tests", allow_retenant=True) as session:
            session.execute(statement)

        with binder.bind(TenantContext(b.tenant_id)) as session:
            assert session.get(School, a.school_id) is not None


class TestBulkInserts:
    def test_insert_with_foreign_tenant_is_rejected(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b
        school_id = uuid4()

        with pytest.raises(TenantOwnershipError) as exc_info:
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.execute(insert(School).values(id=school_id, name="Planted", tenant_id=b.tenant_id))

        assert exc_info.value.violations[0].reason == "foreign_tenant"
        with binder.bind(TenantContext(b.tenant_id)) as session:
            assert session.get(School, school_id) is None

    def test_insert_without_tenant_receives_bound_tenant(self, binder, multi_tenant):
        a = multi_tenant.tenant_a
        school_id = uuid4()

        with binder.bind(TenantContext(a.tenant_id)) as session:
            session.execute(insert(School).values(id=school_id, name="Annex"))

        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, school_id).tenant_id == a.tenant_id

    def test_parameter_list_insert_receives_bound_tenant(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b
        first, second = uuid4(), uuid4()

        with binder.bind(TenantContext(b.tenant_id)) as session:
            session.execute(insert(School), [{"id": first, "name": "East"}, {"id": second, "name": "West"}])

        with binder.bind(TenantContext(b.tenant_id)) as session:
            tenants = {s.tenant_id for s in session.scalars(select(School).where(School.id.in_([first, second])))}
        assert tenants == {b.tenant_id}
        with binder.bind(TenantContext(a.tenant_id)) as session:
            assert session.get(School, first) is None

    def test_parameter_insert_with_foreign_tenant_is_rejected(self, binder, multi_tenant):
        a, b = multi_tenant.tenant_a, multi_tenant.tenant_b

        with pytest.raises(TenantOwnershipError):
            with binder.bind(TenantContext(a.tenant_id)) as session:
                session.execute(insert(School), [{"id": uuid4(), "name": "Planted", "tenant_id": b.tenant_id}])

    def test_insert_on_unbound_session_fails_closed(self, db_session):
        with pytest.raises(TenantContextMissingError):
            db_session.execute(insert(School).values(id=uuid4(), name="Orphan"))

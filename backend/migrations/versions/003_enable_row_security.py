"""Enable row-level security on ownable tables

Every ownable table only shows and accepts rows whose tenant_id equals the
transaction-local setting app.current_tenant_id. The setting is written by
the application with set_config(..., true) at the start of each transaction,
so it never outlives the transaction on a pooled connection. An unset
setting matches nothing (legacy rows with NULL tenant_id included).

app.rls_bypass = 'on' is set only by the audited administrative session
used for reconciliation and data migrations.

FORCE makes the policies apply to the table owner as well.

Revision ID: 003
Revises: 002
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op

# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None

TENANT_SETTING = 'app.current_tenant_id'
BYPASS_SETTING = 'app.rls_bypass'

TENANT_TABLES = ('batch', 'contract', 'inventory_record', 'product', 'school', 'supply_order')

PREDICATE = (
    f"current_setting('{BYPASS_SETTING}', true) = 'on' "
    f"OR tenant_id = NULLIF(current_setting('{TENANT_SETTING}', true), '')::uuid"
)


def policy_statements(table):
    policy = f'tenant_isolation_{table}'
    return [
        f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY',
        f'ALTER TABLE {table} FORCE ROW LEVEL SECURITY',
        f'DROP POLICY IF EXISTS {policy} ON {table}',
        f'CREATE POLICY {policy} ON {table} FOR ALL USING ({PREDICATE}) WITH CHECK ({PREDICATE})',
    ]


def upgrade():
    for table in TENANT_TABLES:
        for statement in policy_statements(table):
            op.execute(statement)


def downgrade():
    for table in TENANT_TABLES:
        op.execute(f'DROP POLICY IF EXISTS tenant_isolation_{table} ON {table}')
        op.execute(f'ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY')
        op.execute(f'ALTER TABLE {table} DISABLE ROW LEVEL SECURITY')

"""Add subdomain and custom domain to tenant

Lets requests resolve their tenant from the Host header
(north.example.org or a tenant-owned domain such as meals.north.gov).
Both are optional and unique across tenants.

Revision ID: 004
Revises: 003
Create Date: 2026-10-20 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '004'
down_revision = '003'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('tenant', sa.Column('subdomain', sa.Text(), nullable=True))
    op.add_column('tenant', sa.Column('domain', sa.Text(), nullable=True))
    op.create_unique_constraint('uq_tenant_subdomain', 'tenant', ['subdomain'])
    op.create_unique_constraint('uq_tenant_domain', 'tenant', ['domain'])
    op.create_check_constraint('ck_tenant_subdomain_lower', 'tenant', 'subdomain = lower(subdomain)')
    op.create_check_constraint('ck_tenant_domain_lower', 'tenant', 'domain = lower(domain)')


def downgrade():
    op.drop_constraint('ck_tenant_domain_lower', 'tenant', type_='check')
    op.drop_constraint('ck_tenant_subdomain_lower', 'tenant', type_='check')
    op.drop_constraint('uq_tenant_domain', 'tenant', type_='unique')
    op.drop_constraint('uq_tenant_subdomain', 'tenant', type_='unique')
    op.drop_column('tenant', 'domain')
    op.drop_column('tenant', 'subdomain')

"""Create ownable tables with nullable tenant_id

Rows that existed before multi-tenancy keep tenant_id NULL until the
reconciliation job assigns them.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def _id_column():
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _tenant_column():
    return sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=True)


def _tenant_fk():
    return sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete='RESTRICT')


def _created_at_column():
    return sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False)


def upgrade():
    op.create_table(
        'school',
        _id_column(),
        _tenant_column(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('code', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk()
    )

    op.create_table(
        'product',
        _id_column(),
        _tenant_column(),
        sa.Column('sku', sa.Text(), nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('unit', sa.Text(), server_default='un', nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('attributes_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk()
    )

    op.create_table(
        'batch',
        _id_column(),
        _tenant_column(),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lot_code', sa.Text(), nullable=False),
        sa.Column('expires_on', sa.Date(), nullable=True),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['school_id'], ['school.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='RESTRICT'),
        sa.CheckConstraint("status IN ('active', 'depleted', 'expired')", name='ck_batch_status')
    )

    op.create_table(
        'inventory_record',
        _id_column(),
        _tenant_column(),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('batch_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('movement_type', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recorded_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('recorded_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['school_id'], ['school.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['batch_id'], ['batch.id'], ondelete='SET NULL'),
        sa.CheckConstraint("movement_type IN ('entry', 'exit', 'adjustment')", name='ck_inventory_record_movement_type')
    )

    op.create_table(
        'contract',
        _id_column(),
        _tenant_column(),
        sa.Column('number', sa.Text(), nullable=False),
        sa.Column('supplier_name', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('starts_on', sa.Date(), nullable=True),
        sa.Column('ends_on', sa.Date(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk()
    )

    op.create_table(
        'supply_order',
        _id_column(),
        _tenant_column(),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('contract_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Text(), server_default='pending', nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint('id'),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['school_id'], ['school.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['contract_id'], ['contract.id'], ondelete='SET NULL')
    )

    for table in ('school', 'product', 'batch', 'inventory_record', 'contract', 'supply_order'):
        op.create_index(f'ix_{table}_tenant_id', table, ['tenant_id'])


def downgrade():
    for table in ('supply_order', 'contract', 'inventory_record', 'batch', 'product', 'school'):
        op.drop_index(f'ix_{table}_tenant_id', table_name=table)
        op.drop_table(table)

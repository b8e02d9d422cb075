"""Create institution, tenant, tenant_membership and audit_log tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        'institution',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'tenant',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('institution_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['institution_id'], ['institution.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('slug', name='uq_tenant_slug'),
        sa.CheckConstraint("status IN ('active', 'suspended', 'archived')", name='ck_tenant_status')
    )
    op.create_index('ix_tenant_status', 'tenant', ['status'])

    # Tenant ids are immutable
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_tenant_id_change()
        RETURNS TRIGGER AS $$
        BEGIN
          IF NEW.id <> OLD.id THEN
            RAISE EXCEPTION 'tenant id is immutable';
          END IF;
          RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER tenant_id_immutable
        BEFORE UPDATE ON tenant
        FOR EACH ROW
        EXECUTE FUNCTION prevent_tenant_id_change();
    """)

    op.create_table(
        'tenant_membership',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('principal_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.Text(), server_default='user', nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('principal_id', 'tenant_id', name='uq_tenant_membership_principal_tenant')
    )
    op.create_index('ix_tenant_membership_principal_id', 'tenant_membership', ['principal_id'])

    # Append-only audit trail of privileged actions; tenant_id NULL for dataset-wide events
    op.create_table(
        'audit_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor', sa.Text(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=True),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_log_tenant_id_created_at', 'audit_log', ['tenant_id', 'created_at'])


def downgrade():
    op.drop_index('ix_audit_log_tenant_id_created_at', table_name='audit_log')
    op.drop_table('audit_log')

    op.drop_index('ix_tenant_membership_principal_id', table_name='tenant_membership')
    op.drop_table('tenant_membership')

    op.execute('DROP TRIGGER IF EXISTS tenant_id_immutable ON tenant')
    op.execute('DROP FUNCTION IF EXISTS prevent_tenant_id_change()')
    op.drop_index('ix_tenant_status', table_name='tenant')
    op.drop_table('tenant')

    op.drop_table('institution')

"""Initial migration - create audit log and settings tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Audit log table
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_name', sa.String(255)),
        sa.Column('operation', sa.String(50), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('object_type', sa.String(50)),
        sa.Column('myshopify_domain', sa.String(255), nullable=False),
        sa.Column('time', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('restore', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('restore_status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('restored_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_log_id', 'audit_log', ['id'])
    op.create_index('ix_audit_log_myshopify_domain', 'audit_log', ['myshopify_domain'])
    op.create_index('idx_audit_shop_time', 'audit_log', ['myshopify_domain', 'time'])

    # Settings table
    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('value', sa.Text()),
        sa.Column('description', sa.Text()),
        sa.Column('is_sensitive', sa.Boolean(), default=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_settings_id', 'settings', ['id'])
    op.create_index('ix_settings_key', 'settings', ['key'], unique=True)


def downgrade():
    op.drop_index('ix_settings_key', table_name='settings')
    op.drop_index('ix_settings_id', table_name='settings')
    op.drop_table('settings')
    op.drop_index('idx_audit_shop_time', table_name='audit_log')
    op.drop_index('ix_audit_log_myshopify_domain', table_name='audit_log')
    op.drop_index('ix_audit_log_id', table_name='audit_log')
    op.drop_table('audit_log')

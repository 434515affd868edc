"""Initial schema: tenants, subscribers

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # Create tenants table (one row per Whop user)
    op.create_table(
        'tenants',
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('plan', sa.String(length=50), nullable=False, server_default='free'),
        sa.Column('contacts_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_marketing_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_marketing_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_transactional_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_transactional_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_daily_reset', sa.Date(), nullable=True),
        sa.Column('last_monthly_reset', sa.String(length=7), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('tenant_id'),
        sa.CheckConstraint(
            'contacts_count >= 0 AND daily_marketing_sent >= 0 AND monthly_marketing_sent >= 0 '
            'AND daily_transactional_sent >= 0 AND monthly_transactional_sent >= 0',
            name='ck_tenants_counters_non_negative',
        ),
    )
    op.create_index(op.f('ix_tenants_plan'), 'tenants', ['plan'], unique=False)

    # Create subscribers table
    op.create_table(
        'subscribers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('is_vip', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.tenant_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_subscribers_tenant_email'),
    )
    op.create_index(op.f('ix_subscribers_tenant_id'), 'subscribers', ['tenant_id'], unique=False)
    op.create_index(
        'ix_subscribers_tenant_status',
        'subscribers',
        ['tenant_id', 'status'],
        unique=False,
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_subscribers_tenant_status', table_name='subscribers')
    op.drop_index(op.f('ix_subscribers_tenant_id'), table_name='subscribers')
    op.drop_table('subscribers')
    op.drop_index(op.f('ix_tenants_plan'), table_name='tenants')
    op.drop_table('tenants')

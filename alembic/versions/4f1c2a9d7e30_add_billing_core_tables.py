"""add_billing_core_tables

Revision ID: 4f1c2a9d7e30
Revises:
Create Date: 2026-10-19 10:12:41.503218

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9d7e30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Create plans table
    op.create_table(
        'plans',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('slug', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_monthly_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_yearly_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_channels', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_episodes_per_month', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('max_api_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('features', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('stripe_price_monthly', sa.String(length=255), nullable=True),
        sa.Column('stripe_price_yearly', sa.String(length=255), nullable=True),
        sa.Column('paypal_plan_monthly', sa.String(length=255), nullable=True),
        sa.Column('paypal_plan_yearly', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_popular', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_id'), 'plans', ['id'], unique=False)
    op.create_index(op.f('ix_plans_slug'), 'plans', ['slug'], unique=True)

    # Create subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('plan_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('billing_cycle', sa.String(length=20), nullable=False, server_default='monthly'),
        sa.Column('gateway', sa.String(length=50), nullable=True),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('customer_id', sa.String(length=255), nullable=True),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('api_calls_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('episodes_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('usage_reset_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway', 'external_id', name='uq_subscription_external')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=True)
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
    op.create_index('idx_subscription_status_plan', 'subscriptions', ['status', 'plan_id'], unique=False)

    # Create gateway_credentials table
    op.create_table(
        'gateway_credentials',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('gateway', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('test_mode', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('credentials', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_gateway_credentials_id'), 'gateway_credentials', ['id'], unique=False)
    op.create_index(op.f('ix_gateway_credentials_gateway'), 'gateway_credentials', ['gateway'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_gateway_credentials_gateway'), table_name='gateway_credentials')
    op.drop_index(op.f('ix_gateway_credentials_id'), table_name='gateway_credentials')
    op.drop_table('gateway_credentials')

    op.drop_index('idx_subscription_status_plan', table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_status'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_plan_id'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_user_id'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_id'), table_name='subscriptions')
    op.drop_table('subscriptions')

    op.drop_index(op.f('ix_plans_slug'), table_name='plans')
    op.drop_index(op.f('ix_plans_id'), table_name='plans')
    op.drop_table('plans')

"""add_ended_subscriptions

Revision ID: 9b27e5d0c4a1
Revises: 4f1c2a9d7e30
Create Date: 2026-10-20 09:41:07.118402

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b27e5d0c4a1'
down_revision: Union[str, Sequence[str], None] = '4f1c2a9d7e30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'ended_subscriptions',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('gateway', sa.String(length=50), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway', 'external_id', name='uq_ended_subscription_external')
    )
    op.create_index(op.f('ix_ended_subscriptions_id'), 'ended_subscriptions', ['id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_ended_subscriptions_id'), table_name='ended_subscriptions')
    op.drop_table('ended_subscriptions')

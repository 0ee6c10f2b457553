"""Add monthly usage period and per-user hour limits to subscriptions

Revision ID: 002_add_usage_period
Revises: 001_initial
Create Date: 2026-10-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_add_usage_period'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # First day of the month hours_used belongs to
    op.add_column(
        'subscriptions',
        sa.Column('usage_period_start', sa.Date(), nullable=True)
    )
    # Overrides the plan's default hours
    op.add_column(
        'subscriptions',
        sa.Column('monthly_hours_limit', sa.Float(), nullable=True)
    )


def downgrade() -> None:
    op.drop_column('subscriptions', 'monthly_hours_limit')
    op.drop_column('subscriptions', 'usage_period_start')

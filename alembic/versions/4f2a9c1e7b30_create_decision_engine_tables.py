"""Create decision engine tables

Revision ID: 4f2a9c1e7b30
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create shops table
    op.create_table(
        'shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('currency_symbol', sa.String(), nullable=True),
        sa.Column('assumed_shipping_cost', sa.Float(), nullable=True),
        sa.Column('min_impact_threshold', sa.Float(), nullable=True),
        sa.Column('last_order_count', sa.Integer(), nullable=True),
        sa.Column('last_analyzed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shops_id', 'shops', ['id'])
    op.create_index('ix_shops_shop', 'shops', ['shop'], unique=True)

    # Create variant_costs table
    op.create_table(
        'variant_costs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('variant_id', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('unit_cost', sa.Float(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shop', 'variant_id', name='uq_variant_costs_shop_variant')
    )
    op.create_index('ix_variant_costs_id', 'variant_costs', ['id'])
    op.create_index('ix_variant_costs_shop', 'variant_costs', ['shop'])
    op.create_index('ix_variant_costs_variant_id', 'variant_costs', ['variant_id'])

    # Create decision_runs table
    op.create_table(
        'decision_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=True),
        sa.Column('window_days', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_decision_runs_id', 'decision_runs', ['id'])
    op.create_index('ix_decision_runs_shop', 'decision_runs', ['shop'])
    op.create_index('ix_decision_runs_created_at', 'decision_runs', ['created_at'])

    # Create decisions table
    op.create_table(
        'decisions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('decision_key', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('headline', sa.String(), nullable=False),
        sa.Column('action_title', sa.String(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('impact', sa.Float(), nullable=False),
        sa.Column('confidence', sa.String(), nullable=False),
        sa.Column('base_confidence', sa.String(), nullable=True),
        sa.Column('data_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('ignored_at', sa.DateTime(), nullable=True),
        sa.Column('resurfaced_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['run_id'], ['decision_runs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_decisions_id', 'decisions', ['id'])
    op.create_index('ix_decisions_shop', 'decisions', ['shop'])
    op.create_index('ix_decisions_run_id', 'decisions', ['run_id'])
    op.create_index('ix_decisions_type', 'decisions', ['type'])
    op.create_index('ix_decisions_decision_key', 'decisions', ['decision_key'])
    op.create_index('ix_decisions_status', 'decisions', ['status'])
    op.create_index('ix_decisions_created_at', 'decisions', ['created_at'])

    # Create decision_outcomes table
    op.create_table(
        'decision_outcomes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('decision_id', sa.Integer(), nullable=False),
        sa.Column('baseline_metrics', sa.JSON(), nullable=False),
        sa.Column('post_metrics', sa.JSON(), nullable=True),
        sa.Column('outcome_status', sa.String(), nullable=True),
        sa.Column('window_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['decision_id'], ['decisions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('decision_id', name='uq_decision_outcomes_decision')
    )
    op.create_index('ix_decision_outcomes_id', 'decision_outcomes', ['id'])
    op.create_index('ix_decision_outcomes_decision_id', 'decision_outcomes', ['decision_id'])

    # Create data_cache table
    op.create_table(
        'data_cache',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('cache_key', sa.String(), nullable=False),
        sa.Column('data_json', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shop', 'cache_key', name='uq_data_cache_shop_key')
    )
    op.create_index('ix_data_cache_id', 'data_cache', ['id'])
    op.create_index('ix_data_cache_shop', 'data_cache', ['shop'])
    op.create_index('ix_data_cache_expires_at', 'data_cache', ['expires_at'])


def downgrade() -> None:
    op.drop_table('data_cache')
    op.drop_table('decision_outcomes')
    op.drop_table('decisions')
    op.drop_table('decision_runs')
    op.drop_table('variant_costs')
    op.drop_table('shops')

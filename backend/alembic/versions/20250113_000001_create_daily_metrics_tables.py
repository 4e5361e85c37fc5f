"""Create daily metrics tables (definitions, snapshots, collection log)

Revision ID: 20250113_000001
Revises:
Create Date: 2025-01-13 09:00:00.000000

WHAT:
    Creates the three tables owned by the metrics engine:
    - metric_definitions: catalog of recognized metrics (seeded below)
    - daily_metrics: one snapshot per (metric_date, metric_type, metric_category)
    - metric_collection_log: one row per collection invocation

WHY:
    Dashboards read precomputed daily snapshots instead of counting source
    tables on every page load, and historical values stay stable after
    source rows change.

REFERENCES:
    - dailymetrics/models.py
    - dailymetrics/metrics/registry.py (BUILTIN_METRICS, seed data)
"""

import uuid

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20250113_000001'
down_revision = None
branch_labels = None
depends_on = None


SEED_DEFINITIONS = [
    # (category, display_name, description, unit)
    ('users_total', 'Total Users', 'Total number of registered users on the platform as of this date', 'users'),
    ('posts_total', 'Total Posts', 'Total number of posts/tracks created on the platform as of this date', 'posts'),
    ('comments_total', 'Total Comments', 'Total number of comments created on the platform as of this date', 'comments'),
    ('users_created', 'New Users', 'Number of accounts registered on this specific date', 'users'),
    ('posts_created', 'Posts Created', 'Number of new posts/tracks created on this specific date', 'posts'),
    ('comments_created', 'Comments Created', 'Number of new comments created on this specific date', 'comments'),
]


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Metric catalog
    # =========================================================================
    metric_definitions = op.create_table(
        'metric_definitions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('metric_type', sa.String(32), nullable=False),
        sa.Column('metric_category', sa.String(64), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(32), nullable=True),
        sa.Column('format_pattern', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('metric_type', 'metric_category', name='unique_metric_definition'),
    )

    # =========================================================================
    # STEP 2: Daily snapshots
    # =========================================================================
    # WHAT: One row per metric per date, overwritten only by an explicit re-collection
    # WHY: The unique key backs INSERT .. ON CONFLICT DO UPDATE in the collector
    op.create_table(
        'daily_metrics',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('metric_date', sa.Date(), nullable=False),
        sa.Column('metric_type', sa.String(32), nullable=False),
        sa.Column('metric_category', sa.String(64), nullable=False),
        sa.Column('value', sa.Numeric(18, 4), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('collection_timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('metric_date', 'metric_type', 'metric_category', name='unique_daily_metric'),
    )
    op.create_index('idx_daily_metrics_date_type', 'daily_metrics', ['metric_date', 'metric_type', 'metric_category'])
    op.create_index('idx_daily_metrics_category', 'daily_metrics', ['metric_category', 'metric_date'])
    op.create_index('idx_daily_metrics_collection', 'daily_metrics', ['collection_timestamp'])

    # =========================================================================
    # STEP 3: Collection run log
    # =========================================================================
    op.create_table(
        'metric_collection_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('collection_date', sa.Date(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('metrics_collected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name='ck_metric_collection_log_status',
        ),
    )
    op.create_index('idx_collection_log_date', 'metric_collection_log', ['collection_date'])
    op.create_index('idx_collection_log_status', 'metric_collection_log', ['status', 'started_at'])

    # =========================================================================
    # STEP 4: Seed the catalog
    # =========================================================================
    op.bulk_insert(
        metric_definitions,
        [
            {
                'id': uuid.uuid4(),
                'metric_type': 'count',
                'metric_category': category,
                'display_name': display_name,
                'description': description,
                'unit': unit,
                'format_pattern': '0,0',
                'is_active': True,
            }
            for category, display_name, description, unit in SEED_DEFINITIONS
        ],
    )


def downgrade() -> None:
    op.drop_index('idx_collection_log_status', table_name='metric_collection_log')
    op.drop_index('idx_collection_log_date', table_name='metric_collection_log')
    op.drop_table('metric_collection_log')

    op.drop_index('idx_daily_metrics_collection', table_name='daily_metrics')
    op.drop_index('idx_daily_metrics_category', table_name='daily_metrics')
    op.drop_index('idx_daily_metrics_date_type', table_name='daily_metrics')
    op.drop_table('daily_metrics')

    op.drop_table('metric_definitions')

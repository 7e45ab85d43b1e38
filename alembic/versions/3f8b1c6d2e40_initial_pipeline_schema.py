"""Initial pipeline schema: leads, tasks, campaign_runs, aggregated_result_sets, market_stats

Revision ID: 3f8b1c6d2e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f8b1c6d2e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('place_id', sa.Text(), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('business_type', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('state', sa.Text(), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('review_count', sa.Integer(), nullable=True),
        sa.Column('pipeline_status', sa.Text(), server_default='idle', nullable=False),
        sa.Column('pipeline_status_at', sa.DateTime(timezone=True), nullable=True),
        # Enrichment output
        sa.Column('emails', sa.JSON(), nullable=True),
        sa.Column('phones', sa.JSON(), nullable=True),
        sa.Column('social', sa.JSON(), nullable=True),
        sa.Column('contact_page_url', sa.Text(), nullable=True),
        sa.Column('team_members', sa.JSON(), nullable=True),
        sa.Column('headcount_estimate', sa.Integer(), nullable=True),
        sa.Column('founded_year', sa.Integer(), nullable=True),
        sa.Column('snippets', sa.JSON(), nullable=True),
        sa.Column('tagline', sa.Text(), nullable=True),
        sa.Column('web_scraped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scrape_markdown_key', sa.Text(), nullable=True),
        sa.Column('scrape_pages_prefix', sa.Text(), nullable=True),
        sa.Column('scrape_error', sa.Text(), nullable=True),
        # Scoring output
        sa.Column('controlling_owner', sa.Text(), nullable=True),
        sa.Column('ownership_type', sa.Text(), nullable=True),
        sa.Column('is_excluded', sa.Boolean(), nullable=True),
        sa.Column('exclusion_reason', sa.Text(), nullable=True),
        sa.Column('business_quality_score', sa.Integer(), nullable=True),
        sa.Column('exit_readiness_score', sa.Integer(), nullable=True),
        sa.Column('priority_score', sa.Integer(), nullable=True),
        sa.Column('priority_tier', sa.Integer(), nullable=True),
        sa.Column('scoring_rationale', sa.Text(), nullable=True),
        sa.Column('supporting_evidence', sa.JSON(), nullable=True),
        sa.Column('facts_key', sa.Text(), nullable=True),
        sa.Column('scored_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scoring_error', sa.Text(), nullable=True),
        # Cohort ranks
        sa.Column('quality_percentile_by_type', sa.Float(), nullable=True),
        sa.Column('quality_percentile_by_city', sa.Float(), nullable=True),
        sa.Column('exit_percentile_by_type', sa.Float(), nullable=True),
        sa.Column('exit_percentile_by_city', sa.Float(), nullable=True),
        sa.Column('composite_score', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('place_id'),
    )
    op.create_index('ix_leads_pipeline_status', 'leads', ['pipeline_status'])
    op.create_index('ix_leads_business_type', 'leads', ['business_type'])

    op.create_table('tasks',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('batch_ref', sa.Text(), nullable=True),
        sa.Column('external_handle', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('campaign_runs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('leads_found', sa.Integer(), nullable=True),
        sa.Column('errors', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('aggregated_result_sets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('result_prefix', sa.Text(), nullable=False),
        sa.Column('succeeded', sa.Integer(), nullable=True),
        sa.Column('failed', sa.Integer(), nullable=True),
        sa.Column('files_read', sa.Integer(), nullable=True),
        sa.Column('aggregated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('run_id', 'result_prefix', name='uq_aggregated_run_prefix'),
    )

    op.create_table('market_stats',
        sa.Column('business_type', sa.Text(), nullable=False),
        sa.Column('lead_count', sa.Integer(), nullable=True),
        sa.Column('rc_percentiles', sa.JSON(), nullable=True),
        sa.Column('rating_mean', sa.Float(), nullable=True),
        sa.Column('rating_median', sa.Float(), nullable=True),
        sa.Column('refreshed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('business_type'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('market_stats')
    op.drop_table('aggregated_result_sets')
    op.drop_table('campaign_runs')
    op.drop_table('tasks')
    op.drop_index('ix_leads_business_type', table_name='leads')
    op.drop_index('ix_leads_pipeline_status', table_name='leads')
    op.drop_table('leads')

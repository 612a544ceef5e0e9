"""Sprint marketplace schema: leads, builders, assignments, audit, alumni, ballots

Revision ID: 3f9b1c6d2e80
Revises:
Create Date: 2026-03-02 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9b1c6d2e80'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'leads',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('business_name', sa.Text(), nullable=False),
        sa.Column('category', sa.Text()),
        sa.Column('location', sa.JSON()),
        sa.Column('hfi_score', sa.Float()),
        sa.Column('friction_type', sa.Text()),
        sa.Column('friction_clusters', sa.JSON()),
        sa.Column('recency_data', sa.JSON()),
        sa.Column('time_on_task_estimate', sa.Text()),
        sa.Column('review_count', sa.Integer()),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('contact', sa.JSON(), nullable=True),
        sa.Column('milestones', sa.JSON(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='qualified'),
        sa.Column('is_priority', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('discovered_at', sa.DateTime(), server_default=sa.func.now()),
        # -- sprint state --
        sa.Column('sprint_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_slots', sa.Integer(), nullable=True),
        sa.Column('sprint_duration', sa.Integer(), nullable=True),
        sa.Column('sprint_started_at', sa.DateTime(), nullable=True),
        sa.Column('sprint_deadline', sa.DateTime(), nullable=True),
        sa.Column('is_paused', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('first_completion_at', sa.DateTime(), nullable=True),
        sa.Column('winner_user_id', sa.Text(), nullable=True),
        sa.Column('voting_open', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('winner_average_score', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )

    op.create_table(
        'alumni',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text()),
        sa.Column('specialty', sa.Text()),
        sa.Column('quality_rating', sa.Float(), nullable=True),
        sa.Column('current_build_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_builds', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'active_builders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('user_name', sa.Text()),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.Column('checkpoints_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('selected_deliverables', sa.JSON()),
        sa.Column('proof_links', sa.JSON()),
        sa.Column('checkpoint_statuses', sa.JSON()),
        sa.Column('last_checkpoint_update', sa.DateTime(), nullable=True),
        sa.Column('last_nudged_at', sa.DateTime(), nullable=True),
        sa.Column('flagged_at', sa.DateTime(), nullable=True),
        sa.Column('flagged_expires_at', sa.DateTime(), nullable=True),
        sa.Column('quality_score', sa.Float(), nullable=True),
        sa.Column('scout_review_score', sa.Float(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('lead_id', 'user_id', name='uq_active_builder_lead_user'),
    )
    op.create_index('ix_active_builders_lead_id', 'active_builders', ['lead_id'])

    # -- One active sprint per builder, enforced by the primary key --
    op.create_table(
        'builder_assignments',
        sa.Column('builder_id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_builder_assignments_lead_id', 'builder_assignments', ['lead_id'])

    op.create_table(
        'audit_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('actor', sa.Text(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('detail', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_entries_lead_id', 'audit_entries', ['lead_id'])

    op.create_table(
        'builds',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('builder_id', sa.Text(), nullable=False),
        sa.Column('builder_name', sa.Text()),
        sa.Column('business_name', sa.Text()),
        sa.Column('deployed_url', sa.Text(), nullable=True),
        sa.Column('ordinal', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_builds_lead_id', 'builds', ['lead_id'])

    op.create_table(
        'votes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('build_id', sa.Text(), sa.ForeignKey('builds.id'), nullable=False),
        sa.Column('voter_id', sa.Text(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('build_id', 'voter_id', name='uq_vote_build_voter'),
    )
    op.create_index('ix_votes_build_id', 'votes', ['build_id'])


def downgrade() -> None:
    op.drop_index('ix_votes_build_id', table_name='votes')
    op.drop_table('votes')
    op.drop_index('ix_builds_lead_id', table_name='builds')
    op.drop_table('builds')
    op.drop_index('ix_audit_entries_lead_id', table_name='audit_entries')
    op.drop_table('audit_entries')
    op.drop_index('ix_builder_assignments_lead_id', table_name='builder_assignments')
    op.drop_table('builder_assignments')
    op.drop_index('ix_active_builders_lead_id', table_name='active_builders')
    op.drop_table('active_builders')
    op.drop_table('alumni')
    op.drop_table('leads')

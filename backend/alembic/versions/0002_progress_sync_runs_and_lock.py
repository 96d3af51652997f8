"""sync run ledger and advisory lock

Revision ID: 0002_progress_sync_runs_and_lock
Revises: 0001_progress_reporting_tables
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = '0002_progress_sync_runs_and_lock'
down_revision = '0001_progress_reporting_tables'
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('progress_sync_runs'):
        op.create_table(
            'progress_sync_runs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('job_id', sa.String(length=64), nullable=False),
            sa.Column('kind', sa.String(length=32), nullable=False),
            sa.Column('companyid', sa.Integer(), nullable=True),
            sa.Column('running', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('partial', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('stats_json', sa.Text(), nullable=False),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=False),
            sa.Column('finished_at', sa.DateTime(), nullable=True),
            sa.Column('duration_sec', sa.Float(), nullable=True),
            sa.Column('actor', sa.String(length=128), nullable=False, server_default='system'),
        )
        op.create_index('ix_progress_sync_runs_job_id', 'progress_sync_runs', ['job_id'], unique=True)
        op.create_index('ix_progress_sync_runs_kind', 'progress_sync_runs', ['kind'])
        op.create_index('ix_progress_sync_runs_running', 'progress_sync_runs', ['running'])

    if not inspector.has_table('progress_sync_lock'):
        op.create_table(
            'progress_sync_lock',
            sa.Column('name', sa.String(length=64), primary_key=True),
            sa.Column('holder', sa.String(length=64), nullable=False),
            sa.Column('acquired_at', sa.BigInteger(), nullable=False),
        )


def downgrade() -> None:
    op.drop_table('progress_sync_lock')
    op.drop_index('ix_progress_sync_runs_running', table_name='progress_sync_runs')
    op.drop_index('ix_progress_sync_runs_kind', table_name='progress_sync_runs')
    op.drop_index('ix_progress_sync_runs_job_id', table_name='progress_sync_runs')
    op.drop_table('progress_sync_runs')

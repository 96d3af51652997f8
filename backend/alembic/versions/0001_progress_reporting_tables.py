"""progress reporting tables

Revision ID: 0001_progress_reporting_tables
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = '0001_progress_reporting_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('progress_reporting'):
        op.create_table(
            'progress_reporting',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('userid', sa.Integer(), nullable=False),
            sa.Column('courseid', sa.Integer(), nullable=False),
            sa.Column('companyid', sa.Integer(), nullable=False),
            sa.Column('firstname', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('lastname', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('email', sa.String(length=100), nullable=False, server_default=''),
            sa.Column('coursename', sa.String(length=254), nullable=False, server_default=''),
            sa.Column('timecompleted', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('timestarted', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('percentage', sa.Float(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='not_started'),
            sa.Column('last_updated', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('is_deleted', sa.SmallInteger(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.UniqueConstraint('userid', 'courseid', 'companyid', name='ux_progress_reporting_key'),
        )
        op.create_index('ix_progress_reporting_userid', 'progress_reporting', ['userid'])
        op.create_index('ix_progress_reporting_courseid', 'progress_reporting', ['courseid'])
        op.create_index('ix_progress_reporting_companyid', 'progress_reporting', ['companyid'])
        op.create_index('ix_progress_reporting_company_updated', 'progress_reporting', ['companyid', 'last_updated'])
        op.create_index('ix_progress_reporting_company_deleted', 'progress_reporting', ['companyid', 'is_deleted'])

    if not inspector.has_table('progress_sync_status'):
        op.create_table(
            'progress_sync_status',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('companyid', sa.Integer(), nullable=False),
            sa.Column('token_hash', sa.String(length=64), nullable=False),
            sa.Column('last_sync_timestamp', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('sync_mode', sa.String(length=20), nullable=False, server_default='auto'),
            sa.Column('sync_window_hours', sa.Integer(), nullable=False, server_default='24'),
            sa.Column('last_sync_mode', sa.String(length=20), nullable=True),
            sa.Column('last_sync_records', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_sync_status', sa.String(length=20), nullable=False, server_default='success'),
            sa.Column('last_sync_error', sa.Text(), nullable=True),
            sa.Column('total_syncs', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.UniqueConstraint('companyid', 'token_hash', name='ux_progress_sync_status_key'),
        )
        op.create_index('ix_progress_sync_status_companyid', 'progress_sync_status', ['companyid'])

    if not inspector.has_table('progress_response_cache'):
        op.create_table(
            'progress_response_cache',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('cache_key', sa.String(length=255), nullable=False),
            sa.Column('companyid', sa.Integer(), nullable=False),
            sa.Column('cache_data', sa.Text(), nullable=False),
            sa.Column('cache_timestamp', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('expires_at', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('hit_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_accessed', sa.BigInteger(), nullable=False, server_default='0'),
            sa.UniqueConstraint('cache_key', 'companyid', name='ux_progress_response_cache_key'),
        )
        op.create_index('ix_progress_response_cache_companyid', 'progress_response_cache', ['companyid'])
        op.create_index('ix_progress_response_cache_expires', 'progress_response_cache', ['expires_at'])

    if not inspector.has_table('progress_company_settings'):
        op.create_table(
            'progress_company_settings',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('companyid', sa.Integer(), nullable=False),
            sa.Column('setting_name', sa.String(length=100), nullable=False),
            sa.Column('setting_value', sa.String(length=255), nullable=False, server_default='1'),
            sa.Column('timecreated', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('timemodified', sa.BigInteger(), nullable=False, server_default='0'),
            sa.UniqueConstraint('companyid', 'setting_name', name='ux_progress_company_settings_key'),
        )
        op.create_index('ix_progress_company_settings_companyid', 'progress_company_settings', ['companyid'])

    if not inspector.has_table('progress_request_log'):
        op.create_table(
            'progress_request_log',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('userid', sa.Integer(), nullable=False),
            sa.Column('companyid', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('endpoint', sa.String(length=100), nullable=False),
            sa.Column('ipaddress', sa.String(length=45), nullable=False, server_default=''),
            sa.Column('useragent', sa.String(length=255), nullable=False, server_default=''),
            sa.Column('request_data', sa.Text(), nullable=True),
            sa.Column('timecreated', sa.BigInteger(), nullable=False),
        )
        op.create_index('ix_progress_request_log_companyid', 'progress_request_log', ['companyid'])
        op.create_index('ix_progress_request_log_timecreated', 'progress_request_log', ['timecreated'])
        op.create_index('ix_progress_request_log_user_time', 'progress_request_log', ['userid', 'timecreated'])


def downgrade() -> None:
    for table in (
        'progress_request_log',
        'progress_company_settings',
        'progress_response_cache',
        'progress_sync_status',
        'progress_reporting',
    ):
        op.drop_table(table)

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Float, Index, Integer, SmallInteger, String, Text, UniqueConstraint

from progress_api.db.base import Base


STATUS_NOT_ENROLLED = 'not_enrolled'
STATUS_NOT_STARTED = 'not_started'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'
PROGRESS_STATUSES = (STATUS_NOT_ENROLLED, STATUS_NOT_STARTED, STATUS_IN_PROGRESS, STATUS_COMPLETED)


class ReportingRecord(Base):
    __tablename__ = 'progress_reporting'
    __table_args__ = (
        UniqueConstraint('userid', 'courseid', 'companyid', name='ux_progress_reporting_key'),
        Index('ix_progress_reporting_company_updated', 'companyid', 'last_updated'),
        Index('ix_progress_reporting_company_deleted', 'companyid', 'is_deleted'),
    )

    id = Column(Integer, primary_key=True, index=True)
    userid = Column(Integer, nullable=False, index=True)
    courseid = Column(Integer, nullable=False, index=True)
    companyid = Column(Integer, nullable=False, index=True)
    firstname = Column(String(100), nullable=False, default='')
    lastname = Column(String(100), nullable=False, default='')
    email = Column(String(100), nullable=False, default='')
    coursename = Column(String(254), nullable=False, default='')
    timecompleted = Column(BigInteger, nullable=False, default=0)
    timestarted = Column(BigInteger, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default=STATUS_NOT_STARTED)
    last_updated = Column(BigInteger, nullable=False, default=0)
    is_deleted = Column(SmallInteger, nullable=False, default=0)
    created_at = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(BigInteger, nullable=False, default=0)


class SyncStatus(Base):
    __tablename__ = 'progress_sync_status'
    __table_args__ = (UniqueConstraint('companyid', 'token_hash', name='ux_progress_sync_status_key'),)

    id = Column(Integer, primary_key=True, index=True)
    companyid = Column(Integer, nullable=False, index=True)
    token_hash = Column(String(64), nullable=False)
    last_sync_timestamp = Column(BigInteger, nullable=False, default=0)
    sync_mode = Column(String(20), nullable=False, default='auto')
    sync_window_hours = Column(Integer, nullable=False, default=24)
    last_sync_mode = Column(String(20), nullable=True)
    last_sync_records = Column(Integer, nullable=False, default=0)
    last_sync_status = Column(String(20), nullable=False, default='success')
    last_sync_error = Column(Text, nullable=True)
    total_syncs = Column(Integer, nullable=False, default=0)
    created_at = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(BigInteger, nullable=False, default=0)


class CacheEntry(Base):
    __tablename__ = 'progress_response_cache'
    __table_args__ = (
        UniqueConstraint('cache_key', 'companyid', name='ux_progress_response_cache_key'),
        Index('ix_progress_response_cache_expires', 'expires_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    cache_key = Column(String(255), nullable=False)
    companyid = Column(Integer, nullable=False, index=True)
    cache_data = Column(Text, nullable=False, default='[]')
    cache_timestamp = Column(BigInteger, nullable=False, default=0)
    expires_at = Column(BigInteger, nullable=False, default=0)
    hit_count = Column(Integer, nullable=False, default=0)
    last_accessed = Column(BigInteger, nullable=False, default=0)


class CompanySetting(Base):
    __tablename__ = 'progress_company_settings'
    __table_args__ = (UniqueConstraint('companyid', 'setting_name', name='ux_progress_company_settings_key'),)

    id = Column(Integer, primary_key=True, index=True)
    companyid = Column(Integer, nullable=False, index=True)
    setting_name = Column(String(100), nullable=False)
    setting_value = Column(String(255), nullable=False, default='1')
    timecreated = Column(BigInteger, nullable=False, default=0)
    timemodified = Column(BigInteger, nullable=False, default=0)


class RequestLog(Base):
    __tablename__ = 'progress_request_log'
    __table_args__ = (Index('ix_progress_request_log_user_time', 'userid', 'timecreated'),)

    id = Column(Integer, primary_key=True, index=True)
    userid = Column(Integer, nullable=False)
    companyid = Column(Integer, nullable=False, default=0, index=True)
    endpoint = Column(String(100), nullable=False)
    ipaddress = Column(String(45), nullable=False, default='')
    useragent = Column(String(255), nullable=False, default='')
    request_data = Column(Text, nullable=True)
    timecreated = Column(BigInteger, nullable=False, index=True)


class SyncRun(Base):
    __tablename__ = 'progress_sync_runs'

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(64), nullable=False, unique=True, index=True)
    kind = Column(String(32), nullable=False, index=True)
    companyid = Column(Integer, nullable=True)
    running = Column(Boolean, nullable=False, default=True, index=True)
    partial = Column(Boolean, nullable=False, default=False)
    stats_json = Column(Text, nullable=False, default='{}')
    error = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)
    duration_sec = Column(Float, nullable=True)
    actor = Column(String(128), nullable=False, default='system')


class SyncLock(Base):
    __tablename__ = 'progress_sync_lock'

    name = Column(String(64), primary_key=True)
    holder = Column(String(64), nullable=False)
    acquired_at = Column(BigInteger, nullable=False)

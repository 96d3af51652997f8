from pydantic import BaseModel, Field, field_validator


class SyncRunIn(BaseModel):
    company_id: int | None = Field(default=None, ge=1)
    lookback_hours: int | None = Field(default=None, ge=1, le=24 * 90)
    max_seconds: int | None = Field(default=None, ge=31, le=6 * 3600)


class SyncPassOut(BaseModel):
    job_id: str | None = None
    companies_processed: int = 0
    companies_skipped: int = 0
    companies_remaining: int = 0
    keys_touched: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    records_unchanged: int = 0
    row_errors: int = 0
    errors: int = 0
    companies_with_errors: list[int] = Field(default_factory=list)
    partial: bool = False
    duration_sec: int = 0


class PopulateIn(BaseModel):
    company_id: int | None = Field(default=None, ge=1)
    batch_size: int | None = Field(default=None, ge=1, le=50000)


class PopulateOut(BaseModel):
    job_id: str | None = None
    success: bool
    total_processed: int = 0
    total_inserted: int = 0
    companies_processed: int = 0
    duration: int = 0
    errors: list[str] = Field(default_factory=list)


class CleanupIn(BaseModel):
    company_id: int | None = Field(default=None, ge=1)


class CleanupOut(BaseModel):
    users_removed: int = 0
    courses_removed: int = 0
    enrolments_removed: int = 0
    total: int = 0


class CompanyResyncIn(BaseModel):
    company_id: int = Field(ge=1)
    user_id: int | None = Field(default=None, ge=1)


class PurgeIn(BaseModel):
    company_id: int = Field(ge=1)
    deleted_only: bool = True


class SyncStatusOut(BaseModel):
    companyid: int
    token_hash: str
    last_sync_timestamp: int = 0
    sync_mode: str
    sync_window_hours: int
    last_sync_mode: str | None = None
    last_sync_records: int = 0
    last_sync_status: str
    last_sync_error: str | None = None
    total_syncs: int = 0

    @field_validator('token_hash')
    @classmethod
    def shorten_hash(cls, value: str) -> str:
        # Never echo a full credential digest back.
        text = str(value or '')
        return f'{text[:12]}...' if len(text) > 12 else text


class SyncRunOut(BaseModel):
    job_id: str
    kind: str
    companyid: int | None = None
    running: bool = False
    partial: bool = False
    stats: dict = Field(default_factory=dict)
    error: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    duration_sec: float | None = None
    actor: str = 'system'


class ReportingStatsOut(BaseModel):
    total_records: int = 0
    active_records: int = 0
    deleted_records: int = 0
    completed_courses: int = 0
    in_progress_courses: int = 0
    last_update: int | None = None
    cache: dict = Field(default_factory=dict)
    usage: dict = Field(default_factory=dict)


class CacheSweepIn(BaseModel):
    max_age_hours: int | None = Field(default=None, ge=0, le=24 * 30)


class CacheSweepOut(BaseModel):
    deleted: int = 0

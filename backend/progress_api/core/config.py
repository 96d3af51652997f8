from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'progress-reporting-api'
    app_env: str = Field(default='dev', alias='APP_ENV')
    app_port: int = Field(default=8000, alias='APP_PORT')
    log_level: str = Field(default='INFO', alias='LOG_LEVEL')

    # Host LMS database; reporting tables live next to the source tables.
    database_url: str = Field(default='sqlite:///./data/progress_api.db', alias='DATABASE_URL')
    db_pool_size: int = Field(default=10, alias='DB_POOL_SIZE')
    db_max_overflow: int = Field(default=20, alias='DB_MAX_OVERFLOW')
    db_pool_timeout: int = Field(default=30, alias='DB_POOL_TIMEOUT')
    db_pool_recycle: int = Field(default=1800, alias='DB_POOL_RECYCLE')
    db_bootstrap_on_start: bool = Field(default=False, alias='DB_BOOTSTRAP_ON_START')
    db_write_probe_on_start: bool = Field(default=False, alias='DB_WRITE_PROBE_ON_START')

    jwt_secret_key: str = Field(default='change_me_jwt_secret', alias='JWT_SECRET_KEY')
    jwt_algorithm: str = Field(default='HS256', alias='JWT_ALGORITHM')
    jwt_expire_minutes: int = Field(default=120, alias='JWT_EXPIRE_MINUTES')

    cors_origins: str = Field(default='*', alias='CORS_ORIGINS')

    # Read API
    api_service_name: str = Field(default='progress_reporting', alias='API_SERVICE_NAME')
    token_min_length: int = Field(default=16, alias='TOKEN_MIN_LENGTH')
    rate_limit: int = Field(default=100, alias='RATE_LIMIT')
    max_records: int = Field(default=1000, alias='MAX_RECORDS')
    allow_get_method: bool = Field(default=False, alias='ALLOW_GET_METHOD')
    log_retention_days: int = Field(default=90, alias='LOG_RETENTION_DAYS')

    # Scheduled sync
    auto_sync_hours: int = Field(default=1, alias='AUTO_SYNC_HOURS')
    auto_sync_interval_minutes: int = Field(default=60, alias='AUTO_SYNC_INTERVAL_MINUTES')
    max_sync_time: int = Field(default=300, alias='MAX_SYNC_TIME')
    sync_time_margin_seconds: int = Field(default=30, alias='SYNC_TIME_MARGIN_SECONDS')
    sync_lock_stale_seconds: int = Field(default=3600, alias='SYNC_LOCK_STALE_SECONDS')
    populate_batch_size: int = Field(default=1000, alias='POPULATE_BATCH_SIZE')

    # Response cache
    cache_sweep_max_age_hours: int = Field(default=24, alias='CACHE_SWEEP_MAX_AGE_HOURS')


settings = Settings()

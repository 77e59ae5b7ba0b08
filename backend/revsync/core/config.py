from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'revsync-api'
    app_env: str = Field(default='dev', alias='APP_ENV')
    log_level: str = Field(default='INFO', alias='LOG_LEVEL')

    database_url: str = Field(default='sqlite:///./revsync.db', alias='DATABASE_URL')
    db_pool_size: int = Field(default=10, alias='DB_POOL_SIZE')
    db_max_overflow: int = Field(default=20, alias='DB_MAX_OVERFLOW')
    db_pool_timeout: int = Field(default=30, alias='DB_POOL_TIMEOUT')
    db_pool_recycle: int = Field(default=1800, alias='DB_POOL_RECYCLE')
    db_bootstrap_on_start: bool = Field(default=True, alias='DB_BOOTSTRAP_ON_START')
    postgres_password: str = Field(default='', alias='POSTGRES_PASSWORD')

    jwt_secret_key: str = Field(default='change_me_jwt_secret', alias='JWT_SECRET_KEY')
    jwt_algorithm: str = Field(default='HS256', alias='JWT_ALGORITHM')
    jwt_expire_minutes: int = Field(default=120, alias='JWT_EXPIRE_MINUTES')
    cron_secret: str = Field(default='change_me_cron_secret', alias='CRON_SECRET')

    cors_origins: str = Field(default='*', alias='CORS_ORIGINS')

    billing_api_base_url: str = Field(default='https://api.stripe.com', alias='BILLING_API_BASE_URL')
    billing_api_key: str = Field(default='', alias='BILLING_API_KEY')
    billing_api_timeout_seconds: float = Field(default=30.0, alias='BILLING_API_TIMEOUT_SECONDS')
    billing_max_retries: int = Field(default=3, alias='BILLING_MAX_RETRIES')
    billing_base_delay_ms: int = Field(default=1000, alias='BILLING_BASE_DELAY_MS')
    billing_max_delay_ms: int = Field(default=10000, alias='BILLING_MAX_DELAY_MS')
    billing_max_pages: int = Field(default=100, alias='BILLING_MAX_PAGES')
    billing_page_size: int = Field(default=100, alias='BILLING_PAGE_SIZE')
    billing_invoice_lookback_days: int = Field(default=60, alias='BILLING_INVOICE_LOOKBACK_DAYS')

    sync_inprocess_workers: int = Field(default=2, alias='SYNC_INPROCESS_WORKERS')
    sync_worker_name: str = Field(default='', alias='SYNC_WORKER_NAME')
    sync_worker_idle_sleep_seconds: float = Field(default=1.5, alias='SYNC_WORKER_IDLE_SLEEP_SECONDS')
    sync_freshness_minutes: int = Field(default=60, alias='SYNC_FRESHNESS_MINUTES')
    sync_lock_ttl_seconds: int = Field(default=3600, alias='SYNC_LOCK_TTL_SECONDS')
    sync_rate_limit: int = Field(default=10, alias='SYNC_RATE_LIMIT')
    sync_rate_window_seconds: int = Field(default=60, alias='SYNC_RATE_WINDOW_SECONDS')
    cron_sync_max_connections: int = Field(default=10, alias='CRON_SYNC_MAX_CONNECTIONS')


settings = Settings()

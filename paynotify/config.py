"""
Application configuration using pydantic-settings.

Secrets default to empty strings on purpose: missing values are reported by
the configuration validator (services/config_validator.py) rather than
crashing model construction, so the webhook can still acknowledge events.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Redis (durable email metrics backend)
    redis_url: str = "redis://localhost:6379/0"
    metrics_backend: str = "memory"  # memory | redis

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_publishable_key: str = ""

    # SendGrid
    sendgrid_api_key: str = ""
    from_email: str = "noreply@example.com"
    from_name: str = "Diaspora9ja"
    admin_email: str = ""

    # Email volume limits
    email_daily_limit: int = 100
    email_monthly_limit: int = 3000
    email_log_max_entries: int = 1000
    email_send_timeout_seconds: float = 30.0

    # Configuration validation
    config_validation_ttl_seconds: int = 300
    config_probe_on_startup: bool = True

    # Notification dispatch queue
    notification_queue_size: int = 1000

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()

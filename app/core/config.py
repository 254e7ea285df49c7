from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "HealthPuck Backend"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = ""  # local, dev, prod (from .env)

    # MongoDB (from .env)
    MONGODB_URL: str = ""
    MONGODB_DB_NAME: str = ""

    # CORS (from .env, comma-separated)
    BACKEND_CORS_ORIGINS: List[str] = []

    # Logging & Sentry
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # Shared cache (from .env, set empty to keep everything in-process)
    REDIS_URL: str | None = None

    # Security (from .env)
    SECRET_KEY: str = ""
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # Alert engine
    ALERT_SCHEDULER_ENABLED: bool = True
    ALERT_HIGH_INTERVAL_SECONDS: int = 30
    ALERT_MID_INTERVAL_SECONDS: int = 5 * 60
    ALERT_SHUTDOWN_GRACE_SECONDS: float = 10.0
    HEART_RATE_READING_MAX_AGE_SECONDS: int = 5 * 60
    MISSED_DOSE_WINDOW_HOURS: int = 24

    # Notifications
    NOTIFICATION_COOLDOWN_SECONDS: int = 5 * 60
    NOTIFICATION_LOCALE: str = "sv"  # sv, en
    FCM_PROJECT_ID: str | None = None
    # Inline service-account JSON or a path to the key file
    FIREBASE_SERVICE_ACCOUNT_KEY: str | None = None
    FCM_BASE_URL: str = "https://fcm.googleapis.com/v1"

    # Whoop (from .env)
    WHOOP_CLIENT_ID: str = ""
    WHOOP_CLIENT_SECRET: str = ""
    WHOOP_OAUTH_BASE_URL: str = "https://api.prod.whoop.com/oauth/oauth2"
    WHOOP_API_BASE_URL: str = "https://api.prod.whoop.com/developer/v2"
    WHOOP_REQUEST_TIMEOUT_SECONDS: float = 30.0
    WHOOP_DAILY_LIMIT: int = 10_000
    WHOOP_MINUTE_LIMIT: int = 100
    WHOOP_HEART_RATE_CACHE_TTL_SECONDS: int = 15
    WHOOP_METRIC_CACHE_TTL_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()

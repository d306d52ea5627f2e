"""Application configuration."""

from os import getenv

from pydantic import BaseModel


class Settings(BaseModel):
    """Runtime settings for the application."""

    app_name: str = "paylink API"
    app_env: str = getenv("APP_ENV", "dev")
    debug: bool = getenv("DEBUG", "0") == "1"
    log_level: str = getenv("LOG_LEVEL", "INFO")
    database_url: str = getenv("DATABASE_URL", "sqlite:///./paylink.db")
    db_timeout_seconds: float = float(getenv("DB_TIMEOUT_SECONDS", "5"))
    public_base_url: str = getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    jwt_secret_key: str = getenv("JWT_SECRET_KEY", "dev-only-change-me-to-a-long-random-secret")
    jwt_algorithm: str = getenv("JWT_ALGORITHM", "HS256")
    jwt_expire_minutes: int = int(getenv("JWT_EXPIRE_MINUTES", "480"))
    cookie_secure: bool = getenv("COOKIE_SECURE", "0") == "1"
    webhook_secret: str = getenv("IDENTITY_WEBHOOK_SECRET", "")

    admin_user: str = getenv("ADMIN_USER", "")
    admin_pass: str = getenv("ADMIN_PASS", "")

    session_idle_timeout_seconds: int = int(getenv("SESSION_IDLE_TIMEOUT_SECONDS", str(30 * 60)))
    max_sessions_per_user: int = int(getenv("MAX_SESSIONS_PER_USER", "5"))
    sweep_interval_seconds: int = int(getenv("SWEEP_INTERVAL_SECONDS", str(5 * 60)))

    # (window seconds, max requests) per named limiter
    rate_limits: dict[str, tuple[int, int]] = {
        "order_creation": (15 * 60, int(getenv("RATE_LIMIT_ORDER_CREATION", "10"))),
        "utr_submission": (5 * 60, int(getenv("RATE_LIMIT_UTR_SUBMISSION", "5"))),
        "general": (60, int(getenv("RATE_LIMIT_GENERAL", "60"))),
        "admin": (60, int(getenv("RATE_LIMIT_ADMIN", "30"))),
        "auth": (15 * 60, int(getenv("RATE_LIMIT_AUTH", "5"))),
    }


settings: Settings = Settings()

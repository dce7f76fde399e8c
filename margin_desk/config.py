"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./margin_desk.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]  # Next.js dev server

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Trading policy
    max_multiplier: int = 1000
    market_type: str = "fx"
    idempotency_ttl_seconds: float = 300.0  # 5 minutes
    dedupe_window_seconds: float = 5.0  # identical keyless opens inside one window are one trade

    # Price feed
    quote_max_age_seconds: float = 60.0
    mark_interval_seconds: int = 5

    model_config = {"env_prefix": "MD_", "env_file": ".env"}


settings = Settings()

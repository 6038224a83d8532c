from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    admin_token: str | None = Field(default=None, alias="ADMIN_TOKEN")

    redis_url: str = Field(default="redis://localhost:6379/1", alias="REDIS_URL")

    refresh_interval_seconds: int = Field(default=60, alias="REFRESH_INTERVAL_SECONDS")
    default_ttl_minutes: int = Field(default=60, alias="DEFAULT_TTL_MINUTES")
    min_expiry_minutes: int = Field(default=5, alias="MIN_EXPIRY_MINUTES")
    backoff_base_minutes: int = Field(default=5, alias="BACKOFF_BASE_MINUTES")
    max_backoff_hours: int = Field(default=24, alias="MAX_BACKOFF_HOURS")

    request_timeout_seconds: int = Field(default=20, alias="REQUEST_TIMEOUT_SECONDS")
    user_agent: str = Field(default="feedserver/1.0", alias="USER_AGENT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")

    # Comma-separated feed URLs registered at startup
    seed_feeds: str = Field(default="", alias="SEED_FEEDS")

    @property
    def seed_feed_urls(self) -> list[str]:
        return [u.strip() for u in self.seed_feeds.split(",") if u.strip()]

settings = Settings()

from pathlib import Path
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Locate the nearest .env starting from this file's directory
def find_env_file() -> Path | None:
    current = Path(__file__).resolve()
    for parent in current.parents:
        env_file = parent / ".env"
        if env_file.exists():
            return env_file
    return None


ENV_FILE = find_env_file()


class Settings(BaseSettings):
    APP_NAME: str = "Equity Insights Engine"
    LOG_LEVEL: str = "INFO"

    # Time-series store: Redis when enabled, in-process memory otherwise
    REDIS_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "equity_insights:"

    # Historical percentile tracking
    METRIC_RETENTION_DAYS: int = 365
    IV_RETENTION_DAYS: int = 400
    PERCENTILE_WINDOW_DAYS: int = 365
    MIN_PERCENTILE_SAMPLES: int = 5

    # Portfolio insights pipeline
    INSIGHTS_MAX_TICKERS: int = 10
    INSIGHTS_BATCH_SIZE: int = 3
    INSIGHTS_TICKER_TIMEOUT_SECONDS: float = 8.0
    INSIGHTS_LOOKBACK_DAYS: int = 90
    TECHNICAL_LOOKBACK_DAYS: int = 182

    # Market data (Yahoo Finance)
    EXTERNAL_API_CONCURRENCY: int = 4
    BARS_CACHE_TTL_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("REDIS_URL")
    @classmethod
    def _check_redis_url(cls, value: str) -> str:
        if not value.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must start with redis://, rediss:// or unix://")
        return value

    def retention_days_for(self, metric: str) -> int:
        """Retention window for a tracked metric (IV keeps a longer tail)."""
        if metric == "iv":
            return self.IV_RETENTION_DAYS
        return self.METRIC_RETENTION_DAYS


settings = Settings()

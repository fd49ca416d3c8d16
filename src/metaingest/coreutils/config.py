"""
Runtime Settings

Settings are read from the environment (and .env via python-dotenv).
Explicit keyword arguments win over the environment.
"""

from dataclasses import dataclass, replace
from typing import Optional

from .env import env_get, env_get_float, env_get_int
from .errors import ConfigurationError

DEFAULT_CONCURRENCY_LIMIT = 5
DEFAULT_BATCH_SIZE = 50_000


@dataclass(frozen=True)
class Settings:
    metadata_db: str = "metadata.duckdb"
    source_db: str = "source.duckdb"
    destination_db: str = "destination.duckdb"
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT
    batch_size: int = DEFAULT_BATCH_SIZE
    copy_timeout_seconds: Optional[float] = None
    log_dir: Optional[str] = "logs"
    schedule_time: str = "06:00"

    def __post_init__(self):
        if self.concurrency_limit < 1:
            raise ConfigurationError(
                f"concurrency_limit must be at least 1, got {self.concurrency_limit}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.copy_timeout_seconds is not None and self.copy_timeout_seconds <= 0:
            raise ConfigurationError(
                f"copy_timeout_seconds must be positive, got {self.copy_timeout_seconds}"
            )

    def with_overrides(self, **overrides) -> "Settings":
        """Copy of these settings with the non-None overrides applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(**overrides) -> Settings:
    """
    Build Settings from METAINGEST_* environment variables

    Args:
        **overrides: Values that take precedence over the environment (None is ignored)

    Returns:
        Settings: Validated settings
    """
    settings = Settings(
        metadata_db=env_get("METADATA_DB", Settings.metadata_db),
        source_db=env_get("SOURCE_DB", Settings.source_db),
        destination_db=env_get("DESTINATION_DB", Settings.destination_db),
        concurrency_limit=env_get_int("CONCURRENCY_LIMIT", DEFAULT_CONCURRENCY_LIMIT),
        batch_size=env_get_int("BATCH_SIZE", DEFAULT_BATCH_SIZE),
        copy_timeout_seconds=env_get_float("COPY_TIMEOUT_SECONDS"),
        log_dir=env_get("LOG_DIR", Settings.log_dir),
        schedule_time=env_get("SCHEDULE_TIME", Settings.schedule_time),
    )
    return settings.with_overrides(**overrides)

from dotenv import load_dotenv
import os

from .errors import ConfigurationError

load_dotenv()  # pick up METAINGEST_* settings from .env

ENV_PREFIX = "METAINGEST_"


def env_get(key: str, default: str | None = None) -> str | None:
    """Get a METAINGEST_ environment variable or return default."""
    value = os.getenv(f"{ENV_PREFIX}{key}")
    if value is None or value.strip() == "":
        return default
    return value.strip()


def env_get_int(key: str, default: int | None = None) -> int | None:
    """Get an integer setting, failing fast on garbage."""
    raw = env_get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be an integer, got {raw!r}") from e


def env_get_float(key: str, default: float | None = None) -> float | None:
    """Get a float setting, failing fast on garbage."""
    raw = env_get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be a number, got {raw!r}") from e

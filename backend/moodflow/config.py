import os
from datetime import tzinfo

from .engine.calendar import resolve_timezone
from .errors import ConfigurationError, InvalidArgument

DEFAULT_ORIGINS = [
    "https://moodflow.app",
    "https://www.moodflow.app",
    "http://localhost:3000",
]


def allowed_origins() -> list[str]:
    raw = os.environ.get("ALLOWED_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or DEFAULT_ORIGINS


def stats_timezone() -> tzinfo:
    """Reference zone for calendar days. UTC unless STATS_TIMEZONE says otherwise."""
    name = os.environ.get("STATS_TIMEZONE", "UTC")
    try:
        return resolve_timezone(name)
    except InvalidArgument as e:
        raise ConfigurationError(f"STATS_TIMEZONE is not a known zone: {name!r}") from e


def stats_write_attempts() -> int:
    raw = os.environ.get("STATS_WRITE_ATTEMPTS", "3")
    try:
        return max(1, int(raw))
    except ValueError as e:
        raise ConfigurationError(f"STATS_WRITE_ATTEMPTS must be an integer, got {raw!r}") from e


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").upper()


def validate() -> None:
    """Fail at startup rather than on the first request."""
    stats_timezone()
    stats_write_attempts()

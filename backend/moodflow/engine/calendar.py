"""
Calendar-day helpers. The reference time zone is always passed in explicitly.
"""
import re
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import InvalidArgument

DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidArgument(f"unknown time zone: {name}") from e


def _parse_timestamp(ts: str) -> datetime:
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidArgument(f"unparseable timestamp: {ts!r}") from e


def local_date(moment: datetime | str, tz: tzinfo) -> date:
    """Truncate a timestamp to its calendar date in tz. Naive values are UTC."""
    if isinstance(moment, str):
        moment = _parse_timestamp(moment)
    if not isinstance(moment, datetime):
        raise InvalidArgument("timestamp must be a datetime or ISO string")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def today_in(tz: tzinfo, now: datetime | None = None) -> date:
    return local_date(now or datetime.now(timezone.utc), tz)


def parse_date_strict(value: str) -> date:
    """YYYY-MM-DD only; anything else is a client error."""
    if not isinstance(value, str) or not DATE_ONLY_RE.match(value):
        raise InvalidArgument(f"date must be YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidArgument(f"not a calendar date: {value!r}") from e


def parse_client_date(value: str | None) -> date | None:
    """
    Client-supplied "local today". Returns None when absent or invalid so the
    caller falls back to the server date; it only exists to avoid false
    streak resets near UTC midnight for users in other time zones.
    """
    if not value:
        return None
    try:
        return parse_date_strict(value)
    except InvalidArgument:
        return None

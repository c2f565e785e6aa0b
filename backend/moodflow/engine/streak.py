"""
Streak tracking — pure functions, no DB access.
"""
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Iterable, NamedTuple

from ..errors import InvalidArgument

logger = logging.getLogger(__name__)


class StreakCounts(NamedTuple):
    current: int
    longest: int


def _as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # user_stats.last_session_date may come back as a date or a timestamp
        try:
            if len(value) == 10:
                return date.fromisoformat(value)
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError as e:
            raise InvalidArgument(f"unparseable date: {value!r}") from e
    raise InvalidArgument(f"expected a date, got {type(value).__name__}")


@dataclass(frozen=True)
class StatsAggregate:
    total_study_time: int = 0
    total_sessions: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_session_date: date | None = None

    @classmethod
    def from_row(cls, row: dict | None) -> "StatsAggregate":
        """Build from a user_stats row. No row means a fresh all-zero aggregate."""
        row = row or {}
        current = row.get("current_streak") or 0
        return cls(
            total_study_time=row.get("total_study_time") or 0,
            total_sessions=row.get("total_sessions") or 0,
            current_streak=current,
            longest_streak=max(row.get("longest_streak") or 0, current),
            last_session_date=_as_date(row.get("last_session_date")),
        )

    def to_row(self) -> dict:
        return {
            "total_study_time": self.total_study_time,
            "total_sessions": self.total_sessions,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_session_date": self.last_session_date.isoformat() if self.last_session_date else None,
        }


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


def apply_completion(
    aggregate: StatsAggregate,
    today: date,
    duration_minutes: int | None = 0,
) -> StatsAggregate:
    """
    Returns the aggregate after one more completed session on `today`.

    Same-day repeats keep the streak, the next day extends it, a gap restarts
    it at 1. A completion dated before last_session_date only adds to the
    totals; the streak fields and last_session_date stay as they were.
    """
    today = _as_date(today)
    if today is None:
        raise InvalidArgument("completion date is required")
    if duration_minutes is None:
        duration_minutes = 0
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidArgument("duration_minutes must be an integer")
    if duration_minutes < 0:
        raise InvalidArgument("duration_minutes must be non-negative")

    totals = replace(
        aggregate,
        total_study_time=aggregate.total_study_time + duration_minutes,
        total_sessions=aggregate.total_sessions + 1,
    )

    last = aggregate.last_session_date
    if last is None:
        new_streak = 1
    else:
        days_since = days_between(last, today)
        if days_since < 0:
            logger.warning("Completion on %s precedes last session %s; streak left as is", today, last)
            return totals
        if days_since == 0:
            new_streak = aggregate.current_streak
        elif days_since == 1:
            new_streak = aggregate.current_streak + 1
        else:
            new_streak = 1

    return replace(
        totals,
        current_streak=new_streak,
        longest_streak=max(aggregate.longest_streak, new_streak),
        last_session_date=today,
    )


def compute_streaks(dates: Iterable[date]) -> StreakCounts:
    """
    Longest run of consecutive days anywhere in the history, and the run
    ending at the most recent date. Input order and duplicates don't matter.
    """
    days = sorted({_as_date(d) for d in dates} - {None})
    if not days:
        return StreakCounts(0, 0)

    one_day = timedelta(days=1)
    longest = run = 1
    for prev, curr in zip(days, days[1:]):
        run = run + 1 if curr - prev == one_day else 1
        longest = max(longest, run)

    # the loop leaves `run` as the length of the final run
    return StreakCounts(run, longest)


def effective_current_streak(current: int, last_session_date: date | None, today: date) -> int:
    """A streak only counts as current if it includes today or yesterday."""
    if last_session_date is None:
        return 0
    if days_between(last_session_date, today) > 1:
        return 0
    return current

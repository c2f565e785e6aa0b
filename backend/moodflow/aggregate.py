"""
Read/modify/write contract for the per-user user_stats row.

The cached row is updated cheaply on every completion; the streak fields can
drift from the session history (lost writes, out-of-order completions), so the
reporting path recomputes them from history whenever it can.
"""
import logging
from datetime import date, tzinfo

from . import config
from .db import (
    get_stats, insert_stats, update_stats_if, upsert_stats,
    get_completed_sessions, get_completed_session_times,
)
from .engine.calendar import local_date
from .engine.streak import (
    StatsAggregate, StreakCounts,
    apply_completion, compute_streaks, effective_current_streak,
)
from .errors import InvalidArgument, StatsConflict, StorageUnavailable

logger = logging.getLogger(__name__)


def _require_user(user_id: str | None) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidArgument("user_id is required")
    return user_id


def record_completion(
    db,
    user_id: str,
    today: date,
    duration_minutes: int | None = 0,
    attempts: int | None = None,
) -> StatsAggregate:
    """
    Fold one completed session into the user's aggregate and persist all five
    fields in a single conditioned write. Nothing is written if the input is
    invalid or the storage call fails.
    """
    user_id = _require_user(user_id)
    attempts = attempts or config.stats_write_attempts()

    for attempt in range(1, attempts + 1):
        row = get_stats(db, user_id)
        current = StatsAggregate.from_row(row)
        updated = apply_completion(current, today, duration_minutes)

        if row:
            # guard on the stored value, which may be NULL
            written = update_stats_if(db, user_id, row.get("total_sessions"), updated.to_row())
        else:
            written = insert_stats(db, user_id, updated.to_row())

        if written:
            logger.info("Stats for %s...: %d sessions, streak %d (longest %d)",
                        user_id[:8], updated.total_sessions,
                        updated.current_streak, updated.longest_streak)
            return updated

        logger.warning("Stats write for %s... lost a race (attempt %d/%d)",
                       user_id[:8], attempt, attempts)

    raise StatsConflict(f"could not update stats for {user_id[:8]}... after {attempts} attempts")


def recompute_streaks(db, user_id: str, tz: tzinfo) -> StreakCounts | None:
    """Authoritative streaks from session history. None if there is no history."""
    user_id = _require_user(user_id)
    days = [local_date(ts, tz) for ts in get_completed_session_times(db, user_id)]
    if not days:
        return None
    return compute_streaks(days)


def build_stats_report(db, user_id: str, today: date, tz: tzinfo) -> dict:
    """
    Stats as shown to the user. Prefers recomputed streaks over the cached
    ones, then zeroes current_streak if the last session is older than
    yesterday. Read-only.
    """
    user_id = _require_user(user_id)
    cached = StatsAggregate.from_row(get_stats(db, user_id))

    current, longest = cached.current_streak, cached.longest_streak
    try:
        recomputed = recompute_streaks(db, user_id, tz)
    except StorageUnavailable:
        logger.warning("History unavailable for %s...; reporting cached streaks", user_id[:8])
        recomputed = None
    if recomputed is not None:
        current, longest = recomputed.current, max(recomputed.longest, recomputed.current)

    last = cached.last_session_date
    return {
        "total_study_time": cached.total_study_time,
        "total_sessions": cached.total_sessions,
        "current_streak": effective_current_streak(current, last, today),
        "longest_streak": longest,
        "last_session_date": last.isoformat() if last else None,
    }


def reconcile_stats(db, user_id: str, tz: tzinfo, dry_run: bool = False) -> tuple[StatsAggregate, StatsAggregate]:
    """
    Rebuild the whole aggregate from session history and write it back.
    Returns (before, after). Safe to run repeatedly.
    """
    user_id = _require_user(user_id)
    before = StatsAggregate.from_row(get_stats(db, user_id))

    sessions = get_completed_sessions(db, user_id)
    days = [local_date(s["ended_at"], tz) for s in sessions if s.get("ended_at")]
    streaks = compute_streaks(days)
    after = StatsAggregate(
        total_study_time=sum(max(s.get("duration_actual") or 0, 0) for s in sessions),
        total_sessions=len(sessions),
        current_streak=streaks.current,
        longest_streak=streaks.longest,
        last_session_date=max(days) if days else None,
    )

    if not dry_run:
        upsert_stats(db, user_id, after.to_row())
        logger.info("Reconciled stats for %s...: %d sessions", user_id[:8], after.total_sessions)
    return before, after

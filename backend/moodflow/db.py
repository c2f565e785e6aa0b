import os
import logging
from functools import lru_cache, wraps
from supabase import create_client, Client

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

STATS_COLUMNS = "user_id, total_study_time, total_sessions, current_streak, longest_streak, last_session_date"
PAGE_SIZE = 1000  # Supabase row limit per request


@lru_cache(maxsize=1)
def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


def _is_unique_violation(e: Exception) -> bool:
    err_str = str(e).lower()
    return "duplicate" in err_str or "unique" in err_str or "23505" in err_str


def storage_call(fn):
    """Wrap any client failure in StorageUnavailable, keeping the cause chained."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StorageUnavailable:
            raise
        except Exception as e:
            logger.error("Storage call %s failed: %s", fn.__name__, e)
            raise StorageUnavailable(f"{fn.__name__} failed") from e
    return wrapper


# ── Auth ──────────────────────────────────────────────────────────────────────

def get_user_id_for_token(db: Client, token: str) -> str | None:
    """Resolve a Supabase access token to a user id. None if the token is rejected."""
    try:
        res = db.auth.get_user(token)
    except Exception as e:
        logger.info("Token rejected: %s", e)
        return None
    user = getattr(res, "user", None)
    return str(user.id) if user else None


# ── Stats aggregate ──────────────────────────────────────────────────────────

@storage_call
def get_stats(db: Client, user_id: str) -> dict:
    res = db.table("user_stats").select(STATS_COLUMNS).eq("user_id", user_id).execute()
    return res.data[0] if res.data else {}


def insert_stats(db: Client, user_id: str, row: dict) -> bool:
    """Create the aggregate row. False if another writer created it first."""
    try:
        db.table("user_stats").insert({"user_id": user_id, **row}).execute()
        return True
    except Exception as e:
        if _is_unique_violation(e):
            return False
        logger.error("Stats insert failed for %s...: %s", user_id[:8], e)
        raise StorageUnavailable("insert_stats failed") from e


@storage_call
def update_stats_if(db: Client, user_id: str, expected_sessions: int | None, row: dict) -> bool:
    """
    Replace the aggregate only if total_sessions still equals what we read.
    total_sessions grows on every completion, so it works as a version column.
    """
    query = db.table("user_stats").update(row).eq("user_id", user_id)
    if expected_sessions is None:
        # = never matches NULL in Postgres
        query = query.is_("total_sessions", "null")
    else:
        query = query.eq("total_sessions", expected_sessions)
    res = query.execute()
    return bool(res.data)


@storage_call
def upsert_stats(db: Client, user_id: str, row: dict) -> None:
    db.table("user_stats").upsert({"user_id": user_id, **row}, on_conflict="user_id").execute()


# ── Study sessions ───────────────────────────────────────────────────────────

@storage_call
def create_session(db: Client, user_id: str, fields: dict) -> dict:
    res = db.table("study_sessions").insert({"user_id": user_id, **fields}).execute()
    return res.data[0]


@storage_call
def get_session(db: Client, user_id: str, session_id: str) -> dict | None:
    res = (
        db.table("study_sessions")
        .select("*")
        .eq("id", session_id)
        .eq("user_id", user_id)
        .execute()
    )
    return res.data[0] if res.data else None


@storage_call
def end_session(db: Client, user_id: str, session_id: str, updates: dict) -> dict | None:
    """
    Mark a still-open session ended. None if it was already ended (or is not
    the user's), so only one request can complete a given session.
    """
    res = (
        db.table("study_sessions")
        .update(updates)
        .eq("id", session_id)
        .eq("user_id", user_id)
        .is_("ended_at", "null")
        .execute()
    )
    return res.data[0] if res.data else None


@storage_call
def reopen_session(db: Client, user_id: str, session: dict) -> None:
    """Undo end_session after the stats write failed, so the client can retry."""
    (
        db.table("study_sessions")
        .update({
            "ended_at": None,
            "completed": session.get("completed") or False,
            "duration_actual": session.get("duration_actual"),
        })
        .eq("id", session["id"])
        .eq("user_id", user_id)
        .execute()
    )


@storage_call
def list_recent_sessions(db: Client, user_id: str, limit: int = 20) -> list[dict]:
    res = (
        db.table("study_sessions")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return res.data or []


@storage_call
def get_completed_sessions(db: Client, user_id: str) -> list[dict]:
    """All ended sessions for a user, oldest first, fetched in pages."""
    rows: list[dict] = []
    offset = 0
    while True:
        res = (
            db.table("study_sessions")
            .select("ended_at, duration_actual")
            .eq("user_id", user_id)
            .not_.is_("ended_at", "null")
            .order("ended_at")
            .range(offset, offset + PAGE_SIZE - 1)
            .execute()
        )
        batch = res.data or []
        rows.extend(batch)
        if len(batch) < PAGE_SIZE:
            return rows
        offset += PAGE_SIZE


def get_completed_session_times(db: Client, user_id: str) -> list[str]:
    return [r["ended_at"] for r in get_completed_sessions(db, user_id) if r.get("ended_at")]

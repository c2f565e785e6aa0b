"""
MoodFlow — FastAPI stats backend
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from . import config
from .aggregate import record_completion, build_stats_report
from .db import (
    get_client, get_user_id_for_token,
    create_session, get_session, end_session, reopen_session, list_recent_sessions,
)
from .engine.calendar import local_date, parse_client_date, today_in
from .errors import MoodFlowError, StorageUnavailable
from .models import SessionStart, SessionComplete, StatsReport

logging.basicConfig(level=config.log_level(), format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)
config.validate()

limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="MoodFlow API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins(),
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(MoodFlowError)
async def handle_moodflow_error(request: Request, exc: MoodFlowError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.get("/health")
def health():
    try:
        db = get_client()
        db.table("user_stats").select("user_id").limit(1).execute()
        return {"status": "ok", "db": "ok"}
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
        raise HTTPException(status_code=503, detail="DB unavailable")


# ── Auth ──────────────────────────────────────────────────────────────────────

def get_access_token(authorization: str = Header(...)) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return authorization.removeprefix("Bearer ").strip()


def require_user(token: str = Depends(get_access_token)) -> str:
    user_id = get_user_id_for_token(get_client(), token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


# ── Sessions ──────────────────────────────────────────────────────────────────

@app.post("/api/sessions", status_code=201)
@limiter.limit("30/minute")
def start_session(request: Request, body: SessionStart, user_id: str = Depends(require_user)):
    db = get_client()
    started_at = body.started_at or datetime.now(timezone.utc)
    session = create_session(db, user_id, {
        "started_at": started_at.isoformat(),
        "planned_minutes": body.planned_minutes,
        "mood_at_start": body.mood_at_start,
        "task_type": body.task_type,
        "task_id": body.task_id,
        "notes": body.notes,
    })
    return {"session": session}


@app.get("/api/sessions")
def recent_sessions(user_id: str = Depends(require_user)):
    return {"sessions": list_recent_sessions(get_client(), user_id, limit=20)}


@app.put("/api/sessions/{session_id}/complete")
@limiter.limit("30/minute")
def complete_session(request: Request, session_id: str, body: SessionComplete,
                     user_id: str = Depends(require_user)):
    db = get_client()
    session = get_session(db, user_id, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    if session.get("ended_at"):
        raise HTTPException(status_code=409, detail="Session already completed")

    now = datetime.now(timezone.utc)
    duration = body.duration_actual or 0
    completed_on = parse_client_date(body.local_date) or local_date(now, config.stats_timezone())

    updates = {"ended_at": now.isoformat(), "duration_actual": duration, "completed": True}
    if body.notes is not None:
        updates["notes"] = body.notes
    # Conditional on ended_at IS NULL: a concurrent request that ended it first wins
    ended = end_session(db, user_id, session_id, updates)
    if not ended:
        raise HTTPException(status_code=409, detail="Session already completed")

    try:
        stats = record_completion(db, user_id, completed_on, duration)
    except MoodFlowError:
        _reopen_after_failure(db, user_id, session)
        raise

    logger.info("Session %s... completed by %s...: %d min on %s",
                session_id[:8], user_id[:8], duration, completed_on)
    return {"session": ended, "stats": stats.to_row()}


def _reopen_after_failure(db, user_id: str, session: dict) -> None:
    """Put the session back to open so a retried completion reaches the stats."""
    try:
        reopen_session(db, user_id, session)
    except StorageUnavailable as e:
        # the original stats error is what the caller gets; backfill repairs this
        logger.error("Could not reopen session %s... for %s...: %s",
                     session["id"][:8], user_id[:8], e)


# ── Stats ─────────────────────────────────────────────────────────────────────

@app.get("/api/stats", response_model=StatsReport)
@limiter.limit("60/minute")
def get_stats_report(request: Request, local_today: Optional[str] = Query(default=None),
                     user_id: str = Depends(require_user)):
    tz = config.stats_timezone()
    today = parse_client_date(local_today) or today_in(tz)
    return build_stats_report(get_client(), user_id, today, tz)

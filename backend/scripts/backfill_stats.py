"""
Rebuild a user's stats aggregate from their completed study sessions.

Recomputes every user_stats column (totals and streaks) from session history
so a drifted cache matches what the history says. Safe to run multiple times
(idempotent).

Usage:
    cd backend
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python scripts/backfill_stats.py <user_id>

Or with a .env file:
    python scripts/backfill_stats.py <user_id> [--dry-run]
"""
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add backend/ to path so the moodflow package imports without installing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from moodflow import config
from moodflow.aggregate import reconcile_stats
from moodflow.db import get_client

FIELDS = ["total_study_time", "total_sessions", "current_streak", "longest_streak", "last_session_date"]


def run(user_id: str, dry_run: bool = False):
    print(f"\n🔍 Backfilling stats for user: {user_id[:8]}...\n")

    db = get_client()
    before, after = reconcile_stats(db, user_id, config.stats_timezone(), dry_run=dry_run)

    if after.total_sessions == 0:
        print("  No completed sessions found.")

    old, new = before.to_row(), after.to_row()
    print(f"  Computed stats (from {after.total_sessions} completed sessions):")
    for k in FIELDS:
        marker = " ✅" if new[k] == old[k] else f" 📈 (was {old[k]})"
        print(f"    {k}: {new[k]}{marker}")

    if dry_run:
        print("\n  DRY RUN — no changes written.")
        return

    print(f"\n✅ Stats updated for {user_id[:8]}...!\n")


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--dry-run"]
    dry = "--dry-run" in sys.argv

    if not args:
        print("Usage: python scripts/backfill_stats.py <user_id> [--dry-run]")
        sys.exit(1)

    run(args[0], dry_run=dry)

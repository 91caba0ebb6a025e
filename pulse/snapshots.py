"""
snapshots.py

last updated: 2026-10-19

Daily snapshots of member engagement into member_history, for trend charts
and week-over-week comparison.

One batch per company per calendar day (PULSE_TIMEZONE). The unique index on
(company_id, member_id, snapshot_date) makes a second write on the same day a
no-op even when two runs race.

functions
- create_daily_snapshot: copy current scores into member_history
- insert_snapshot_rows: insert-or-get-existing for one day's batch
- cleanup_old_snapshots: retention
"""

# external
import time
from datetime import timedelta

# internal
from pulse import analytics
from pulse.errors import (
    make_error,
    SUPABASE_FETCH_ERROR,
    SUPABASE_INSERT_ERROR,
    UNEXPECTED_ERROR,
)
from pulse.members import get_all_members_from_db
from pulse.settings import HISTORY_TABLE, HISTORY_RETENTION_DAYS
from pulse.utils import local_date, to_iso, utc_now

SNAPSHOT_CONFLICT_KEY = "company_id,member_id,snapshot_date"


def build_snapshot_rows(company_id, members, now):
    recorded_at = to_iso(now)
    snapshot_date = local_date(now).isoformat()
    return [
        {
            "company_id": company_id,
            "member_id": member["member_id"],
            "engagement_score": member.get("activity_score") or 0,
            "status": member.get("status"),
            "recorded_at": recorded_at,
            "snapshot_date": snapshot_date,
        }
        for member in members
    ]


def count_snapshots_for_day(supabase, company_id, day):
    """
    Number of member_history rows stored for `day` (a date).
    """
    response = (
        supabase.table(HISTORY_TABLE)
        .select("id", count="exact")
        .eq("company_id", company_id)
        .eq("snapshot_date", day.isoformat())
        .execute()
    )
    if response.count is not None:
        return response.count
    return len(response.data or [])


def insert_snapshot_rows(supabase, company_id, rows, day):
    """
    Insert one day's snapshot rows, leaving rows that already exist untouched.

    Returns:
        int: rows stored for `day` after the write
    """
    (
        supabase.table(HISTORY_TABLE)
        .upsert(rows, on_conflict=SNAPSHOT_CONFLICT_KEY, ignore_duplicates=True)
        .execute()
    )
    return count_snapshots_for_day(supabase, company_id, day)


def create_daily_snapshot(supabase, company_id, now=None):
    """
    Create a daily snapshot of all members' current engagement scores

    Args:
        supabase: Supabase client object
        company_id (str): Whop company ID
        now (datetime, optional): snapshot instant (defaults to now)

    Returns:
        dict: {"success", "count", "errors"}
    """
    errors = []
    start_time = time.time()
    now = now or utc_now()
    today = local_date(now)

    print(f"\n=== [SNAPSHOT] Creating daily snapshot for {company_id} ({today}) ===")

    try:
        try:
            members = get_all_members_from_db(
                supabase, company_id, columns="member_id, activity_score, status"
            )
        except Exception as e:
            print(f"[SNAPSHOT] Error fetching members: {e}")
            errors.append(make_error(SUPABASE_FETCH_ERROR, e))
            analytics.snapshot_failed(company_id, SUPABASE_FETCH_ERROR)
            return {"success": False, "count": 0, "errors": errors}

        if not members:
            print("[SNAPSHOT] No members to snapshot")
            return {"success": True, "count": 0, "errors": []}

        try:
            existing_count = count_snapshots_for_day(supabase, company_id, today)
        except Exception as e:
            print(f"[SNAPSHOT] Error checking for today's snapshot: {e}")
            errors.append(make_error(SUPABASE_FETCH_ERROR, e))
            analytics.snapshot_failed(company_id, SUPABASE_FETCH_ERROR)
            return {"success": False, "count": 0, "errors": errors}

        if existing_count > 0:
            print(
                f"[SNAPSHOT] Snapshot already exists for today ({existing_count} records)"
            )
            return {"success": True, "count": existing_count, "errors": []}

        print(f"[SNAPSHOT] Creating snapshots for {len(members)} members")
        rows = build_snapshot_rows(company_id, members, now)

        try:
            count = insert_snapshot_rows(supabase, company_id, rows, today)
        except Exception as e:
            print(f"[SNAPSHOT] Error inserting snapshots: {e}")
            errors.append(make_error(SUPABASE_INSERT_ERROR, e))
            analytics.snapshot_failed(company_id, SUPABASE_INSERT_ERROR)
            return {"success": False, "count": 0, "errors": errors}

        duration_ms = int((time.time() - start_time) * 1000)
        print(f"[SNAPSHOT] Successfully stored {count} snapshots")
        analytics.snapshot_created(company_id, count, duration_ms)
        return {"success": True, "count": count, "errors": []}

    except Exception as e:
        print(f"[SNAPSHOT] Unexpected error: {e}")
        errors.append(make_error(UNEXPECTED_ERROR, e))
        analytics.snapshot_failed(company_id, UNEXPECTED_ERROR)
        return {"success": False, "count": 0, "errors": errors}


def cleanup_old_snapshots(
    supabase, company_id, days_to_keep=HISTORY_RETENTION_DAYS, now=None
):
    """
    Delete snapshots older than `days_to_keep` days.

    Returns:
        dict: {"success", "deleted"}
    """
    now = now or utc_now()
    cutoff = now - timedelta(days=days_to_keep)
    print(f"[CLEANUP] Deleting snapshots for {company_id} recorded before {to_iso(cutoff)}")

    try:
        response = (
            supabase.table(HISTORY_TABLE)
            .delete(count="exact")
            .eq("company_id", company_id)
            .lt("recorded_at", to_iso(cutoff))
            .execute()
        )
    except Exception as e:
        print(f"[CLEANUP] Error deleting old snapshots: {e}")
        return {"success": False, "deleted": 0}

    deleted = response.count if response.count is not None else len(response.data or [])
    print(f"[CLEANUP] Deleted {deleted} old snapshots")
    return {"success": True, "deleted": deleted}


if __name__ == "__main__":
    pass

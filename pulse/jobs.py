"""
jobs.py

last updated: 2026-10-19

Daily batch: sync members from Whop, snapshot today's scores, drop old history.

usage
    python -m pulse.jobs biz_xxx
    python -m pulse.jobs            (uses WHOP_COMPANY_ID)
"""

# external
import sys
import time

# internal
from pulse.database import connect_to_supabase
from pulse.members import sync_members_from_whop
from pulse.settings import DEFAULT_COMPANY_ID, HISTORY_RETENTION_DAYS
from pulse.snapshots import cleanup_old_snapshots, create_daily_snapshot
from pulse.utils import get_human_readable_duration, utc_now


def run_daily_job(supabase, company_id, whop_client=None, now=None):
    """
    Run sync -> snapshot -> cleanup for one company.
    The snapshot runs even if the sync failed, on whatever scores are stored.

    Returns:
        dict: {"sync", "snapshot", "cleanup", "success"}
    """
    start_time = time.time()
    now = now or utc_now()

    print(f"\n=== Daily job for {company_id} ===")

    sync_result = sync_members_from_whop(
        supabase, company_id, whop_client=whop_client, now=now
    )
    if not sync_result["success"]:
        print(f"[JOB] Sync failed, snapshotting stored scores: {sync_result['errors']}")

    snapshot_result = create_daily_snapshot(supabase, company_id, now=now)
    cleanup_result = cleanup_old_snapshots(
        supabase, company_id, days_to_keep=HISTORY_RETENTION_DAYS, now=now
    )

    print(f"\n=== Daily job summary for {company_id} ===")
    print(f"Synced members: {sync_result['count']} ({sync_result['skipped']} skipped)")
    print(f"Snapshot rows: {snapshot_result['count']}")
    print(f"Old snapshots deleted: {cleanup_result['deleted']}")
    print(f"Finished in {get_human_readable_duration(start_time)}")

    return {
        "sync": sync_result,
        "snapshot": snapshot_result,
        "cleanup": cleanup_result,
        "success": sync_result["success"] and snapshot_result["success"],
    }


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    company_id = argv[0] if argv else DEFAULT_COMPANY_ID
    if not company_id:
        print("❌ Usage: python -m pulse.jobs <company_id> (or set WHOP_COMPANY_ID)")
        return 1

    supabase = connect_to_supabase()
    result = run_daily_job(supabase, company_id)
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())

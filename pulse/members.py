"""
members.py

last updated: 2026-10-19

Syncs Whop memberships into the member_activity table with engagement scoring.

Scope
- field extraction from the different Whop record shapes
- transform to member_activity rows
- bulk upsert + read helpers for member_activity

functions
- transform_whop_member: raw Whop record -> member_activity row (or None)
- sync_members_from_whop: fetch + transform + upsert for one company
- get_all_members_from_db: paginated read of member_activity
- get_sync_stats: status breakdown for a company
"""

# external
import time

# internal
from pulse import analytics
from pulse.database import fetch_all_rows
from pulse.engagement import calculate_engagement_score, STATUSES
from pulse.errors import (
    WhopAPIError,
    make_error,
    WHOP_API_ERROR,
    SUPABASE_UPSERT_ERROR,
    UNEXPECTED_ERROR,
)
from pulse.settings import MEMBERS_TABLE
from pulse.utils import ensure_iso, parse_timestamp, to_iso, utc_now
from pulse.whop import WhopClient

MEMBER_CONFLICT_KEY = "company_id,member_id"


def field(*path):
    """
    Build an extractor that reads a (possibly nested) field from a record.
    Extractors never raise; empty strings count as missing.
    """

    def extract(record):
        value = record
        for key in path:
            if not isinstance(value, dict):
                return None
            value = value.get(key)
        if value is None or value == "":
            return None
        return value

    extract.__name__ = "field_" + "_".join(path)
    return extract


# Tried in order, first non-empty value wins
LAST_ACTIVE_EXTRACTORS = [
    field("last_active_at"),
    field("access_pass", "last_accessed_at"),
    field("created_at"),
    field("valid_from"),
]
# NOTE: user ids first so bulk sync and webhooks key the same row per person
MEMBER_ID_EXTRACTORS = [
    field("user_id"),
    field("user", "id"),
    field("id"),
    field("member_id"),
]
EMAIL_EXTRACTORS = [field("email"), field("user", "email")]
USERNAME_EXTRACTORS = [
    field("username"),
    field("user", "username"),
    field("discord_username"),
]
NAME_EXTRACTORS = [field("name"), field("user", "name"), field("full_name")]
LAST_LOGIN_EXTRACTORS = [field("last_login_at")]
SESSION_COUNT_EXTRACTORS = [field("total_sessions"), field("login_count")]


def first_value(record, extractors):
    """
    Return the first non-empty value produced by `extractors`, or None.
    """
    for extract in extractors:
        value = extract(record)
        if value is not None:
            return value
    return None


def _as_text(value):
    # Whop occasionally sends numbers or objects in string fields
    return value if isinstance(value, str) else None


def placeholder_name(member_id):
    return f"User {member_id}"


def extract_display_name(record, member_id, username=None, email=None):
    name = first_value(record, NAME_EXTRACTORS)
    if name:
        return name
    if username:
        return username
    if isinstance(email, str) and "@" in email:
        return email.split("@")[0]
    return placeholder_name(member_id)


def extract_total_sessions(record):
    value = first_value(record, SESSION_COUNT_EXTRACTORS)
    try:
        return max(0, int(value)) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def transform_whop_member(member, company_id, now=None):
    """
    Transform a Whop membership/member record into a member_activity row.

    Args:
        member (dict): raw record from the Whop API or a webhook
        company_id (str): Whop company id (biz_*)
        now (datetime, optional): reference instant for days_since_active

    Returns:
        dict | None: the row, or None if the record has no member id
    """
    if not isinstance(member, dict):
        return None

    member_id = first_value(member, MEMBER_ID_EXTRACTORS)
    if member_id is None:
        return None
    member_id = str(member_id)

    now = now or utc_now()
    last_active = ensure_iso(first_value(member, LAST_ACTIVE_EXTRACTORS))
    engagement = calculate_engagement_score(last_active, now=now)

    email = _as_text(first_value(member, EMAIL_EXTRACTORS))
    username = _as_text(first_value(member, USERNAME_EXTRACTORS))
    last_login = ensure_iso(first_value(member, LAST_LOGIN_EXTRACTORS)) or last_active

    return {
        "company_id": company_id,
        "member_id": member_id,
        "member_email": email,
        "member_username": username,
        "member_name": extract_display_name(member, member_id, username, email),
        "last_active": last_active,
        "status": engagement["status"],
        "activity_score": engagement["score"],
        "total_sessions": extract_total_sessions(member),
        "last_login": last_login,
        "days_since_active": engagement["days_since_active"],
        "updated_at": to_iso(now),
    }


def _dedupe_rows(rows):
    """
    Keep one row per member_id (the most recently active one).
    Postgres rejects an upsert batch that touches the same key twice.
    """
    by_member = {}
    for row in rows:
        existing = by_member.get(row["member_id"])
        if existing is None or row["days_since_active"] < existing["days_since_active"]:
            by_member[row["member_id"]] = row
    return list(by_member.values())


def upsert_members(supabase, rows):
    """
    Upsert member_activity rows keyed on (company_id, member_id).
    Existing rows are overwritten with the new values.
    """
    return (
        supabase.table(MEMBERS_TABLE)
        .upsert(rows, on_conflict=MEMBER_CONFLICT_KEY, ignore_duplicates=False)
        .execute()
    )


def sync_members_from_whop(
    supabase, company_id, whop_client=None, members=None, now=None
):
    """
    Sync members from Whop to Supabase

    Args:
        supabase: Supabase client object
        company_id (str): Whop company ID (biz_*)
        whop_client (WhopClient, optional): client used to fetch memberships
        members (list, optional): raw records to sync instead of fetching
        now (datetime, optional): reference instant for scoring

    Returns:
        dict: {"success", "count", "skipped", "errors"}
    """
    errors = []
    start_time = time.time()
    now = now or utc_now()

    print(f"\n=== [SYNC] Starting member sync for company {company_id} ===")
    analytics.sync_started(company_id)

    try:
        if members is None:
            print("[SYNC] Fetching members from Whop API...")
            try:
                whop_client = whop_client or WhopClient()
                members = whop_client.get_all_memberships(company_id)
            except (WhopAPIError, ValueError) as e:
                print(f"[SYNC] Error fetching from Whop API: {e}")
                errors.append(make_error(WHOP_API_ERROR, e))
                analytics.sync_failed(company_id, WHOP_API_ERROR, str(e))
                return {"success": False, "count": 0, "skipped": 0, "errors": errors}

        if not members:
            print("[SYNC] No members found in Whop")
            return {"success": True, "count": 0, "skipped": 0, "errors": []}

        print(f"[SYNC] Transforming {len(members)} member records...")
        transformed = []
        skipped = 0
        for i, member in enumerate(members):
            try:
                row = transform_whop_member(member, company_id, now=now)
            except Exception as e:
                skipped += 1
                print(f"  - [{i+1}/{len(members)}] Could not transform record, skipping: {e}")
                continue
            if row is None:
                skipped += 1
                print(f"  - [{i+1}/{len(members)}] No member id, skipping")
                continue
            transformed.append(row)

        unique_rows = _dedupe_rows(transformed)
        if len(unique_rows) < len(transformed):
            duplicates = len(transformed) - len(unique_rows)
            print(f"[SYNC] Dropped {duplicates} duplicate records for the same member")
            skipped += duplicates

        print(f"[SYNC] Transformed {len(unique_rows)} members ({skipped} skipped)")

        member_count = 0
        if unique_rows:
            print(f"[SYNC] Upserting {len(unique_rows)} rows into '{MEMBERS_TABLE}'...")
            try:
                response = upsert_members(supabase, unique_rows)
            except Exception as e:
                print(f"[SYNC] Supabase upsert error: {e}")
                errors.append(make_error(SUPABASE_UPSERT_ERROR, e))
                analytics.sync_failed(company_id, SUPABASE_UPSERT_ERROR, str(e))
                return {
                    "success": False,
                    "count": 0,
                    "skipped": skipped,
                    "errors": errors,
                }
            member_count = len(response.data) if response.data else len(unique_rows)

        duration_ms = int((time.time() - start_time) * 1000)
        print(f"[SYNC] Successfully synced {member_count} members")
        analytics.sync_completed(company_id, member_count, duration_ms)
        return {
            "success": True,
            "count": member_count,
            "skipped": skipped,
            "errors": errors,
        }

    except Exception as e:
        print(f"[SYNC] Unexpected error during sync: {e}")
        errors.append(make_error(UNEXPECTED_ERROR, e))
        analytics.sync_failed(company_id, UNEXPECTED_ERROR, str(e))
        return {"success": False, "count": 0, "skipped": 0, "errors": errors}


def get_all_members_from_db(supabase, company_id, columns="*"):
    """
    Retrieve all member_activity rows for a company with pagination

    Args:
        supabase: Supabase client object
        company_id (str): company to filter by
        columns (str): columns to select

    Returns:
        List of member records. Storage errors propagate to the caller.
    """
    return fetch_all_rows(
        lambda: supabase.table(MEMBERS_TABLE)
        .select(columns)
        .eq("company_id", company_id)
        .order("member_id")
    )


def get_member(supabase, company_id, member_id):
    """
    Fetch a single member_activity row, or None if it doesn't exist.
    """
    response = (
        supabase.table(MEMBERS_TABLE)
        .select("*")
        .eq("company_id", company_id)
        .eq("member_id", member_id)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def get_sync_stats(supabase, company_id):
    """
    Status breakdown and last sync time for a company.

    Returns:
        dict: {"total", "active", "at_risk", "inactive", "last_synced"}
    """
    try:
        rows = get_all_members_from_db(supabase, company_id, columns="status, updated_at")
    except Exception as e:
        print(f"[SYNC] Error getting stats: {e}")
        return {"total": 0, "active": 0, "at_risk": 0, "inactive": 0, "last_synced": None}

    stats = {"total": len(rows)}
    for status in STATUSES:
        stats[status] = len([r for r in rows if r.get("status") == status])

    synced_times = [parse_timestamp(r.get("updated_at")) for r in rows]
    synced_times = [t for t in synced_times if t is not None]
    stats["last_synced"] = to_iso(max(synced_times)) if synced_times else None
    return stats


if __name__ == "__main__":
    pass

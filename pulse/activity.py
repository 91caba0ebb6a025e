"""
activity.py

last updated: 2026-10-19

Tracks dashboard visits from members so last_login stays current.
Never raises: activity tracking must not break a page load.
"""

# internal
from pulse import analytics
from pulse.settings import MEMBERS_TABLE
from pulse.utils import to_iso, utc_now

ACTIVITY_TYPES = ("dashboard_visit", "settings_visit", "help_visit", "sync_action")


def track_user_activity(supabase, user_id, company_id, activity_type, now=None):
    """
    Record a visit and bump last_login for the member (if they are one).

    Returns:
        bool: True if the member row update went through
    """
    now_iso = to_iso(now or utc_now())
    if activity_type not in ACTIVITY_TYPES:
        print(f"[ACTIVITY] Unknown activity type '{activity_type}'")

    analytics.track_page_view(
        activity_type,
        {"user_id": user_id, "company_id": company_id},
    )

    try:
        (
            supabase.table(MEMBERS_TABLE)
            .update({"last_login": now_iso, "updated_at": now_iso})
            .eq("company_id", company_id)
            .eq("member_id", user_id)
            .execute()
        )
    except Exception as e:
        print(f"[ACTIVITY] Could not update member activity for {user_id}: {e}")
        return False

    print(f"[ACTIVITY] Tracked {activity_type} for user {user_id}")
    return True


def get_user_last_activity(supabase, user_id, company_id):
    """
    Returns:
        dict | None: {"last_login", "last_active"} or None if unknown
    """
    try:
        response = (
            supabase.table(MEMBERS_TABLE)
            .select("last_login, last_active")
            .eq("company_id", company_id)
            .eq("member_id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        print(f"[ACTIVITY] Could not fetch activity for {user_id}: {e}")
        return None

    return response.data[0] if response.data else None

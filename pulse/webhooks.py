"""
webhooks.py

last updated: 2026-10-19

Real-time member updates from Whop webhooks.

Events handled
- membership.went_valid: new member joined
- membership.accessed: member logged in / accessed the product
- membership.went_invalid: membership expired or was cancelled

Signature verification happens before these handlers are called (see
api.create_app's webhook_verifier). Handlers never raise: webhook senders
retry on errors and we don't want retry storms.
"""

# external
import time

# internal
from pulse import analytics
from pulse.engagement import INACTIVE, score_from_days
from pulse.members import (
    EMAIL_EXTRACTORS,
    MEMBER_CONFLICT_KEY,
    MEMBER_ID_EXTRACTORS,
    NAME_EXTRACTORS,
    USERNAME_EXTRACTORS,
    first_value,
    get_member,
    placeholder_name,
)
from pulse.settings import DEFAULT_COMPANY_ID, MEMBERS_TABLE, NEVER_ACTIVE_DAYS
from pulse.utils import to_iso, utc_now

WENT_VALID = "membership.went_valid"
ACCESSED = "membership.accessed"
WENT_INVALID = "membership.went_invalid"
SUPPORTED_EVENTS = (WENT_VALID, ACCESSED, WENT_INVALID)


def _membership_ids(membership):
    member_id = first_value(membership, MEMBER_ID_EXTRACTORS)
    company_id = membership.get("company_id") or DEFAULT_COMPANY_ID
    return (str(member_id) if member_id else None), company_id


def handle_membership_went_valid(supabase, membership, now=None):
    """
    New member: full engagement score, first session.
    """
    now_iso = to_iso(now or utc_now())
    member_id, company_id = _membership_ids(membership)
    if not member_id or not company_id:
        print("[WEBHOOK] Missing member ID or company ID")
        return {"handled": False, "reason": "missing_ids"}

    engagement = score_from_days(0)
    username = first_value(membership, USERNAME_EXTRACTORS)
    member_data = {
        "company_id": company_id,
        "member_id": member_id,
        "member_email": first_value(membership, EMAIL_EXTRACTORS),
        "member_username": username,
        "member_name": first_value(membership, NAME_EXTRACTORS)
        or username
        or placeholder_name(member_id),
        "last_active": now_iso,
        "status": engagement["status"],
        "activity_score": engagement["score"],
        "total_sessions": 1,
        "last_login": now_iso,
        "days_since_active": 0,
        "updated_at": now_iso,
    }

    try:
        supabase.table(MEMBERS_TABLE).upsert(
            member_data, on_conflict=MEMBER_CONFLICT_KEY
        ).execute()
    except Exception as e:
        print(f"[WEBHOOK] Error upserting new member {member_id}: {e}")
        return {"handled": False, "reason": "storage_error", "error": str(e)}

    print(f"[WEBHOOK] New member added: {member_id}")
    return {"handled": True, "member_id": member_id}


def handle_membership_accessed(supabase, membership, now=None):
    """
    Member accessed the product: reset recency, count a session.
    Identity fields missing from the payload keep their stored values.
    """
    now_iso = to_iso(now or utc_now())
    member_id, company_id = _membership_ids(membership)
    if not member_id or not company_id:
        print("[WEBHOOK] Missing member ID or company ID")
        return {"handled": False, "reason": "missing_ids"}

    try:
        current = get_member(supabase, company_id, member_id) or {}
    except Exception as e:
        print(f"[WEBHOOK] Could not read current row for {member_id}: {e}")
        current = {}

    engagement = score_from_days(0)
    member_data = {
        "company_id": company_id,
        "member_id": member_id,
        "member_email": first_value(membership, EMAIL_EXTRACTORS)
        or current.get("member_email"),
        "member_username": first_value(membership, USERNAME_EXTRACTORS)
        or current.get("member_username"),
        "member_name": first_value(membership, NAME_EXTRACTORS)
        or current.get("member_name")
        or placeholder_name(member_id),
        "last_active": now_iso,
        "status": engagement["status"],
        "activity_score": engagement["score"],
        "days_since_active": 0,
        "last_login": now_iso,
        "total_sessions": (current.get("total_sessions") or 0) + 1,
        "updated_at": now_iso,
    }

    try:
        supabase.table(MEMBERS_TABLE).upsert(
            member_data, on_conflict=MEMBER_CONFLICT_KEY
        ).execute()
    except Exception as e:
        print(f"[WEBHOOK] Error updating member access for {member_id}: {e}")
        return {"handled": False, "reason": "storage_error", "error": str(e)}

    print(
        f"[WEBHOOK] Member activity updated: {member_id} "
        f"(score: {engagement['score']}, sessions: {member_data['total_sessions']})"
    )
    return {"handled": True, "member_id": member_id}


def handle_membership_went_invalid(supabase, membership, now=None):
    """
    Membership ended: mark inactive with score 0. The row is kept for history.
    """
    member_id, company_id = _membership_ids(membership)
    if not member_id or not company_id:
        print("[WEBHOOK] Missing member ID or company ID")
        return {"handled": False, "reason": "missing_ids"}

    updates = {
        "status": INACTIVE,
        "activity_score": 0,
        "days_since_active": NEVER_ACTIVE_DAYS,
        "updated_at": to_iso(now or utc_now()),
    }

    try:
        (
            supabase.table(MEMBERS_TABLE)
            .update(updates)
            .eq("company_id", company_id)
            .eq("member_id", member_id)
            .execute()
        )
    except Exception as e:
        print(f"[WEBHOOK] Error marking member {member_id} inactive: {e}")
        return {"handled": False, "reason": "storage_error", "error": str(e)}

    print(f"[WEBHOOK] Member marked inactive: {member_id}")
    return {"handled": True, "member_id": member_id}


EVENT_HANDLERS = {
    WENT_VALID: handle_membership_went_valid,
    ACCESSED: handle_membership_accessed,
    WENT_INVALID: handle_membership_went_invalid,
}


def handle_webhook_event(supabase, payload, now=None):
    """
    Route a webhook payload ({"action": ..., "data": {...}}) to its handler.

    Returns:
        dict: {"event", "handled", "duration_ms", ...handler result}
    """
    start_time = time.time()
    payload = payload if isinstance(payload, dict) else {}
    event_type = payload.get("action") or payload.get("type")
    membership = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    print(f"[WEBHOOK] Processing event: {event_type}")
    analytics.webhook_received(event_type, first_value(membership, MEMBER_ID_EXTRACTORS))

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        print(f"[WEBHOOK] Unhandled event type: {event_type}")
        result = {"handled": False, "reason": "unsupported_event"}
    else:
        try:
            result = handler(supabase, membership, now=now)
        except Exception as e:
            print(f"[WEBHOOK] Error in handler for {event_type}: {e}")
            result = {"handled": False, "reason": "unexpected_error", "error": str(e)}

    duration_ms = int((time.time() - start_time) * 1000)
    if result.get("handled"):
        analytics.webhook_processed(event_type, duration_ms)
    elif handler is not None:
        analytics.webhook_failed(event_type, result.get("reason"))

    return {"event": event_type, "duration_ms": duration_ms, **result}

"""
analytics.py

last updated: 2026-10-19

Event tracking for sync, webhook and snapshot runs.
Events are printed as tagged JSON lines so they can be grepped from job logs.

todo
- forward events to PostHog once the project key is provisioned
"""

# external
import json

# internal
from pulse.settings import SLOW_OPERATION_MS, SLOW_WEBHOOK_MS
from pulse.utils import to_iso, utc_now

EVENT_NAMES = (
    "sync_started",
    "sync_completed",
    "sync_failed",
    "webhook_received",
    "webhook_processed",
    "webhook_failed",
    "snapshot_created",
    "snapshot_failed",
    "page_loaded",
    "error_occurred",
    "user_action",
)


def track_event(event_name, properties=None):
    """
    Track an analytics event.

    Returns:
        dict: the event as it was logged
    """
    if event_name not in EVENT_NAMES:
        print(f"[ANALYTICS] Unknown event name '{event_name}', logging anyway")

    event = {"event": event_name, "timestamp": to_iso(utc_now())}
    event.update({k: v for k, v in (properties or {}).items() if v is not None})
    print(f"[ANALYTICS] {event_name} {json.dumps(event, default=str)}")
    return event


def track_performance(operation, duration_ms, success, error_code=None):
    event = track_event(
        "user_action",
        {
            "operation": operation,
            "duration_ms": duration_ms,
            "success": success,
            "error_code": error_code,
        },
    )
    if duration_ms > SLOW_OPERATION_MS:
        print(f"⚠️ [PERFORMANCE] {operation} took {duration_ms}ms (> 5s)")
    return event


def track_page_view(page_name, properties=None):
    return track_event("page_loaded", {"page": page_name, **(properties or {})})


def track_error(error_code, error_message, context=None):
    print(f"❌ [ERROR] {error_code}: {error_message} {context or ''}")
    return track_event(
        "error_occurred",
        {"error_code": error_code, "error_message": error_message, **(context or {})},
    )


# --- sync ---
def sync_started(company_id):
    track_event("sync_started", {"company_id": company_id})


def sync_completed(company_id, member_count, duration_ms):
    track_event(
        "sync_completed",
        {
            "company_id": company_id,
            "member_count": member_count,
            "duration_ms": duration_ms,
        },
    )
    track_performance("member_sync", duration_ms, True)


def sync_failed(company_id, error_code, error_message):
    track_event(
        "sync_failed",
        {
            "company_id": company_id,
            "error_code": error_code,
            "error_message": error_message,
        },
    )
    track_error(error_code, error_message, {"company_id": company_id})


# --- webhooks ---
def webhook_received(event_type, member_id=None):
    track_event("webhook_received", {"event_type": event_type, "member_id": member_id})


def webhook_processed(event_type, duration_ms):
    track_event(
        "webhook_processed", {"event_type": event_type, "duration_ms": duration_ms}
    )
    if duration_ms > SLOW_WEBHOOK_MS:
        print(f"⚠️ [WEBHOOK] {event_type} took {duration_ms}ms (slow!)")


def webhook_failed(event_type, error_code):
    track_event("webhook_failed", {"event_type": event_type, "error_code": error_code})


# --- snapshots ---
def snapshot_created(company_id, snapshot_count, duration_ms):
    track_event(
        "snapshot_created",
        {
            "company_id": company_id,
            "snapshot_count": snapshot_count,
            "duration_ms": duration_ms,
        },
    )
    track_performance("daily_snapshot", duration_ms, True)


def snapshot_failed(company_id, error_code):
    track_event("snapshot_failed", {"company_id": company_id, "error_code": error_code})

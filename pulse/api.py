"""
api.py

last updated: 2026-10-19

Flask application factory and the /api blueprint.

routes
- GET  /api/sync-members        stats + whether a manual sync is allowed now
- POST /api/sync-members        rate-limited manual sync
- GET  /api/history             daily trend points for charts
- GET  /api/comparison          current vs 7 days ago
- GET|POST /api/activity        last visit lookup / dashboard visit tracking
- GET|POST /api/cron/daily-snapshot   secret-protected snapshot trigger
- GET|POST /api/webhooks/whop   Whop membership webhooks
- GET  /api/health              Supabase / Whop connectivity

Clients are created lazily on first use so the app can be built without
credentials (tests inject fakes instead).
"""

# external
import hmac
import time

from flask import Blueprint, Flask, current_app, jsonify, request

# internal
from pulse.database import connect_to_supabase
from pulse.activity import ACTIVITY_TYPES, get_user_last_activity, track_user_activity
from pulse.history import (
    generate_mock_trend_data,
    get_comparison_data,
    get_historical_data,
)
from pulse.members import get_sync_stats, sync_members_from_whop
from pulse.rate_limit import build_rate_limiter
from pulse.settings import (
    CRON_SECRET,
    DEFAULT_COMPANY_ID,
    HISTORY_DEFAULT_DAYS,
    HISTORY_MAX_DAYS,
    HISTORY_MIN_DAYS,
    MEMBERS_TABLE,
)
from pulse.snapshots import create_daily_snapshot
from pulse.utils import to_iso, utc_now
from pulse.validators import sanitize_company_id, sanitize_days, sanitize_user_id
from pulse.webhooks import SUPPORTED_EVENTS, handle_webhook_event
from pulse.whop import WhopClient

api_bp = Blueprint("api", __name__)


class PulseServices:
    """Per-app holder for the Supabase client, Whop client and rate limiter"""

    def __init__(self, supabase=None, whop_client=None, rate_limiter=None, webhook_verifier=None):
        self._supabase = supabase
        self._whop_client = whop_client
        self.rate_limiter = rate_limiter or build_rate_limiter()
        self.webhook_verifier = webhook_verifier

    @property
    def supabase(self):
        if self._supabase is None:
            self._supabase = connect_to_supabase()
        return self._supabase

    @property
    def whop_client(self):
        if self._whop_client is None:
            self._whop_client = WhopClient()
        return self._whop_client


def create_app(supabase=None, whop_client=None, rate_limiter=None, webhook_verifier=None):
    """
    Create and configure the Flask application

    Args:
        supabase: Supabase client (connects from env on first use if None)
        whop_client (WhopClient): Whop API client (built from env if None)
        rate_limiter (SyncRateLimiter): manual sync limiter
        webhook_verifier: callable(request) -> payload dict, raising on a bad
            signature. Without one the JSON body is trusted as-is.
    """
    app = Flask(__name__)
    app.extensions["pulse"] = PulseServices(
        supabase=supabase,
        whop_client=whop_client,
        rate_limiter=rate_limiter,
        webhook_verifier=webhook_verifier,
    )
    app.register_blueprint(api_bp, url_prefix="/api")
    print("[API] Blueprints registered")
    return app


def _services() -> PulseServices:
    return current_app.extensions["pulse"]


def _json_body():
    body = request.get_json(silent=True)
    # a valid JSON array or scalar is still not a request body we understand
    return body if isinstance(body, dict) else {}


def _resolve_company_id(body=None):
    """
    companyId from the body, then the query string, then the env default.

    Returns:
        (company_id, error_response)
    """
    raw = (body or {}).get("companyId") or request.args.get("companyId") or DEFAULT_COMPANY_ID
    if not raw:
        return None, (jsonify({"success": False, "error": "Missing companyId parameter"}), 400)
    company_id = sanitize_company_id(raw)
    if not company_id:
        return None, (jsonify({"success": False, "error": "Invalid companyId parameter"}), 400)
    return company_id, None


# ─────────────────────────────────────────────────────────────────────────
# SYNC
# ─────────────────────────────────────────────────────────────────────────


@api_bp.route("/sync-members", methods=["GET"])
def sync_status():
    """Get sync stats without triggering a sync"""
    company_id, error = _resolve_company_id()
    if error:
        return error

    try:
        stats = get_sync_stats(_services().supabase, company_id)
        can_sync = _services().rate_limiter.can_sync(company_id)
    except Exception as e:
        print(f"[API] Error getting stats: {e}")
        return jsonify({"success": False, "error": "Failed to get stats", "message": str(e)}), 500

    return jsonify(
        {
            "success": True,
            "data": {
                "stats": stats,
                "can_sync": can_sync,
                "last_synced": stats["last_synced"],
            },
        }
    )


@api_bp.route("/sync-members", methods=["POST"])
def sync_members():
    """Trigger a member sync for one company"""
    body = _json_body()
    company_id, error = _resolve_company_id(body)
    if error:
        return error

    print(f"[API] Sync request for company: {company_id}")
    services = _services()

    limit = services.rate_limiter.check(company_id)
    if not limit["allowed"]:
        wait = limit["retry_after"]
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Rate limit exceeded",
                    "message": f"Please wait {wait} seconds before syncing again",
                    "retry_after": wait,
                }
            ),
            429,
        )

    try:
        start_time = time.time()
        try:
            whop_client = services.whop_client
        except ValueError as e:
            # missing WHOP_API_KEY; let the sync report it as a Whop error
            print(f"[API] Whop client unavailable: {e}")
            whop_client = None
        result = sync_members_from_whop(services.supabase, company_id, whop_client=whop_client)
        duration_ms = int((time.time() - start_time) * 1000)
        print(f"[API] Sync completed in {duration_ms}ms")

        services.rate_limiter.record(company_id)
        stats = get_sync_stats(services.supabase, company_id)
    except Exception as e:
        print(f"[API] Unexpected error: {e}")
        return (
            jsonify({"success": False, "error": "Internal server error", "message": str(e)}),
            500,
        )

    data = {
        "synced_count": result["count"],
        "skipped_count": result["skipped"],
        "duration_ms": duration_ms,
        "stats": stats,
    }
    if result["errors"]:
        data["errors"] = result["errors"]

    return jsonify(
        {
            "success": result["success"],
            "message": f"Successfully synced {result['count']} members"
            if result["success"]
            else "Sync failed - check errors",
            "data": data,
        }
    )


# ─────────────────────────────────────────────────────────────────────────
# HISTORY / COMPARISON
# ─────────────────────────────────────────────────────────────────────────


@api_bp.route("/history", methods=["GET"])
def history():
    """Daily engagement trend points: /api/history?companyId=biz_xxx&days=30"""
    company_id, error = _resolve_company_id()
    if error:
        return error

    days_param = request.args.get("days")
    days = HISTORY_DEFAULT_DAYS if days_param is None else sanitize_days(days_param)
    if days is None:
        return (
            jsonify(
                {
                    "success": False,
                    "error": f"Days must be between {HISTORY_MIN_DAYS} and {HISTORY_MAX_DAYS}",
                }
            ),
            400,
        )

    supabase = _services().supabase
    data = get_historical_data(supabase, company_id, days)
    using_mock = len(data) == 0

    chart_data = data
    if using_mock:
        # new installs get a placeholder curve sized to the live member count
        total_members = get_sync_stats(supabase, company_id)["total"] or 5
        print(f"[API] No history for {company_id}, serving mock trend ({total_members} members)")
        chart_data = generate_mock_trend_data(days, total_members=total_members)

    return jsonify(
        {
            "success": True,
            "data": chart_data,
            "meta": {
                "company_id": company_id,
                "days_requested": days,
                "data_points": len(data),
                "using_mock": using_mock,
            },
        }
    )


@api_bp.route("/comparison", methods=["GET"])
def comparison():
    """Week-over-week comparison: /api/comparison?companyId=biz_xxx"""
    company_id, error = _resolve_company_id()
    if error:
        return error

    data = get_comparison_data(_services().supabase, company_id)
    if data is None:
        return jsonify(
            {"success": False, "error": "Failed to calculate comparison", "data": None}
        )

    return jsonify(
        {
            "success": True,
            "data": {key: data[key] for key in ("current", "previous", "changes")},
            "meta": {
                "company_id": company_id,
                "has_historical_data": data["has_historical_data"],
            },
        }
    )


# ─────────────────────────────────────────────────────────────────────────
# ACTIVITY
# ─────────────────────────────────────────────────────────────────────────


def _resolve_user_id(body=None):
    raw = (body or {}).get("userId") or request.args.get("userId")
    if not raw:
        return None, (jsonify({"success": False, "error": "Missing userId parameter"}), 400)
    user_id = sanitize_user_id(raw)
    if not user_id:
        return None, (jsonify({"success": False, "error": "Invalid userId parameter"}), 400)
    return user_id, None


@api_bp.route("/activity", methods=["POST"])
def track_activity():
    """Record a dashboard visit: {"userId", "companyId", "activityType"}"""
    body = _json_body()
    user_id, error = _resolve_user_id(body)
    if error:
        return error
    company_id, error = _resolve_company_id(body)
    if error:
        return error

    activity_type = body.get("activityType") or "dashboard_visit"
    if activity_type not in ACTIVITY_TYPES:
        return jsonify({"success": False, "error": f"Unknown activityType '{activity_type}'"}), 400

    tracked = track_user_activity(_services().supabase, user_id, company_id, activity_type)
    return jsonify({"success": True, "data": {"tracked": tracked, "activity_type": activity_type}})


@api_bp.route("/activity", methods=["GET"])
def last_activity():
    """/api/activity?companyId=biz_xxx&userId=user_xxx"""
    user_id, error = _resolve_user_id()
    if error:
        return error
    company_id, error = _resolve_company_id()
    if error:
        return error

    activity = get_user_last_activity(_services().supabase, user_id, company_id)
    if activity is None:
        return jsonify({"success": False, "error": "No activity found", "data": None}), 404
    return jsonify({"success": True, "data": activity})


# ─────────────────────────────────────────────────────────────────────────
# CRON
# ─────────────────────────────────────────────────────────────────────────


def _valid_cron_secret(secret):
    expected = current_app.config.get("CRON_SECRET", CRON_SECRET)
    return bool(secret) and hmac.compare_digest(str(secret), str(expected))


@api_bp.route("/cron/daily-snapshot", methods=["GET", "POST"])
def daily_snapshot():
    """
    Create today's snapshot. GET takes ?secret=, POST takes {"secret": ...}.
    """
    start_time = time.time()
    body = _json_body() if request.method == "POST" else {}
    secret = body.get("secret") or request.args.get("secret")

    if not _valid_cron_secret(secret):
        print("[CRON] Invalid secret provided")
        return jsonify({"success": False, "error": "Unauthorized", "message": "Invalid cron secret"}), 401

    company_id, error = _resolve_company_id(body)
    if error:
        return error

    print("[CRON] Daily snapshot job started")
    result = create_daily_snapshot(_services().supabase, company_id)
    duration_ms = int((time.time() - start_time) * 1000)

    if not result["success"]:
        print(f"[CRON] Snapshot failed: {result['errors']}")
        return (
            jsonify(
                {
                    "success": False,
                    "message": "Snapshot creation failed",
                    "errors": result["errors"],
                }
            ),
            500,
        )

    print(f"[CRON] Snapshot done: {result['count']} members in {duration_ms}ms")
    return jsonify(
        {
            "success": True,
            "message": f"Created {result['count']} snapshots",
            "data": {
                "company_id": company_id,
                "snapshot_count": result["count"],
                "duration_ms": duration_ms,
                "timestamp": to_iso(utc_now()),
            },
        }
    )


# ─────────────────────────────────────────────────────────────────────────
# WEBHOOKS
# ─────────────────────────────────────────────────────────────────────────


@api_bp.route("/webhooks/whop", methods=["POST"])
def whop_webhook():
    """
    Receive Whop webhooks. Always answers 200 so Whop doesn't retry.
    """
    start_time = time.time()
    verifier = _services().webhook_verifier

    if verifier is not None:
        try:
            payload = verifier(request)
        except Exception as e:
            print(f"[WEBHOOK] Signature validation failed: {e}")
            return jsonify({"received": True, "error": "Invalid signature"}), 200
    else:
        payload = _json_body()

    try:
        result = handle_webhook_event(_services().supabase, payload)
    except Exception as e:
        print(f"[WEBHOOK] Unexpected error: {e}")
        return jsonify(
            {
                "received": True,
                "error": "Internal error",
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )

    return jsonify(
        {
            "received": True,
            "event": result["event"],
            "handled": result["handled"],
            "duration_ms": int((time.time() - start_time) * 1000),
        }
    )


@api_bp.route("/webhooks/whop", methods=["GET"])
def whop_webhook_info():
    return jsonify(
        {
            "status": "ok",
            "webhook_endpoint": "/api/webhooks/whop",
            "supported_events": list(SUPPORTED_EVENTS),
        }
    )


# ─────────────────────────────────────────────────────────────────────────
# HEALTH
# ─────────────────────────────────────────────────────────────────────────


def check_supabase(supabase_getter):
    start_time = time.time()
    try:
        supabase_getter().table(MEMBERS_TABLE).select("id").limit(1).execute()
    except Exception as e:
        return {
            "healthy": False,
            "latency_ms": int((time.time() - start_time) * 1000),
            "error": str(e) or "Connection failed",
        }
    return {"healthy": True, "latency_ms": int((time.time() - start_time) * 1000)}


def check_whop(whop_getter, company_id):
    start_time = time.time()
    if not company_id:
        return {"healthy": False, "latency_ms": 0, "error": "Company ID not configured"}
    try:
        company = whop_getter().get_company(company_id)
    except Exception as e:
        return {
            "healthy": False,
            "latency_ms": int((time.time() - start_time) * 1000),
            "error": str(e) or "Connection failed",
        }
    latency_ms = int((time.time() - start_time) * 1000)
    if not company:
        return {"healthy": False, "latency_ms": latency_ms, "error": "Failed to fetch company data"}
    return {"healthy": True, "latency_ms": latency_ms}


@api_bp.route("/health", methods=["GET"])
def health():
    """GET /api/health, /api/health?service=supabase, /api/health?service=whop"""
    services = _services()
    service = request.args.get("service")
    company_id = request.args.get("companyId") or DEFAULT_COMPANY_ID

    def supabase_getter():
        return services.supabase

    def whop_getter():
        return services.whop_client

    if service == "supabase":
        status = check_supabase(supabase_getter)
        return jsonify({"service": "supabase", **status, "timestamp": to_iso(utc_now())})
    if service == "whop":
        status = check_whop(whop_getter, company_id)
        return jsonify({"service": "whop", **status, "timestamp": to_iso(utc_now())})

    supabase_status = check_supabase(supabase_getter)
    whop_status = check_whop(whop_getter, company_id)
    all_healthy = supabase_status["healthy"] and whop_status["healthy"]

    return (
        jsonify(
            {
                "healthy": all_healthy,
                "services": {"supabase": supabase_status, "whop": whop_status},
                "timestamp": to_iso(utc_now()),
            }
        ),
        200 if all_healthy else 503,
    )

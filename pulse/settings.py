"""
settings.py

last updated: 2026-10-19

Scope
Environment configuration and tuning constants shared by the sync,
snapshot, history and api modules.

todo
- move per-company overrides (timezone, retention) into a settings table
"""

# external
import os
from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

# --- Supabase ---
SUPABASE_URL = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
# Service role key bypasses RLS for server-side writes
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")

MEMBERS_TABLE = "member_activity"
HISTORY_TABLE = "member_history"

# --- Whop ---
WHOP_API_KEY = os.getenv("WHOP_API_KEY")
WHOP_API_BASE_URL = os.getenv("WHOP_API_BASE_URL", "https://api.whop.com/api/v1")
DEFAULT_COMPANY_ID = os.getenv("WHOP_COMPANY_ID") or os.getenv(
    "NEXT_PUBLIC_WHOP_COMPANY_ID"
)
WHOP_PAGE_SIZE = 100

# --- Jobs / cron ---
CRON_SECRET = os.getenv("CRON_SECRET", "dev_cron_secret")

# Calendar days (snapshot idempotency, history buckets) are counted in this zone
PULSE_TIMEZONE = os.getenv("PULSE_TIMEZONE", "UTC")

# Shared rate limit store for multi-instance deployments
REDIS_URL = os.getenv("REDIS_URL")

# --- HTTP retries ---
RETRY_MAX_ATTEMPTS = 5
RETRY_BACKOFF_SECONDS = 2
RETRY_TIMEOUT_SECONDS = 30

# --- Engagement ---
# days_since_active stored for members that were never active
NEVER_ACTIVE_DAYS = 999

# --- Sync / history ---
SYNC_RATE_LIMIT_SECONDS = 60
COMPARISON_DAYS = 7
HISTORY_MIN_DAYS = 1
HISTORY_MAX_DAYS = 90
HISTORY_DEFAULT_DAYS = 30
HISTORY_RETENTION_DAYS = 90

# Performance warnings in analytics
SLOW_OPERATION_MS = 5000
SLOW_WEBHOOK_MS = 1000

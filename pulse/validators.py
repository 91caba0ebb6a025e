"""
validators.py

last updated: 2026-10-19

Input sanitizing for ids and query params coming through the api.
"""

# external
import re

# internal
from pulse.settings import HISTORY_MIN_DAYS, HISTORY_MAX_DAYS

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NON_ID_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")


def _sanitize_prefixed_id(value, prefix):
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if not value.startswith(prefix):
        print(f"[VALIDATOR] Invalid id format (expected {prefix}*): {value[:40]}")
        return None
    sanitized = NON_ID_CHARS_RE.sub("", value)
    return sanitized if len(sanitized) > len(prefix) else None


def sanitize_company_id(company_id):
    """Whop company ids look like biz_xxx"""
    return _sanitize_prefixed_id(company_id, "biz_")


def sanitize_user_id(user_id):
    """Whop user ids look like user_xxx"""
    return _sanitize_prefixed_id(user_id, "user_")


def sanitize_days(value, min_days=HISTORY_MIN_DAYS, max_days=HISTORY_MAX_DAYS):
    """
    Parse a `days` query param. Returns an int in [min_days, max_days] or None.
    """
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if days < min_days or days > max_days:
        return None
    return days


def sanitize_email(email):
    if not email or not isinstance(email, str):
        return None
    trimmed = email.strip().lower()
    if not EMAIL_RE.match(trimmed):
        return None
    return trimmed

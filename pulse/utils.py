"""
utils.py

last updated: 2026-10-19

Scope
Timestamp parsing, calendar-day helpers and the retrying HTTP request used by
the Whop client.
"""

# external
from datetime import datetime, timezone
import time
import humanize
import pytz
from dateutil import parser as date_parser

# internal
from pulse.settings import (
    PULSE_TIMEZONE,
    RETRY_MAX_ATTEMPTS,
    RETRY_BACKOFF_SECONDS,
    RETRY_TIMEOUT_SECONDS,
)

SECONDS_PER_DAY = 60 * 60 * 24


def utc_now():
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """
    Parse an ISO string, unix timestamp (seconds or milliseconds) or datetime
    into an aware UTC datetime.
    Returns None for empty or unparseable input instead of raising.
    """
    if value is None or value == "":
        return None

    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = float(value)
            # millisecond timestamps
            if abs(seconds) > 1.0e11:
                seconds = seconds / 1000.0
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            s = value.strip()
            if not s:
                return None
            if s.replace(".", "", 1).isdigit():
                return parse_timestamp(float(s))
            dt = date_parser.isoparse(s)
        else:
            return None
    except (ValueError, TypeError, OverflowError, OSError):
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt):
    """Serialize a datetime for Supabase (ISO 8601, UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def ensure_iso(timestamp):
    """
    Ensures a timestamp is an ISO string.
    Unparseable input is returned as None.
    """
    return to_iso(parse_timestamp(timestamp))


def days_since(value, now=None):
    """
    Whole days (floored) elapsed between `value` and `now`.
    Future timestamps clamp to 0. Returns None when `value` can't be parsed.
    """
    dt = parse_timestamp(value)
    if dt is None:
        return None
    now = parse_timestamp(now) if now is not None else utc_now()
    elapsed = (now - dt).total_seconds()
    if elapsed <= 0:
        return 0
    return int(elapsed // SECONDS_PER_DAY)


def local_date(dt=None, tz_name=PULSE_TIMEZONE):
    """
    Calendar date of `dt` (default now) in the configured timezone.
    """
    dt = parse_timestamp(dt) if dt is not None else utc_now()
    return dt.astimezone(pytz.timezone(tz_name)).date()


def get_human_readable_duration(start_time: float) -> str:
    """
    Convert a time difference (from time.time()) into a human-readable string.

    Args:
        start_time: The start time from time.time()

    Returns:
        A human-readable string like "2 secs", "1 min", etc.
    """
    elapsed = time.time() - start_time
    human_readable = humanize.naturaldelta(elapsed)

    # Replace full words with abbreviations
    replacements = {
        " second": " sec",
        " minute": " min",
        " hour": " hr",
        " day": " d",
    }

    for word, abbrev in replacements.items():
        human_readable = human_readable.replace(word, abbrev)

    return human_readable


def request_with_retries(
    method,
    url,
    max_retries=RETRY_MAX_ATTEMPTS,
    backoff=RETRY_BACKOFF_SECONDS,
    timeout=RETRY_TIMEOUT_SECONDS,
    skip_retry_on_404=False,
    skip_retry_on_401=False,
    **kwargs,
):
    """
    Make an HTTP request with retries and linear backoff using cloudscraper.
    Args:
        method (str): 'get', 'post', etc.
        url (str): The URL to request.
        max_retries (int): Maximum number of attempts.
        backoff (int): Base backoff time in seconds.
        timeout (int): Timeout for each request.
        skip_retry_on_404 (bool): If True, return 404 responses immediately.
        skip_retry_on_401 (bool): If True, return 401 responses immediately.
        **kwargs: Passed to cloudscraper.request.
    Returns:
        Response, or None if all retries fail.
    """
    import cloudscraper
    from requests.exceptions import RequestException

    scraper = cloudscraper.create_scraper()

    for attempt in range(1, max_retries + 1):
        try:
            response = scraper.request(method, url, timeout=timeout, **kwargs)
            if skip_retry_on_404 and response.status_code == 404:
                return response
            if skip_retry_on_401 and response.status_code in (401, 403):
                # bad credentials won't fix themselves on retry
                return response
            response.raise_for_status()
            return response
        except RequestException as e:
            print(f"Request failed (attempt {attempt}/{max_retries}): {e}")
            if attempt == max_retries:
                print("Max retries reached. Giving up.")
                return None
            sleep_time = backoff * attempt
            print(f"Retrying in {sleep_time} seconds...")
            time.sleep(sleep_time)

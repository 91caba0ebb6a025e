"""
engagement.py

last updated: 2026-10-19

Engagement score calculation from a member's last activity.

# How the score is computed (d = whole days since last active):
#1. never active:  inactive, score 0, days_since_active = NEVER_ACTIVE_DAYS
#2. 0 <= d <= 7:   active,   100 (d=0) down to 80 (d=7)
#3. 8 <= d <= 30:  at_risk,  79 (d=8) down to 40 (d=30)
#4. d >= 31:       inactive, 39 (d=31) down to 0 (d=60 and later)

Status is picked from the band d falls into, never from the score.

functions
- calculate_engagement_score: timestamp -> score/status/days
- score_from_days: days -> score/status/days
- calculate_engagement_scores: batch version
- get_status_from_score: score -> status (display only)
- format_days_since_active: days -> "2 days ago"
- format_member_activity: member row -> "2 days ago" / "Never active"
"""

# external
import math

# internal
from pulse.settings import NEVER_ACTIVE_DAYS
from pulse.utils import days_since

ACTIVE = "active"
AT_RISK = "at_risk"
INACTIVE = "inactive"
STATUSES = (ACTIVE, AT_RISK, INACTIVE)

ACTIVE_MAX_DAYS = 7
AT_RISK_MAX_DAYS = 30


def _round_half_up(value):
    # scores are never negative, so this matches Math.round on the dashboard
    return int(math.floor(value + 0.5))


def never_active_score():
    return {"score": 0, "status": INACTIVE, "days_since_active": NEVER_ACTIVE_DAYS}


def score_from_days(days):
    """
    Map whole days since last activity to {score, status, days_since_active}.

    Args:
        days (int | None): days since last active, None for never active

    Returns:
        dict: {"score": int 0-100, "status": str, "days_since_active": int}
    """
    if days is None:
        return never_active_score()

    days = max(0, int(days))

    if days <= ACTIVE_MAX_DAYS:
        # 100 -> 80 over 7 days
        score = _round_half_up(100 - days * (20 / 7))
        status = ACTIVE
    elif days <= AT_RISK_MAX_DAYS:
        # 79 -> 40 over 22 days
        score = _round_half_up(79 - (days - 8) * (39 / 22))
        status = AT_RISK
    else:
        # 39 -> 0 over 29 days, floored at 0
        score = max(0, _round_half_up(39 - (days - 31) * (39 / 29)))
        status = INACTIVE

    return {"score": score, "status": status, "days_since_active": days}


def calculate_engagement_score(last_active_at, now=None):
    """
    Calculate engagement score from a last active timestamp.

    Args:
        last_active_at: ISO string, unix timestamp, datetime, or None
        now: reference instant (defaults to the current time)

    Returns:
        dict: {"score", "status", "days_since_active"}. Missing or unparseable
        timestamps are treated as never active.
    """
    return score_from_days(days_since(last_active_at, now=now))


def calculate_engagement_scores(members, now=None):
    """
    Batch calculate engagement scores for member dicts carrying
    `last_active` (or `last_active_at`).
    """
    return [
        calculate_engagement_score(
            member.get("last_active", member.get("last_active_at")), now=now
        )
        for member in members
    ]


def get_status_from_score(score):
    """
    Get engagement status from a score.
    Only for display when the band isn't known; stored status comes from days.
    """
    if score >= 80:
        return ACTIVE
    if score >= 40:
        return AT_RISK
    return INACTIVE


def format_days_since_active(days):
    """
    Format days since active into a human-readable string
    (e.g. "2 days ago", "1 month ago"). Only None means never active;
    use format_member_activity for stored rows.
    """
    if days is None:
        return "Never active"
    if days == 0:
        return "Active today"
    if days == 1:
        return "1 day ago"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        weeks = days // 7
        return "1 week ago" if weeks == 1 else f"{weeks} weeks ago"
    if days < 60:
        months = days // 30
        return "1 month ago" if months == 1 else f"{months} months ago"
    return "Over 2 months ago"


def format_member_activity(member):
    """
    Display text for a member_activity row. Never-active members are told
    apart by a missing last_active, not by the stored days sentinel.
    """
    if not member.get("last_active"):
        return "Never active"
    return format_days_since_active(member.get("days_since_active"))

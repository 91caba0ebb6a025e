"""
history.py

last updated: 2026-10-19

# How we get each metric:
#1. Trend point (per calendar day): average engagement_score and status counts
#   over that day's member_history batch.
#2. Current: count/status breakdown/average activity_score over live member_activity rows.
#3. Previous: same breakdown over the member_history batch recorded exactly
#   COMPARISON_DAYS calendar days ago.
#4. Changes: current - previous, field by field.

If there is no batch for the comparison day, previous == current and every
change is zero: no regression signal until there is enough history.
"""

# external
import math
from datetime import timedelta

# internal
from pulse.database import fetch_all_rows
from pulse.engagement import STATUSES
from pulse.members import get_all_members_from_db
from pulse.settings import (
    HISTORY_TABLE,
    COMPARISON_DAYS,
    HISTORY_DEFAULT_DAYS,
    HISTORY_MIN_DAYS,
    HISTORY_MAX_DAYS,
)
from pulse.utils import local_date, parse_timestamp

SUMMARY_KEYS = ("total", "active", "at_risk", "inactive", "avg_score")


def format_chart_label(day):
    """'Oct 19' style label for chart axes"""
    return f"{day.strftime('%b')} {day.day}"


def summarize_rows(rows, score_key):
    """
    Count and status breakdown plus average score for a list of rows.

    Args:
        rows (list): member_activity or member_history rows
        score_key (str): 'activity_score' or 'engagement_score'

    Returns:
        dict: {"total", "active", "at_risk", "inactive", "avg_score"}
    """
    total = len(rows)
    summary = {"total": total}
    for status in STATUSES:
        summary[status] = len([r for r in rows if r.get("status") == status])
    score_sum = sum(r.get(score_key) or 0 for r in rows)
    summary["avg_score"] = score_sum / total if total else 0.0
    return summary


def get_historical_data(supabase, company_id, days=HISTORY_DEFAULT_DAYS, now=None):
    """
    Get daily engagement trend points for charts

    Args:
        supabase: Supabase client object
        company_id (str): Whop company ID
        days (int): trailing calendar days to cover, including today (1-90)
        now (datetime, optional): reference instant

    Returns:
        list: ascending trend points; empty when there is no history yet
    """
    days = max(HISTORY_MIN_DAYS, min(HISTORY_MAX_DAYS, int(days)))
    today = local_date(now)
    start_day = today - timedelta(days=days - 1)

    print(f"[HISTORY] Fetching {days} days of history for {company_id} (since {start_day})")

    try:
        rows = fetch_all_rows(
            lambda: supabase.table(HISTORY_TABLE)
            .select("snapshot_date, engagement_score, status")
            .eq("company_id", company_id)
            .gte("snapshot_date", start_day.isoformat())
            .lte("snapshot_date", today.isoformat())
            .order("snapshot_date")
        )
    except Exception as e:
        print(f"[HISTORY] Error fetching historical data: {e}")
        return []

    if not rows:
        print("[HISTORY] No historical data found")
        return []

    by_day = {}
    for row in rows:
        # snapshot_date is NOT NULL and the query already filtered on it
        day = str(row["snapshot_date"])[:10]
        by_day.setdefault(day, []).append(row)

    points = []
    for day_str in sorted(by_day):
        summary = summarize_rows(by_day[day_str], "engagement_score")
        day = parse_timestamp(day_str).date()
        points.append(
            {
                "date": day_str,
                "label": format_chart_label(day),
                "avg_score": round(summary["avg_score"], 1),
                "total_members": summary["total"],
                "active_count": summary["active"],
                "at_risk_count": summary["at_risk"],
                "inactive_count": summary["inactive"],
            }
        )

    print(f"[HISTORY] Found {len(points)} days of historical data")
    return points


def get_comparison_data(supabase, company_id, days_back=COMPARISON_DAYS, now=None):
    """
    Get comparison data (current vs `days_back` days ago)

    Returns:
        dict | None: {"current", "previous", "changes", "has_historical_data"};
        None only when the live member rows can't be read
    """
    print(f"[COMPARISON] Fetching comparison data for {company_id}")

    try:
        current_rows = get_all_members_from_db(
            supabase, company_id, columns="status, activity_score"
        )
    except Exception as e:
        print(f"[COMPARISON] Error fetching current data: {e}")
        return None

    current = summarize_rows(current_rows, "activity_score")

    previous_day = local_date(now) - timedelta(days=days_back)
    try:
        historical_rows = fetch_all_rows(
            lambda: supabase.table(HISTORY_TABLE)
            .select("status, engagement_score")
            .eq("company_id", company_id)
            .eq("snapshot_date", previous_day.isoformat())
            .order("member_id")
        )
    except Exception as e:
        print(f"[COMPARISON] Error fetching history for {previous_day}: {e}")
        historical_rows = []

    if not historical_rows:
        print(f"[COMPARISON] No snapshot for {previous_day}, reporting no change")
        return {
            "current": current,
            "previous": dict(current),
            "changes": {key: 0 for key in SUMMARY_KEYS},
            "has_historical_data": False,
        }

    previous = summarize_rows(historical_rows, "engagement_score")
    changes = {key: current[key] - previous[key] for key in SUMMARY_KEYS}

    print(
        f"[COMPARISON] {previous['total']} members on {previous_day} -> {current['total']} now "
        f"(avg score {changes['avg_score']:+.1f})"
    )
    return {
        "current": current,
        "previous": previous,
        "changes": changes,
        "has_historical_data": True,
    }


def _seeded_random(seed):
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def generate_mock_trend_data(days=HISTORY_DEFAULT_DAYS, total_members=5, today=None):
    """
    Placeholder trend series for dashboards with no history yet.
    Seeded by the date so the same day always renders the same curve.
    """
    today = today or local_date()
    seed = today.year * 10000 + today.month * 100 + today.day

    points = []
    for i in range(days - 1, -1, -1):
        day = today - timedelta(days=i)

        base_score = 65 + _seeded_random(seed + i) * 20
        wave = math.sin(i / 5) * 10
        noise = (_seeded_random(seed + i + 1000) - 0.5) * 5
        score = int(round(max(40, min(100, base_score + wave + noise))))

        active_count = int(round(total_members * (score / 100)))
        at_risk_count = min(int(round(total_members * 0.3)), total_members - active_count)
        inactive_count = total_members - active_count - at_risk_count

        points.append(
            {
                "date": day.isoformat(),
                "label": format_chart_label(day),
                "avg_score": score,
                "total_members": total_members,
                "active_count": active_count,
                "at_risk_count": at_risk_count,
                "inactive_count": inactive_count,
            }
        )

    return points

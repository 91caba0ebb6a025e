from datetime import timedelta

from conftest import COMPANY_ID, FakeSupabase, FakeWhopClient

from pulse.errors import SUPABASE_UPSERT_ERROR, WHOP_API_ERROR, WhopAPIError
from pulse.members import (
    field,
    first_value,
    get_all_members_from_db,
    get_member,
    get_sync_stats,
    sync_members_from_whop,
    transform_whop_member,
)
from pulse.settings import MEMBERS_TABLE, NEVER_ACTIVE_DAYS


def test_field_reads_nested_values():
    record = {"user": {"id": "user_1", "email": ""}}
    assert field("user", "id")(record) == "user_1"
    assert field("user", "email")(record) is None
    assert field("user", "id", "deeper")(record) is None
    assert field("missing")(record) is None


def test_first_value_uses_order():
    extractors = [field("a"), field("b", "c")]
    assert first_value({"a": "x", "b": {"c": "y"}}, extractors) == "x"
    assert first_value({"b": {"c": "y"}}, extractors) == "y"
    assert first_value({}, extractors) is None


def test_transform_flat_member(now):
    member = {
        "id": "mem_1",
        "email": "jane@example.com",
        "username": "jane",
        "name": "Jane Doe",
        "last_active_at": (now - timedelta(days=3)).isoformat(),
        "total_sessions": 12,
    }
    row = transform_whop_member(member, COMPANY_ID, now=now)
    assert row["company_id"] == COMPANY_ID
    assert row["member_id"] == "mem_1"
    assert row["member_email"] == "jane@example.com"
    assert row["member_name"] == "Jane Doe"
    assert row["activity_score"] == 91
    assert row["status"] == "active"
    assert row["days_since_active"] == 3
    assert row["total_sessions"] == 12
    assert row["last_login"] == row["last_active"]


def test_transform_nested_membership_prefers_user_id(now):
    membership = {
        "id": "mem_2",
        "user": {"id": "user_2", "email": "sam@example.com", "username": "sam"},
        "created_at": (now - timedelta(days=10)).isoformat(),
    }
    row = transform_whop_member(membership, COMPANY_ID, now=now)
    assert row["member_id"] == "user_2"
    assert row["member_email"] == "sam@example.com"
    assert row["member_name"] == "sam"
    assert row["status"] == "at_risk"
    assert row["total_sessions"] == 0


def test_transform_falls_back_through_last_active_sources(now):
    membership = {
        "id": "mem_3",
        "access_pass": {"last_accessed_at": (now - timedelta(days=1)).isoformat()},
        "created_at": (now - timedelta(days=50)).isoformat(),
    }
    row = transform_whop_member(membership, COMPANY_ID, now=now)
    assert row["days_since_active"] == 1


def test_transform_member_without_activity(now):
    row = transform_whop_member({"id": "mem_4"}, COMPANY_ID, now=now)
    assert row["last_active"] is None
    assert row["activity_score"] == 0
    assert row["status"] == "inactive"
    assert row["days_since_active"] == NEVER_ACTIVE_DAYS
    assert row["member_name"] == "User mem_4"


def test_transform_name_from_email(now):
    row = transform_whop_member({"id": "mem_5", "email": "kim@example.com"}, COMPANY_ID, now=now)
    assert row["member_name"] == "kim"


def test_transform_without_id_is_skipped(now):
    assert transform_whop_member({"email": "x@example.com"}, COMPANY_ID, now=now) is None
    assert transform_whop_member("garbage", COMPANY_ID, now=now) is None


def test_sync_upserts_and_counts_skipped(supabase, now):
    members = [
        {"id": "mem_1", "last_active_at": (now - timedelta(days=2)).isoformat()},
        {"email": "no-id@example.com"},
        {"id": "mem_2"},
    ]
    result = sync_members_from_whop(supabase, COMPANY_ID, members=members, now=now)

    assert result == {"success": True, "count": 2, "skipped": 1, "errors": []}
    stored = {r["member_id"]: r for r in supabase.rows(MEMBERS_TABLE)}
    assert set(stored) == {"mem_1", "mem_2"}
    assert stored["mem_1"]["status"] == "active"


def test_sync_is_an_upsert(supabase, now):
    member = {"id": "mem_1", "last_active_at": (now - timedelta(days=40)).isoformat()}
    sync_members_from_whop(supabase, COMPANY_ID, members=[member], now=now)

    member["last_active_at"] = now.isoformat()
    sync_members_from_whop(supabase, COMPANY_ID, members=[member], now=now)

    rows = supabase.rows(MEMBERS_TABLE)
    assert len(rows) == 1
    assert rows[0]["activity_score"] == 100


def test_sync_drops_duplicate_member_records(supabase, now):
    members = [
        {"id": "mem_1", "last_active_at": (now - timedelta(days=20)).isoformat()},
        {"id": "mem_1", "last_active_at": (now - timedelta(days=1)).isoformat()},
    ]
    result = sync_members_from_whop(supabase, COMPANY_ID, members=members, now=now)
    assert result["count"] == 1
    assert result["skipped"] == 1
    assert supabase.rows(MEMBERS_TABLE)[0]["days_since_active"] == 1


def test_sync_fetches_from_whop(supabase, now):
    whop = FakeWhopClient(memberships=[{"id": "mem_1"}, {"id": "mem_2"}])
    result = sync_members_from_whop(supabase, COMPANY_ID, whop_client=whop, now=now)
    assert result["success"] is True
    assert result["count"] == 2
    assert whop.calls == [COMPANY_ID]


def test_sync_with_no_members(supabase, now):
    result = sync_members_from_whop(supabase, COMPANY_ID, members=[], now=now)
    assert result == {"success": True, "count": 0, "skipped": 0, "errors": []}
    assert supabase.calls == []


def test_sync_whop_failure(supabase, now):
    whop = FakeWhopClient(error=WhopAPIError("Unauthorized", status_code=401))
    result = sync_members_from_whop(supabase, COMPANY_ID, whop_client=whop, now=now)
    assert result["success"] is False
    assert result["count"] == 0
    assert result["errors"][0]["type"] == WHOP_API_ERROR
    assert result["errors"][0]["message"] == "Unauthorized"
    assert supabase.rows(MEMBERS_TABLE) == []


def test_sync_upsert_failure_reports_zero(supabase, now):
    supabase.fail_on(MEMBERS_TABLE, "upsert")
    result = sync_members_from_whop(
        supabase, COMPANY_ID, members=[{"id": "mem_1"}, {"id": "mem_2"}], now=now
    )
    assert result["success"] is False
    assert result["count"] == 0
    assert result["errors"][0]["type"] == SUPABASE_UPSERT_ERROR


def test_get_all_members_paginates():
    rows = [
        {"company_id": COMPANY_ID, "member_id": f"mem_{i:04d}", "status": "active"}
        for i in range(2500)
    ]
    rows.append({"company_id": "biz_other", "member_id": "mem_x", "status": "active"})
    supabase = FakeSupabase({MEMBERS_TABLE: rows})

    members = get_all_members_from_db(supabase, COMPANY_ID)
    assert len(members) == 2500
    assert supabase.calls.count((MEMBERS_TABLE, "select")) == 3


def test_get_member(supabase, now):
    sync_members_from_whop(supabase, COMPANY_ID, members=[{"id": "mem_1"}], now=now)
    assert get_member(supabase, COMPANY_ID, "mem_1")["member_id"] == "mem_1"
    assert get_member(supabase, COMPANY_ID, "mem_missing") is None


def test_sync_stats(supabase, now):
    members = [
        {"id": "mem_1", "last_active_at": now.isoformat()},
        {"id": "mem_2", "last_active_at": (now - timedelta(days=10)).isoformat()},
        {"id": "mem_3"},
    ]
    sync_members_from_whop(supabase, COMPANY_ID, members=members, now=now)

    stats = get_sync_stats(supabase, COMPANY_ID)
    assert stats["total"] == 3
    assert stats["active"] == 1
    assert stats["at_risk"] == 1
    assert stats["inactive"] == 1
    assert stats["last_synced"] == now.isoformat()


def test_sync_stats_on_storage_error(supabase):
    supabase.fail_on(MEMBERS_TABLE, "select")
    stats = get_sync_stats(supabase, COMPANY_ID)
    assert stats == {"total": 0, "active": 0, "at_risk": 0, "inactive": 0, "last_synced": None}


def test_sync_keeps_going_past_a_malformed_record(supabase, now):
    members = [
        {"id": "mem_1", "last_active_at": now.isoformat()},
        {"id": "mem_2", "email": 12345},
    ]
    result = sync_members_from_whop(supabase, COMPANY_ID, members=members, now=now)

    assert result["success"] is True
    assert result["count"] + result["skipped"] == len(members)
    stored = {r["member_id"]: r for r in supabase.rows(MEMBERS_TABLE)}
    assert stored["mem_1"]["activity_score"] == 100
    assert stored["mem_2"]["member_email"] is None
    assert stored["mem_2"]["member_name"] == "User mem_2"


def test_record_that_fails_to_transform_is_skipped(supabase, now, monkeypatch):
    real_transform = transform_whop_member

    def flaky_transform(member, company_id, now=None):
        if member.get("id") == "mem_bad":
            raise TypeError("unexpected field shape")
        return real_transform(member, company_id, now=now)

    monkeypatch.setattr("pulse.members.transform_whop_member", flaky_transform)
    members = [{"id": "mem_1"}, {"id": "mem_bad"}, {"id": "mem_3"}]

    result = sync_members_from_whop(supabase, COMPANY_ID, members=members, now=now)

    assert result == {"success": True, "count": 2, "skipped": 1, "errors": []}
    assert {r["member_id"] for r in supabase.rows(MEMBERS_TABLE)} == {"mem_1", "mem_3"}

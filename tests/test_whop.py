import pytest

from pulse.errors import WhopAPIError
from pulse.whop import WhopClient


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


def test_client_requires_api_key(monkeypatch):
    monkeypatch.setattr("pulse.whop.WHOP_API_KEY", None)
    with pytest.raises(ValueError):
        WhopClient()


def test_get_all_memberships_follows_cursors(monkeypatch):
    pages = {
        None: {
            "data": [{"id": "mem_1"}, {"id": "mem_2"}],
            "page_info": {"has_next_page": True, "end_cursor": "c1"},
        },
        "c1": {
            "data": [{"id": "mem_3"}],
            "page_info": {"has_next_page": False, "end_cursor": "c2"},
        },
    }
    requests_made = []

    def fake_request(method, url, **kwargs):
        requests_made.append((url, kwargs["params"]))
        return FakeResponse(200, pages[kwargs["params"].get("after")])

    monkeypatch.setattr("pulse.whop.request_with_retries", fake_request)
    client = WhopClient(api_key="test_key", base_url="https://whop.test/api/v1/")

    memberships = client.get_all_memberships("biz_test123")

    assert [m["id"] for m in memberships] == ["mem_1", "mem_2", "mem_3"]
    assert requests_made[0][0] == "https://whop.test/api/v1/memberships"
    assert requests_made[0][1]["company_id"] == "biz_test123"
    assert requests_made[1][1]["after"] == "c1"
    assert client.headers["Authorization"] == "Bearer test_key"


def test_error_body_becomes_whop_api_error(monkeypatch):
    monkeypatch.setattr(
        "pulse.whop.request_with_retries",
        lambda method, url, **kwargs: FakeResponse(401, {"error": {"message": "Invalid API key"}}),
    )
    client = WhopClient(api_key="bad")

    with pytest.raises(WhopAPIError) as exc_info:
        client.get_company("biz_test123")

    assert str(exc_info.value) == "Invalid API key"
    assert exc_info.value.status_code == 401


def test_exhausted_retries(monkeypatch):
    monkeypatch.setattr("pulse.whop.request_with_retries", lambda method, url, **kwargs: None)
    with pytest.raises(WhopAPIError):
        WhopClient(api_key="key").list_memberships("biz_test123")

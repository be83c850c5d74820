import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from assignment_api.google_calendar import sign_state, verify_state
from assignment_api.routers import calendar as calendar_router

USER = "student-1"


def link_calendar(repo, user_id=USER, sync_enabled=True):
    asyncio.run(repo.get_or_create_user(user_id))
    asyncio.run(
        repo.update_user(
            user_id,
            {
                "google_access_token": "access-1",
                "google_refresh_token": "refresh-1",
                "calendar_sync_enabled": sync_enabled,
            },
        )
    )


def create(client, headers, title="Essay", days=10):
    due = (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()
    res = client.post("/api/v1/assignments/", json={"title": title, "due_date": due}, headers=headers)
    assert res.status_code == 201
    return res.json()


def sync(client, headers, assignment_id):
    return client.post("/api/v1/calendar/sync", json={"assignment_id": assignment_id}, headers=headers)


class TestCalendarStatus:
    def test_unlinked_user(self, client, auth_headers):
        res = client.get("/api/v1/calendar/status", headers=auth_headers)
        assert res.status_code == 200
        assert res.json() == {"connected": False, "sync_enabled": False}

    def test_linked_user(self, client, repo, auth_headers):
        link_calendar(repo)
        assert client.get("/api/v1/calendar/status", headers=auth_headers).json() == {
            "connected": True,
            "sync_enabled": True,
        }

    def test_auth_url_needs_google_client(self, client, auth_headers, monkeypatch):
        for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "OAUTH_STATE_SECRET"):
            monkeypatch.delenv(name, raising=False)
        assert client.get("/api/v1/calendar/auth-url", headers=auth_headers).status_code == 503

        monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "client-secret")
        res = client.get("/api/v1/calendar/auth-url", headers=auth_headers)
        assert res.status_code == 200
        [state] = parse_qs(urlparse(res.json()["auth_url"]).query)["state"]
        assert verify_state("client-secret", USER, state)
        assert not verify_state("client-secret", "student-2", state)


@pytest.fixture
def state(monkeypatch):
    monkeypatch.setenv("OAUTH_STATE_SECRET", "state-key")
    return sign_state("state-key", USER)


class TestOAuthCallback:
    def test_error_from_google(self, client, auth_headers):
        res = client.get("/api/v1/calendar/callback?error=access_denied", headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["detail"] == "Calendar connection failed"

    def test_missing_code(self, client, auth_headers, state):
        res = client.get(f"/api/v1/calendar/callback?state={state}", headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["detail"] == "No authorization code"

    def test_code_exchange_links_calendar(self, client, repo, auth_headers, monkeypatch, state):
        async def fake_exchange(settings, code, http_client=None):
            assert code == "auth-code"
            return {"access_token": "fresh-access", "refresh_token": "fresh-refresh", "expires_in": 3600}

        monkeypatch.setattr(calendar_router, "exchange_code", fake_exchange)
        res = client.get(f"/api/v1/calendar/callback?code=auth-code&state={state}", headers=auth_headers)
        assert res.status_code == 200

        user = asyncio.run(repo.get_user(USER))
        assert user["google_access_token"] == "fresh-access"
        assert user["google_refresh_token"] == "fresh-refresh"
        assert user["calendar_sync_enabled"] is True

    def test_reconnect_without_refresh_token_keeps_old_one(self, client, repo, auth_headers, monkeypatch, state):
        link_calendar(repo)

        async def fake_exchange(settings, code, http_client=None):
            return {"access_token": "fresh-access"}

        monkeypatch.setattr(calendar_router, "exchange_code", fake_exchange)
        client.get(f"/api/v1/calendar/callback?code=c&state={state}", headers=auth_headers)
        assert asyncio.run(repo.get_user(USER))["google_refresh_token"] == "refresh-1"

    def test_state_must_belong_to_caller(self, client, repo, auth_headers, other_headers, monkeypatch, state):
        exchanged = []

        async def fake_exchange(settings, code, http_client=None):
            exchanged.append(code)
            return {"access_token": "fresh-access"}

        monkeypatch.setattr(calendar_router, "exchange_code", fake_exchange)
        for headers, query in (
            (auth_headers, "code=c"),
            (auth_headers, "code=c&state=forged.0000"),
            (auth_headers, f"code=c&state={sign_state('other-key', USER)}"),
            (other_headers, f"code=c&state={state}"),
        ):
            res = client.get(f"/api/v1/calendar/callback?{query}", headers=headers)
            assert res.status_code == 400, query
            assert res.json()["message"] == "Invalid OAuth state"

        assert exchanged == []
        assert asyncio.run(repo.get_user(USER))["google_access_token"] is None

    def test_token_reply_without_access_token_is_bad_gateway(self, client, repo, auth_headers, monkeypatch, state):
        async def fake_exchange(settings, code, http_client=None):
            return {"refresh_token": "fresh-refresh"}

        monkeypatch.setattr(calendar_router, "exchange_code", fake_exchange)
        res = client.get(f"/api/v1/calendar/callback?code=c&state={state}", headers=auth_headers)
        assert res.status_code == 502
        assert res.json()["error"] == "CalendarAPIError"
        assert asyncio.run(repo.get_user(USER))["calendar_sync_enabled"] is False


class TestSyncEndpoints:
    def test_sync_requires_enabled_calendar(self, client, repo, calendar_client, auth_headers):
        a = create(client, auth_headers)
        res = sync(client, auth_headers, a["id"])
        assert res.status_code == 400
        assert res.json()["message"] == "Calendar sync is not enabled"

        link_calendar(repo, sync_enabled=False)
        assert sync(client, auth_headers, a["id"]).status_code == 400
        assert calendar_client.calls == []

    def test_sync_stores_event_id(self, client, repo, calendar_client, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers, title="Essay")

        res = sync(client, auth_headers, a["id"])
        assert res.status_code == 200
        assert res.json()["event_id"] == "evt-1"

        stored = client.get(f"/api/v1/assignments/{a['id']}", headers=auth_headers).json()
        assert stored["google_event_id"] == "evt-1"
        assert stored["sync_with_calendar"] is True
        op, _, event = calendar_client.calls[0]
        assert op == "create"
        assert event["summary"].endswith("Essay")

    def test_sync_twice_rejected(self, client, repo, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers)
        sync(client, auth_headers, a["id"])
        assert sync(client, auth_headers, a["id"]).status_code == 400

    def test_sync_unknown_or_foreign_assignment(self, client, repo, auth_headers, other_headers):
        link_calendar(repo)
        link_calendar(repo, user_id="student-2")
        a = create(client, auth_headers)
        assert sync(client, auth_headers, "missing").status_code == 404
        assert sync(client, other_headers, a["id"]).status_code == 404

    def test_google_failure_is_bad_gateway(self, client, repo, calendar_client, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers)
        calendar_client.fail = True
        res = sync(client, auth_headers, a["id"])
        assert res.status_code == 502
        assert res.json()["error"] == "CalendarAPIError"
        stored = client.get(f"/api/v1/assignments/{a['id']}", headers=auth_headers).json()
        assert stored["google_event_id"] is None

    def test_resync_requires_synced_assignment(self, client, repo, calendar_client, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers)
        res = client.put("/api/v1/calendar/sync", json={"assignment_id": a["id"]}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "Assignment is not synced with calendar"

        sync(client, auth_headers, a["id"])
        res = client.put("/api/v1/calendar/sync", json={"assignment_id": a["id"]}, headers=auth_headers)
        assert res.status_code == 200
        assert calendar_client.calls[-1][:2] == ("update", "evt-1")

    def test_unsync_clears_event(self, client, repo, calendar_client, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers)
        sync(client, auth_headers, a["id"])

        res = client.delete(f"/api/v1/calendar/sync?assignment_id={a['id']}", headers=auth_headers)
        assert res.status_code == 200
        assert calendar_client.calls[-1][:2] == ("delete", "evt-1")
        stored = client.get(f"/api/v1/assignments/{a['id']}", headers=auth_headers).json()
        assert stored["google_event_id"] is None
        assert stored["sync_with_calendar"] is False

        again = client.delete(f"/api/v1/calendar/sync?assignment_id={a['id']}", headers=auth_headers)
        assert again.status_code == 400


class TestMirroredLifecycle:
    @pytest.fixture
    def synced(self, client, repo, auth_headers):
        link_calendar(repo)
        a = create(client, auth_headers, title="Essay")
        sync(client, auth_headers, a["id"])
        return a["id"]

    def test_update_pushes_to_calendar(self, client, calendar_client, auth_headers, synced):
        res = client.patch(f"/api/v1/assignments/{synced}", json={"title": "Essay v2"}, headers=auth_headers)
        assert res.status_code == 200
        op, event_id, event = calendar_client.calls[-1]
        assert (op, event_id) == ("update", "evt-1")
        assert event["summary"].endswith("Essay v2")

    def test_calendar_failure_does_not_fail_update(self, client, calendar_client, auth_headers, synced):
        calendar_client.fail = True
        res = client.patch(f"/api/v1/assignments/{synced}", json={"priority": "high"}, headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["priority"] == "high"

    def test_unsynced_assignment_is_not_pushed(self, client, calendar_client, auth_headers):
        a = create(client, auth_headers)
        client.patch(f"/api/v1/assignments/{a['id']}", json={"title": "x"}, headers=auth_headers)
        assert calendar_client.calls == []

    def test_delete_removes_event(self, client, calendar_client, auth_headers, synced):
        res = client.delete(f"/api/v1/assignments/{synced}", headers=auth_headers)
        assert res.status_code == 200
        assert calendar_client.calls[-1][:2] == ("delete", "evt-1")

    def test_calendar_failure_does_not_block_delete(self, client, calendar_client, auth_headers, synced):
        calendar_client.fail = True
        assert client.delete(f"/api/v1/assignments/{synced}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/v1/assignments/{synced}", headers=auth_headers).status_code == 404

    def test_disconnect_clears_event_ids(self, client, repo, auth_headers, synced):
        res = client.post("/api/v1/calendar/disconnect", headers=auth_headers)
        assert res.status_code == 200

        stored = client.get(f"/api/v1/assignments/{synced}", headers=auth_headers).json()
        assert stored["google_event_id"] is None
        assert stored["sync_with_calendar"] is False
        assert client.get("/api/v1/calendar/status", headers=auth_headers).json() == {
            "connected": False,
            "sync_enabled": False,
        }
        assert asyncio.run(repo.get_user(USER))["google_refresh_token"] is None

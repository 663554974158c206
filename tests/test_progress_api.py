from __future__ import annotations

from contextlib import contextmanager
from uuid import uuid4

from levelup_engine.errors import StorageUnavailable
from levelup_engine.service import ProgressionService
from levelup_engine.store import InMemoryUserStateStore


def _quiz(score: int = 10, max_score: int = 10, *, cid: str | None = None, at: str | None = None) -> dict:
    body = {
        "kind": "quiz_scored",
        "payload": {"score": score, "maxScore": max_score, "gameType": "PYTHON_QUIZ"},
        "clientEventId": cid or f"evt_{uuid4().hex}",
    }
    if at:
        body["occurredAt"] = at
    return body


def test_health_reports_catalog(api_client) -> None:
    resp = api_client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["achievements"] > 0
    assert len(body["catalog_hash"]) == 64
    assert resp.headers.get("X-Request-Id")


def test_requests_need_a_bearer_token(api_client) -> None:
    assert api_client.get("/api/progress/me").status_code == 401
    resp = api_client.get("/api/progress/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_guest_token_works(api_client) -> None:
    guest = api_client.post("/api/auth/guest")
    assert guest.status_code == 200
    token = guest.json()["access_token"]
    me = api_client.get("/api/progress/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["userID"] == guest.json()["user_id"]


def test_apply_quiz_event_and_replay(api_client, auth_headers) -> None:
    user_id, headers = auth_headers()
    body = _quiz(cid="quiz-1")

    resp = api_client.post("/api/progress/events", json=body, headers={**headers, "X-Request-Id": "req_test_1"})
    assert resp.status_code == 200, resp.text
    assert resp.headers["X-Request-Id"] == "req_test_1"
    out = resp.json()
    assert out["eventXP"] == 20
    assert [a["id"] for a in out["newAchievements"]] == ["quiz-master", "first-game"]
    assert out["achievementXP"] == 75
    assert out["xpEarned"] == 95
    assert out["newTotalXP"] == 95
    assert out["newLevel"] == 1
    assert out["clientEventID"] == "quiz-1"

    replay = api_client.post("/api/progress/events", json=body, headers=headers)
    assert replay.status_code == 200
    assert replay.json() == out

    me = api_client.get("/api/progress/me", headers=headers).json()
    assert me["userID"] == user_id
    assert me["totalXP"] == 95
    assert me["xpToNextLevel"] == 5
    assert me["gamesPlayed"] == 1
    assert me["gameStats"]["PYTHON_QUIZ"]["bestScore"] == 10
    assert me["rank"] >= 1

    achievements = api_client.get("/api/progress/me/achievements", headers=headers).json()
    assert {a["achievement"]["id"] for a in achievements} == {"quiz-master", "first-game"}

    activity = api_client.get("/api/progress/me/activity", headers=headers).json()
    types = [a["type"] for a in activity]
    assert types.count("progress_applied") == 1
    assert types.count("achievement_unlocked") == 2
    assert "high_score" in types
    applied = next(a for a in activity if a["type"] == "progress_applied")
    assert applied["payload"]["kind"] == "quiz_scored"
    assert applied["payload"]["user_id"] == user_id


def test_invalid_payload_maps_to_422(api_client, auth_headers) -> None:
    _, headers = auth_headers()
    resp = api_client.post("/api/progress/events", json=_quiz(5, 0), headers=headers)
    assert resp.status_code == 422
    assert resp.json()["detail"]["error"] == "invalid_payload"

    missing_id = {"kind": "lesson_completed"}
    assert api_client.post("/api/progress/events", json=missing_id, headers=headers).status_code == 422


def test_backdated_event_maps_to_422(api_client, auth_headers) -> None:
    _, headers = auth_headers()
    ok = api_client.post(
        "/api/progress/events",
        json={"kind": "lesson_completed", "clientEventId": "l-1", "occurredAt": "2026-03-10T12:00:00Z"},
        headers=headers,
    )
    assert ok.status_code == 200
    late = api_client.post(
        "/api/progress/events",
        json={"kind": "lesson_completed", "clientEventId": "l-2", "occurredAt": "2026-03-05T12:00:00Z"},
        headers=headers,
    )
    assert late.status_code == 422
    assert late.json()["detail"]["error"] == "invalid_event_time"


def test_future_dated_event_maps_to_422(api_client, auth_headers) -> None:
    _, headers = auth_headers()
    resp = api_client.post(
        "/api/progress/events",
        json={"kind": "lesson_completed", "clientEventId": "f-1", "occurredAt": "2099-01-01T00:00:00Z"},
        headers=headers,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["error"] == "invalid_event_time"

    now = api_client.post(
        "/api/progress/events",
        json={"kind": "lesson_completed", "clientEventId": "f-1"},
        headers=headers,
    )
    assert now.status_code == 200
    assert now.json()["newTotalXP"] > 0


def test_daily_claim_once_per_day(api_client, auth_headers) -> None:
    _, headers = auth_headers()
    first = api_client.post("/api/progress/daily-claim", headers=headers)
    assert first.status_code == 200, first.text
    assert first.json()["alreadyClaimedToday"] is False
    assert first.json()["eventXP"] == 50

    second = api_client.post("/api/progress/daily-claim", json={"clientEventId": "claim-2"}, headers=headers)
    assert second.status_code == 200
    assert second.json()["alreadyClaimedToday"] is True
    assert second.json()["xpEarned"] == 0
    assert second.json()["newTotalXP"] == 50


def test_leaderboard_endpoints_agree(api_client, auth_headers) -> None:
    uid_a, headers_a = auth_headers()
    uid_b, headers_b = auth_headers()
    for _ in range(3):
        api_client.post(
            "/api/progress/events",
            json={"kind": "module_completed", "clientEventId": f"m_{uuid4().hex}"},
            headers=headers_a,
        )
    api_client.post(
        "/api/progress/events",
        json={"kind": "lesson_completed", "clientEventId": f"l_{uuid4().hex}"},
        headers=headers_b,
    )

    me_a = api_client.get("/api/leaderboard/me", headers=headers_a).json()
    me_b = api_client.get("/api/leaderboard/me", headers=headers_b).json()
    assert me_a["rank"] < me_b["rank"]
    assert api_client.get(f"/api/leaderboard/rank/{uid_b}", headers=headers_a).json() == me_b

    top = api_client.get("/api/leaderboard", params={"limit": 50}, headers=headers_a).json()
    xps = [row["totalXP"] for row in top]
    assert xps == sorted(xps, reverse=True)
    for row in top:
        assert row["rank"] == 1 + sum(1 for x in xps if x > row["totalXP"])

    assert api_client.get("/api/leaderboard", params={"limit": 0}, headers=headers_a).status_code == 422


class _DownStore(InMemoryUserStateStore):
    @contextmanager
    def transaction(self):
        raise StorageUnavailable("database is down")
        yield


def test_storage_failure_maps_to_503(api_client, auth_headers) -> None:
    from levelup_api.deps import get_progression_service

    _, headers = auth_headers()
    api_client.app.dependency_overrides[get_progression_service] = lambda: ProgressionService(_DownStore())
    try:
        resp = api_client.post("/api/progress/events", json={"kind": "lesson_completed", "clientEventId": "x"}, headers=headers)
    finally:
        api_client.app.dependency_overrides.pop(get_progression_service, None)
    assert resp.status_code == 503
    assert resp.json()["detail"]["error"] == "storage_unavailable"
    assert resp.headers.get("X-Request-Id")

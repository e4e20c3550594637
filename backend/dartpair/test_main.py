from __future__ import annotations

from fastapi.testclient import TestClient

from dartpair.config import ServerConfig
from dartpair.main import create_app


def _client() -> TestClient:
    return TestClient(create_app(ServerConfig(bot_delay_s=0)))


def test_root_redirects_browsers_to_docs() -> None:
    client = _client()
    r = client.get("/", headers={"accept": "text/html"}, follow_redirects=False)
    assert r.status_code in {302, 307}, r.text
    assert r.headers["location"] == "/docs"

    r = client.get("/")
    assert r.status_code == 200, r.text
    assert "WS /ws" in r.json()["endpoints"]


def test_health() -> None:
    r = _client().get("/health")
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "ok", "sessions": 0}


def test_checkout_endpoint() -> None:
    client = _client()
    r = client.get("/checkout", params={"remaining": 170})
    assert r.status_code == 200, r.text
    assert r.json()["routes"][0] == ["T20", "T20", "DBULL"]

    r = client.get("/checkout", params={"remaining": 169})
    assert r.json()["routes"] == []


def test_bot_profile_endpoint() -> None:
    client = _client()
    r = client.get("/bot/profile", params={"skill_level": 9})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["description"] == "Expert"
    assert body["average_score"] == 100.0

    assert client.get("/bot/profile", params={"skill_level": 11}).status_code == 422


def test_unknown_match_is_404() -> None:
    assert _client().get("/matches/BAD00000").status_code == 404


def test_websocket_create_join_and_throw() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            host.send_json({"event": "create_match", "data": {"settings": {"starting_score": 301}}})
            created = host.receive_json()
            assert created["event"] == "match_created"
            code = created["data"]["code"]

            guest.send_json({"event": "join_match", "data": {"code": code}})
            assert guest.receive_json()["event"] == "state"
            assert host.receive_json() == {"event": "client_joined", "data": {"client_count": 2}}
            assert host.receive_json()["event"] == "connection_status_changed"

            r = client.get(f"/matches/{created['data']['master_code']}")
            assert r.status_code == 200, r.text
            assert r.json()["players"][0]["score"] == 301

            host.send_json({"event": "set_starting_player", "data": {"code": code, "player_id": 1}})
            assert host.receive_json()["event"] == "state"

            host.send_json({"event": "submit_throw", "data": {"code": code, "player_id": 1, "score": 141}})
            state = host.receive_json()
            assert state["event"] == "state"
            assert state["data"]["players"][0]["score"] == 160
            assert state["data"]["players"][0]["checkout_hint"] == ["T20", "T20", "D20"]


def test_websocket_bot_replies() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "create_match", "data": {"settings": {"opponent": {"enabled": True}}}})
            code = ws.receive_json()["data"]["code"]

            ws.send_json({"event": "set_starting_player", "data": {"code": code, "player_id": 1}})
            assert ws.receive_json()["event"] == "state"
            ws.send_json({"event": "submit_throw", "data": {"code": code, "player_id": 1, "score": 60}})
            assert ws.receive_json()["data"]["current_player_id"] == 2

            reply = ws.receive_json()
            assert reply["event"] == "state"
            assert [t["player_id"] for t in reply["data"]["throw_history"]] == [1, 2]
            assert reply["data"]["current_player_id"] == 1


def test_eleventh_join_is_rate_limited() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            for _ in range(10):
                ws.send_json({"event": "join_match", "data": {"code": "BAD00000"}})
                assert ws.receive_json()["data"]["reason"] == "session_not_found"
            ws.send_json({"event": "join_match", "data": {"code": "BAD00000"}})
            assert ws.receive_json() == {
                "event": "session_error",
                "data": {"reason": "rate_limited", "message": "too many join attempts, try again later"},
            }


def test_malformed_json_is_a_bad_request() -> None:
    with _client() as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{not json")
            assert ws.receive_json()["data"]["reason"] == "bad_request"

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

import app as app_module
from app import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _connect_id(ws):
    frame = ws.receive_json()
    assert frame["event"] == "connected"
    return frame["data"]["id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["rooms"] >= 0
    assert body["connections"] >= 0


def test_signaling_round_trip(client):
    with client.websocket_connect("/ws") as host_ws:
        host_id = _connect_id(host_ws)
        host_ws.send_json({"event": "create-room", "data": {"maxPeers": 2}, "ack": 1})
        ack = host_ws.receive_json()
        assert ack["event"] == "ack"
        assert ack["ack"] == 1
        room = ack["data"]
        assert room["ok"] is True

        with client.websocket_connect("/ws") as peer_ws:
            peer_id = _connect_id(peer_ws)
            peer_ws.send_json({"event": "join-room", "data": {"code": room["code"], "token": room["token"]}, "ack": "j"})
            assert peer_ws.receive_json() == {"event": "ack", "ack": "j", "data": {"ok": True, "hostId": host_id}}
            assert host_ws.receive_json() == {
                "event": "peer-joined",
                "data": {"peerId": peer_id, "code": room["code"]},
            }

            peer_ws.send_json({"event": "signal", "data": {"code": room["code"], "to": host_id, "data": {"type": "offer"}}})
            assert host_ws.receive_json() == {"event": "signal", "data": {"from": peer_id, "data": {"type": "offer"}}}

            host_ws.send_json({"event": "leave-room", "data": {"code": room["code"]}, "ack": 2})
            assert host_ws.receive_json()["data"] == {"ok": True}
            assert peer_ws.receive_json() == {"event": "host-left", "data": {"code": room["code"]}}

            peer_ws.send_json({"event": "join-room", "data": {"code": room["code"], "token": room["token"]}, "ack": 3})
            assert peer_ws.receive_json()["data"] == {"ok": False, "error": "room_not_found"}


def test_malformed_frames_are_ignored(client):
    with client.websocket_connect("/ws") as ws:
        _connect_id(ws)
        ws.send_text("not json")
        ws.send_text("[1, 2, 3]")
        ws.send_json({"event": "join-room", "data": {}, "ack": 9})
        assert ws.receive_json() == {"event": "ack", "ack": 9, "data": {"ok": False, "error": "missing_params"}}


def test_connection_over_address_cap_is_rejected(client, monkeypatch):
    monkeypatch.setattr(app_module.connection_registry, "max_per_address", 0)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
    assert app_module.connection_registry.total() == 0


def test_non_string_event_does_not_drop_connection(client):
    with client.websocket_connect("/ws") as host_ws:
        host_id = _connect_id(host_ws)
        host_ws.send_json({"event": "create-room", "data": {}, "ack": 1})
        room = host_ws.receive_json()["data"]

        with client.websocket_connect("/ws") as peer_ws:
            peer_id = _connect_id(peer_ws)
            peer_ws.send_json({"event": "join-room", "data": {"code": room["code"], "token": room["token"]}, "ack": 1})
            assert peer_ws.receive_json()["data"]["ok"] is True
            host_ws.receive_json()  # peer-joined

            host_ws.send_json({"event": ["x"], "data": {}, "ack": 2})
            host_ws.send_json({"event": {"nested": 1}, "data": {}, "ack": 3})

            # The room is still alive and the host still reachable
            peer_ws.send_json({"event": "signal", "data": {"code": room["code"], "to": host_id, "data": "ping"}})
            assert host_ws.receive_json() == {"event": "signal", "data": {"from": peer_id, "data": "ping"}}
            host_ws.send_json({"event": "signal", "data": {"code": room["code"], "to": peer_id, "data": "pong"}})
            assert peer_ws.receive_json() == {"event": "signal", "data": {"from": host_id, "data": "pong"}}
            assert app_module.room_registry.get_room(room["code"]) is not None

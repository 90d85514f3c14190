"""
Tests for the relay's HTTP routes and the /ws endpoint, through FastAPI's TestClient.
"""

import time
import uuid

import pytest
from fastapi.testclient import TestClient

from filebeam.main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def fresh_code() -> str:
    # The app's registry is shared across tests
    return uuid.uuid4().hex[:8]


def wait_for_room(client: TestClient, code: str, **expected) -> dict:
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        response = client.get(f"/api/rooms/{code}")
        if response.status_code == 200:
            body = response.json()
            if all(body[k] == v for k, v in expected.items()):
                return body
        time.sleep(0.01)
    raise AssertionError(f"Room {code} never reached {expected}")


def join(ws, code: str, is_sender: bool) -> None:
    ws.send_json({"type": "join-room", "roomId": code, "isSender": is_sender})


class TestRoutes:
    def test_identity(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["message"] == "FileBeam signaling server is running"
        assert "timestamp" in body

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["uptime"] >= 0

    def test_unknown_room_is_404(self, client):
        response = client.get(f"/api/rooms/{fresh_code()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Room not found"


class TestWebSocket:
    def test_pairing_and_forwarding(self, client):
        code = fresh_code()
        offer = {"type": "offer", "sdp": "v=0"}
        answer = {"type": "answer", "sdp": "v=0"}

        with client.websocket_connect("/ws") as sender:
            join(sender, code, True)
            wait_for_room(client, code, has_sender=True)

            with client.websocket_connect("/ws") as receiver:
                join(receiver, code, False)
                assert sender.receive_json() == {"type": "receiver-joined"}

                sender.send_json({"type": "offer", "roomId": code, "offer": offer})
                assert receiver.receive_json() == {"type": "offer", "offer": offer}

                receiver.send_json({"type": "answer", "roomId": code, "answer": answer})
                assert sender.receive_json() == {"type": "answer", "answer": answer}

                room = wait_for_room(client, code, has_receiver=True)
                assert room == {"room_id": code, "has_sender": True, "has_receiver": True}

            assert sender.receive_json() == {"type": "peer-disconnected"}
            wait_for_room(client, code, has_receiver=False)

        wait_for_room_gone(client, code)

    def test_malformed_message_keeps_connection_open(self, client):
        code = fresh_code()
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{not json")
            ws.send_json({"type": "teleport", "roomId": code})
            join(ws, code, True)
            assert wait_for_room(client, code, has_sender=True)["has_receiver"] is False


def wait_for_room_gone(client: TestClient, code: str) -> None:
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        if client.get(f"/api/rooms/{code}").status_code == 404:
            return
        time.sleep(0.01)
    raise AssertionError(f"Room {code} was never removed")

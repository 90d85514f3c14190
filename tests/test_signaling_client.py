"""
Tests for the relay client against a real WebSocket server on localhost.
"""

import asyncio
import socket

import pytest
import websockets

from filebeam.errors import SignalingUnavailable
from filebeam.peer.signaling_client import SignalingClient
from filebeam.signaling.registry import RoomRegistry
from filebeam.signaling.relay import SignalingRelay


class _ServerSocket:
    """Adapts a websockets server connection to the relay's connection shape."""

    def __init__(self, ws) -> None:
        self.ws = ws

    async def accept(self) -> None:
        pass

    async def send_text(self, data: str) -> None:
        await self.ws.send(data)


@pytest.fixture
async def relay_url():
    relay = SignalingRelay(RoomRegistry())

    async def handler(ws):
        connection_id = await relay.connect(_ServerSocket(ws))
        try:
            async for raw in ws:
                await relay.handle_message(connection_id, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            await relay.on_disconnect(connection_id)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class Inbox:
    def __init__(self) -> None:
        self.messages: asyncio.Queue = asyncio.Queue()
        self.statuses: list[bool] = []

    async def on_message(self, message: dict) -> None:
        await self.messages.put(message)

    async def on_status(self, connected: bool) -> None:
        self.statuses.append(connected)


async def make_client(url: str) -> tuple[SignalingClient, Inbox]:
    client = SignalingClient(url)
    inbox = Inbox()
    client.set_handler(inbox.on_message)
    client.set_status_handler(inbox.on_status)
    await client.connect()
    return client, inbox


async def test_pairing_and_offer_relay(relay_url):
    sender, sender_inbox = await make_client(relay_url)
    receiver, receiver_inbox = await make_client(relay_url)
    try:
        await sender.join_room("ab12cd34", True)
        # Give the relay a moment so the sender is seated first
        await asyncio.sleep(0.05)
        await receiver.join_room("ab12cd34", False)

        message = await asyncio.wait_for(sender_inbox.messages.get(), 5)
        assert message == {"type": "receiver-joined"}

        offer = {"type": "offer", "sdp": "v=0"}
        await sender.send_offer("ab12cd34", offer)
        message = await asyncio.wait_for(receiver_inbox.messages.get(), 5)
        assert message == {"type": "offer", "offer": offer}

        await receiver.close()
        message = await asyncio.wait_for(sender_inbox.messages.get(), 5)
        assert message == {"type": "peer-disconnected"}
        assert sender_inbox.statuses == [True]
    finally:
        await sender.close()
        await receiver.close()


async def test_unreachable_relay_raises():
    client = SignalingClient(f"ws://127.0.0.1:{free_port()}")
    with pytest.raises(SignalingUnavailable):
        await client.connect()
    assert not client.connected


async def test_sends_while_disconnected_are_no_ops():
    client = SignalingClient("ws://127.0.0.1:1")
    assert await client._send({"type": "offer"}) is False
    await client.join_room("code", True)
    await client.send_ice_candidate("code", {"candidate": ""})

"""
Signaling Relay — pairs peers under a share code and forwards their
connection-negotiation messages.

One relay instance serves every client connection. For each inbound
event the target connection is resolved through the RoomRegistry and the
payload is forwarded verbatim. The relay never reports protocol errors
back to clients: malformed messages are logged and dropped, and messages
for a room without an opposite occupant are dropped, not queued.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Protocol

from pydantic import ValidationError

from filebeam.errors import SlotOccupied
from filebeam.signaling.models import (
    Answer,
    IceCandidate,
    JoinRoom,
    MessageType,
    Offer,
    Role,
    parse_client_message,
)
from filebeam.signaling.registry import RoomRegistry

logger = logging.getLogger(__name__)


class RelayConnection(Protocol):
    """Anything the relay can push text to (a Starlette WebSocket in production)."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...


class SignalingRelay:
    """Manages relay connections and routes signaling messages between peers."""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self._connections: dict[str, RelayConnection] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: RelayConnection) -> str:
        """Accept a connection and return its ConnectionId."""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        async with self._lock:
            self._connections[connection_id] = websocket
        logger.info(f"Relay client {connection_id} connected. Total: {len(self._connections)}")
        return connection_id

    async def handle_message(self, connection_id: str, raw: str | bytes) -> None:
        """Parse one inbound message and dispatch it."""
        try:
            message = parse_client_message(raw)
        except ValidationError as e:
            logger.warning(
                f"Dropping malformed message from {connection_id}: "
                f"{e.error_count()} validation error(s)"
            )
            return

        if isinstance(message, JoinRoom):
            await self.on_join(connection_id, message.room_id, message.role)
        elif isinstance(message, Offer):
            await self.on_offer(connection_id, message.room_id, message.offer)
        elif isinstance(message, Answer):
            await self.on_answer(connection_id, message.room_id, message.answer)
        elif isinstance(message, IceCandidate):
            await self.on_ice_candidate(connection_id, message.room_id, message.candidate)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def on_join(self, connection_id: str, code: str, role: Role) -> None:
        logger.info(f"Client {connection_id} joining room {code} as {role.value}")
        try:
            room = await self.registry.join(code, role, connection_id)
        except SlotOccupied as e:
            logger.warning(f"Join rejected for {connection_id}: {e}")
            return

        # The receiver arriving is what the sender is waiting for
        if role is Role.RECEIVER and room.sender is not None:
            await self._send(room.sender, {"type": MessageType.RECEIVER_JOINED})

    async def on_offer(self, connection_id: str, code: str, offer: dict[str, Any]) -> None:
        await self._forward(connection_id, code, {"type": MessageType.OFFER, "offer": offer})

    async def on_answer(self, connection_id: str, code: str, answer: dict[str, Any]) -> None:
        await self._forward(connection_id, code, {"type": MessageType.ANSWER, "answer": answer})

    async def on_ice_candidate(
        self, connection_id: str, code: str, candidate: dict[str, Any]
    ) -> None:
        await self._forward(
            connection_id, code, {"type": MessageType.ICE_CANDIDATE, "candidate": candidate}
        )

    async def on_disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)
        logger.info(f"Relay client {connection_id} disconnected. Total: {len(self._connections)}")

        for room in await self.registry.leave(connection_id):
            remaining = room.sender or room.receiver
            if remaining is not None:
                await self._send(remaining, {"type": MessageType.PEER_DISCONNECTED})

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _forward(self, connection_id: str, code: str, message: dict) -> None:
        target = await self.registry.peer_of(code, connection_id)
        if target is None:
            logger.debug(f"No peer in room {code} for {message['type']} from {connection_id}; dropped")
            return
        logger.info(f"Relaying {message['type']} in room {code}: {connection_id} -> {target}")
        await self._send(target, message)

    async def _send(self, connection_id: str, message: dict) -> None:
        async with self._lock:
            websocket = self._connections.get(connection_id)
        if websocket is None:
            logger.warning(f"Connection {connection_id} not found for {message['type']}")
            return
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Send to {connection_id} failed: {e}")
            await self.on_disconnect(connection_id)

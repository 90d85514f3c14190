"""
Client side of the relay wire protocol.

Holds one WebSocket to the relay, sends join-room/offer/answer/
ice-candidate and hands every inbound message to a registered handler.
While the relay is unreachable the send operations degrade to logged
no-ops; a status callback reports the outage so the UI can show it.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from filebeam.config import SIGNALING_URL
from filebeam.errors import SignalingUnavailable
from filebeam.signaling.models import MessageType

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict], Awaitable[None]]
StatusHandler = Callable[[bool], Awaitable[None]]


async def _ignore(*args) -> None:
    pass


class SignalingClient:
    """WebSocket connection to the FileBeam relay."""

    def __init__(self, url: str = SIGNALING_URL) -> None:
        self.url = url
        self._ws = None
        self._reader_task: asyncio.Task | None = None
        self._on_message: MessageHandler = _ignore
        self._on_status: StatusHandler = _ignore

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def set_handler(self, on_message: MessageHandler) -> None:
        """Register async fn(message: dict) for relay -> client messages."""
        self._on_message = on_message

    def set_status_handler(self, on_status: StatusHandler) -> None:
        """Register async fn(connected: bool) for relay availability changes."""
        self._on_status = on_status

    async def connect(self) -> None:
        """Open the relay connection. Raises SignalingUnavailable."""
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.error(f"Cannot reach signaling server at {self.url}: {e}")
            raise SignalingUnavailable(f"Cannot reach signaling server at {self.url}") from e

        logger.info(f"Connected to signaling server {self.url}")
        self._reader_task = asyncio.create_task(self._read_loop(self._ws))
        await self._on_status(True)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._reader_task:
            self._reader_task.cancel()
            self._reader_task = None
        if ws is not None:
            await ws.close()

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON message from signaling server")
                    continue
                if not isinstance(message, dict) or "type" not in message:
                    logger.warning("Ignoring untyped message from signaling server")
                    continue
                await self._on_message(message)
        except ConnectionClosed as e:
            logger.warning(f"Signaling connection closed: {e}")
        finally:
            if self._ws is ws:
                self._ws = None
                logger.info("Disconnected from signaling server")
                await self._on_status(False)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _send(self, message: dict) -> bool:
        ws = self._ws
        if ws is None:
            logger.warning(f"Signaling unavailable; {message['type']} not sent")
            return False
        try:
            await ws.send(json.dumps(message))
        except ConnectionClosed as e:
            logger.warning(f"Signaling unavailable; {message['type']} not sent: {e}")
            return False
        return True

    async def join_room(self, code: str, is_sender: bool) -> None:
        await self._send({"type": MessageType.JOIN_ROOM, "roomId": code, "isSender": is_sender})

    async def send_offer(self, code: str, offer: dict[str, Any]) -> None:
        await self._send({"type": MessageType.OFFER, "roomId": code, "offer": offer})

    async def send_answer(self, code: str, answer: dict[str, Any]) -> None:
        await self._send({"type": MessageType.ANSWER, "roomId": code, "answer": answer})

    async def send_ice_candidate(self, code: str, candidate: dict[str, Any]) -> None:
        await self._send(
            {"type": MessageType.ICE_CANDIDATE, "roomId": code, "candidate": candidate}
        )

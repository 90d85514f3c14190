"""HTTP routes for the FileBeam relay: identity, liveness and room inspection."""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from filebeam.config import APP_NAME

logger = logging.getLogger(__name__)

router = APIRouter()

# Injected by main.py at startup
_relay = None
_started_at = time.monotonic()


def init_routes(relay) -> None:
    """Inject the relay into the routes module."""
    global _relay, _started_at
    _relay = relay
    _started_at = time.monotonic()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def identity():
    return {
        "status": "ok",
        "message": f"{APP_NAME} signaling server is running",
        "timestamp": _timestamp(),
    }


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "uptime": time.monotonic() - _started_at,
        "timestamp": _timestamp(),
    }


@router.get("/api/rooms/{code}")
async def get_room(code: str):
    """Return which slots of a room are filled (never the connection ids)."""
    room = await _relay.registry.get(code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return {
        "room_id": code,
        "has_sender": room.sender is not None,
        "has_receiver": room.receiver is not None,
    }

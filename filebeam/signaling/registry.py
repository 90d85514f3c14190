"""
Room Registry — maps share codes to a sender/receiver pairing.

Pure data plus mutation rules; no I/O. Every mutation goes through
join() / leave() under a single asyncio.Lock so concurrent joins from
independent connections can never both win the same slot.
"""

import asyncio
import logging

from filebeam.errors import SlotOccupied
from filebeam.signaling.models import RejoinPolicy, Role, RoomState

logger = logging.getLogger(__name__)


class _Room:
    __slots__ = ("sender", "receiver")

    def __init__(self) -> None:
        self.sender: str | None = None
        self.receiver: str | None = None

    def get(self, role: Role) -> str | None:
        return self.sender if role is Role.SENDER else self.receiver

    def set(self, role: Role, connection_id: str | None) -> None:
        if role is Role.SENDER:
            self.sender = connection_id
        else:
            self.receiver = connection_id

    def snapshot(self, code: str) -> RoomState:
        return RoomState(code=code, sender=self.sender, receiver=self.receiver)


class RoomRegistry:
    """In-memory share code -> room mapping."""

    def __init__(self, rejoin_policy: RejoinPolicy = RejoinPolicy.REPLACE) -> None:
        self._rooms: dict[str, _Room] = {}
        self._lock = asyncio.Lock()
        self.rejoin_policy = RejoinPolicy(rejoin_policy)

    def __len__(self) -> int:
        return len(self._rooms)

    async def join(self, code: str, role: Role, connection_id: str) -> RoomState:
        """Place *connection_id* in the *role* slot of room *code*.

        Creates the room if needed. When the slot is held by a different
        connection the rejoin policy decides: REPLACE evicts the occupant,
        REJECT raises SlotOccupied and leaves the room untouched.
        """
        async with self._lock:
            room = self._rooms.get(code)
            if room is None:
                room = _Room()
                self._rooms[code] = room
                logger.info(f"Room {code} created")

            occupant = room.get(role)
            if occupant is not None and occupant != connection_id:
                if self.rejoin_policy is RejoinPolicy.REJECT:
                    raise SlotOccupied(code, role.value)
                logger.info(f"Room {code}: {role.value} {occupant} replaced by {connection_id}")

            room.set(role, connection_id)
            return room.snapshot(code)

    async def leave(self, connection_id: str) -> list[RoomState]:
        """Remove *connection_id* from every slot it holds.

        Returns the post-leave state of each affected room. Rooms left with
        both slots empty are deleted (their returned state is empty).
        """
        affected: list[RoomState] = []
        async with self._lock:
            for code, room in list(self._rooms.items()):
                touched = False
                for role in (Role.SENDER, Role.RECEIVER):
                    if room.get(role) == connection_id:
                        room.set(role, None)
                        touched = True
                if not touched:
                    continue
                if room.sender is None and room.receiver is None:
                    del self._rooms[code]
                    logger.info(f"Room {code} removed")
                affected.append(room.snapshot(code))
        return affected

    async def peer_of(self, code: str, connection_id: str) -> str | None:
        """Occupant of the slot opposite to *connection_id* in room *code*."""
        async with self._lock:
            room = self._rooms.get(code)
            if room is None:
                return None
            return room.snapshot(code).other(connection_id)

    async def get(self, code: str) -> RoomState | None:
        async with self._lock:
            room = self._rooms.get(code)
            return room.snapshot(code) if room else None

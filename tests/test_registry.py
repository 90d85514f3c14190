"""
Tests for the room registry: slot rules, rejoin policy and cleanup.
"""

import asyncio

import pytest

from filebeam.errors import SlotOccupied
from filebeam.signaling.models import RejoinPolicy, Role
from filebeam.signaling.registry import RoomRegistry


class TestJoin:
    async def test_first_join_creates_room_with_one_slot(self):
        registry = RoomRegistry()
        room = await registry.join("ab12cd34", Role.SENDER, "A")
        assert room.sender == "A"
        assert room.receiver is None
        assert len(registry) == 1

    async def test_peer_of_is_symmetric(self):
        registry = RoomRegistry()
        await registry.join("ab12cd34", Role.SENDER, "A")
        await registry.join("ab12cd34", Role.RECEIVER, "B")
        assert await registry.peer_of("ab12cd34", "A") == "B"
        assert await registry.peer_of("ab12cd34", "B") == "A"

    async def test_peer_of_without_opposite_occupant(self):
        registry = RoomRegistry()
        await registry.join("ab12cd34", Role.SENDER, "A")
        assert await registry.peer_of("ab12cd34", "A") is None
        assert await registry.peer_of("missing", "A") is None

    async def test_peer_of_for_non_member_is_none(self):
        registry = RoomRegistry()
        await registry.join("ab12cd34", Role.SENDER, "A")
        await registry.join("ab12cd34", Role.RECEIVER, "B")
        assert await registry.peer_of("ab12cd34", "C") is None

    async def test_replace_policy_last_writer_wins(self):
        registry = RoomRegistry(RejoinPolicy.REPLACE)
        await registry.join("code", Role.RECEIVER, "B")
        room = await registry.join("code", Role.RECEIVER, "C")
        assert room.receiver == "C"

    async def test_reject_policy_keeps_first_occupant(self):
        registry = RoomRegistry(RejoinPolicy.REJECT)
        await registry.join("code", Role.RECEIVER, "B")
        with pytest.raises(SlotOccupied):
            await registry.join("code", Role.RECEIVER, "C")
        room = await registry.get("code")
        assert room.receiver == "B"

    async def test_same_connection_rejoin_is_idempotent_under_reject(self):
        registry = RoomRegistry(RejoinPolicy.REJECT)
        await registry.join("code", Role.SENDER, "A")
        room = await registry.join("code", Role.SENDER, "A")
        assert room.sender == "A"

    async def test_policy_accepts_plain_strings(self):
        assert RoomRegistry("reject").rejoin_policy is RejoinPolicy.REJECT

    async def test_concurrent_joins_have_a_single_winner(self):
        registry = RoomRegistry(RejoinPolicy.REJECT)
        results = await asyncio.gather(
            *(registry.join("code", Role.RECEIVER, f"conn-{i}") for i in range(50)),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        room = await registry.get("code")
        assert room.receiver == winners[0].receiver


class TestLeave:
    async def test_leave_clears_slot_and_keeps_room_with_peer(self):
        registry = RoomRegistry()
        await registry.join("code", Role.SENDER, "A")
        await registry.join("code", Role.RECEIVER, "B")

        affected = await registry.leave("A")

        assert len(affected) == 1
        assert affected[0].sender is None
        assert affected[0].receiver == "B"
        assert (await registry.get("code")).sender is None

    async def test_empty_room_is_removed(self):
        registry = RoomRegistry()
        await registry.join("code", Role.SENDER, "A")
        affected = await registry.leave("A")
        assert affected[0].is_empty
        assert await registry.get("code") is None
        assert len(registry) == 0

    async def test_leave_unknown_connection(self):
        registry = RoomRegistry()
        await registry.join("code", Role.SENDER, "A")
        assert await registry.leave("nobody") == []
        assert len(registry) == 1

    async def test_leave_spans_every_room(self):
        registry = RoomRegistry()
        await registry.join("one", Role.SENDER, "A")
        await registry.join("two", Role.RECEIVER, "A")
        await registry.join("two", Role.SENDER, "B")

        affected = await registry.leave("A")

        assert sorted(r.code for r in affected) == ["one", "two"]
        assert await registry.get("one") is None
        assert (await registry.get("two")).sender == "B"

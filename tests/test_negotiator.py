"""
Tests for the channel negotiator: the pure transition table and the
effect-executing driver.
"""

import asyncio

import pytest

from filebeam.peer.negotiator import (
    ApplyAnswer,
    ApplyCandidate,
    ChannelClosed,
    ChannelNegotiator,
    ChannelOpen,
    EffectFailed,
    JoinRoom,
    LocalCandidate,
    NegotiatorState,
    PeerJoined,
    PeerLeft,
    RemoteAnswer,
    RemoteCandidate,
    RemoteOffer,
    SendAnswer,
    SendCandidate,
    SendOffer,
    Start,
    TearDown,
    transition,
)
from filebeam.signaling.models import Role

from tests.fakes import FakePeerNetwork, RecordingSignaling

S = NegotiatorState
OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}
CANDIDATE = {"candidate": "candidate:1 1 udp 1 10.0.0.1 5000 typ host", "sdpMid": "0"}


class TestTransition:
    def test_sender_start_waits_for_peer(self):
        assert transition(S.IDLE, Role.SENDER, Start()) == (S.AWAITING_PEER, [JoinRoom()])

    def test_receiver_start_goes_straight_to_negotiating(self):
        assert transition(S.IDLE, Role.RECEIVER, Start()) == (S.NEGOTIATING, [JoinRoom()])

    def test_receiver_joined_triggers_offer(self):
        assert transition(S.AWAITING_PEER, Role.SENDER, PeerJoined()) == (S.NEGOTIATING, [SendOffer()])

    def test_receiver_answers_offer(self):
        assert transition(S.NEGOTIATING, Role.RECEIVER, RemoteOffer(OFFER)) == (
            S.NEGOTIATING, [SendAnswer(OFFER)]
        )

    def test_sender_applies_answer(self):
        assert transition(S.NEGOTIATING, Role.SENDER, RemoteAnswer(ANSWER)) == (
            S.NEGOTIATING, [ApplyAnswer(ANSWER)]
        )

    @pytest.mark.parametrize("state", [S.AWAITING_PEER, S.NEGOTIATING, S.CONNECTED])
    def test_candidates_flow_in_live_states(self, state):
        assert transition(state, Role.SENDER, RemoteCandidate(CANDIDATE)) == (
            state, [ApplyCandidate(CANDIDATE)]
        )
        assert transition(state, Role.RECEIVER, LocalCandidate(CANDIDATE)) == (
            state, [SendCandidate(CANDIDATE)]
        )

    def test_channel_open_connects(self):
        assert transition(S.NEGOTIATING, Role.RECEIVER, ChannelOpen()) == (S.CONNECTED, [])

    def test_channel_closed_after_connect(self):
        state, effects = transition(S.CONNECTED, Role.SENDER, ChannelClosed("failed"))
        assert state is S.DISCONNECTED
        assert effects == [TearDown("Connection failed")]

    def test_peer_left_before_connect(self):
        assert transition(S.NEGOTIATING, Role.SENDER, PeerLeft()) == (
            S.DISCONNECTED, [TearDown("Peer disconnected")]
        )

    def test_peer_left_after_connect_is_ignored(self):
        assert transition(S.CONNECTED, Role.RECEIVER, PeerLeft()) == (S.CONNECTED, [])

    def test_effect_failure_before_connect(self):
        assert transition(S.NEGOTIATING, Role.SENDER, EffectFailed("boom")) == (
            S.FAILED, [TearDown("boom")]
        )

    @pytest.mark.parametrize("state, role, event", [
        (S.IDLE, Role.SENDER, PeerJoined()),
        (S.AWAITING_PEER, Role.SENDER, Start()),
        (S.NEGOTIATING, Role.SENDER, RemoteOffer(OFFER)),
        (S.NEGOTIATING, Role.RECEIVER, RemoteAnswer(ANSWER)),
        (S.NEGOTIATING, Role.RECEIVER, PeerJoined()),
        (S.IDLE, Role.RECEIVER, RemoteCandidate(CANDIDATE)),
    ])
    def test_unexpected_events_are_ignored(self, state, role, event):
        assert transition(state, role, event) == (state, [])

    @pytest.mark.parametrize("state", [S.DISCONNECTED, S.FAILED])
    def test_terminal_states_absorb_everything(self, state):
        for event in (Start(), ChannelOpen(), RemoteCandidate(CANDIDATE), EffectFailed("x")):
            assert transition(state, Role.SENDER, event) == (state, [])


class StateLog:
    def __init__(self) -> None:
        self.entries = []

    async def __call__(self, state, reason) -> None:
        self.entries.append((state, reason))


def make_negotiator(role: Role, network: FakePeerNetwork, signaling=None, on_state=None):
    peer = network(role)
    negotiator = ChannelNegotiator(
        role=role,
        code="ab12cd34",
        peer=peer,
        signaling=signaling or RecordingSignaling(),
        on_state=on_state or StateLog(),
    )
    peer.listen(negotiator.post, lambda message: None)
    return negotiator


class TestDriver:
    async def test_sender_walks_offer_answer_to_connected(self):
        network = FakePeerNetwork()
        signaling = RecordingSignaling()
        log = StateLog()
        sender = make_negotiator(Role.SENDER, network, signaling, log)
        make_negotiator(Role.RECEIVER, network)

        await sender.step(Start())
        await sender.step(PeerJoined())
        await sender.step(RemoteAnswer(ANSWER))
        # apply_answer opened the fake channel, which posts ChannelOpen
        await sender.step(sender._events.get_nowait())

        assert sender.state is S.CONNECTED
        assert signaling.calls == [
            ("join_room", "ab12cd34", True),
            ("send_offer", "ab12cd34", {"type": "offer", "sdp": "v=0 offer"}),
        ]
        assert [s for s, _ in log.entries] == [S.AWAITING_PEER, S.NEGOTIATING, S.CONNECTED]

    async def test_receiver_answers_and_relays_local_candidates(self):
        network = FakePeerNetwork()
        signaling = RecordingSignaling()
        receiver = make_negotiator(Role.RECEIVER, network, signaling)

        await receiver.step(Start())
        await receiver.step(RemoteOffer(OFFER))
        await receiver.step(LocalCandidate(CANDIDATE))
        await receiver.step(RemoteCandidate(CANDIDATE))

        assert signaling.calls == [
            ("join_room", "ab12cd34", False),
            ("send_answer", "ab12cd34", {"type": "answer", "sdp": "v=0 answer"}),
            ("send_ice_candidate", "ab12cd34", CANDIDATE),
        ]
        assert network.peers[Role.RECEIVER].candidates == [CANDIDATE]
        assert network.peers[Role.RECEIVER].remote_description == OFFER

    async def test_failed_offer_ends_in_failed(self):
        network = FakePeerNetwork()
        network.fail_offer = True
        log = StateLog()
        sender = make_negotiator(Role.SENDER, network, on_state=log)

        sender.post(Start())
        sender.post(PeerJoined())
        final = await asyncio.wait_for(sender.run(), 1)

        assert final is S.FAILED
        state, reason = log.entries[-1]
        assert state is S.FAILED
        assert "SendOffer failed: no codecs" in reason

    async def test_run_stops_on_channel_closed(self):
        network = FakePeerNetwork()
        receiver = make_negotiator(Role.RECEIVER, network)
        for event in (Start(), ChannelOpen(), ChannelClosed("closed")):
            receiver.post(event)

        assert await asyncio.wait_for(receiver.run(), 1) is S.DISCONNECTED

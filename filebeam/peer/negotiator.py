"""
Channel Negotiator — brings up the direct channel for one connection.

    idle -> awaiting_peer -> negotiating -> connected -> (disconnected | failed)

The sender waits in awaiting_peer until the relay reports receiver-joined,
then offers. The receiver goes straight to negotiating and waits for the
offer. Candidates flow both ways in any live state.

transition() is a pure function of (state, role, event) returning the next
state and a list of effects. ChannelNegotiator drains an event queue,
applies transition() and executes the effects against the peer connection
and the signaling transport. Reaching connected is the only event that
hands control to the transfer engine.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from filebeam.errors import NegotiationFailure
from filebeam.signaling.models import Role
from filebeam.transfer.engine import DataChannel

logger = logging.getLogger(__name__)


class NegotiatorState(str, Enum):
    IDLE = "idle"
    AWAITING_PEER = "awaiting_peer"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiatorState.DISCONNECTED, NegotiatorState.FAILED)


# --- Events ---

@dataclass(frozen=True)
class Start:
    """generate_code (sender) or connect_with_code (receiver)."""


@dataclass(frozen=True)
class PeerJoined:
    """Relay: the receiver joined the room."""


@dataclass(frozen=True)
class PeerLeft:
    """Relay: the other occupant disconnected."""


@dataclass(frozen=True)
class RemoteOffer:
    offer: dict[str, Any]


@dataclass(frozen=True)
class RemoteAnswer:
    answer: dict[str, Any]


@dataclass(frozen=True)
class RemoteCandidate:
    candidate: dict[str, Any]


@dataclass(frozen=True)
class LocalCandidate:
    candidate: dict[str, Any]


@dataclass(frozen=True)
class ChannelOpen:
    """The direct channel is open and can carry frames."""


@dataclass(frozen=True)
class ChannelClosed:
    reason: str = "disconnected"


@dataclass(frozen=True)
class EffectFailed:
    error: str


NegotiatorEvent = (
    Start | PeerJoined | PeerLeft | RemoteOffer | RemoteAnswer | RemoteCandidate
    | LocalCandidate | ChannelOpen | ChannelClosed | EffectFailed
)


# --- Effects ---

@dataclass(frozen=True)
class JoinRoom:
    pass


@dataclass(frozen=True)
class SendOffer:
    pass


@dataclass(frozen=True)
class SendAnswer:
    offer: dict[str, Any]


@dataclass(frozen=True)
class ApplyAnswer:
    answer: dict[str, Any]


@dataclass(frozen=True)
class ApplyCandidate:
    candidate: dict[str, Any]


@dataclass(frozen=True)
class SendCandidate:
    candidate: dict[str, Any]


@dataclass(frozen=True)
class TearDown:
    reason: str


Effect = JoinRoom | SendOffer | SendAnswer | ApplyAnswer | ApplyCandidate | SendCandidate | TearDown


_LIVE = (NegotiatorState.AWAITING_PEER, NegotiatorState.NEGOTIATING, NegotiatorState.CONNECTED)
_PRE_CONNECT = (NegotiatorState.AWAITING_PEER, NegotiatorState.NEGOTIATING)


def transition(
    state: NegotiatorState, role: Role, event: NegotiatorEvent
) -> tuple[NegotiatorState, list[Effect]]:
    """Next state and effects for *event*. Unhandled events leave the state unchanged."""
    S = NegotiatorState

    if state.is_terminal:
        return state, []

    if isinstance(event, Start) and state is S.IDLE:
        if role is Role.SENDER:
            return S.AWAITING_PEER, [JoinRoom()]
        return S.NEGOTIATING, [JoinRoom()]

    if isinstance(event, PeerJoined) and state is S.AWAITING_PEER and role is Role.SENDER:
        return S.NEGOTIATING, [SendOffer()]

    if isinstance(event, RemoteOffer) and state is S.NEGOTIATING and role is Role.RECEIVER:
        return state, [SendAnswer(event.offer)]

    if isinstance(event, RemoteAnswer) and state is S.NEGOTIATING and role is Role.SENDER:
        return state, [ApplyAnswer(event.answer)]

    if isinstance(event, RemoteCandidate) and state in _LIVE:
        return state, [ApplyCandidate(event.candidate)]

    if isinstance(event, LocalCandidate) and state in _LIVE:
        return state, [SendCandidate(event.candidate)]

    if isinstance(event, ChannelOpen) and state in _PRE_CONNECT:
        return S.CONNECTED, []

    if isinstance(event, ChannelClosed) and state in _LIVE:
        return S.DISCONNECTED, [TearDown(f"Connection {event.reason}")]

    # Once connected the direct channel is authoritative; the peer leaving
    # the relay room does not end it.
    if isinstance(event, PeerLeft) and state in _PRE_CONNECT:
        return S.DISCONNECTED, [TearDown("Peer disconnected")]

    if isinstance(event, EffectFailed) and state in _PRE_CONNECT:
        return S.FAILED, [TearDown(event.error)]

    return state, []


# --- Collaborators ---

class PeerConnection(Protocol):
    """The external peer-connection capability (ICE/DTLS lives behind this)."""

    channel: DataChannel | None

    def listen(
        self,
        post: Callable[[NegotiatorEvent], None],
        on_message: Callable[[str | bytes], None],
    ) -> None:
        """Route LocalCandidate/ChannelOpen/ChannelClosed to *post* and frames to *on_message*."""

    async def create_offer(self) -> dict[str, Any]: ...

    async def create_answer(self, offer: dict[str, Any]) -> dict[str, Any]: ...

    async def apply_answer(self, answer: dict[str, Any]) -> None: ...

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class SignalingTransport(Protocol):
    async def join_room(self, code: str, is_sender: bool) -> None: ...

    async def send_offer(self, code: str, offer: dict[str, Any]) -> None: ...

    async def send_answer(self, code: str, answer: dict[str, Any]) -> None: ...

    async def send_ice_candidate(self, code: str, candidate: dict[str, Any]) -> None: ...


StateCallback = Callable[[NegotiatorState, str | None], Awaitable[None]]


async def _noop_state(state: NegotiatorState, reason: str | None) -> None:
    pass


@dataclass
class ChannelNegotiator:
    """Drives one PeerConnection through offer/answer/ICE over the relay."""

    role: Role
    code: str
    peer: PeerConnection
    signaling: SignalingTransport
    on_state: StateCallback = _noop_state
    state: NegotiatorState = NegotiatorState.IDLE
    _events: asyncio.Queue = field(default_factory=asyncio.Queue, init=False, repr=False)

    def post(self, event: NegotiatorEvent) -> None:
        """Queue an event; safe to call from peer-connection callbacks."""
        self._events.put_nowait(event)

    async def run(self) -> NegotiatorState:
        """Process events until a terminal state. Returns that state."""
        while not self.state.is_terminal:
            event = await self._events.get()
            await self.step(event)
        return self.state

    async def step(self, event: NegotiatorEvent) -> None:
        previous = self.state
        next_state, effects = transition(previous, self.role, event)
        if next_state is previous and not effects:
            logger.debug(f"[{self.code}] {type(event).__name__} ignored in {previous.value}")
            return

        self.state = next_state
        reason = None
        for effect in effects:
            if isinstance(effect, TearDown):
                reason = effect.reason
                continue
            try:
                await self._execute(effect)
            except Exception as e:
                failure = NegotiationFailure(f"{type(effect).__name__} failed: {e}")
                logger.error(f"[{self.code}] {failure}")
                await self.step(EffectFailed(str(failure)))
                return

        if next_state is not previous:
            logger.info(f"[{self.code}] {self.role.value}: {previous.value} -> {next_state.value}")
            await self.on_state(next_state, reason)

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, JoinRoom):
            await self.signaling.join_room(self.code, self.role is Role.SENDER)
        elif isinstance(effect, SendOffer):
            offer = await self.peer.create_offer()
            await self.signaling.send_offer(self.code, offer)
        elif isinstance(effect, SendAnswer):
            answer = await self.peer.create_answer(effect.offer)
            await self.signaling.send_answer(self.code, answer)
        elif isinstance(effect, ApplyAnswer):
            await self.peer.apply_answer(effect.answer)
        elif isinstance(effect, ApplyCandidate):
            await self.peer.add_ice_candidate(effect.candidate)
        elif isinstance(effect, SendCandidate):
            await self.signaling.send_ice_candidate(self.code, effect.candidate)

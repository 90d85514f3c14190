"""
aiortc-backed PeerConnection.

The sender creates an ordered data channel up front; the receiver adopts
the one announced by the remote peer. aiortc gathers ICE candidates during
setLocalDescription and embeds them in the SDP, so no LocalCandidate events
are produced here; candidates trickled by a browser peer are still applied.
"""

import logging
from typing import Any, Callable

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from filebeam.config import DATA_CHANNEL_LABEL, ICE_SERVERS
from filebeam.peer.negotiator import ChannelClosed, ChannelOpen, NegotiatorEvent
from filebeam.signaling.models import Role

logger = logging.getLogger(__name__)


def _get_rtc_config(ice_servers: list[dict]) -> RTCConfiguration:
    """Create RTCConfiguration from ICE_SERVERS-shaped dicts."""
    return RTCConfiguration(iceServers=[
        RTCIceServer(
            urls=s["urls"],
            username=s.get("username"),
            credential=s.get("credential"),
        )
        for s in ice_servers
    ])


class _ChannelAdapter:
    """Exposes an RTCDataChannel through the engine's DataChannel shape."""

    def __init__(self, channel) -> None:
        self._channel = channel

    @property
    def buffered_amount(self) -> int:
        return self._channel.bufferedAmount

    def send(self, data: str | bytes) -> None:
        self._channel.send(data)

    def close(self) -> None:
        self._channel.close()


class AiortcPeerConnection:
    """PeerConnection implementation over aiortc."""

    def __init__(self, role: Role, ice_servers: list[dict] = ICE_SERVERS) -> None:
        self.role = role
        self.channel: _ChannelAdapter | None = None
        self._pc = RTCPeerConnection(configuration=_get_rtc_config(ice_servers))
        self._post: Callable[[NegotiatorEvent], None] = lambda event: None
        self._on_message: Callable[[str | bytes], None] = lambda message: None

        if role is Role.SENDER:
            self._setup_datachannel(
                self._pc.createDataChannel(DATA_CHANNEL_LABEL, ordered=True)
            )
        else:
            @self._pc.on("datachannel")
            def on_datachannel(channel):
                logger.info(f"Data channel {channel.label!r} announced by peer")
                self._setup_datachannel(channel)
                if channel.readyState == "open":
                    self._opened(channel)

        @self._pc.on("connectionstatechange")
        async def on_state_change():
            state = self._pc.connectionState
            logger.info(f"Connection state: {state}")
            if state in ("disconnected", "failed", "closed"):
                self._post(ChannelClosed(state))

    def listen(
        self,
        post: Callable[[NegotiatorEvent], None],
        on_message: Callable[[str | bytes], None],
    ) -> None:
        self._post = post
        self._on_message = on_message

    def _setup_datachannel(self, channel) -> None:
        @channel.on("open")
        def on_open():
            self._opened(channel)

        @channel.on("close")
        def on_close():
            logger.info("Data channel closed")
            self._post(ChannelClosed("closed"))

        @channel.on("message")
        def on_message(message):
            self._on_message(message)

    def _opened(self, channel) -> None:
        if self.channel is None:
            logger.info("Data channel open")
            self.channel = _ChannelAdapter(channel)
            self._post(ChannelOpen())

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    def _local_description(self) -> dict[str, Any]:
        return {"sdp": self._pc.localDescription.sdp, "type": self._pc.localDescription.type}

    async def create_offer(self) -> dict[str, Any]:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        return self._local_description()

    async def create_answer(self, offer: dict[str, Any]) -> dict[str, Any]:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=offer["sdp"], type=offer["type"])
        )
        answer = await self._pc.createAnswer()
        await self._pc.setLocalDescription(answer)
        return self._local_description()

    async def apply_answer(self, answer: dict[str, Any]) -> None:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=answer["sdp"], type=answer["type"])
        )

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None:
        sdp = candidate.get("candidate") or ""
        if not sdp:
            return  # end-of-candidates marker
        if sdp.startswith("candidate:"):
            sdp = sdp[len("candidate:"):]
        ice = candidate_from_sdp(sdp)
        ice.sdpMid = candidate.get("sdpMid")
        ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self._pc.addIceCandidate(ice)

    async def close(self) -> None:
        if self.channel is not None:
            self.channel.close()
        await self._pc.close()

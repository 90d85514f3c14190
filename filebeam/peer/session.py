"""
Peer Session — the action surface a UI drives.

    select_file(path)       pick the file to send (size-checked)
    generate_code()         become the sender under a fresh share code
    connect_with_code(code) become the receiver for a share code
    reset_connection()      tear everything down

Observable state: progress, estimated_time_seconds, status, is_connected.
Every change is also pushed to callbacks registered with on_event() as
async fn(event_type, data) with event types "state", "progress",
"transfer_state" (a TransferInfo dump on every transfer state change),
"file_received" and "notification".
"""

import asyncio
import logging
import mimetypes
import os
import secrets
from typing import Callable

from filebeam.config import (
    DEFAULT_SAVE_DIR,
    MAX_FILE_SIZE,
    SHARE_CODE_ALPHABET,
    SHARE_CODE_LENGTH,
)
from filebeam.errors import ChannelLost, FileBeamError, OversizedInput
from filebeam.peer.negotiator import (
    ChannelNegotiator,
    NegotiatorState,
    PeerConnection,
    PeerJoined,
    PeerLeft,
    RemoteAnswer,
    RemoteCandidate,
    RemoteOffer,
    Start,
)
from filebeam.signaling.models import MessageType, Role
from filebeam.transfer.engine import FileReceiver, send_file, wait_for_drain
from filebeam.transfer.models import (
    ReceivedFile,
    SourceFile,
    TransferDirection,
    TransferInfo,
    TransferState,
)

logger = logging.getLogger(__name__)

PeerFactory = Callable[[Role], PeerConnection]


def new_share_code(length: int = SHARE_CODE_LENGTH) -> str:
    """Random URL-safe share code."""
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))


class PeerSession:
    """One peer's side of a rendezvous + transfer."""

    def __init__(
        self,
        signaling,
        peer_factory: PeerFactory,
        save_dir: str = DEFAULT_SAVE_DIR,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self._signaling = signaling
        self._peer_factory = peer_factory
        self.save_dir = save_dir
        self.max_file_size = max_file_size
        self._event_callbacks: list = []  # async fn(event_type, data)

        self.selected_file: SourceFile | None = None
        self.share_code = ""
        self.role: Role | None = None
        self.progress = 0.0
        self.estimated_time_seconds: int | None = None
        self.status = ""
        self.is_connected = False
        self.transfer: TransferInfo | None = None

        self._peer: PeerConnection | None = None
        self._negotiator: ChannelNegotiator | None = None
        self._negotiator_task: asyncio.Task | None = None
        self._send_task: asyncio.Task | None = None
        self._frames: asyncio.Queue | None = None
        self._frame_task: asyncio.Task | None = None
        self._receiver: FileReceiver | None = None

        self._signaling.set_handler(self._on_signal)
        self._signaling.set_status_handler(self._on_signaling_status)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def _notify(self, kind: str, message: str) -> None:
        await self._emit("notification", {"type": kind, "message": message})

    async def _set_status(self, status: str) -> None:
        self.status = status
        await self._emit("state", self.snapshot())

    def snapshot(self) -> dict:
        return {
            "share_code": self.share_code,
            "role": self.role.value if self.role else None,
            "progress": self.progress,
            "estimated_time_seconds": self.estimated_time_seconds,
            "status": self.status,
            "is_connected": self.is_connected,
            "negotiator_state": self._negotiator.state.value if self._negotiator else None,
        }

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def select_file(self, path: str) -> SourceFile:
        """Pick the file to send. Raises OversizedInput before touching any state."""
        size = os.path.getsize(path)
        if size > self.max_file_size:
            raise OversizedInput(size, self.max_file_size)

        name = os.path.basename(path)
        mime_type, _ = mimetypes.guess_type(name)
        self.selected_file = SourceFile(
            path=path, name=name, size=size, mime_type=mime_type or ""
        )
        self.share_code = ""
        self.progress = 0.0
        self.estimated_time_seconds = None
        self.status = ""
        self.is_connected = False
        return self.selected_file

    async def generate_code(self) -> str:
        """Register as sender under a new share code and wait for a receiver."""
        if self.selected_file is None:
            raise FileBeamError("Select a file before generating a code")
        if self._negotiator is not None:
            raise FileBeamError("A connection is already in progress; reset it first")

        code = new_share_code()
        self.share_code = code
        await self._set_status(
            "Waiting for receiver..." if self._signaling.connected else "Signaling server unavailable"
        )
        await self._start(Role.SENDER, code)
        return code

    async def connect_with_code(self, code: str) -> None:
        """Register as receiver for *code* and wait for the sender's offer."""
        code = code.strip()
        if not code:
            raise FileBeamError("Share code is empty")
        if self._negotiator is not None:
            raise FileBeamError("A connection is already in progress; reset it first")

        self.share_code = code
        self._receiver = FileReceiver(
            self.save_dir,
            on_file=self._on_file_received,
            progress_callback=self._on_progress,
            state_callback=self._on_transfer_state,
        )
        self._frames = asyncio.Queue()
        self._frame_task = asyncio.create_task(self._consume_frames())
        await self._set_status(
            "Connecting..." if self._signaling.connected else "Signaling server unavailable"
        )
        await self._start(Role.RECEIVER, code)

    async def reset_connection(self) -> None:
        """Close everything and return to a blank session."""
        await self._teardown("Connection reset")
        self.selected_file = None
        self.share_code = ""
        self.role = None
        self.progress = 0.0
        self.estimated_time_seconds = None
        self.transfer = None
        self._negotiator = None
        self._negotiator_task = None
        await self._set_status("")

    async def wait_closed(self) -> NegotiatorState | None:
        """Wait for the negotiator to reach a terminal state."""
        task = self._negotiator_task
        if task is None:
            return None
        await asyncio.wait({task})
        return None if task.cancelled() else task.result()

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    async def _start(self, role: Role, code: str) -> None:
        self.role = role
        self._peer = self._peer_factory(role)
        self._negotiator = ChannelNegotiator(
            role=role,
            code=code,
            peer=self._peer,
            signaling=self._signaling,
            on_state=self._on_negotiator_state,
        )
        self._peer.listen(self._negotiator.post, self._on_frame)
        self._negotiator.post(Start())
        self._negotiator_task = asyncio.create_task(self._negotiator.run())

    async def _on_signal(self, message: dict) -> None:
        """Translate relay messages into negotiator events."""
        negotiator = self._negotiator
        if negotiator is None:
            logger.debug(f"No active negotiation; ignoring {message.get('type')}")
            return

        message_type = message.get("type")
        try:
            if message_type == MessageType.RECEIVER_JOINED:
                negotiator.post(PeerJoined())
            elif message_type == MessageType.PEER_DISCONNECTED:
                negotiator.post(PeerLeft())
            elif message_type == MessageType.OFFER:
                negotiator.post(RemoteOffer(message["offer"]))
            elif message_type == MessageType.ANSWER:
                negotiator.post(RemoteAnswer(message["answer"]))
            elif message_type == MessageType.ICE_CANDIDATE:
                negotiator.post(RemoteCandidate(message["candidate"]))
            else:
                logger.warning(f"Unknown signaling message type: {message_type!r}")
        except KeyError as e:
            logger.warning(f"Dropping {message_type} without {e}")

    async def _on_signaling_status(self, connected: bool) -> None:
        if connected:
            return
        if self.is_connected:
            # The direct channel does not depend on the relay
            logger.info("Signaling server lost; direct channel unaffected")
            return
        await self._set_status("Signaling server unavailable")
        await self._notify("error", "Lost connection to the signaling server")

    async def _on_negotiator_state(self, state: NegotiatorState, reason: str | None) -> None:
        if state is NegotiatorState.NEGOTIATING and self.role is Role.SENDER:
            await self._set_status("Receiver joined, connecting...")
        elif state is NegotiatorState.CONNECTED:
            self.is_connected = True
            await self._set_status("Connected! Ready for file transfer.")
            if self.role is Role.SENDER:
                self._send_task = asyncio.create_task(self._send_selected_file())
        elif state is NegotiatorState.DISCONNECTED:
            await self._teardown(reason or "Connection lost")
            finished = self.transfer is not None and self.transfer.state is TransferState.COMPLETED
            if finished:
                await self._set_status("Transfer finished; peer disconnected.")
                await self._notify("info", "The peer closed the connection")
            else:
                error = ChannelLost(reason or "The peer connection was lost")
                logger.warning(f"[{self.share_code}] {error}")
                await self._set_status("Connection lost. Please try again.")
                await self._notify("error", str(error))
        elif state is NegotiatorState.FAILED:
            await self._teardown(reason or "Negotiation failed")
            await self._set_status("Connection failed. Please try again.")
            await self._notify("error", reason or "Failed to negotiate a connection")

    async def _teardown(self, reason: str) -> None:
        """Stop transfer work and close the peer. Partial files are discarded."""
        self.is_connected = False

        send_task, self._send_task = self._send_task, None
        if send_task and not send_task.done():
            send_task.cancel()
            try:
                await send_task
            except asyncio.CancelledError:
                pass

        # Frames already received are still processed; only then is an
        # unfinished file discarded
        frame_task, self._frame_task = self._frame_task, None
        frames, self._frames = self._frames, None
        if frame_task and frame_task is not asyncio.current_task():
            frames.put_nowait(None)
            await asyncio.wait({frame_task})

        receiver, self._receiver = self._receiver, None
        if receiver is not None:
            await receiver.abort(reason, TransferState.CANCELLED)

        negotiator_task = self._negotiator_task
        if (
            negotiator_task
            and not negotiator_task.done()
            and negotiator_task is not asyncio.current_task()
        ):
            negotiator_task.cancel()
            await asyncio.wait({negotiator_task})

        peer, self._peer = self._peer, None
        if peer is not None:
            try:
                await peer.close()
            except Exception as e:
                logger.warning(f"Error closing peer connection: {e}")

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def _send_selected_file(self) -> None:
        channel = self._peer.channel if self._peer else None
        if channel is None or self.selected_file is None:
            await self._notify("error", "Data channel is not open")
            return
        info = await send_file(
            channel,
            self.selected_file,
            progress_callback=self._on_progress,
            state_callback=self._on_transfer_state,
        )
        if info.state is TransferState.COMPLETED:
            # Let the channel flush before anyone closes it
            await wait_for_drain(channel, high_water=0, low_water=0)
            await self._set_status("File sent successfully!")
            await self._notify("success", f"'{info.file_name}' sent successfully!")

    def _on_frame(self, message: str | bytes) -> None:
        if self._frames is not None:
            self._frames.put_nowait(message)

    async def _consume_frames(self) -> None:
        frames, receiver = self._frames, self._receiver
        while True:
            message = await frames.get()
            if message is None:
                return
            try:
                await receiver.handle_message(message)
            except Exception as e:
                logger.error(f"Receive error: {e}", exc_info=True)
                await receiver.abort(str(e))

    async def _on_progress(self, info: TransferInfo) -> None:
        self.transfer = info
        self.progress = info.progress_percent
        self.estimated_time_seconds = info.eta_seconds
        await self._emit("progress", info.model_dump())

    async def _on_transfer_state(self, info: TransferInfo) -> None:
        self.transfer = info
        await self._emit("transfer_state", info.model_dump())

        if info.state is TransferState.TRANSFERRING:
            self.progress = info.progress_percent
            self.estimated_time_seconds = info.eta_seconds
            if info.direction is TransferDirection.RECEIVING:
                await self._set_status(f"Receiving: {info.file_name}")
            else:
                await self._set_status(f"Sending: {info.file_name}")
        elif info.state is TransferState.COMPLETED:
            self.progress = 100.0
            self.estimated_time_seconds = 0
        elif info.state is TransferState.FAILED:
            await self._set_status("Transfer failed")
            await self._notify(
                "error", f"Transfer of '{info.file_name}' failed: {info.error_message}"
            )

    async def _on_file_received(self, received: ReceivedFile) -> None:
        await self._set_status("File received successfully!")
        await self._emit("file_received", received.model_dump())
        await self._notify("success", f"'{received.name}' received successfully!")

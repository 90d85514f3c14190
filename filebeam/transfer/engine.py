"""
Transfer Engine — streams one file over an open direct channel.

Sender: file-info, then CHUNK_SIZE binary slices read from offset 0,
then file-complete. Reading is gated on the channel's buffered amount so
a fast disk cannot outrun a slow network.

Receiver: message-driven. Chunks are stream-written to a part file in the
download directory; the file is only renamed into place and handed to the
sink after file-complete confirms every byte arrived.
"""

import asyncio
import logging
import os
import re
import uuid
from typing import Awaitable, Callable, Protocol

from filebeam.config import (
    BUFFER_HIGH_WATER,
    BUFFER_LOW_WATER,
    BUFFER_POLL_INTERVAL,
    CHUNK_SIZE,
)
from filebeam.errors import FileBeamError, IncompleteTransfer, MalformedFrame
from filebeam.transfer.framing import chunk_count, decode_frame, encode_frame
from filebeam.transfer.models import (
    FileCompleteFrame,
    FileInfoFrame,
    ReceivedFile,
    SourceFile,
    TransferDirection,
    TransferInfo,
    TransferState,
)
from filebeam.transfer.progress import ProgressTracker

logger = logging.getLogger(__name__)

TransferCallback = Callable[[TransferInfo], Awaitable[None]]


class DataChannel(Protocol):
    """The ordered, reliable direct channel between the two peers."""

    @property
    def buffered_amount(self) -> int: ...

    def send(self, data: str | bytes) -> None: ...


async def _noop(info: TransferInfo) -> None:
    pass


# ---------------------------------------------------------------------------
# Sender
# ---------------------------------------------------------------------------


async def wait_for_drain(
    channel: DataChannel,
    high_water: int = BUFFER_HIGH_WATER,
    low_water: int = BUFFER_LOW_WATER,
) -> None:
    """Suspend while the channel holds more than *high_water* unsent bytes.

    Once above the high-water mark, resumes only after the buffer drains
    to *low_water* so reads and sends alternate in large batches.
    """
    if channel.buffered_amount <= high_water:
        return
    while channel.buffered_amount > low_water:
        await asyncio.sleep(BUFFER_POLL_INTERVAL)


async def send_file(
    channel: DataChannel,
    source: SourceFile,
    progress_callback: TransferCallback = _noop,
    state_callback: TransferCallback = _noop,
    chunk_size: int = CHUNK_SIZE,
    high_water: int = BUFFER_HIGH_WATER,
    low_water: int = BUFFER_LOW_WATER,
) -> TransferInfo:
    """
    Send a single file over *channel*.

    Args:
        channel: An open DataChannel.
        source: The file to send.
        progress_callback: async fn(transfer_info) called after each chunk.
        state_callback: async fn(transfer_info) called on state change.

    Returns:
        The final TransferInfo. Cancellation propagates after the state
        callback reports CANCELLED.
    """
    expected_chunks = chunk_count(source.size, chunk_size)
    transfer_info = TransferInfo(
        file_name=source.name,
        mime_type=source.mime_type,
        total_size=source.size,
        direction=TransferDirection.SENDING,
    )
    tracker = ProgressTracker(source.size)

    try:
        channel.send(encode_frame(FileInfoFrame(
            name=source.name,
            size=source.size,
            file_type=source.mime_type,
            chunks=expected_chunks,
        )))
        tracker.start()
        transfer_info.state = TransferState.TRANSFERRING
        await state_callback(transfer_info)

        offset = 0
        with open(source.path, "rb") as f:
            while offset < source.size:
                await wait_for_drain(channel, high_water, low_water)

                chunk = await asyncio.to_thread(f.read, min(chunk_size, source.size - offset))
                if not chunk:
                    raise FileBeamError(
                        f"{source.name} shrank during transfer: read {offset}/{source.size} bytes"
                    )

                channel.send(chunk)
                offset += len(chunk)
                tracker.record(len(chunk))

                transfer_info.bytes_moved = tracker.bytes_moved
                transfer_info.chunks_moved += 1
                transfer_info.progress_percent = tracker.progress
                transfer_info.eta_seconds = tracker.eta_seconds
                await progress_callback(transfer_info)

        channel.send(encode_frame(FileCompleteFrame(chunks=transfer_info.chunks_moved)))

        transfer_info.state = TransferState.COMPLETED
        transfer_info.progress_percent = 100.0
        transfer_info.eta_seconds = 0
        await state_callback(transfer_info)
        logger.info(
            f"Sent {source.name}: {transfer_info.bytes_moved} bytes "
            f"in {transfer_info.chunks_moved} chunks"
        )

    except asyncio.CancelledError:
        transfer_info.state = TransferState.CANCELLED
        await state_callback(transfer_info)
        raise
    except Exception as e:
        logger.error(f"Send error for {source.name}: {e}")
        transfer_info.state = TransferState.FAILED
        transfer_info.error_message = str(e)
        await state_callback(transfer_info)

    return transfer_info


# ---------------------------------------------------------------------------
# Receiver
# ---------------------------------------------------------------------------


# Windows reserved device names that must never be used as filenames.
_WINDOWS_RESERVED = re.compile(
    r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\.|$)", re.IGNORECASE
)


def safe_filename(filename: str) -> str:
    """Sanitize a peer-supplied filename.

    Strips directory components of either separator style, removes null
    bytes and falls back to "download" for empty, dot or reserved names.
    """
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = name.replace("\x00", "").strip()
    if name in ("", ".", "..") or _WINDOWS_RESERVED.match(name):
        return "download"
    return name


def unique_path(directory: str, name: str) -> str:
    """Return directory/name, or directory/name (n).ext if that exists."""
    candidate = os.path.join(directory, name)
    stem, ext = os.path.splitext(name)
    n = 1
    while os.path.exists(candidate):
        candidate = os.path.join(directory, f"{stem} ({n}){ext}")
        n += 1
    return candidate


class _ReceiveSession:
    """State for the one transfer currently being received."""

    def __init__(self, frame: FileInfoFrame, part_path: str, file) -> None:
        self.frame = frame
        self.part_path = part_path
        self.file = file
        self.tracker = ProgressTracker(frame.size)
        self.tracker.start()
        self.info = TransferInfo(
            file_name=frame.name,
            mime_type=frame.file_type,
            total_size=frame.size,
            direction=TransferDirection.RECEIVING,
            state=TransferState.TRANSFERRING,
        )

    def discard(self) -> None:
        self.file.close()
        try:
            os.remove(self.part_path)
        except OSError:
            pass


class FileReceiver:
    """Reassembles files from direct-channel frames, one session at a time."""

    def __init__(
        self,
        save_dir: str,
        on_file: Callable[[ReceivedFile], Awaitable[None]],
        progress_callback: TransferCallback = _noop,
        state_callback: TransferCallback = _noop,
    ) -> None:
        self.save_dir = save_dir
        self._on_file = on_file
        self._progress_callback = progress_callback
        self._state_callback = state_callback
        self._session: _ReceiveSession | None = None

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def transfer_info(self) -> TransferInfo | None:
        return self._session.info if self._session else None

    async def handle_message(self, message: str | bytes) -> None:
        """Process one frame, in receipt order."""
        try:
            if isinstance(message, (bytes, bytearray, memoryview)):
                await self._on_chunk(bytes(message))
                return
            frame = decode_frame(message)
        except MalformedFrame as e:
            logger.warning(f"Dropping frame: {e}")
            return

        if isinstance(frame, FileInfoFrame):
            await self._on_file_info(frame)
        else:
            await self._on_file_complete(frame)

    async def abort(self, reason: str, state: TransferState = TransferState.FAILED) -> None:
        """Discard any partial file. Nothing is delivered."""
        session = self._session
        if session is None:
            return
        self._session = None
        await asyncio.to_thread(session.discard)
        session.info.state = state
        session.info.error_message = reason
        logger.info(f"Receive of {session.info.file_name} aborted: {reason}")
        await self._state_callback(session.info)

    # ------------------------------------------------------------------

    async def _on_file_info(self, frame: FileInfoFrame) -> None:
        if self._session is not None:
            logger.info(f"New file-info supersedes transfer of {self._session.info.file_name}")
            await self.abort("Superseded by a new transfer", TransferState.CANCELLED)

        await asyncio.to_thread(os.makedirs, self.save_dir, exist_ok=True)
        part_path = os.path.join(self.save_dir, f".{uuid.uuid4().hex}.part")
        part_file = await asyncio.to_thread(open, part_path, "wb")
        self._session = _ReceiveSession(frame, part_path, part_file)
        logger.info(f"Receiving {frame.name} ({frame.size} bytes)")
        await self._state_callback(self._session.info)

    async def _on_chunk(self, chunk: bytes) -> None:
        session = self._session
        if session is None:
            raise MalformedFrame(f"{len(chunk)}-byte chunk received before file-info")

        if session.tracker.bytes_moved + len(chunk) > session.frame.size:
            await self.abort(
                f"Received more than the announced {session.frame.size} bytes"
            )
            return

        await asyncio.to_thread(session.file.write, chunk)
        session.tracker.record(len(chunk))

        info = session.info
        info.bytes_moved = session.tracker.bytes_moved
        info.chunks_moved += 1
        info.progress_percent = session.tracker.progress
        info.eta_seconds = session.tracker.eta_seconds
        await self._progress_callback(info)

    async def _on_file_complete(self, frame: FileCompleteFrame) -> None:
        session = self._session
        if session is None:
            logger.warning("Dropping file-complete received before file-info")
            return

        info = session.info
        try:
            if info.bytes_moved != session.frame.size:
                raise IncompleteTransfer(
                    f"Got {info.bytes_moved}/{session.frame.size} bytes"
                )
            for announced in (session.frame.chunks, frame.chunks):
                if announced is not None and announced != info.chunks_moved:
                    raise IncompleteTransfer(
                        f"Got {info.chunks_moved} chunks, peer announced {announced}"
                    )
        except IncompleteTransfer as e:
            await self.abort(str(e))
            return

        try:
            await asyncio.to_thread(session.file.close)
            final_path = unique_path(self.save_dir, safe_filename(info.file_name))
            await asyncio.to_thread(os.replace, session.part_path, final_path)
        except OSError as e:
            logger.error(f"Could not save {info.file_name}: {e}")
            await self.abort(f"Could not save file: {e}")
            return
        self._session = None

        info.state = TransferState.COMPLETED
        info.progress_percent = 100.0
        info.eta_seconds = 0
        await self._state_callback(info)
        logger.info(f"Received {info.file_name} -> {final_path}")

        await self._on_file(ReceivedFile(
            name=os.path.basename(final_path),
            mime_type=info.mime_type,
            size=info.bytes_moved,
            path=final_path,
        ))

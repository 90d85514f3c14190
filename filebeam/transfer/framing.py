"""
Direct-channel framing.

Two message shapes share the channel and are told apart by transport
type, not by a header byte:

    str   -> structured frame (JSON): file-info | file-complete
    bytes -> binary frame: a raw slice of the file

Binary frames carry no sequence number; order is the send order and the
channel must be ordered and reliable.
"""

import json
import math

from pydantic import ValidationError

from filebeam.errors import MalformedFrame
from filebeam.transfer.models import FileCompleteFrame, FileInfoFrame, FrameType


def encode_frame(frame: FileInfoFrame | FileCompleteFrame) -> str:
    """Serialize a structured frame to its JSON text form."""
    return frame.model_dump_json(by_alias=True, exclude_none=True)


def decode_frame(text: str) -> FileInfoFrame | FileCompleteFrame:
    """Parse a structured frame. Raises MalformedFrame."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedFrame(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedFrame("Structured frame is not an object")

    frame_type = data.get("type")
    try:
        if frame_type == FrameType.FILE_INFO:
            return FileInfoFrame.model_validate(data)
        if frame_type == FrameType.FILE_COMPLETE:
            return FileCompleteFrame.model_validate(data)
    except ValidationError as e:
        raise MalformedFrame(f"Invalid {frame_type} frame: {e.error_count()} error(s)") from e
    raise MalformedFrame(f"Unknown frame type: {frame_type!r}")


def chunk_count(size: int, chunk_size: int) -> int:
    """Number of binary frames needed for *size* bytes."""
    return math.ceil(size / chunk_size) if size > 0 else 0

"""Pydantic models for file transfer over the direct channel."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TransferState(str, Enum):
    """All possible states for a file transfer."""
    PENDING = "pending"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransferDirection(str, Enum):
    SENDING = "sending"
    RECEIVING = "receiving"


class TransferInfo(BaseModel):
    """Bookkeeping for one transfer, exposed to the UI.

    Sender and receiver each keep their own copy; they mirror the same
    logical transfer but are never synchronized.
    """
    file_name: str
    mime_type: str = ""
    total_size: int
    bytes_moved: int = 0
    chunks_moved: int = 0
    state: TransferState = TransferState.PENDING
    direction: TransferDirection
    progress_percent: float = 0.0
    eta_seconds: int | None = None  # None while still calculating
    error_message: str | None = None


class SourceFile(BaseModel):
    """A local file picked for sending."""
    path: str
    name: str
    size: int
    mime_type: str = ""


class ReceivedFile(BaseModel):
    """A fully reassembled file handed to the download sink."""
    name: str
    mime_type: str = ""
    size: int
    path: str


# --- Structured frames ---

class FrameType:
    FILE_INFO = "file-info"
    FILE_COMPLETE = "file-complete"


class FileInfoFrame(BaseModel):
    """Metadata sent once before any binary chunk."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file-info"] = FrameType.FILE_INFO
    name: str
    size: int = Field(ge=0)
    file_type: str = Field(default="", alias="fileType")
    chunks: int | None = Field(default=None, ge=0)  # expected chunk count


class FileCompleteFrame(BaseModel):
    """Sent once after the last binary chunk."""
    type: Literal["file-complete"] = FrameType.FILE_COMPLETE
    chunks: int | None = Field(default=None, ge=0)  # chunks actually sent

"""
Transfer Module - chunked file streaming over the direct channel.
"""

from filebeam.transfer.engine import FileReceiver, send_file
from filebeam.transfer.models import ReceivedFile, SourceFile, TransferInfo, TransferState

__all__ = [
    "FileReceiver",
    "send_file",
    "ReceivedFile",
    "SourceFile",
    "TransferInfo",
    "TransferState",
]

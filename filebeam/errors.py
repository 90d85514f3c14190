"""Exceptions raised by the rendezvous and transfer core."""


class FileBeamError(Exception):
    """Base class for all FileBeam errors."""


class OversizedInput(FileBeamError):
    """The selected file is larger than MAX_FILE_SIZE."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File is {size} bytes, maximum is {limit} bytes")
        self.size = size
        self.limit = limit


class SignalingUnavailable(FileBeamError):
    """The relay connection is down."""


class NegotiationFailure(FileBeamError):
    """Building or applying an offer, answer or candidate failed."""


class ChannelLost(FileBeamError):
    """The direct peer channel disconnected or failed."""


class MalformedFrame(FileBeamError):
    """A frame on the direct channel could not be understood."""


class IncompleteTransfer(FileBeamError):
    """file-complete arrived but the received data does not match file-info."""


class SlotOccupied(FileBeamError):
    """A room slot is held by another connection and rejoins are rejected."""

    def __init__(self, code: str, role: str) -> None:
        super().__init__(f"Room {code}: {role} slot already occupied")
        self.code = code
        self.role = role

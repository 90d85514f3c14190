"""Pydantic models for the relay wire protocol and room state."""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Role(str, Enum):
    SENDER = "sender"
    RECEIVER = "receiver"


class RejoinPolicy(str, Enum):
    """What the registry does when a second connection claims an occupied slot."""
    REPLACE = "replace"  # last writer wins (peer reconnecting)
    REJECT = "reject"  # first writer keeps the slot (code reused by a third party)


class RoomState(BaseModel):
    """Snapshot of one room; returned by the registry, never mutated by callers."""
    code: str
    sender: str | None = None
    receiver: str | None = None

    def other(self, connection_id: str) -> str | None:
        if self.sender == connection_id:
            return self.receiver
        if self.receiver == connection_id:
            return self.sender
        return None

    @property
    def is_empty(self) -> bool:
        return self.sender is None and self.receiver is None


# --- Wire protocol message types ---

class MessageType:
    JOIN_ROOM = "join-room"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    RECEIVER_JOINED = "receiver-joined"
    PEER_DISCONNECTED = "peer-disconnected"


class _ClientMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1)


class JoinRoom(_ClientMessage):
    type: Literal["join-room"]
    is_sender: bool = Field(alias="isSender")

    @property
    def role(self) -> Role:
        return Role.SENDER if self.is_sender else Role.RECEIVER


class Offer(_ClientMessage):
    type: Literal["offer"]
    offer: dict[str, Any]


class Answer(_ClientMessage):
    type: Literal["answer"]
    answer: dict[str, Any]


class IceCandidate(_ClientMessage):
    type: Literal["ice-candidate"]
    candidate: dict[str, Any]


ClientMessage = Annotated[
    Union[JoinRoom, Offer, Answer, IceCandidate],
    Field(discriminator="type"),
]

client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> JoinRoom | Offer | Answer | IceCandidate:
    """Validate one inbound relay message. Raises pydantic.ValidationError."""
    return client_message_adapter.validate_json(raw)

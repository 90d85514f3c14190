"""Relay side: room registry and signaling message routing."""

from filebeam.signaling.registry import RoomRegistry
from filebeam.signaling.relay import SignalingRelay

__all__ = ["RoomRegistry", "SignalingRelay"]

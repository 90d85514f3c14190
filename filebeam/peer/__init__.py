"""Peer side: channel negotiation, relay client and the UI session surface."""

from filebeam.peer.negotiator import ChannelNegotiator, NegotiatorState
from filebeam.peer.session import PeerSession, new_share_code

__all__ = ["ChannelNegotiator", "NegotiatorState", "PeerSession", "new_share_code"]

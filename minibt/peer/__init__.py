"""Peer wire protocol: handshake, message framing and the peer connection."""

from __future__ import annotations

from minibt.peer.connection import ConnectionState, PeerConnection
from minibt.peer.messages import (
    Handshake,
    PeerMessage,
    PieceMessage,
    RequestMessage,
)

__all__ = [
    "ConnectionState",
    "Handshake",
    "PeerConnection",
    "PeerMessage",
    "PieceMessage",
    "RequestMessage",
]

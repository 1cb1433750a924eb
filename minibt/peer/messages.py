"""Peer wire protocol messages.

Handles the 68-byte handshake and the length-prefixed message frames
exchanged after it.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from minibt.exceptions import HandshakeError, ProtocolError
from minibt.models import MessageType

HANDSHAKE_LENGTH = 68
LENGTH_PREFIX = struct.Struct("!I")


class Handshake:
    """BitTorrent handshake message."""

    PROTOCOL_STRING: bytes = b"BitTorrent protocol"
    RESERVED_BYTES: bytes = b"\x00" * 8  # 8 reserved bytes, all zero

    def __init__(self, info_hash: bytes, peer_id: bytes, reserved: bytes = RESERVED_BYTES) -> None:
        """Initialize handshake.

        Args:
            info_hash: 20-byte SHA-1 hash of info dictionary
            peer_id: 20-byte peer ID
            reserved: 8 extension flag bytes

        """
        if len(info_hash) != 20:
            msg = f"Info hash must be 20 bytes, got {len(info_hash)}"
            raise HandshakeError(msg)
        if len(peer_id) != 20:
            msg = f"Peer ID must be 20 bytes, got {len(peer_id)}"
            raise HandshakeError(msg)
        if len(reserved) != 8:
            msg = f"Reserved must be 8 bytes, got {len(reserved)}"
            raise HandshakeError(msg)

        self.info_hash: bytes = info_hash
        self.peer_id: bytes = peer_id
        self.reserved: bytes = reserved

    def encode(self) -> bytes:
        """Encode handshake to bytes.

        Format: <protocol len><protocol><reserved><info_hash><peer_id>
        Total: 1 + 19 + 8 + 20 + 20 = 68 bytes
        """
        return (
            struct.pack("B", len(self.PROTOCOL_STRING))
            + self.PROTOCOL_STRING
            + self.reserved
            + self.info_hash
            + self.peer_id
        )

    @classmethod
    def decode(cls, data: bytes) -> Handshake:
        """Decode handshake from bytes.

        Raises:
            HandshakeError: If data is not a BitTorrent handshake

        """
        if len(data) != HANDSHAKE_LENGTH:
            msg = f"Handshake must be {HANDSHAKE_LENGTH} bytes, got {len(data)}"
            raise HandshakeError(msg)

        protocol_len = data[0]
        if protocol_len != len(cls.PROTOCOL_STRING):
            msg = f"Invalid protocol length: {protocol_len}"
            raise HandshakeError(msg)

        protocol_string = data[1:20]
        if protocol_string != cls.PROTOCOL_STRING:
            msg = f"Invalid protocol string: {protocol_string!r}"
            raise HandshakeError(msg)

        return cls(data[28:48], data[48:68], reserved=data[20:28])


@dataclass(frozen=True)
class PeerMessage:
    """A framed peer wire message: type tag plus payload."""

    message_type: MessageType
    payload: bytes = b""

    def encode(self) -> bytes:
        """Encode as ``<uint32 length><uint8 type><payload>``."""
        return (
            LENGTH_PREFIX.pack(len(self.payload) + 1)
            + struct.pack("B", self.message_type)
            + self.payload
        )


@dataclass(frozen=True)
class RequestMessage:
    """Request payload: a block of a piece."""

    piece_index: int
    begin: int
    length: int

    _FORMAT = struct.Struct("!III")

    def encode_payload(self) -> bytes:
        """Encode the 12-byte payload."""
        return self._FORMAT.pack(self.piece_index, self.begin, self.length)

    def to_message(self) -> PeerMessage:
        """Wrap the payload in a REQUEST frame."""
        return PeerMessage(MessageType.REQUEST, self.encode_payload())

    @classmethod
    def decode_payload(cls, payload: bytes) -> RequestMessage:
        """Decode a request payload."""
        if len(payload) != cls._FORMAT.size:
            msg = f"Request payload must be {cls._FORMAT.size} bytes, got {len(payload)}"
            raise ProtocolError(msg)
        return cls(*cls._FORMAT.unpack(payload))


@dataclass(frozen=True)
class PieceMessage:
    """Piece payload: block data at an offset within a piece."""

    piece_index: int
    begin: int
    block: bytes

    _HEADER = struct.Struct("!II")

    def encode_payload(self) -> bytes:
        """Encode ``index | begin | block``."""
        return self._HEADER.pack(self.piece_index, self.begin) + self.block

    def to_message(self) -> PeerMessage:
        """Wrap the payload in a PIECE frame."""
        return PeerMessage(MessageType.PIECE, self.encode_payload())

    @classmethod
    def decode_payload(cls, payload: bytes) -> PieceMessage:
        """Decode a piece payload."""
        if len(payload) < cls._HEADER.size:
            msg = f"Piece payload too short: {len(payload)} bytes"
            raise ProtocolError(msg)
        piece_index, begin = cls._HEADER.unpack_from(payload)
        return cls(piece_index, begin, payload[cls._HEADER.size :])

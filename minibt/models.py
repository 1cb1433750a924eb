"""Pydantic models for minibt.

Provides validated data models for type safety and runtime validation.
"""

from __future__ import annotations

import ipaddress
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from minibt.exceptions import MetadataError

SHA1_LENGTH = 20
MAX_BLOCK_SIZE = 16384


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MessageType(int, Enum):
    """BitTorrent peer wire message types."""

    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8


class PeerAddress(BaseModel):
    """IPv4 address and port of a peer, as announced by a tracker."""

    ip: str = Field(..., description="Peer IPv4 address")
    port: int = Field(..., ge=0, le=65535, description="Peer port number")

    model_config = {"frozen": True}

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, v):
        """Validate IPv4 address format."""
        try:
            ipaddress.IPv4Address(v)
        except ValueError as e:
            msg = f"Invalid IPv4 address: {v!r}"
            raise ValueError(msg) from e
        return v

    @classmethod
    def parse(cls, address: str) -> PeerAddress:
        """Parse an ``ip:port`` string."""
        host, sep, port = address.rpartition(":")
        if not sep or not port.isdigit():
            msg = f"Peer address must look like ip:port, got {address!r}"
            raise ValueError(msg)
        return cls(ip=host, port=int(port))

    def __str__(self) -> str:
        """String representation of peer address."""
        return f"{self.ip}:{self.port}"


class TorrentMetadata(BaseModel):
    """Immutable metadata of a single-file torrent."""

    tracker_url: str = Field(..., description="Announce URL")
    total_length: int = Field(..., ge=0, description="Total length in bytes")
    piece_length: int = Field(..., gt=0, description="Piece length in bytes")
    piece_hashes: tuple[bytes, ...] = Field(
        default=(),
        description="SHA-1 digest of every piece, in piece order",
    )
    info_hash: bytes = Field(
        ...,
        min_length=SHA1_LENGTH,
        max_length=SHA1_LENGTH,
        description="SHA-1 of the bencoded info dictionary",
    )
    name: str | None = Field(None, description="Suggested file name")

    model_config = {"frozen": True}

    @field_validator("piece_hashes")
    @classmethod
    def validate_piece_hashes(cls, v):
        """Every piece hash must be a 20-byte SHA-1 digest."""
        for index, digest in enumerate(v):
            if len(digest) != SHA1_LENGTH:
                msg = f"Piece hash {index} is {len(digest)} bytes, expected {SHA1_LENGTH}"
                raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_piece_count(self):
        """Hash count must cover the total length exactly."""
        expected = -(-self.total_length // self.piece_length)
        if len(self.piece_hashes) != expected:
            msg = (
                f"Torrent of {self.total_length} bytes with piece length "
                f"{self.piece_length} needs {expected} piece hashes, "
                f"got {len(self.piece_hashes)}"
            )
            raise ValueError(msg)
        return self

    @property
    def num_pieces(self) -> int:
        """Number of pieces in the torrent."""
        return len(self.piece_hashes)

    def _check_index(self, piece_index: int) -> None:
        if piece_index < 0 or piece_index >= self.num_pieces:
            msg = f"Invalid piece index: {piece_index}"
            raise MetadataError(msg, {"num_pieces": self.num_pieces})

    def piece_size(self, piece_index: int) -> int:
        """Byte length of a piece; only the final piece may be shorter."""
        self._check_index(piece_index)
        return min(
            self.piece_length,
            self.total_length - piece_index * self.piece_length,
        )

    def piece_hash(self, piece_index: int) -> bytes:
        """Get the SHA-1 hash for a specific piece."""
        self._check_index(piece_index)
        return self.piece_hashes[piece_index]


class NetworkConfig(BaseModel):
    """Network configuration."""

    listen_port: int = Field(
        default=6881,
        ge=1,
        le=65535,
        description="Port reported to the tracker",
    )
    connection_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="TCP connect timeout for peers in seconds",
    )
    tracker_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Tracker HTTP request timeout in seconds",
    )
    block_size: int = Field(
        default=MAX_BLOCK_SIZE,
        ge=1,
        le=MAX_BLOCK_SIZE,
        description="Block request size in bytes",
    )
    max_message_length: int = Field(
        default=1024 * 1024,
        ge=MAX_BLOCK_SIZE + 9,
        le=64 * 1024 * 1024,
        description="Largest peer wire frame accepted",
    )
    verify_info_hash: bool = Field(
        default=True,
        description="Reject handshakes echoing a different info hash",
    )
    strict_block_correlation: bool = Field(
        default=False,
        description="Reject piece replies that do not match the outstanding request",
    )
    peer_id_prefix: str = Field(
        default="-MB0100-",
        min_length=1,
        max_length=20,
        description="Client prefix of generated peer IDs",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Use structured JSON logging",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    network: NetworkConfig = Field(
        default_factory=NetworkConfig,
        description="Network configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )

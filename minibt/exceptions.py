"""Exception hierarchy for minibt.

Every error raised by the library derives from :class:`MiniBTError` so callers
can report a single failure reason per top-level operation.
"""

from __future__ import annotations

from typing import Any


class MiniBTError(Exception):
    """Base exception for all minibt errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize minibt error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(MiniBTError):
    """Data validation errors."""


class BencodeError(ValidationError):
    """Bencode encoding/decoding errors."""


class DecodeError(BencodeError):
    """Malformed bencode input."""


class EncodeError(BencodeError):
    """Value cannot be represented in bencode."""


class MetadataError(ValidationError):
    """Well-formed bencode with missing or mistyped torrent fields."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class NetworkError(MiniBTError):
    """Network-related errors."""


class TrackerError(NetworkError):
    """Malformed or incomplete tracker response, or tracker unreachable."""


class PeerConnectionError(NetworkError):
    """Transport-level peer connection errors."""


class ProtocolError(MiniBTError):
    """Unexpected message type or truncated frame on the peer wire."""


class HandshakeError(ProtocolError):
    """Handshake did not complete."""


class IntegrityError(MiniBTError):
    """Piece data does not match its published SHA-1 hash."""


class IncompleteDownloadError(MiniBTError):
    """Assembled output does not match the torrent's total length."""

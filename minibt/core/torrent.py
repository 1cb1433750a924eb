"""Torrent file parsing for minibt.

This module handles parsing single-file torrent descriptors, extracting
metadata, and calculating info hashes as required by the BitTorrent protocol.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from minibt.core.bencode import decode, encode
from minibt.exceptions import MetadataError
from minibt.models import SHA1_LENGTH, TorrentMetadata

logger = logging.getLogger(__name__)


def compute_info_hash(info: dict[bytes, Any]) -> bytes:
    """SHA-1 of the info dictionary re-encoded in its decoded key order."""
    return hashlib.sha1(encode(info)).digest()  # nosec B324 - protocol-mandated SHA-1


def _require(
    container: dict[bytes, Any], key: bytes, kind: type, where: str
) -> Any:
    if key not in container:
        msg = f"Missing required key in {where}: {key.decode()}"
        raise MetadataError(msg)
    value = container[key]
    if not isinstance(value, kind):
        msg = (
            f"Field {key.decode()!r} in {where} must be "
            f"{'a byte string' if kind is bytes else kind.__name__}, "
            f"got {type(value).__name__}"
        )
        raise MetadataError(msg)
    return value


def _split_piece_hashes(pieces: bytes) -> tuple[bytes, ...]:
    if len(pieces) % SHA1_LENGTH != 0:
        msg = (
            f"Invalid pieces data length: {len(pieces)} bytes "
            f"(should be multiple of {SHA1_LENGTH})"
        )
        raise MetadataError(msg)
    return tuple(
        pieces[start : start + SHA1_LENGTH]
        for start in range(0, len(pieces), SHA1_LENGTH)
    )


def load_metadata(data: bytes) -> TorrentMetadata:
    """Build torrent metadata from the raw bytes of a torrent file.

    Args:
        data: Bencoded torrent descriptor

    Returns:
        Immutable TorrentMetadata

    Raises:
        DecodeError: If the bytes are not valid bencode
        MetadataError: If required fields are missing, mistyped or inconsistent

    """
    decoded = decode(data)
    if not isinstance(decoded, dict):
        msg = f"Torrent must be a dictionary, got {type(decoded).__name__}"
        raise MetadataError(msg)

    announce = _require(decoded, b"announce", bytes, "torrent")
    try:
        tracker_url = announce.decode("utf-8")
    except UnicodeDecodeError as e:
        msg = "Announce URL is not valid UTF-8"
        raise MetadataError(msg) from e

    info = _require(decoded, b"info", dict, "torrent")
    length = _require(info, b"length", int, "info")
    piece_length = _require(info, b"piece length", int, "info")
    pieces = _require(info, b"pieces", bytes, "info")

    name = info.get(b"name")
    if isinstance(name, bytes):
        name = name.decode("utf-8", errors="replace")
    else:
        name = None

    try:
        metadata = TorrentMetadata(
            tracker_url=tracker_url,
            total_length=length,
            piece_length=piece_length,
            piece_hashes=_split_piece_hashes(pieces),
            info_hash=compute_info_hash(info),
            name=name,
        )
    except PydanticValidationError as e:
        msg = f"Invalid torrent metadata: {e}"
        raise MetadataError(msg) from e

    logger.debug(
        "Loaded torrent %s: %d bytes in %d pieces",
        metadata.info_hash.hex(),
        metadata.total_length,
        metadata.num_pieces,
    )
    return metadata


class TorrentParser:
    """Parser for torrent files on disk."""

    def parse(self, torrent_path: str | Path) -> TorrentMetadata:
        """Parse a torrent file from a local path.

        Args:
            torrent_path: Path to local torrent file

        Returns:
            TorrentMetadata parsed from the file

        Raises:
            MetadataError: If the file is missing or its fields are invalid
            DecodeError: If the file is not valid bencode

        """
        return load_metadata(self._read_from_file(torrent_path))

    def _read_from_file(self, file_path: str | Path) -> bytes:
        """Read torrent data from a local file."""
        path = Path(file_path)
        if not path.is_file():
            msg = f"Torrent file not found: {path}"
            raise MetadataError(msg)

        with open(path, "rb") as f:
            return f.read()

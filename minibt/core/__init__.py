"""Core BitTorrent protocol implementation.

This module contains the fundamental BitTorrent protocol components:
- Bencoding (encoding/decoding)
- Torrent file parsing
"""

from __future__ import annotations

from minibt.core.bencode import (
    BencodeDecoder,
    BencodeEncoder,
    decode,
    encode,
    find_value_end,
)
from minibt.core.torrent import TorrentParser, compute_info_hash, load_metadata

__all__ = [
    # Bencoding
    "BencodeDecoder",
    "BencodeEncoder",
    # Torrent
    "TorrentParser",
    "compute_info_hash",
    "decode",
    "encode",
    "find_value_end",
    "load_metadata",
]

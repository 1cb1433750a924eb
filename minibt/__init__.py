"""minibt - a minimal single-peer BitTorrent client."""

from __future__ import annotations

__version__ = "0.1.0"

from minibt.config import Config, ConfigManager, get_config, init_config
from minibt.core.bencode import BencodeDecoder, BencodeEncoder, decode, encode
from minibt.core.torrent import TorrentParser, compute_info_hash, load_metadata
from minibt.models import MessageType, PeerAddress, TorrentMetadata
from minibt.peer.connection import PeerConnection
from minibt.piece.downloader import PieceDownloader
from minibt.tracker import AsyncTrackerClient

__all__ = [
    "AsyncTrackerClient",
    "BencodeDecoder",
    "BencodeEncoder",
    "Config",
    "ConfigManager",
    "MessageType",
    "PeerAddress",
    "PeerConnection",
    "PieceDownloader",
    "TorrentMetadata",
    "TorrentParser",
    "__version__",
    "compute_info_hash",
    "decode",
    "encode",
    "get_config",
    "init_config",
    "load_metadata",
]

"""End-to-end download flow.

Announce to the tracker, connect to the first peer it returns, and download
through that single connection. There is no fallback to other peers and no
retry: every error ends the operation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from minibt.config import get_config
from minibt.exceptions import TrackerError
from minibt.logging_config import LoggingContext
from minibt.peer.connection import PeerConnection
from minibt.piece.downloader import PieceDownloader
from minibt.tracker import AsyncTrackerClient, generate_peer_id

if TYPE_CHECKING:
    from minibt.models import PeerAddress, TorrentMetadata

logger = logging.getLogger(__name__)


async def discover_peers(
    metadata: TorrentMetadata,
    peer_id: bytes | None = None,
    port: int | None = None,
) -> list[PeerAddress]:
    """Announce to the torrent's tracker and return its peer list."""
    network = get_config().network
    if peer_id is None:
        peer_id = generate_peer_id(network.peer_id_prefix)
    async with AsyncTrackerClient(timeout=network.tracker_timeout) as client:
        return await client.announce(
            metadata,
            peer_id,
            port if port is not None else network.listen_port,
        )


async def connect_peer(
    metadata: TorrentMetadata,
    peer: PeerAddress,
    peer_id: bytes | None = None,
) -> PeerConnection:
    """Open a connection to ``peer`` and complete the handshake.

    The caller owns the returned connection and must close it.
    """
    network = get_config().network
    connection = PeerConnection(
        peer=peer,
        info_hash=metadata.info_hash,
        peer_id=peer_id or generate_peer_id(network.peer_id_prefix),
        verify_info_hash=network.verify_info_hash,
        max_message_length=network.max_message_length,
    )
    await connection.connect(timeout=network.connection_timeout)
    try:
        await connection.handshake()
    except Exception:
        await connection.close()
        raise
    return connection


async def _first_peer(
    metadata: TorrentMetadata, peer_id: bytes, port: int | None
) -> PeerAddress:
    peers = await discover_peers(metadata, peer_id, port)
    if not peers:
        msg = "Tracker returned no peers"
        raise TrackerError(msg, {"tracker": metadata.tracker_url})
    return peers[0]


def _downloader(connection: PeerConnection, metadata: TorrentMetadata) -> PieceDownloader:
    network = get_config().network
    return PieceDownloader(
        connection,
        metadata,
        block_size=network.block_size,
        strict_blocks=network.strict_block_correlation,
    )


async def fetch_piece(
    metadata: TorrentMetadata,
    piece_index: int,
    *,
    peer_id: bytes | None = None,
    port: int | None = None,
) -> bytes:
    """Download and verify a single piece from the first announced peer."""
    metadata.piece_size(piece_index)  # rejects a bad index before any network traffic
    peer_id = peer_id or generate_peer_id(get_config().network.peer_id_prefix)
    peer = await _first_peer(metadata, peer_id, port)

    with LoggingContext(f"download of piece {piece_index}", logger, peer=str(peer)):
        async with await connect_peer(metadata, peer, peer_id) as connection:
            return await _downloader(connection, metadata).download_piece(piece_index)


async def fetch_file(
    metadata: TorrentMetadata,
    *,
    peer_id: bytes | None = None,
    port: int | None = None,
) -> bytes:
    """Download and verify the whole file from the first announced peer."""
    peer_id = peer_id or generate_peer_id(get_config().network.peer_id_prefix)
    peer = await _first_peer(metadata, peer_id, port)

    with LoggingContext("file download", logger, peer=str(peer)):
        async with await connect_peer(metadata, peer, peer_id) as connection:
            return await _downloader(connection, metadata).download_file()

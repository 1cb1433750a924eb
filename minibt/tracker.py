"""Async tracker communication for minibt.

This module announces the client to an HTTP tracker and decodes the compact
peer list from the bencoded response.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import urllib.parse
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import aiohttp

from minibt.config import get_config
from minibt.core.bencode import decode
from minibt.exceptions import DecodeError, TrackerError
from minibt.models import PeerAddress

if TYPE_CHECKING:
    from minibt.models import TorrentMetadata

COMPACT_PEER_LENGTH = 6
PEER_ID_LENGTH = 20


def generate_peer_id(prefix: str = "-MB0100-") -> bytes:
    """Generate a 20-byte peer ID: the client prefix plus random bytes."""
    prefix_bytes = prefix.encode("utf-8")[:PEER_ID_LENGTH]
    return prefix_bytes + secrets.token_bytes(PEER_ID_LENGTH - len(prefix_bytes))


@dataclass
class TrackerResponse:
    """Tracker response data."""

    peers: list[PeerAddress] = field(default_factory=list)
    interval: int | None = None
    complete: int | None = None
    incomplete: int | None = None
    warning_message: str | None = None


def parse_compact_peers(peers_data: bytes) -> list[PeerAddress]:
    """Parse compact peer format.

    In compact format, peers are encoded as 6 bytes per peer:
    - 4 bytes: IP address (network byte order)
    - 2 bytes: port (network byte order)

    Raises:
        TrackerError: If the data is not a whole number of peer records

    """
    if len(peers_data) % COMPACT_PEER_LENGTH != 0:
        msg = f"Invalid compact peer data length: {len(peers_data)} bytes"
        raise TrackerError(msg)

    peers = []
    for start in range(0, len(peers_data), COMPACT_PEER_LENGTH):
        ip = ".".join(str(b) for b in peers_data[start : start + 4])
        port = int.from_bytes(peers_data[start + 4 : start + 6], byteorder="big")
        peers.append(PeerAddress(ip=ip, port=port))
    return peers


def _optional_int(decoded: dict, key: bytes) -> int | None:
    value = decoded.get(key)
    return value if isinstance(value, int) else None


def parse_response(response_data: bytes) -> TrackerResponse:
    """Parse a bencoded tracker response.

    Args:
        response_data: Raw response body from the tracker

    Returns:
        TrackerResponse with the decoded peer list

    Raises:
        TrackerError: If the response is malformed or reports a failure

    """
    try:
        decoded = decode(response_data)
    except DecodeError as e:
        msg = f"Tracker response is not valid bencode: {e}"
        raise TrackerError(msg) from e

    if not isinstance(decoded, dict):
        msg = f"Tracker response must be a dictionary, got {type(decoded).__name__}"
        raise TrackerError(msg)

    if b"failure reason" in decoded:
        reason = decoded[b"failure reason"]
        if isinstance(reason, bytes):
            reason = reason.decode("utf-8", errors="replace")
        msg = f"Tracker failure: {reason}"
        raise TrackerError(msg)

    if b"peers" not in decoded:
        msg = "Missing peers in tracker response"
        raise TrackerError(msg)

    peers_data = decoded[b"peers"]
    if not isinstance(peers_data, bytes):
        msg = "Tracker did not return a compact peer list"
        raise TrackerError(msg, {"type": type(peers_data).__name__})

    warning = decoded.get(b"warning message")
    if isinstance(warning, bytes):
        warning = warning.decode("utf-8", errors="replace")
    else:
        warning = None

    return TrackerResponse(
        peers=parse_compact_peers(peers_data),
        interval=_optional_int(decoded, b"interval"),
        complete=_optional_int(decoded, b"complete"),
        incomplete=_optional_int(decoded, b"incomplete"),
        warning_message=warning,
    )


def build_announce_url(
    metadata: TorrentMetadata,
    peer_id: bytes,
    port: int,
    uploaded: int = 0,
    downloaded: int = 0,
) -> str:
    """Build the announce URL with all required query parameters.

    ``info_hash`` and ``peer_id`` are sent as raw bytes, percent-encoded.
    """
    params = {
        "info_hash": metadata.info_hash,
        "peer_id": peer_id,
        "port": port,
        "uploaded": uploaded,
        "downloaded": downloaded,
        "left": metadata.total_length - downloaded,
        "compact": 1,
    }
    query_string = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
    separator = "&" if "?" in metadata.tracker_url else "?"
    return f"{metadata.tracker_url}{separator}{query_string}"


class AsyncTrackerClient:
    """Async client for communicating with an HTTP tracker."""

    def __init__(self, timeout: float | None = None):
        """Initialize the async tracker client.

        Args:
            timeout: Total request timeout in seconds (defaults to config)

        """
        self.timeout = timeout if timeout is not None else get_config().network.tracker_timeout
        self.user_agent = "minibt/0.1.0"
        self.session: aiohttp.ClientSession | None = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> AsyncTrackerClient:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()

    async def start(self) -> None:
        """Create the HTTP session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
            )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def announce(
        self,
        metadata: TorrentMetadata,
        peer_id: bytes,
        port: int,
    ) -> list[PeerAddress]:
        """Announce to the tracker and return its peer list.

        Args:
            metadata: Torrent being downloaded
            peer_id: Our 20-byte peer ID
            port: Port reported to the tracker

        Returns:
            Peers in the order the tracker listed them

        Raises:
            TrackerError: If the tracker is unreachable or its response is malformed

        """
        if len(peer_id) != PEER_ID_LENGTH:
            msg = f"Peer ID must be {PEER_ID_LENGTH} bytes, got {len(peer_id)}"
            raise TrackerError(msg)

        url = build_announce_url(metadata, peer_id, port)
        self.logger.debug("Announcing to %s", metadata.tracker_url)
        response = parse_response(await self._make_request_async(url))

        if response.warning_message:
            self.logger.warning("Tracker warning: %s", response.warning_message)
        self.logger.info(
            "Tracker %s returned %d peers",
            metadata.tracker_url,
            len(response.peers),
        )
        return response.peers

    async def _make_request_async(self, url: str) -> bytes:
        """Make async HTTP GET request to tracker."""
        if self.session is None:
            msg = "Tracker client not started"
            raise TrackerError(msg)
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    msg = f"HTTP {response.status}: {response.reason}"
                    raise TrackerError(msg)
                return await response.read()
        except aiohttp.ClientError as e:
            msg = f"Network error: {e}"
            raise TrackerError(msg) from e
        except asyncio.TimeoutError as e:
            msg = "Tracker request timed out"
            raise TrackerError(msg) from e

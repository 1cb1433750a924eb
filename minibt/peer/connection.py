"""Async connection to a single peer.

The connection owns one TCP stream, performs the handshake, and reads and
writes framed peer wire messages. Every read and write is awaited in turn; the
connection never has more than one operation outstanding.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum

from minibt.exceptions import (
    HandshakeError,
    MiniBTError,
    PeerConnectionError,
    ProtocolError,
)
from minibt.models import MessageType, PeerAddress
from minibt.peer.messages import HANDSHAKE_LENGTH, LENGTH_PREFIX, Handshake, PeerMessage

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 1024 * 1024


class ConnectionState(Enum):
    """States of a peer connection."""

    UNCONNECTED = "unconnected"
    HANDSHAKE_SENT = "handshake_sent"
    HANDSHAKE_CONFIRMED = "handshake_confirmed"
    CLOSED = "closed"


def _type_name(message_type: int) -> str:
    try:
        return MessageType(message_type).name
    except ValueError:
        return str(message_type)


@dataclass
class PeerConnection:
    """Represents an async connection to a single peer."""

    peer: PeerAddress
    info_hash: bytes
    peer_id: bytes
    reader: asyncio.StreamReader | None = None
    writer: asyncio.StreamWriter | None = None
    state: ConnectionState = ConnectionState.UNCONNECTED
    remote_peer_id: bytes | None = None
    verify_info_hash: bool = True
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH

    def __str__(self):
        """Return string representation of peer connection."""
        return f"PeerConnection({self.peer}, state={self.state.value})"

    async def __aenter__(self) -> PeerConnection:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    @property
    def is_closed(self) -> bool:
        """Whether the connection has been closed."""
        return self.state == ConnectionState.CLOSED

    async def connect(self, timeout: float | None = None) -> None:
        """Open the TCP stream to the peer.

        Raises:
            PeerConnectionError: If the peer cannot be reached

        """
        if self.state != ConnectionState.UNCONNECTED or self.writer is not None:
            msg = f"Cannot connect from state {self.state.value}"
            raise ProtocolError(msg)

        logger.info("Connecting to peer %s", self.peer)
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.peer.ip, self.peer.port),
                timeout=timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            self.state = ConnectionState.CLOSED
            msg = f"Failed to connect to {self.peer}: {e or type(e).__name__}"
            raise PeerConnectionError(msg) from e

    @contextlib.asynccontextmanager
    async def _closing_on_error(self):
        """Close the connection if the wrapped operation fails."""
        try:
            yield
        except MiniBTError:
            await self.close()
            raise
        except OSError as e:
            await self.close()
            msg = f"Connection to {self.peer} failed: {e}"
            raise PeerConnectionError(msg) from e

    def _streams(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if self.reader is None or self.writer is None or self.is_closed:
            msg = f"Connection to {self.peer} is not open"
            raise ProtocolError(msg, {"state": self.state.value})
        return self.reader, self.writer

    async def handshake(self) -> bytes:
        """Exchange handshakes and return the remote peer ID.

        Raises:
            HandshakeError: If the peer closes early, replies with something
                other than a handshake, or echoes a different info hash

        """
        reader, writer = self._streams()
        if self.state != ConnectionState.UNCONNECTED:
            msg = f"Handshake not allowed in state {self.state.value}"
            raise ProtocolError(msg)

        async with self._closing_on_error():
            writer.write(Handshake(self.info_hash, self.peer_id).encode())
            await writer.drain()
            self.state = ConnectionState.HANDSHAKE_SENT
            logger.debug("Sent handshake to %s", self.peer)

            try:
                data = await reader.readexactly(HANDSHAKE_LENGTH)
            except asyncio.IncompleteReadError as e:
                msg = (
                    f"Peer {self.peer} closed the connection after "
                    f"{len(e.partial)} of {HANDSHAKE_LENGTH} handshake bytes"
                )
                raise HandshakeError(msg) from e

            reply = Handshake.decode(data)
            if self.verify_info_hash and reply.info_hash != self.info_hash:
                msg = (
                    f"Info hash mismatch: expected {self.info_hash.hex()}, "
                    f"got {reply.info_hash.hex()}"
                )
                raise HandshakeError(msg)

        self.remote_peer_id = reply.peer_id
        self.state = ConnectionState.HANDSHAKE_CONFIRMED
        logger.info("Handshake successful with peer %s", self.peer)
        return reply.peer_id

    def _confirmed_streams(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        streams = self._streams()
        if self.state != ConnectionState.HANDSHAKE_CONFIRMED:
            msg = f"Handshake with {self.peer} has not completed"
            raise ProtocolError(msg, {"state": self.state.value})
        return streams

    async def read_message(self, expected_type: MessageType) -> bytes:
        """Read the next message and return its payload.

        Keep-alive frames (length 0) are skipped.

        Raises:
            ProtocolError: If the frame is truncated, oversized, or of another type

        """
        reader, _ = self._confirmed_streams()
        async with self._closing_on_error():
            body = await self._read_frame(reader)
            if body[0] != expected_type:
                msg = (
                    f"Expected {_type_name(expected_type)} message, "
                    f"got {_type_name(body[0])}"
                )
                raise ProtocolError(msg, {"peer": str(self.peer)})

        logger.debug(
            "Received %s (%d bytes) from %s",
            _type_name(expected_type),
            len(body) - 1,
            self.peer,
        )
        return body[1:]

    async def _read_frame(self, reader: asyncio.StreamReader) -> bytes:
        try:
            while True:
                (length,) = LENGTH_PREFIX.unpack(
                    await reader.readexactly(LENGTH_PREFIX.size)
                )
                if length == 0:
                    logger.debug("Keep-alive from %s", self.peer)
                    continue
                if length > self.max_message_length:
                    msg = f"Message length {length} exceeds limit {self.max_message_length}"
                    raise ProtocolError(msg, {"peer": str(self.peer)})
                return await reader.readexactly(length)
        except asyncio.IncompleteReadError as e:
            msg = f"Truncated message from {self.peer}: connection closed"
            raise ProtocolError(msg, {"received": len(e.partial)}) from e

    async def write_message(self, message_type: MessageType, payload: bytes = b"") -> None:
        """Write one framed message."""
        _, writer = self._confirmed_streams()
        async with self._closing_on_error():
            writer.write(PeerMessage(message_type, payload).encode())
            await writer.drain()
        logger.debug(
            "Sent %s (%d bytes) to %s",
            _type_name(message_type),
            len(payload),
            self.peer,
        )

    async def close(self) -> None:
        """Close the stream; the connection is unusable afterwards."""
        self.state = ConnectionState.CLOSED
        writer, self.writer = self.writer, None
        self.reader = None
        if writer is None:
            return
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        logger.debug("Closed connection to %s", self.peer)

"""Piece download over a single peer connection.

Pieces are fetched one block at a time: each REQUEST is answered by one PIECE
before the next REQUEST goes out, and the assembled piece is checked against
its SHA-1 before it is handed back.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from minibt.exceptions import IncompleteDownloadError, IntegrityError, ProtocolError
from minibt.models import MAX_BLOCK_SIZE, MessageType
from minibt.peer.messages import PieceMessage, RequestMessage

if TYPE_CHECKING:
    from minibt.models import TorrentMetadata
    from minibt.peer.connection import PeerConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Block:
    """Represents a block within a piece."""

    piece_index: int
    begin: int
    length: int

    def __post_init__(self):
        """Validate block bounds."""
        if self.begin < 0:
            msg = f"Block offset must be non-negative, got {self.begin}"
            raise ValueError(msg)
        if not 0 < self.length <= MAX_BLOCK_SIZE:
            msg = f"Block length must be in 1..{MAX_BLOCK_SIZE}, got {self.length}"
            raise ValueError(msg)

    def to_request(self) -> RequestMessage:
        """Request payload for this block."""
        return RequestMessage(self.piece_index, self.begin, self.length)


def split_blocks(
    piece_index: int, piece_size: int, block_size: int = MAX_BLOCK_SIZE
) -> list[Block]:
    """Split ``[0, piece_size)`` into contiguous blocks in ascending order.

    Every block is ``block_size`` long except the last, which holds the remainder.
    """
    if not 0 < block_size <= MAX_BLOCK_SIZE:
        msg = f"Block size must be in 1..{MAX_BLOCK_SIZE}, got {block_size}"
        raise ValueError(msg)
    return [
        Block(piece_index, begin, min(block_size, piece_size - begin))
        for begin in range(0, piece_size, block_size)
    ]


def verify_piece(data: bytes, expected_hash: bytes) -> bool:
    """Check piece data against its SHA-1 hash."""
    return hashlib.sha1(data).digest() == expected_hash  # nosec B324 - protocol-mandated SHA-1


class PieceDownloader:
    """Downloads and verifies pieces over one handshaken connection."""

    def __init__(
        self,
        connection: PeerConnection,
        metadata: TorrentMetadata,
        block_size: int = MAX_BLOCK_SIZE,
        strict_blocks: bool = False,
    ):
        """Initialize the downloader.

        Args:
            connection: Connection whose handshake has completed
            metadata: Torrent being downloaded
            block_size: Bytes requested per REQUEST message
            strict_blocks: Reject PIECE replies that do not match the request

        """
        self.connection = connection
        self.metadata = metadata
        self.block_size = block_size
        self.strict_blocks = strict_blocks
        self.session_started = False
        self.requests_sent = 0

    async def start_session(self) -> None:
        """Drain BITFIELD, declare INTERESTED and wait for UNCHOKE.

        Runs once per connection; later calls return immediately.

        Raises:
            ProtocolError: If the peer sends anything else

        """
        if self.session_started:
            return
        bitfield = await self.connection.read_message(MessageType.BITFIELD)
        logger.debug("Peer bitfield is %d bytes", len(bitfield))
        await self.connection.write_message(MessageType.INTERESTED)
        await self.connection.read_message(MessageType.UNCHOKE)
        self.session_started = True
        logger.info("Unchoked by %s", self.connection.peer)

    async def _fetch_block(self, block: Block) -> bytes:
        await self.connection.write_message(
            MessageType.REQUEST, block.to_request().encode_payload()
        )
        self.requests_sent += 1
        reply = PieceMessage.decode_payload(
            await self.connection.read_message(MessageType.PIECE)
        )
        if (
            reply.piece_index != block.piece_index
            or reply.begin != block.begin
            or len(reply.block) != block.length
        ):
            # Replies are assumed to arrive in request order
            msg = (
                f"Piece reply (index={reply.piece_index}, begin={reply.begin}, "
                f"length={len(reply.block)}) does not match request "
                f"(index={block.piece_index}, begin={block.begin}, length={block.length})"
            )
            if self.strict_blocks:
                raise ProtocolError(msg, {"peer": str(self.connection.peer)})
            logger.warning(msg)
        return reply.block

    async def download_piece(self, piece_index: int) -> bytes:
        """Download one piece and verify its hash.

        Returns:
            The verified piece bytes

        Raises:
            MetadataError: If the piece index is out of range
            ProtocolError: If the peer deviates from the protocol
            IntegrityError: If the piece does not match its SHA-1 hash

        """
        piece_size = self.metadata.piece_size(piece_index)
        expected_hash = self.metadata.piece_hash(piece_index)
        await self.start_session()

        buffer = bytearray()
        for block in split_blocks(piece_index, piece_size, self.block_size):
            buffer += await self._fetch_block(block)

        if not verify_piece(bytes(buffer), expected_hash):
            msg = f"Piece {piece_index} failed hash verification"
            raise IntegrityError(
                msg,
                {
                    "expected": expected_hash.hex(),
                    "actual": hashlib.sha1(buffer).hexdigest(),  # nosec B324
                },
            )

        logger.info(
            "Piece %d/%d verified (%d bytes)",
            piece_index + 1,
            self.metadata.num_pieces,
            len(buffer),
        )
        return bytes(buffer)

    async def download_file(self) -> bytes:
        """Download every piece in order and return the whole file.

        Raises:
            IntegrityError: If any piece fails verification; nothing is returned
            IncompleteDownloadError: If the assembled size is not the total length

        """
        pieces = []
        for piece_index in range(self.metadata.num_pieces):
            pieces.append(await self.download_piece(piece_index))

        data = b"".join(pieces)
        if len(data) != self.metadata.total_length:
            msg = (
                f"Downloaded {len(data)} bytes, expected "
                f"{self.metadata.total_length}"
            )
            raise IncompleteDownloadError(msg)
        return data

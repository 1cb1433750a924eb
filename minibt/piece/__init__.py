"""Piece transfer: block splitting, download and hash verification."""

from __future__ import annotations

from minibt.piece.downloader import Block, PieceDownloader, split_blocks, verify_piece

__all__ = [
    "Block",
    "PieceDownloader",
    "split_blocks",
    "verify_piece",
]

"""Command line interface for minibt."""

from __future__ import annotations

from minibt.cli.main import cli, main

__all__ = ["cli", "main"]

"""Command line interface for minibt."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Coroutine

import click
from rich.console import Console

from minibt.config import init_config
from minibt.core import bencode
from minibt.core.torrent import TorrentParser
from minibt.exceptions import MiniBTError
from minibt.models import LogLevel, PeerAddress, TorrentMetadata
from minibt.session import connect_peer, discover_peers, fetch_file, fetch_piece

logger = logging.getLogger(__name__)

console = Console(soft_wrap=True, highlight=False, markup=False)


def _load_torrent(torrent_file: str) -> TorrentMetadata:
    try:
        return TorrentParser().parse(torrent_file)
    except MiniBTError as e:
        msg = f"Invalid torrent file: {e}"
        raise click.ClickException(msg) from e


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine, turning library errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except MiniBTError as e:
        logger.debug("Command failed", exc_info=True)
        raise click.ClickException(str(e)) from e


def _default_output(metadata: TorrentMetadata, torrent_file: str) -> str:
    """Output file name inside the working directory for a torrent."""
    name = Path(metadata.name).name if metadata.name else ""
    if name in {"", ".", ".."}:
        return Path(torrent_file).stem
    return name


def _write_output(output: str, data: bytes) -> None:
    try:
        Path(output).write_bytes(data)
    except OSError as e:
        msg = f"Cannot write {output}: {e}"
        raise click.ClickException(msg) from e


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.version_option(package_name="minibt")
@click.pass_context
def cli(ctx, config, verbose):
    """Minibt - a minimal single-peer BitTorrent client."""
    ctx.ensure_object(dict)
    try:
        config_manager = init_config(config)
    except MiniBTError as e:
        raise click.ClickException(str(e)) from e

    observability = config_manager.config.observability
    if verbose >= 2:
        observability.log_level = LogLevel.DEBUG
    elif verbose == 1:
        observability.log_level = LogLevel.INFO
    config_manager.setup_logging()
    ctx.obj["config"] = config_manager.config


@cli.command("decode")
@click.argument("value")
def decode_cmd(value):
    """Decode a bencoded VALUE and print it as JSON."""
    try:
        decoded = bencode.decode(value.encode("utf-8"))
    except MiniBTError as e:
        raise click.ClickException(str(e)) from e
    click.echo(json.dumps(bencode.to_json_compatible(decoded)))


@cli.command()
@click.argument("torrent_file", type=click.Path(exists=True, dir_okay=False))
def info(torrent_file):
    """Show the metadata of TORRENT_FILE."""
    metadata = _load_torrent(torrent_file)
    console.print(f"Tracker URL: {metadata.tracker_url}")
    console.print(f"Length: {metadata.total_length}")
    console.print(f"Info Hash: {metadata.info_hash.hex()}")
    console.print(f"Piece Length: {metadata.piece_length}")
    console.print("Piece Hashes:")
    for digest in metadata.piece_hashes:
        console.print(digest.hex())


@cli.command()
@click.argument("torrent_file", type=click.Path(exists=True, dir_okay=False))
def peers(torrent_file):
    """Announce TORRENT_FILE to its tracker and list the peers."""
    metadata = _load_torrent(torrent_file)
    for peer in _run(discover_peers(metadata)):
        console.print(str(peer))


@cli.command()
@click.argument("torrent_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("peer")
def handshake(torrent_file, peer):
    """Handshake with PEER (ip:port) and print its peer ID."""
    metadata = _load_torrent(torrent_file)
    try:
        address = PeerAddress.parse(peer)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PEER") from e

    async def _handshake() -> bytes:
        connection = await connect_peer(metadata, address)
        async with connection:
            return connection.remote_peer_id or b""

    console.print(f"Peer ID: {_run(_handshake()).hex()}")


@cli.command("download-piece")
@click.option("--output", "-o", type=click.Path(dir_okay=False), required=True, help="Output file")
@click.argument("torrent_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("piece_index", type=click.IntRange(min=0))
def download_piece(output, torrent_file, piece_index):
    """Download and verify one piece of TORRENT_FILE."""
    metadata = _load_torrent(torrent_file)
    if piece_index >= metadata.num_pieces:
        msg = f"Piece index {piece_index} out of range (torrent has {metadata.num_pieces} pieces)"
        raise click.BadParameter(msg, param_hint="PIECE_INDEX")
    data = _run(fetch_piece(metadata, piece_index))
    _write_output(output, data)
    console.print(f"Piece {piece_index} downloaded to {output}.")


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file")
@click.argument("torrent_file", type=click.Path(exists=True, dir_okay=False))
def download(output, torrent_file):
    """Download and verify the whole file described by TORRENT_FILE."""
    metadata = _load_torrent(torrent_file)
    output = output or _default_output(metadata, torrent_file)
    data = _run(fetch_file(metadata))
    _write_output(output, data)
    console.print(f"Downloaded {torrent_file} to {output}.")


def main():
    """Main entry point for the minibt CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()

"""Tests for the click command line interface."""

from __future__ import annotations

import hashlib
import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from minibt.cli.main import cli
from minibt.config import get_config
from minibt.exceptions import HandshakeError, IntegrityError, TrackerError
from minibt.models import LogLevel, PeerAddress
from minibt.peer.connection import PeerConnection
from tests.utils.torrent_tools import create_test_torrent

pytestmark = [pytest.mark.unit, pytest.mark.cli]


@pytest.fixture
def runner():
    return CliRunner()


class TestDecodeCommand:
    """``minibt decode``."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("5:hello", "hello"),
            ("i52e", 52),
            ("l5:helloi52ee", ["hello", 52]),
            ("d3:foo3:bar5:helloi52ee", {"foo": "bar", "hello": 52}),
        ],
    )
    def test_decode(self, runner, value, expected):
        result = runner.invoke(cli, ["decode", value])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == expected

    def test_decode_keeps_key_order(self, runner):
        result = runner.invoke(cli, ["decode", "d1:zi1e1:ai2ee"])
        assert result.output.strip() == '{"z": 1, "a": 2}'

    def test_decode_invalid(self, runner):
        result = runner.invoke(cli, ["decode", "i12"])
        assert result.exit_code == 1
        assert "Unterminated integer" in result.output


class TestInfoCommand:
    """``minibt info``."""

    def test_info(self, runner, torrent_file, two_piece_metadata, two_piece_content):
        result = runner.invoke(cli, ["info", str(torrent_file)])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[:5] == [
            "Tracker URL: http://tracker.example.com:6969/announce",
            "Length: 20000",
            f"Info Hash: {two_piece_metadata.info_hash.hex()}",
            "Piece Length: 16384",
            "Piece Hashes:",
        ]
        assert lines[5:] == [
            hashlib.sha1(two_piece_content[:16384]).hexdigest(),
            hashlib.sha1(two_piece_content[16384:]).hexdigest(),
        ]

    def test_info_prints_brackets_verbatim(self, runner, tmp_path, two_piece_content):
        announce = "http://tracker.example.com/announce?key=[bold]x"
        path = tmp_path / "brackets.torrent"
        path.write_bytes(create_test_torrent(two_piece_content, announce=announce))

        result = runner.invoke(cli, ["info", str(path)])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0] == f"Tracker URL: {announce}"

    def test_info_invalid_torrent(self, runner, tmp_path):
        path = tmp_path / "bad.torrent"
        path.write_bytes(b"d8:announce3:urle")
        result = runner.invoke(cli, ["info", str(path)])
        assert result.exit_code == 1
        assert "Invalid torrent file" in result.output

    def test_info_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["info", str(tmp_path / "nope.torrent")])
        assert result.exit_code == 2


class TestPeersCommand:
    """``minibt peers``."""

    def test_peers(self, runner, torrent_file):
        peers = [PeerAddress(ip="1.2.3.4", port=6881), PeerAddress(ip="5.6.7.8", port=51413)]
        with patch("minibt.cli.main.discover_peers", AsyncMock(return_value=peers)):
            result = runner.invoke(cli, ["peers", str(torrent_file)])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["1.2.3.4:6881", "5.6.7.8:51413"]

    def test_tracker_failure(self, runner, torrent_file):
        error = TrackerError("Tracker failure: unregistered torrent")
        with patch("minibt.cli.main.discover_peers", AsyncMock(side_effect=error)):
            result = runner.invoke(cli, ["peers", str(torrent_file)])

        assert result.exit_code == 1
        assert "unregistered torrent" in result.output


class TestHandshakeCommand:
    """``minibt handshake``."""

    def test_handshake(self, runner, torrent_file, two_piece_metadata):
        connection = PeerConnection(
            peer=PeerAddress(ip="127.0.0.1", port=6881),
            info_hash=two_piece_metadata.info_hash,
            peer_id=b"-MB0100-abcdefghijkl",
            remote_peer_id=bytes(range(20)),
        )
        with patch(
            "minibt.cli.main.connect_peer", AsyncMock(return_value=connection)
        ) as connect:
            result = runner.invoke(cli, ["handshake", str(torrent_file), "127.0.0.1:6881"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == f"Peer ID: {bytes(range(20)).hex()}"
        assert connect.await_args.args[1] == PeerAddress(ip="127.0.0.1", port=6881)
        assert connection.is_closed

    @pytest.mark.parametrize("peer", ["127.0.0.1", "localhost:6881", "1.2.3.4:port"])
    def test_bad_peer_address(self, runner, torrent_file, peer):
        result = runner.invoke(cli, ["handshake", str(torrent_file), peer])
        assert result.exit_code == 2

    def test_handshake_failure(self, runner, torrent_file):
        error = HandshakeError("Info hash mismatch")
        with patch("minibt.cli.main.connect_peer", AsyncMock(side_effect=error)):
            result = runner.invoke(cli, ["handshake", str(torrent_file), "127.0.0.1:6881"])
        assert result.exit_code == 1
        assert "Info hash mismatch" in result.output


class TestDownloadCommands:
    """``minibt download-piece`` and ``minibt download``."""

    def test_download_piece(self, runner, torrent_file, two_piece_content, tmp_path):
        output = tmp_path / "piece-1"
        with patch(
            "minibt.cli.main.fetch_piece",
            AsyncMock(return_value=two_piece_content[16384:]),
        ) as fetch:
            result = runner.invoke(
                cli, ["download-piece", "-o", str(output), str(torrent_file), "1"]
            )

        assert result.exit_code == 0, result.output
        assert output.read_bytes() == two_piece_content[16384:]
        assert fetch.await_args.args[1] == 1
        assert "Piece 1 downloaded to" in result.output

    def test_download_piece_out_of_range(self, runner, torrent_file, tmp_path):
        output = tmp_path / "piece-9"
        result = runner.invoke(cli, ["download-piece", "-o", str(output), str(torrent_file), "9"])
        assert result.exit_code == 2
        assert not output.exists()

    def test_download_piece_requires_output(self, runner, torrent_file):
        result = runner.invoke(cli, ["download-piece", str(torrent_file), "0"])
        assert result.exit_code == 2

    def test_failed_piece_writes_nothing(self, runner, torrent_file, tmp_path):
        output = tmp_path / "piece-0"
        error = IntegrityError("Piece 0 failed hash verification")
        with patch("minibt.cli.main.fetch_piece", AsyncMock(side_effect=error)):
            result = runner.invoke(
                cli, ["download-piece", "-o", str(output), str(torrent_file), "0"]
            )

        assert result.exit_code == 1
        assert "failed hash verification" in result.output
        assert not output.exists()

    def test_download(self, runner, torrent_file, two_piece_content, tmp_path):
        output = tmp_path / "sample.bin"
        with patch("minibt.cli.main.fetch_file", AsyncMock(return_value=two_piece_content)):
            result = runner.invoke(cli, ["download", "-o", str(output), str(torrent_file)])

        assert result.exit_code == 0, result.output
        assert output.read_bytes() == two_piece_content
        assert "Downloaded" in result.output

    def test_download_defaults_to_torrent_name(self, runner, torrent_file, two_piece_content):
        with patch("minibt.cli.main.fetch_file", AsyncMock(return_value=two_piece_content)):
            result = runner.invoke(cli, ["download", str(torrent_file)])

        assert result.exit_code == 0, result.output
        # the autouse fixture runs every test from tmp_path
        assert (torrent_file.parent / "sample.bin").read_bytes() == two_piece_content

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("../escaped.bin", "escaped.bin"),
            ("nested/dir/file.bin", "file.bin"),
            ("..", "t"),
            (".", "t"),
            ("", "t"),
        ],
    )
    def test_default_output_stays_in_working_dir(
        self, runner, tmp_path, monkeypatch, two_piece_content, name, expected
    ):
        work = tmp_path / "work"
        work.mkdir()
        monkeypatch.chdir(work)
        (work / "t.torrent").write_bytes(create_test_torrent(two_piece_content, name=name))

        with patch("minibt.cli.main.fetch_file", AsyncMock(return_value=two_piece_content)):
            result = runner.invoke(cli, ["download", "t.torrent"])

        assert result.exit_code == 0, result.output
        assert (work / expected).read_bytes() == two_piece_content
        assert not (tmp_path / "escaped.bin").exists()

    def test_absolute_torrent_name_is_ignored(
        self, runner, tmp_path, monkeypatch, two_piece_content
    ):
        work = tmp_path / "work"
        work.mkdir()
        monkeypatch.chdir(work)
        target = tmp_path / "elsewhere.bin"
        (work / "t.torrent").write_bytes(create_test_torrent(two_piece_content, name=str(target)))

        with patch("minibt.cli.main.fetch_file", AsyncMock(return_value=two_piece_content)):
            result = runner.invoke(cli, ["download", "t.torrent"])

        assert result.exit_code == 0, result.output
        assert (work / "elsewhere.bin").read_bytes() == two_piece_content
        assert not target.exists()

    def test_unwritable_output(self, runner, torrent_file, two_piece_content, tmp_path):
        output = tmp_path / "missing-dir" / "out.bin"
        with patch("minibt.cli.main.fetch_file", AsyncMock(return_value=two_piece_content)):
            result = runner.invoke(cli, ["download", "-o", str(output), str(torrent_file)])

        assert result.exit_code == 1
        assert "Cannot write" in result.output


class TestGlobalOptions:
    """Configuration file and verbosity."""

    def test_config_file(self, runner, tmp_path):
        config_path = tmp_path / "custom.toml"
        config_path.write_text("[network]\nlisten_port = 7000\n", encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(config_path), "decode", "i1e"])

        assert result.exit_code == 0, result.output
        assert get_config().network.listen_port == 7000

    def test_invalid_config_file(self, runner, tmp_path):
        config_path = tmp_path / "custom.toml"
        config_path.write_text("[network]\nblock_size = 999999\n", encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(config_path), "decode", "i1e"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    @pytest.mark.parametrize(
        ("flags", "level"),
        [([], LogLevel.INFO), (["-v"], LogLevel.INFO), (["-vv"], LogLevel.DEBUG)],
    )
    def test_verbosity(self, runner, flags, level):
        result = runner.invoke(cli, [*flags, "decode", "i1e"])
        assert result.exit_code == 0, result.output
        assert get_config().observability.log_level == level

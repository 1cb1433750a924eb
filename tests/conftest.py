"""Pytest configuration and shared fixtures for minibt tests."""

from __future__ import annotations

import logging

import pytest

from minibt import config as config_module
from minibt.core.torrent import load_metadata
from tests.utils.torrent_tools import create_test_torrent


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("core", "marks tests as core functionality tests"),
        ("peer", "marks tests as peer protocol tests"),
        ("piece", "marks tests as piece download tests"),
        ("tracker", "marks tests as tracker tests"),
        ("session", "marks tests as end-to-end session tests"),
        ("cli", "marks tests as CLI tests"),
        ("config", "marks tests as configuration tests"),
        ("observability", "marks tests as logging tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Run every test against default configuration.

    Environment overrides are cleared and the working directory is moved so a
    stray ``minibt.toml`` is never picked up.
    """
    for env_name in config_module.ENV_MAPPINGS:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # setup_logging detaches the package logger from root, which hides it from caplog
    package_logger = logging.getLogger("minibt")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def two_piece_content() -> bytes:
    """20000 bytes: one full 16384-byte piece and a 3616-byte tail."""
    return bytes(i % 251 for i in range(20000))


@pytest.fixture
def two_piece_torrent(two_piece_content) -> bytes:
    """Encoded torrent describing ``two_piece_content``."""
    return create_test_torrent(two_piece_content, piece_length=16384)


@pytest.fixture
def two_piece_metadata(two_piece_torrent):
    """Metadata of ``two_piece_torrent``."""
    return load_metadata(two_piece_torrent)


@pytest.fixture
def torrent_file(tmp_path, two_piece_torrent):
    """``two_piece_torrent`` written to disk."""
    path = tmp_path / "sample.torrent"
    path.write_bytes(two_piece_torrent)
    return path

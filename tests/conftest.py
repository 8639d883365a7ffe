"""
Pytest fixtures for secure-fetch tests.

Provides:
- Decryption key and IV-prefixed payload fixtures
- Client key fixtures (in memory and on disk)
- SSH/SFTP server fixture (MockSSHServer-based, no Docker required)
- Event capture fixture for asserting event sequences
"""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, AsyncGenerator, Generator

import asyncssh
import pytest

from secure_fetch.cipher import encrypt

if TYPE_CHECKING:
    from secure_fetch.events import EventCollector
    from secure_fetch.testing.mock_server import MockSSHServer


TEST_KEY = b"01234567890123456789012345678901"
TEST_IV = bytes(range(16))
TEST_PLAINTEXT = "hello world"
REMOTE_PATH = "/secret.enc"


@pytest.fixture
def aes_key() -> bytes:
    """The 32-byte AES-256 key used across tests."""
    return TEST_KEY


@pytest.fixture
def payload() -> bytes:
    """IV-prefixed ciphertext of TEST_PLAINTEXT under TEST_KEY."""
    return encrypt(TEST_PLAINTEXT, TEST_KEY, iv=TEST_IV)


@pytest.fixture(scope="session")
def client_key() -> asyncssh.SSHKey:
    """An ed25519 client key, generated once per session."""
    return asyncssh.generate_private_key("ssh-ed25519")


@pytest.fixture
def client_key_file(tmp_path: Path, client_key: asyncssh.SSHKey) -> Path:
    """The client key written to an OpenSSH private key file."""
    path = tmp_path / "id_ed25519"
    path.write_bytes(client_key.export_private_key())
    path.chmod(0o600)
    return path


@pytest.fixture
async def sftp_server(payload: bytes) -> AsyncGenerator["MockSSHServer", None]:
    """
    MockSSHServer serving the test payload at REMOTE_PATH.

    Usage:
        async def test_example(sftp_server):
            params = ConnectionParameters(
                host="127.0.0.1",
                port=sftp_server.port,
                username="test",
                password="test",
            )
    """
    from secure_fetch.testing.mock_server import MockServerConfig, MockSSHServer

    config = MockServerConfig(files={REMOTE_PATH: payload})

    async with MockSSHServer(config) as server:
        yield server


@pytest.fixture
def event_collector() -> Generator["EventCollector", None, None]:
    """Fixture for capturing and asserting event sequences."""
    from secure_fetch.events import EventCollector

    collector = EventCollector()
    yield collector
    collector.clear()


@pytest.fixture
def temp_jsonl_path(tmp_path: Path) -> Path:
    """Provide a temporary path for JSONL event log output."""
    return tmp_path / "events.jsonl"

"""
Testing utilities for secure-fetch.

Provides MockSSHServer, an in-process SSH/SFTP server for integration tests.
"""
from secure_fetch.testing.mock_server import MockServerConfig, MockServerStats, MockSSHServer

__all__ = ["MockSSHServer", "MockServerConfig", "MockServerStats"]

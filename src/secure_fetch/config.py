"""
Configuration for secure-fetch.

Provides:
- ConnectionParameters: Fully resolved SSH connection settings for one fetch
- RemoteTarget: The remote file to fetch
- SSHSettings / DecryptionSettings: Caller-facing settings, every field optional
- ConfigDefaults: Default values, optionally sourced from the environment
- resolve_connection / resolve_target / resolve_key: The explicit default
  resolution step performed before the pipeline runs

The fetcher and decryptor never read the environment themselves; whatever
ConfigDefaults.from_env() returns is passed in like any other value.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from secure_fetch.errors import DecryptionError
from secure_fetch.validation import (
    validate_hostname,
    validate_port,
    validate_remote_path,
    validate_username,
)

DEFAULT_PORT = 22
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_FETCH_TIMEOUT = 60.0
DEFAULT_FILE_PATH = "/etc/secure-fetch/payload.enc"

ENV_USERNAME = "SECURE_FETCH_USERNAME"
ENV_PASSWORD = "SECURE_FETCH_PASSWORD"
ENV_PRIVATE_KEY_PATH = "SECURE_FETCH_PRIVATE_KEY_PATH"
ENV_FILE_PATH = "SECURE_FETCH_FILE_PATH"
ENV_DECRYPTION_KEY = "KEY_ETCD"
ENV_TIMEOUT = "SECURE_FETCH_TIMEOUT"


@dataclass(frozen=True)
class ConnectionParameters:
    """
    Resolved connection settings for a single fetch.

    Credential precedence is private key > password > keyboard-interactive
    answered with the password. private_key (in-memory bytes) and
    private_key_path are two sources of the same credential; the bytes win
    when both are set.

    Usage:
        params = ConnectionParameters(
            host="10.0.0.5",
            username="deploy",
            password="secret",
        )

        params = ConnectionParameters(
            host="10.0.0.5",
            username="deploy",
            private_key_path=Path("~/.ssh/id_ed25519"),
        )
    """
    host: str
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key: bytes | None = field(default=None, repr=False)
    private_key_path: Path | None = None
    passphrase: str | None = field(default=None, repr=False)
    interactive_fallback: bool = True
    # None disables host key checking
    known_hosts: str | list[str] | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", validate_hostname(self.host))
        object.__setattr__(self, "port", validate_port(self.port))
        if self.username is not None:
            object.__setattr__(self, "username", validate_username(self.username))
        if self.private_key_path is not None:
            object.__setattr__(
                self, "private_key_path", Path(self.private_key_path).expanduser()
            )
        assert self.connect_timeout > 0, \
            f"connect_timeout must be positive, got {self.connect_timeout}"

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None or self.private_key_path is not None


@dataclass(frozen=True)
class RemoteTarget:
    """A remote file path, fixed for the duration of one fetch."""
    path: str

    def __post_init__(self) -> None:
        validate_remote_path(self.path)


@dataclass
class SSHSettings:
    """
    Caller-facing SSH settings; unset fields fall back to ConfigDefaults.

    Attributes:
        host: Server hostname or IP address
        port: SSH port
        username: Login user
        password: Password for password or keyboard-interactive auth
        private_key_path: Private key file for public key auth
        try_keyboard: Answer keyboard-interactive challenges with the password
        known_hosts: known_hosts path(s), None to skip host key checking
    """
    host: str
    port: int | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key_path: Path | str | None = None
    try_keyboard: bool = True
    known_hosts: str | list[str] | None = None


@dataclass
class DecryptionSettings:
    """Caller-facing decryption settings; unset fields fall back to ConfigDefaults."""
    file_path: str | None = None
    decryption_key: str | bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ConfigDefaults:
    """Values used for any setting the caller leaves unset."""
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key_path: str | None = None
    file_path: str = DEFAULT_FILE_PATH
    decryption_key: str | None = field(default=None, repr=False)
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    timeout: float | None = DEFAULT_FETCH_TIMEOUT

    def __post_init__(self) -> None:
        # A non-positive deadline means no deadline
        if self.timeout is not None and not self.timeout > 0:
            object.__setattr__(self, "timeout", None)
        if not self.connect_timeout > 0:
            raise ValueError(
                f"connect_timeout must be positive, got {self.connect_timeout}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ConfigDefaults":
        """
        Build defaults from environment variables.

        Empty variables count as unset.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        if environ is None:
            environ = os.environ

        def get(name: str) -> str | None:
            return environ.get(name) or None

        timeout: float | None = DEFAULT_FETCH_TIMEOUT
        raw_timeout = get(ENV_TIMEOUT)
        if raw_timeout is not None:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ValueError(
                    f"{ENV_TIMEOUT} must be a number of seconds, got {raw_timeout!r}"
                ) from None

        return cls(
            username=get(ENV_USERNAME),
            password=get(ENV_PASSWORD),
            private_key_path=get(ENV_PRIVATE_KEY_PATH),
            file_path=get(ENV_FILE_PATH) or DEFAULT_FILE_PATH,
            decryption_key=get(ENV_DECRYPTION_KEY),
            timeout=timeout,
        )


def resolve_connection(
    ssh: SSHSettings,
    defaults: ConfigDefaults,
) -> ConnectionParameters:
    """Merge caller settings over defaults into ConnectionParameters."""
    key_path = ssh.private_key_path or defaults.private_key_path
    return ConnectionParameters(
        host=ssh.host,
        port=ssh.port if ssh.port is not None else DEFAULT_PORT,
        username=ssh.username or defaults.username,
        password=ssh.password if ssh.password is not None else defaults.password,
        private_key_path=Path(key_path) if key_path else None,
        interactive_fallback=ssh.try_keyboard,
        known_hosts=ssh.known_hosts,
        connect_timeout=defaults.connect_timeout,
    )


def resolve_target(
    decryption: DecryptionSettings,
    defaults: ConfigDefaults,
) -> RemoteTarget:
    """Return the configured remote path, or the default path."""
    return RemoteTarget(path=decryption.file_path or defaults.file_path)


def resolve_key(
    decryption: DecryptionSettings,
    defaults: ConfigDefaults,
) -> bytes:
    """
    Return the decryption key as bytes.

    String keys are UTF-8 encoded; length is checked by the decryptor.

    Raises:
        DecryptionError: If no key is configured anywhere
    """
    key = decryption.decryption_key
    if key is None:
        key = defaults.decryption_key
    if key is None:
        raise DecryptionError(
            f"No decryption key configured (set {ENV_DECRYPTION_KEY} or pass decryption_key)"
        )
    return key.encode("utf-8") if isinstance(key, str) else bytes(key)

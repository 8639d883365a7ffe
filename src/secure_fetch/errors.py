"""
Error taxonomy for secure-fetch with structured data for JSONL logging.

Every failure in the fetch → decrypt pipeline is a distinct exception type
carrying an ErrorContext, so callers can handle kinds programmatically and
the event log can record them as structured data.

Error hierarchy:
- SecureFetchError (base)
  - SSHConnectionError (transport level)
    - ConnectionRefused
    - ConnectionTimeout
    - HostUnreachable
  - AuthenticationError
    - AuthFailed
    - HostKeyMismatch
    - KeyLoadError
    - InteractiveAuthUnavailable
  - TransferError
    - ChannelOpenError
    - RemoteReadError
  - PayloadError
    - MalformedPayload
    - DecryptionError
    - EncodingError
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any


@dataclass
class ErrorContext:
    """
    Structured context for pipeline errors.

    Only populated fields are serialised, so the same context type serves
    both the SSH stage (host, port, username) and the decrypt stage
    (payload_size).
    """
    host: str | None = None
    port: int | None = None
    username: str | None = None
    auth_method: str | None = None
    key_path: str | None = None
    remote_path: str | None = None
    payload_size: int | None = None
    original_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.port is not None:
            assert isinstance(self.port, int) and 1 <= self.port <= 65535, (
                f"Port must be between 1 and 65535, got {self.port}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if key == "extra":
                field_names = {f.name for f in fields(self)} - {"extra"}
                collisions = field_names & value.keys()
                assert not collisions, (
                    f"Extra keys collide with context field names: {collisions}"
                )
                result.update(value)
            else:
                result[key] = value
        return result


class SecureFetchError(Exception):
    """Base exception for every fetch or decrypt failure."""

    def __init__(self, message: str, context: ErrorContext | None = None) -> None:
        assert isinstance(message, str) and message.strip(), (
            f"Error message must be a non-empty string, got {message!r}"
        )
        super().__init__(message)
        self.context = context or ErrorContext()

    @property
    def error_type(self) -> str:
        """Return the error type name for logging."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSONL logging."""
        return {
            "error_type": self.error_type,
            "message": str(self),
            **self.context.to_dict(),
        }


def _with_reason(context: ErrorContext | None, reason: str | None) -> ErrorContext:
    if context is None:
        context = ErrorContext()
    if reason:
        context.extra["reason"] = reason
    return context


# ---------------------------------------------------------------------------
# Connection Errors
# ---------------------------------------------------------------------------

class SSHConnectionError(SecureFetchError):
    """Transport-level failure, including a connection lost mid-transfer."""
    pass


class ConnectionRefused(SSHConnectionError):
    """Server actively refused the connection."""
    pass


class ConnectionTimeout(SSHConnectionError):
    """Connect, authentication or the whole fetch exceeded its deadline."""
    pass


class HostUnreachable(SSHConnectionError):
    """Host could not be reached (network error)."""
    pass


# ---------------------------------------------------------------------------
# Authentication Errors
# ---------------------------------------------------------------------------

class AuthenticationError(SecureFetchError):
    """Base class for authentication-related errors."""
    pass


class AuthFailed(AuthenticationError):
    """
    The server rejected the offered credential.

    Also raised before connecting when no credential is configured at all.
    """
    pass


class HostKeyMismatch(AuthenticationError):
    """The server's host key did not verify against known_hosts."""
    pass


class KeyLoadError(AuthenticationError):
    """
    Failed to load the configured private key.

    This is terminal: a key that cannot be loaded never falls back to
    password authentication.
    """

    def __init__(
        self,
        message: str,
        key_path: str | None = None,
        reason: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        assert key_path is None or (isinstance(key_path, str) and key_path.strip()), (
            f"key_path must be None or a non-empty string, got {key_path!r}"
        )
        context = _with_reason(context, reason)
        context.key_path = key_path
        super().__init__(message, context)


class InteractiveAuthUnavailable(AuthenticationError):
    """The server demanded keyboard-interactive auth but no password is configured."""
    pass


# ---------------------------------------------------------------------------
# Transfer Errors
# ---------------------------------------------------------------------------

class TransferError(SecureFetchError):
    """Base class for failures after the session is authenticated."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, _with_reason(context, reason))


class ChannelOpenError(TransferError):
    """The SFTP sub-channel could not be opened."""
    pass


class RemoteReadError(TransferError):
    """
    The remote file could not be read in full.

    Reasons:
    - no_such_file
    - permission_denied
    - truncated (fewer bytes read than the file's reported size)
    - sftp_error
    """
    pass


# ---------------------------------------------------------------------------
# Payload Errors
# ---------------------------------------------------------------------------

class PayloadError(SecureFetchError):
    """Base class for decrypt-stage errors."""
    pass


class MalformedPayload(PayloadError):
    """Payload is shorter than the 16-byte IV prefix."""
    pass


class DecryptionError(PayloadError):
    """Key has the wrong length, is missing, or the cipher rejected the inputs."""
    pass


class EncodingError(PayloadError):
    """Decrypted bytes are not valid UTF-8."""
    pass

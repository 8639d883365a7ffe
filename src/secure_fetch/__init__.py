"""secure-fetch: fetch an encrypted file over SFTP and decrypt it locally."""

__version__ = "0.1.0"

from secure_fetch.auth import (
    AuthConfig,
    AuthMethod,
    import_private_key,
    load_private_key,
    password_responder,
    select_auth,
)
from secure_fetch.cipher import IV_SIZE, KEY_SIZE, decrypt, decrypt_bytes, encrypt, split_payload
from secure_fetch.config import (
    ConfigDefaults,
    ConnectionParameters,
    DecryptionSettings,
    RemoteTarget,
    SSHSettings,
    resolve_connection,
    resolve_key,
    resolve_target,
)
from secure_fetch.errors import (
    AuthenticationError,
    AuthFailed,
    ChannelOpenError,
    ConnectionRefused,
    ConnectionTimeout,
    DecryptionError,
    EncodingError,
    ErrorContext,
    HostKeyMismatch,
    HostUnreachable,
    InteractiveAuthUnavailable,
    KeyLoadError,
    MalformedPayload,
    PayloadError,
    RemoteReadError,
    SecureFetchError,
    SSHConnectionError,
    TransferError,
)
from secure_fetch.events import Event, EventCollector, EventEmitter, EventType
from secure_fetch.fetcher import FetchClient, RemoteFileFetcher, fetch_file
from secure_fetch.pipeline import fetch_and_decrypt, fetch_and_decrypt_or_raise
from secure_fetch.validation import (
    validate_hostname,
    validate_port,
    validate_remote_path,
    validate_username,
)

__all__ = [
    # Pipeline
    "fetch_and_decrypt",
    "fetch_and_decrypt_or_raise",
    # Fetcher
    "RemoteFileFetcher",
    "FetchClient",
    "fetch_file",
    # Cipher
    "IV_SIZE",
    "KEY_SIZE",
    "decrypt",
    "decrypt_bytes",
    "encrypt",
    "split_payload",
    # Config
    "ConfigDefaults",
    "ConnectionParameters",
    "DecryptionSettings",
    "RemoteTarget",
    "SSHSettings",
    "resolve_connection",
    "resolve_key",
    "resolve_target",
    # Auth
    "AuthConfig",
    "AuthMethod",
    "import_private_key",
    "load_private_key",
    "password_responder",
    "select_auth",
    # Errors
    "SecureFetchError",
    "SSHConnectionError",
    "ConnectionRefused",
    "ConnectionTimeout",
    "HostUnreachable",
    "AuthenticationError",
    "AuthFailed",
    "HostKeyMismatch",
    "KeyLoadError",
    "InteractiveAuthUnavailable",
    "TransferError",
    "ChannelOpenError",
    "RemoteReadError",
    "PayloadError",
    "MalformedPayload",
    "DecryptionError",
    "EncodingError",
    "ErrorContext",
    # Events
    "Event",
    "EventCollector",
    "EventEmitter",
    "EventType",
    # Validation
    "validate_hostname",
    "validate_port",
    "validate_remote_path",
    "validate_username",
]

"""
Fetch-then-decrypt pipeline.

Provides:
- fetch_and_decrypt_or_raise: Structured variant, raises SecureFetchError subclasses
- fetch_and_decrypt: Boundary variant, reports failures and returns None

Defaults are resolved explicitly from ConfigDefaults before the fetcher and
decryptor run.
"""
from __future__ import annotations

import logging
from pathlib import Path

from secure_fetch.cipher import decrypt
from secure_fetch.config import (
    ConfigDefaults,
    DecryptionSettings,
    SSHSettings,
    resolve_connection,
    resolve_key,
    resolve_target,
)
from secure_fetch.errors import SecureFetchError
from secure_fetch.events import EventCollector, EventEmitter, EventType
from secure_fetch.fetcher import RemoteFileFetcher

log = logging.getLogger(__name__)


async def fetch_and_decrypt_or_raise(
    ssh: SSHSettings,
    decryption: DecryptionSettings | None = None,
    *,
    defaults: ConfigDefaults | None = None,
    event_collector: EventCollector | None = None,
    event_log_path: Path | str | None = None,
    errors: str = "strict",
) -> str:
    """
    Download an encrypted file over SFTP and decrypt it.

    Args:
        ssh: SSH settings; unset fields fall back to defaults
        decryption: File path and key; unset fields fall back to defaults
        defaults: Default values (ConfigDefaults.from_env() when omitted)
        event_collector: Optional collector for in-memory event capture
        event_log_path: Optional path for JSONL event log
        errors: UTF-8 decoding policy, "strict" or "replace"

    Returns:
        The decrypted file content

    Raises:
        SecureFetchError: Any fetch or decrypt failure, as its specific subclass
    """
    if decryption is None:
        decryption = DecryptionSettings()
    if defaults is None:
        defaults = ConfigDefaults.from_env()

    params = resolve_connection(ssh, defaults)
    target = resolve_target(decryption, defaults)
    try:
        key = resolve_key(decryption, defaults)
    except SecureFetchError as e:
        _emit_error(e, event_collector, event_log_path)
        raise

    fetcher = RemoteFileFetcher(
        params,
        event_collector=event_collector,
        event_log_path=event_log_path,
        timeout=defaults.timeout,
    )
    payload = await fetcher.fetch(target)

    emitter = EventEmitter(collector=event_collector, jsonl_path=event_log_path)
    try:
        with emitter.timed_event(EventType.DECRYPT, bytes=len(payload)) as data:
            data["status"] = "failed"
            plaintext = decrypt(payload, key, errors=errors)
            data["status"] = "success"
    except SecureFetchError as e:
        emitter.emit(EventType.ERROR, **e.to_dict())
        raise
    finally:
        emitter.close()

    return plaintext


def _emit_error(
    error: SecureFetchError,
    event_collector: EventCollector | None,
    event_log_path: Path | str | None,
) -> None:
    emitter = EventEmitter(collector=event_collector, jsonl_path=event_log_path)
    try:
        emitter.emit(EventType.ERROR, **error.to_dict())
    finally:
        emitter.close()


async def fetch_and_decrypt(
    ssh: SSHSettings,
    decryption: DecryptionSettings | None = None,
    *,
    defaults: ConfigDefaults | None = None,
    event_collector: EventCollector | None = None,
    event_log_path: Path | str | None = None,
    errors: str = "strict",
) -> str | None:
    """
    Download and decrypt a file, returning None on any failure.

    Failures are logged on the secure_fetch.pipeline logger and, when a
    collector or log path is given, recorded as ERROR events. Use
    fetch_and_decrypt_or_raise to get the structured error instead.

    Example:
        ssh = SSHSettings(host="192.168.0.1", username="user", password="secret")
        decryption = DecryptionSettings(
            file_path="/path/to/encrypted/file",
            decryption_key="01234567890123456789012345678901",
        )
        content = await fetch_and_decrypt(ssh, decryption)
    """
    try:
        return await fetch_and_decrypt_or_raise(
            ssh,
            decryption,
            defaults=defaults,
            event_collector=event_collector,
            event_log_path=event_log_path,
            errors=errors,
        )
    except SecureFetchError as e:
        log.error(f"Error: {e}", extra={"error": e.to_dict()})
        return None
    except ValueError as e:
        # Invalid host, port, username or path in the settings
        log.error(f"Error: invalid configuration: {e}")
        return None
    except OSError as e:
        # The event log path could not be opened
        log.error(f"Error: cannot write event log: {e}")
        return None

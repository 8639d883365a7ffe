"""
SSH authentication selection and key loading.

Provides:
- AuthMethod enum: PRIVATE_KEY, PASSWORD, KEYBOARD_INTERACTIVE
- AuthConfig dataclass: The single credential used for one connection attempt
- select_auth(): Applies the credential precedence to ConnectionParameters
- load_private_key() / import_private_key(): Key loading with KeyLoadError mapping
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import asyncssh

from secure_fetch.config import ConnectionParameters
from secure_fetch.errors import AuthFailed, ErrorContext, KeyLoadError

# Answers one keyboard-interactive prompt synchronously
ChallengeResponder = Callable[[str], str]


class AuthMethod(str, Enum):
    """Authentication methods, in precedence order."""
    PRIVATE_KEY = "private_key"
    PASSWORD = "password"
    KEYBOARD_INTERACTIVE = "keyboard_interactive"


@dataclass
class AuthConfig:
    """
    The credential chosen for one connection attempt.

    Exactly one credential form is active. With PASSWORD, the password may
    additionally answer keyboard-interactive challenges when
    interactive_fallback is set. With KEYBOARD_INTERACTIVE, the responder may
    be None, in which case any challenge is declined.

    Usage:
        auth = select_auth(params)
        options = auth.to_asyncssh_options()
    """
    method: AuthMethod
    password: str | None = field(default=None, repr=False)
    client_key: asyncssh.SSHKey | None = field(default=None, repr=False)
    key_source: str | None = None
    interactive_fallback: bool = False
    answer_challenge: ChallengeResponder | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.method == AuthMethod.PRIVATE_KEY:
            assert self.client_key is not None, \
                "client_key required for PRIVATE_KEY auth method"
            assert self.answer_challenge is None, \
                "PRIVATE_KEY auth must not answer interactive challenges"

        if self.method == AuthMethod.PASSWORD:
            assert self.password is not None, \
                "password required for PASSWORD auth method"

    @property
    def accepts_challenges(self) -> bool:
        """Whether keyboard-interactive is offered at all."""
        return self.method == AuthMethod.KEYBOARD_INTERACTIVE or (
            self.method == AuthMethod.PASSWORD and self.interactive_fallback
        )

    def to_asyncssh_options(self) -> dict[str, Any]:
        """
        Build the credential options for asyncssh.connect().

        preferred_auth pins the methods offered so a lower-precedence
        credential is never tried after a higher one.
        """
        if self.method == AuthMethod.PRIVATE_KEY:
            return {
                "client_keys": [self.client_key],
                "password": None,
                "preferred_auth": ["publickey"],
            }

        preferred = []
        if self.method == AuthMethod.PASSWORD:
            preferred.append("password")
        if self.accepts_challenges:
            preferred.append("keyboard-interactive")

        return {
            "client_keys": [],
            "password": self.password if self.method == AuthMethod.PASSWORD else None,
            "preferred_auth": preferred,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging (excludes secrets)."""
        result: dict[str, Any] = {"method": self.method.value}
        if self.key_source:
            result["key_source"] = self.key_source
        if self.accepts_challenges:
            result["keyboard_interactive"] = True
        return result


def password_responder(password: str) -> ChallengeResponder:
    """Return a responder that answers every prompt with the password."""
    def answer(prompt: str) -> str:
        return password
    return answer


def _reason_from_import_error(exc: Exception) -> str:
    error_msg = str(exc).lower()
    if "passphrase" in error_msg or "decrypt" in error_msg:
        return "wrong_passphrase"
    if "format" in error_msg or "invalid" in error_msg:
        return "invalid_format"
    return "import_error"


def load_private_key(
    key_path: Path | str,
    passphrase: str | None = None,
) -> asyncssh.SSHKey:
    """
    Load a private key from file.

    Args:
        key_path: Path to the private key file
        passphrase: Optional passphrase for encrypted keys

    Returns:
        Loaded SSH key

    Raises:
        KeyLoadError: If the key cannot be loaded (file not found, bad format,
                      wrong passphrase)
    """
    key_path = Path(key_path).expanduser()

    if not key_path.exists():
        raise KeyLoadError(
            f"Private key file not found: {key_path}",
            key_path=str(key_path),
            reason="file_not_found",
        )

    if not os.access(key_path, os.R_OK):
        raise KeyLoadError(
            f"Private key file not readable: {key_path}",
            key_path=str(key_path),
            reason="permission_denied",
        )

    try:
        return asyncssh.read_private_key(str(key_path), passphrase=passphrase)
    except asyncssh.KeyImportError as e:
        raise KeyLoadError(
            f"Failed to load private key {key_path}: {e}",
            key_path=str(key_path),
            reason=_reason_from_import_error(e),
        ) from e
    except Exception as e:
        raise KeyLoadError(
            f"Unexpected error loading private key {key_path}: {e}",
            key_path=str(key_path),
            reason="unknown",
        ) from e


def import_private_key(
    data: bytes,
    passphrase: str | None = None,
) -> asyncssh.SSHKey:
    """
    Import a private key held in memory.

    Raises:
        KeyLoadError: If the data is not a usable private key
    """
    try:
        return asyncssh.import_private_key(data, passphrase=passphrase)
    except asyncssh.KeyImportError as e:
        raise KeyLoadError(
            f"Failed to import private key: {e}",
            reason=_reason_from_import_error(e),
        ) from e
    except Exception as e:
        raise KeyLoadError(
            f"Unexpected error importing private key: {e}",
            reason="unknown",
        ) from e


def select_auth(
    params: ConnectionParameters,
    answer_challenge: ChallengeResponder | None = None,
) -> AuthConfig:
    """
    Choose the single credential for a connection attempt.

    Precedence:
    1. Private key (bytes, then path). A key that fails to load raises
       KeyLoadError; password is never tried instead.
    2. Password, with keyboard-interactive offered as well when
       params.interactive_fallback is set.
    3. Keyboard-interactive alone, answered by answer_challenge if given.
       Without a responder the challenge is declined, which the fetcher
       reports as InteractiveAuthUnavailable.

    Args:
        params: Resolved connection parameters
        answer_challenge: Optional responder overriding the password for
                          keyboard-interactive prompts

    Raises:
        KeyLoadError: If the configured private key cannot be loaded
        AuthFailed: If no credential is configured and interactive
                    fallback is disabled
    """
    if params.private_key is not None:
        return AuthConfig(
            method=AuthMethod.PRIVATE_KEY,
            client_key=import_private_key(params.private_key, params.passphrase),
            key_source="<memory>",
        )

    if params.private_key_path is not None:
        return AuthConfig(
            method=AuthMethod.PRIVATE_KEY,
            client_key=load_private_key(params.private_key_path, params.passphrase),
            key_source=str(params.private_key_path),
        )

    if answer_challenge is None and params.password is not None:
        answer_challenge = password_responder(params.password)

    if params.password is not None:
        return AuthConfig(
            method=AuthMethod.PASSWORD,
            password=params.password,
            interactive_fallback=params.interactive_fallback,
            answer_challenge=answer_challenge if params.interactive_fallback else None,
        )

    if params.interactive_fallback:
        return AuthConfig(
            method=AuthMethod.KEYBOARD_INTERACTIVE,
            answer_challenge=answer_challenge,
        )

    raise AuthFailed(
        "No credential configured: provide a private key or a password",
        context=ErrorContext(
            host=params.host,
            port=params.port,
            username=params.username,
        ),
    )

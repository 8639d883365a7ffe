"""
Tests for SSH authentication selection.

Tests cover:
- Credential precedence (private key > password > keyboard-interactive)
- asyncssh option mapping that pins the offered auth methods
- Private key loading and import with KeyLoadError reasons
- Secrets never appearing in logged dictionaries

These are unit tests that don't require a server.
"""
from __future__ import annotations

from pathlib import Path

import asyncssh
import pytest

from secure_fetch.auth import (
    AuthConfig,
    AuthMethod,
    import_private_key,
    load_private_key,
    password_responder,
    select_auth,
)
from secure_fetch.config import ConnectionParameters
from secure_fetch.errors import AuthFailed, KeyLoadError


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestSelectAuth:
    """select_auth picks exactly one credential."""

    def test_key_bytes_win(self, client_key: asyncssh.SSHKey, client_key_file: Path) -> None:
        """In-memory key beats key path and password."""
        params = ConnectionParameters(
            host="h",
            private_key=client_key.export_private_key(),
            private_key_path=client_key_file,
            password="pw",
        )

        auth = select_auth(params)

        assert auth.method == AuthMethod.PRIVATE_KEY
        assert auth.key_source == "<memory>"
        assert auth.client_key.public_data == client_key.public_data

    def test_key_path_beats_password(self, client_key_file: Path) -> None:
        params = ConnectionParameters(host="h", private_key_path=client_key_file, password="pw")

        auth = select_auth(params)

        assert auth.method == AuthMethod.PRIVATE_KEY
        assert auth.key_source == str(client_key_file)
        assert auth.password is None
        assert not auth.accepts_challenges

    def test_broken_key_never_falls_back_to_password(self, tmp_path: Path) -> None:
        """A key that fails to load is terminal even with a password configured."""
        params = ConnectionParameters(
            host="h",
            private_key_path=tmp_path / "missing",
            password="pw",
        )

        with pytest.raises(KeyLoadError):
            select_auth(params)

    def test_password_with_interactive_fallback(self) -> None:
        auth = select_auth(ConnectionParameters(host="h", password="pw"))

        assert auth.method == AuthMethod.PASSWORD
        assert auth.password == "pw"
        assert auth.accepts_challenges
        assert auth.answer_challenge("Password: ") == "pw"

    def test_password_without_interactive_fallback(self) -> None:
        auth = select_auth(
            ConnectionParameters(host="h", password="pw", interactive_fallback=False)
        )

        assert auth.method == AuthMethod.PASSWORD
        assert not auth.accepts_challenges
        assert auth.answer_challenge is None

    def test_custom_responder_overrides_password(self) -> None:
        auth = select_auth(
            ConnectionParameters(host="h", password="pw"),
            answer_challenge=lambda prompt: "otp-123456",
        )

        assert auth.answer_challenge("Verification code: ") == "otp-123456"

    def test_interactive_only_without_password(self) -> None:
        """No key and no password: keyboard-interactive with no responder."""
        auth = select_auth(ConnectionParameters(host="h"))

        assert auth.method == AuthMethod.KEYBOARD_INTERACTIVE
        assert auth.answer_challenge is None

    def test_no_credential_at_all(self) -> None:
        params = ConnectionParameters(host="h", username="deploy", interactive_fallback=False)

        with pytest.raises(AuthFailed, match="No credential configured") as exc_info:
            select_auth(params)

        assert exc_info.value.context.username == "deploy"


# ---------------------------------------------------------------------------
# asyncssh options
# ---------------------------------------------------------------------------

class TestAsyncsshOptions:
    """to_asyncssh_options offers only the chosen credential."""

    def test_private_key_options(self, client_key: asyncssh.SSHKey) -> None:
        auth = AuthConfig(method=AuthMethod.PRIVATE_KEY, client_key=client_key)

        assert auth.to_asyncssh_options() == {
            "client_keys": [client_key],
            "password": None,
            "preferred_auth": ["publickey"],
        }

    def test_password_options(self) -> None:
        auth = AuthConfig(method=AuthMethod.PASSWORD, password="pw")

        assert auth.to_asyncssh_options() == {
            "client_keys": [],
            "password": "pw",
            "preferred_auth": ["password"],
        }

    def test_password_with_fallback_options(self) -> None:
        auth = AuthConfig(
            method=AuthMethod.PASSWORD,
            password="pw",
            interactive_fallback=True,
            answer_challenge=password_responder("pw"),
        )

        assert auth.to_asyncssh_options()["preferred_auth"] == [
            "password",
            "keyboard-interactive",
        ]

    def test_interactive_options(self) -> None:
        auth = AuthConfig(method=AuthMethod.KEYBOARD_INTERACTIVE)

        options = auth.to_asyncssh_options()

        assert options["preferred_auth"] == ["keyboard-interactive"]
        assert options["password"] is None
        assert options["client_keys"] == []


class TestAuthConfig:
    """AuthConfig invariants and logging."""

    def test_private_key_requires_key(self) -> None:
        with pytest.raises(AssertionError, match="client_key required"):
            AuthConfig(method=AuthMethod.PRIVATE_KEY)

    def test_password_requires_password(self) -> None:
        with pytest.raises(AssertionError, match="password required"):
            AuthConfig(method=AuthMethod.PASSWORD)

    def test_to_dict_excludes_secrets(self) -> None:
        auth = AuthConfig(
            method=AuthMethod.PASSWORD,
            password="hunter2",
            interactive_fallback=True,
        )

        data = auth.to_dict()

        assert data == {"method": "password", "keyboard_interactive": True}
        assert "hunter2" not in repr(auth)


# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

class TestKeyLoading:
    """Test private key loading with error handling."""

    def test_load_valid_key(self, client_key: asyncssh.SSHKey, client_key_file: Path) -> None:
        key = load_private_key(client_key_file)
        assert key.public_data == client_key.public_data

    def test_load_key_file_not_found(self) -> None:
        """load_private_key raises KeyLoadError for missing file."""
        with pytest.raises(KeyLoadError) as exc_info:
            load_private_key("/nonexistent/key/path")

        error = exc_info.value
        assert error.context.key_path == "/nonexistent/key/path"
        assert error.to_dict()["reason"] == "file_not_found"

    def test_load_key_invalid_format(self, tmp_path: Path) -> None:
        """load_private_key raises KeyLoadError for invalid key format."""
        key_file = tmp_path / "bad_key"
        key_file.write_text("this is not a valid ssh key")

        with pytest.raises(KeyLoadError) as exc_info:
            load_private_key(key_file)

        error = exc_info.value
        assert error.context.key_path == str(key_file)
        assert error.to_dict()["reason"] in ("invalid_format", "import_error", "unknown")

    def test_encrypted_key_with_passphrase(
        self,
        tmp_path: Path,
        client_key: asyncssh.SSHKey,
    ) -> None:
        key_file = tmp_path / "encrypted.pem"
        key_file.write_bytes(client_key.export_private_key("pkcs8-pem", passphrase="s3cret"))

        key = load_private_key(key_file, passphrase="s3cret")

        assert key.public_data == client_key.public_data

    def test_encrypted_key_without_passphrase(
        self,
        tmp_path: Path,
        client_key: asyncssh.SSHKey,
    ) -> None:
        key_file = tmp_path / "encrypted.pem"
        key_file.write_bytes(client_key.export_private_key("pkcs8-pem", passphrase="s3cret"))

        with pytest.raises(KeyLoadError) as exc_info:
            load_private_key(key_file)

        assert exc_info.value.to_dict()["reason"] in ("wrong_passphrase", "import_error")

    def test_import_from_memory(self, client_key: asyncssh.SSHKey) -> None:
        key = import_private_key(client_key.export_private_key())
        assert key.public_data == client_key.public_data

    def test_import_garbage(self) -> None:
        with pytest.raises(KeyLoadError) as exc_info:
            import_private_key(b"not a key")

        assert exc_info.value.context.key_path is None
        assert "reason" in exc_info.value.to_dict()

"""
AES-256-CFB payload decryption.

Payload wire format:
    IV (16 bytes) || ciphertext (N bytes)

CFB has no integrity tag: corrupted ciphertext decrypts to garbage rather
than failing, so a successful decrypt is not proof of authenticity.
"""
from __future__ import annotations

import os

from cryptography.hazmat.decrepit.ciphers.modes import CFB
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from secure_fetch.errors import (
    DecryptionError,
    EncodingError,
    ErrorContext,
    MalformedPayload,
)

IV_SIZE = 16
KEY_SIZE = 32


def _key_bytes(key: str | bytes) -> bytes:
    """Encode the key and enforce the AES-256 key size."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    if len(key) != KEY_SIZE:
        raise DecryptionError(
            f"Decryption key must be {KEY_SIZE} bytes, got {len(key)}",
            context=ErrorContext(extra={"key_length": len(key)}),
        )
    return bytes(key)


def split_payload(payload: bytes) -> tuple[bytes, bytes]:
    """
    Split a payload into (iv, ciphertext).

    Raises:
        MalformedPayload: If the payload is shorter than the IV
    """
    if len(payload) < IV_SIZE:
        raise MalformedPayload(
            f"Payload is {len(payload)} bytes, shorter than the {IV_SIZE}-byte IV",
            context=ErrorContext(payload_size=len(payload)),
        )
    return bytes(payload[:IV_SIZE]), bytes(payload[IV_SIZE:])


def decrypt_bytes(payload: bytes, key: str | bytes) -> bytes:
    """
    Decrypt an IV-prefixed AES-256-CFB payload to raw bytes.

    Raises:
        MalformedPayload: If the payload is shorter than 16 bytes
        DecryptionError: If the key is not 32 bytes or the cipher rejects the inputs
    """
    iv, ciphertext = split_payload(payload)
    key = _key_bytes(key)

    try:
        decryptor = Cipher(algorithms.AES(key), CFB(iv)).decryptor()
        return decryptor.update(ciphertext) + decryptor.finalize()
    except ValueError as e:
        raise DecryptionError(
            f"Cipher rejected the payload: {e}",
            context=ErrorContext(payload_size=len(payload), original_error=str(e)),
        ) from e


def decrypt(payload: bytes, key: str | bytes, errors: str = "strict") -> str:
    """
    Decrypt an IV-prefixed payload and decode it as UTF-8.

    Args:
        payload: IV || ciphertext
        key: 32-byte key; a str key is UTF-8 encoded first
        errors: codec error handler; "strict" raises EncodingError,
                "replace" substitutes U+FFFD for invalid sequences

    Raises:
        MalformedPayload: If the payload is shorter than 16 bytes
        DecryptionError: If the key is not 32 bytes or the cipher rejects the inputs
        EncodingError: If the plaintext is not valid UTF-8 under strict decoding
    """
    plaintext = decrypt_bytes(payload, key)
    try:
        return plaintext.decode("utf-8", errors=errors)
    except UnicodeDecodeError as e:
        raise EncodingError(
            f"Decrypted payload is not valid UTF-8 at byte {e.start}",
            context=ErrorContext(
                payload_size=len(payload),
                extra={"position": e.start},
            ),
        ) from e


def encrypt(plaintext: str | bytes, key: str | bytes, iv: bytes | None = None) -> bytes:
    """
    Encrypt plaintext into the IV-prefixed payload format.

    Args:
        plaintext: Text (UTF-8 encoded) or bytes
        key: 32-byte key; a str key is UTF-8 encoded first
        iv: 16-byte IV (random when omitted)

    Raises:
        DecryptionError: If the key is not 32 bytes
        ValueError: If the IV is not 16 bytes
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if iv is None:
        iv = os.urandom(IV_SIZE)
    if len(iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")

    encryptor = Cipher(algorithms.AES(_key_bytes(key)), CFB(iv)).encryptor()
    return iv + encryptor.update(plaintext) + encryptor.finalize()

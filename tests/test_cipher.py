"""
Tests for AES-256-CFB payload decryption.

Tests cover:
- Known-answer decryption (NIST SP 800-38A CFB128-AES256)
- The IV-prefixed "hello world" scenario
- Malformed payloads, wrong key lengths, invalid UTF-8
- Round trips through encrypt()
"""
from __future__ import annotations

import warnings

import pytest
from cryptography.hazmat.decrepit.ciphers.modes import CFB
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from secure_fetch.cipher import (
    IV_SIZE,
    KEY_SIZE,
    decrypt,
    decrypt_bytes,
    encrypt,
    split_payload,
)
from secure_fetch.errors import (
    DecryptionError,
    EncodingError,
    MalformedPayload,
    PayloadError,
)

from conftest import TEST_IV, TEST_KEY, TEST_PLAINTEXT

# NIST SP 800-38A, F.3.17 CFB128-AES256.Encrypt, first block
NIST_KEY = bytes.fromhex(
    "603deb1015ca71be2b73aef0857d7781"
    "1f352c073b6108d72d9810a30914dff4"
)
NIST_IV = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
NIST_PLAINTEXT = bytes.fromhex("6bc1bee22e409f96e93d7e117393172a")
NIST_CIPHERTEXT = bytes.fromhex("dc7e84bfda79164b7ecd8486985d3860")


def _reference_encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """Encrypt with the primitive directly, independent of secure_fetch.cipher."""
    encryptor = Cipher(algorithms.AES(key), CFB(iv)).encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


# ---------------------------------------------------------------------------
# Known answers
# ---------------------------------------------------------------------------

class TestKnownAnswers:
    """Decryption matches published and independently computed ciphertexts."""

    def test_nist_cfb128_aes256_vector(self) -> None:
        """The first NIST CFB128-AES256 block decrypts to its plaintext."""
        assert decrypt_bytes(NIST_IV + NIST_CIPHERTEXT, NIST_KEY) == NIST_PLAINTEXT

    def test_hello_world_scenario(self) -> None:
        """IV 00..0f with the 32-char ASCII key yields exactly 'hello world'."""
        ciphertext = _reference_encrypt(b"hello world", TEST_KEY, TEST_IV)
        assert len(ciphertext) == 11

        assert decrypt(TEST_IV + ciphertext, "01234567890123456789012345678901") == "hello world"

    def test_str_and_bytes_keys_are_equivalent(self, payload: bytes) -> None:
        """A str key is UTF-8 encoded before use."""
        assert decrypt(payload, TEST_KEY.decode("ascii")) == decrypt(payload, TEST_KEY)

    def test_no_deprecation_warnings(self) -> None:
        """The CFB mode import stays on the supported cryptography path."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert decrypt(encrypt(TEST_PLAINTEXT, TEST_KEY), TEST_KEY) == TEST_PLAINTEXT

    def test_iv_only_payload_decrypts_to_empty_string(self) -> None:
        """A 16-byte payload has an empty ciphertext."""
        assert decrypt(TEST_IV, TEST_KEY) == ""


# ---------------------------------------------------------------------------
# Payload framing
# ---------------------------------------------------------------------------

class TestSplitPayload:
    """The IV is the first 16 bytes, the rest is ciphertext."""

    def test_split(self) -> None:
        iv, ciphertext = split_payload(TEST_IV + b"abc")
        assert iv == TEST_IV
        assert ciphertext == b"abc"

    @pytest.mark.parametrize("length", [0, 1, 15])
    def test_short_payload_is_malformed(self, length: int) -> None:
        """Anything shorter than the IV is rejected, including empty payloads."""
        with pytest.raises(MalformedPayload) as exc_info:
            decrypt(b"\x00" * length, TEST_KEY)

        assert exc_info.value.context.payload_size == length
        assert isinstance(exc_info.value, PayloadError)

    def test_malformed_checked_before_key(self) -> None:
        """A short payload is MalformedPayload even with a bad key."""
        with pytest.raises(MalformedPayload):
            decrypt_bytes(b"short", b"bad key")


# ---------------------------------------------------------------------------
# Key validation
# ---------------------------------------------------------------------------

class TestKeyLength:
    """Keys must be exactly 32 bytes and are never padded or truncated."""

    @pytest.mark.parametrize("length", [0, 16, 24, 31, 33, 64])
    def test_wrong_length_key(self, payload: bytes, length: int) -> None:
        with pytest.raises(DecryptionError, match=f"got {length}"):
            decrypt(payload, b"k" * length)

    def test_truncating_key_is_not_attempted(self, payload: bytes) -> None:
        """A key with extra trailing bytes fails rather than using its prefix."""
        with pytest.raises(DecryptionError):
            decrypt(payload, TEST_KEY + b"!")

    def test_multibyte_str_key_length_counts_bytes(self, payload: bytes) -> None:
        """32 characters with a non-ASCII character encode to more than 32 bytes."""
        key = "é" + "0" * 31
        assert len(key) == KEY_SIZE

        with pytest.raises(DecryptionError):
            decrypt(payload, key)


# ---------------------------------------------------------------------------
# Text decoding
# ---------------------------------------------------------------------------

class TestDecoding:
    """Plaintext is UTF-8; strict by default, lossy on request."""

    def test_invalid_utf8_raises_encoding_error(self) -> None:
        """The NIST plaintext block (0x6b 0xc1 ...) is not valid UTF-8."""
        with pytest.raises(EncodingError) as exc_info:
            decrypt(NIST_IV + NIST_CIPHERTEXT, NIST_KEY)

        assert exc_info.value.to_dict()["position"] == 1

    def test_lossy_decoding_replaces_invalid_bytes(self) -> None:
        text = decrypt(NIST_IV + NIST_CIPHERTEXT, NIST_KEY, errors="replace")
        assert text.startswith("k\ufffd")

    def test_unicode_round_trip(self) -> None:
        text = "clé secrète: ключ 🔑"
        assert decrypt(encrypt(text, TEST_KEY), TEST_KEY) == text


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

class TestEncrypt:
    """encrypt() produces the IV-prefixed wire format."""

    def test_payload_layout(self) -> None:
        payload = encrypt(TEST_PLAINTEXT, TEST_KEY, iv=TEST_IV)

        assert payload[:IV_SIZE] == TEST_IV
        assert payload[IV_SIZE:] == _reference_encrypt(b"hello world", TEST_KEY, TEST_IV)

    def test_random_iv_differs_per_call(self) -> None:
        first = encrypt(TEST_PLAINTEXT, TEST_KEY)
        second = encrypt(TEST_PLAINTEXT, TEST_KEY)

        assert first[:IV_SIZE] != second[:IV_SIZE]
        assert decrypt(first, TEST_KEY) == decrypt(second, TEST_KEY) == TEST_PLAINTEXT

    def test_rejects_bad_iv(self) -> None:
        with pytest.raises(ValueError, match="IV must be 16 bytes"):
            encrypt(TEST_PLAINTEXT, TEST_KEY, iv=b"short")

    def test_corrupted_ciphertext_does_not_fail(self, payload: bytes) -> None:
        """CFB has no integrity tag: a flipped bit yields different plaintext."""
        corrupted = bytearray(payload)
        corrupted[-1] ^= 0x01

        plaintext = decrypt_bytes(bytes(corrupted), TEST_KEY)
        assert plaintext != TEST_PLAINTEXT.encode()
        assert plaintext[:-1] == TEST_PLAINTEXT.encode()[:-1]

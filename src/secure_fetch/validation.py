"""
Input validation for connection parameters and remote paths.

Rejects control characters, shell metacharacters and out-of-range values
before they reach asyncssh.
"""

import ipaddress
import re
from typing import Final

MAX_HOSTNAME_LENGTH: Final[int] = 253
MAX_USERNAME_LENGTH: Final[int] = 32
MAX_PATH_LENGTH: Final[int] = 4096

DANGEROUS_CHARS: Final[frozenset[str]] = frozenset(
    "\x00"
    "\n\r"
    "`$(){}[]|;&<>\\'\""
    "\t"
)

_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$"
)

_USERNAME_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_.-]*$"
)

_CHAR_NAMES: Final[dict[str, str]] = {
    "\x00": "null byte",
    "\n": "newline",
    "\r": "carriage return",
    "\t": "tab",
}


def _check_chars(value: str, field_name: str, forbidden: frozenset[str]) -> None:
    for char in value:
        if char in forbidden:
            char_desc = _CHAR_NAMES.get(char, repr(char))
            raise ValueError(f"{field_name} contains forbidden character: {char_desc}")


def validate_hostname(hostname: str) -> str:
    """
    Validate a hostname or IP address literal.

    IPv4 and IPv6 literals are accepted as-is; names must follow RFC 1123
    and are lower-cased.

    Raises:
        ValueError: If the hostname is invalid
    """
    if not isinstance(hostname, str):
        raise ValueError(f"hostname must be a string, got {type(hostname).__name__}")
    if not hostname:
        raise ValueError("hostname must not be empty")

    try:
        return str(ipaddress.ip_address(hostname))
    except ValueError:
        pass

    _check_chars(hostname, "hostname", DANGEROUS_CHARS)

    if len(hostname) > MAX_HOSTNAME_LENGTH:
        raise ValueError(
            f"hostname exceeds maximum length of {MAX_HOSTNAME_LENGTH} characters "
            f"(got {len(hostname)})"
        )

    # A single trailing dot marks a fully-qualified name
    name = hostname[:-1] if hostname.endswith(".") else hostname
    for label in name.split("."):
        if not label:
            raise ValueError("hostname contains an empty label")
        if not _LABEL_PATTERN.match(label):
            raise ValueError(f"hostname label is invalid: {label!r}")

    return hostname.lower()


def validate_port(port: int) -> int:
    """
    Validate a TCP port number (1-65535).

    Raises:
        ValueError: If the port is not an int in range
    """
    # bool is an int subclass; True would silently become port 1
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"port must be an integer, got {type(port).__name__}")
    if not 1 <= port <= 65535:
        raise ValueError(f"port must be between 1 and 65535, got {port}")
    return port


def validate_username(username: str) -> str:
    """
    Validate a POSIX-style username.

    Raises:
        ValueError: If the username is invalid
    """
    if not isinstance(username, str):
        raise ValueError(f"username must be a string, got {type(username).__name__}")
    if not username:
        raise ValueError("username must not be empty")
    _check_chars(username, "username", DANGEROUS_CHARS)
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValueError(
            f"username exceeds maximum length of {MAX_USERNAME_LENGTH} characters "
            f"(got {len(username)})"
        )
    if not _USERNAME_PATTERN.match(username):
        raise ValueError(f"username is invalid: {username!r}")
    return username


def validate_remote_path(path: str) -> str:
    """
    Validate a remote file path.

    Paths are passed to SFTP verbatim, so only NUL and line breaks are
    rejected; spaces and shell characters are legal file names.

    Raises:
        ValueError: If the path is empty or contains control characters
    """
    if not isinstance(path, str):
        raise ValueError(f"remote path must be a string, got {type(path).__name__}")
    if not path.strip():
        raise ValueError("remote path must not be empty")
    _check_chars(path, "remote path", frozenset("\x00\n\r"))
    if len(path) > MAX_PATH_LENGTH:
        raise ValueError(
            f"remote path exceeds maximum length of {MAX_PATH_LENGTH} characters"
        )
    return path

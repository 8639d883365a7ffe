"""
CLI interface for secure-fetch.

Usage:
    python -m secure_fetch user@host /path/to/file.enc          # Key from $KEY_ETCD
    python -m secure_fetch -i ~/.ssh/id_ed25519 user@host /path/to/file.enc
    python -m secure_fetch --password user@host /path/to/file.enc
    python -m secure_fetch --key-env MY_KEY user@host /path/to/file.enc
    python -m secure_fetch -o secret.txt user@host /path/to/file.enc
    python -m secure_fetch --events user@host /path/to/file.enc
    python -m secure_fetch --help
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from secure_fetch.config import (
    ENV_DECRYPTION_KEY,
    ConfigDefaults,
    DecryptionSettings,
    SSHSettings,
)

log = logging.getLogger(__name__)


def parse_target(target: str) -> tuple[str, str | None]:
    """Split "[user@]host" into (host, user)."""
    if "@" in target:
        user, host = target.rsplit("@", 1)
        return host, user or None
    return target, None


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the secure-fetch CLI."""
    parser = argparse.ArgumentParser(
        prog="secure-fetch",
        description="Download an AES-256-CFB encrypted file over SFTP and print the plaintext",
        epilog="Example: python -m secure_fetch deploy@10.0.0.5 /etc/app/secret.enc",
    )

    parser.add_argument(
        "target",
        metavar="[user@]host",
        help="Target host (optionally with username)",
    )

    parser.add_argument(
        "remote_path",
        nargs="?",
        help="Remote file to fetch (default: $SECURE_FETCH_FILE_PATH or built-in path)",
    )

    parser.add_argument(
        "-p", "--port",
        type=int,
        default=22,
        help="SSH port (default: 22)",
    )

    parser.add_argument(
        "-l", "--login",
        metavar="USER",
        help="Login username (alternative to user@host)",
    )

    parser.add_argument(
        "-i", "--identity",
        metavar="FILE",
        help="Private key file for authentication",
    )

    parser.add_argument(
        "--password",
        action="store_true",
        help="Prompt for a password (also answers keyboard-interactive prompts)",
    )

    parser.add_argument(
        "--no-keyboard-interactive",
        action="store_true",
        help="Do not answer keyboard-interactive challenges",
    )

    parser.add_argument(
        "--known-hosts",
        metavar="FILE",
        help="known_hosts file for host key verification (default: no verification)",
    )

    parser.add_argument(
        "--key-env",
        metavar="VAR",
        default=ENV_DECRYPTION_KEY,
        help=f"Environment variable holding the decryption key (default: {ENV_DECRYPTION_KEY})",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Deadline for the whole fetch (0 disables; default: 60)",
    )

    parser.add_argument(
        "--lossy",
        action="store_true",
        help="Replace invalid UTF-8 in the plaintext instead of failing",
    )

    parser.add_argument(
        "-o", "--output",
        metavar="FILE",
        help="Write the plaintext to FILE instead of stdout",
    )

    parser.add_argument(
        "--events",
        action="store_true",
        help="Print JSONL events to stderr",
    )

    parser.add_argument(
        "--event-log",
        metavar="PATH",
        help="Append JSONL events to PATH",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (-v info, -vv debug, -vvv asyncssh debug)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log errors",
    )

    return parser


def configure_logging(verbose: int, quiet: bool) -> None:
    """Configure root logging from -v/-q."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if verbose >= 3:
        logging.getLogger("asyncssh").setLevel(logging.DEBUG)
    elif verbose >= 2:
        logging.getLogger("asyncssh").setLevel(logging.INFO)
    else:
        logging.getLogger("asyncssh").setLevel(logging.ERROR)


async def run_fetch(args: argparse.Namespace) -> int:
    """
    Fetch, decrypt and output the file.

    Returns:
        0 on success, 1 on any failure
    """
    from secure_fetch.events import EventCollector
    from secure_fetch.pipeline import fetch_and_decrypt

    host, target_user = parse_target(args.target)

    try:
        defaults = ConfigDefaults.from_env()
    except ValueError as e:
        log.error(f"Error: {e}")
        return 1
    if args.timeout is not None:
        defaults = replace(defaults, timeout=args.timeout)

    password = None
    if args.password:
        password = getpass.getpass(f"{target_user or args.login or ''}@{host}'s password: ")

    ssh = SSHSettings(
        host=host,
        port=args.port,
        username=args.login or target_user,
        password=password,
        private_key_path=args.identity,
        try_keyboard=not args.no_keyboard_interactive,
        known_hosts=args.known_hosts,
    )
    decryption = DecryptionSettings(
        file_path=args.remote_path,
        decryption_key=os.environ.get(args.key_env) or None,
    )

    event_collector = EventCollector() if args.events else None

    try:
        plaintext = await fetch_and_decrypt(
            ssh,
            decryption,
            defaults=defaults,
            event_collector=event_collector,
            event_log_path=args.event_log,
            errors="replace" if args.lossy else "strict",
        )
    finally:
        if event_collector is not None:
            for event in event_collector.events:
                print(event.to_json(), file=sys.stderr)

    if plaintext is None:
        return 1

    if args.output:
        Path(args.output).write_text(plaintext, encoding="utf-8")
    else:
        sys.stdout.write(plaintext)
        sys.stdout.flush()
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    return asyncio.run(run_fetch(args))


if __name__ == "__main__":
    sys.exit(main())

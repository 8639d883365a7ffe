"""
Remote file fetch over SSH/SFTP with event logging.

Provides:
- RemoteFileFetcher: Opens one session, reads one file, always tears down
- FetchClient: asyncssh client answering keyboard-interactive challenges
- fetch_file: Convenience wrapper around RemoteFileFetcher

Each fetch opens exactly one connection and one SFTP channel and closes
both on every exit path: success, failure, connection loss, or
cancellation by the deadline.
"""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

import asyncssh

from secure_fetch.auth import AuthConfig, AuthMethod, ChallengeResponder, select_auth
from secure_fetch.config import DEFAULT_FETCH_TIMEOUT, ConnectionParameters, RemoteTarget
from secure_fetch.errors import (
    AuthFailed,
    ChannelOpenError,
    ConnectionRefused,
    ConnectionTimeout,
    ErrorContext,
    HostKeyMismatch,
    HostUnreachable,
    InteractiveAuthUnavailable,
    RemoteReadError,
    SecureFetchError,
    SSHConnectionError,
)
from secure_fetch.events import EventCollector, EventEmitter, EventType

log = logging.getLogger(__name__)

_CONNECTION_LOST_ERRORS = (
    asyncssh.DisconnectError,
    asyncssh.SFTPConnectionLost,
    asyncssh.SFTPNoConnection,
)


class FetchClient(asyncssh.SSHClient):
    """
    SSH client callbacks for one fetch.

    Answers keyboard-interactive challenges with the injected responder, or
    declines them (and remembers that it did) when there is none. Records a
    connection lost after connect so late transport errors can be told
    apart from SFTP errors.
    """

    def __init__(self, answer_challenge: ChallengeResponder | None = None) -> None:
        super().__init__()
        self._answer_challenge = answer_challenge
        self.challenge_declined = False
        self.challenge_count = 0
        self.lost_error: Exception | None = None

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self.lost_error = exc

    def kbdint_auth_requested(self) -> str | None:
        """Accept all submethods, or decline when no responder is configured."""
        if self._answer_challenge is None:
            self.challenge_declined = True
            return None
        return ""

    def kbdint_challenge_received(
        self,
        name: str,
        instructions: str,
        lang: str,
        prompts: list[tuple[str, bool]],
    ) -> list[str] | None:
        """Answer every prompt in the challenge."""
        if self._answer_challenge is None:
            self.challenge_declined = True
            return None

        self.challenge_count += 1
        return [self._answer_challenge(prompt) for prompt, _echo in prompts]


class RemoteFileFetcher:
    """
    Fetches one remote file into memory over SFTP.

    Usage:
        params = ConnectionParameters(host="10.0.0.5", username="deploy", password="secret")
        fetcher = RemoteFileFetcher(params)
        payload = await fetcher.fetch(RemoteTarget("/etc/app/secret.enc"))

    Events emitted, in order:
    - CONNECT (initiating), AUTH, CONNECT (connected)
    - SFTP: channel opened
    - READ: timed, with byte count
    - DISCONNECT
    - ERROR: on any failure, with the structured error data
    """

    def __init__(
        self,
        params: ConnectionParameters,
        *,
        answer_challenge: ChallengeResponder | None = None,
        event_collector: EventCollector | None = None,
        event_log_path: Path | str | None = None,
        timeout: float | None = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        """
        Args:
            params: Resolved connection parameters
            answer_challenge: Optional keyboard-interactive responder; by
                              default the configured password answers
            event_collector: Optional collector for in-memory event capture
            event_log_path: Optional path for JSONL event log
            timeout: Deadline in seconds for the whole fetch, None for no deadline
        """
        assert timeout is None or timeout > 0, f"timeout must be positive, got {timeout}"

        self._params = params
        self._answer_challenge = answer_challenge
        self._event_collector = event_collector
        self._event_log_path = event_log_path
        self._timeout = timeout

    def _error_context(self, **fields: Any) -> ErrorContext:
        return ErrorContext(
            host=self._params.host,
            port=self._params.port,
            username=self._params.username,
            **fields,
        )

    async def fetch(self, target: RemoteTarget) -> bytes:
        """
        Read the target file in full.

        Returns:
            The file's bytes

        Raises:
            KeyLoadError, AuthFailed, InteractiveAuthUnavailable, HostKeyMismatch:
                authentication failures
            SSHConnectionError (and subclasses): transport failures, including
                a connection lost mid-transfer and the deadline expiring
            ChannelOpenError: the SFTP channel could not be opened
            RemoteReadError: the file could not be read in full
        """
        emitter = EventEmitter(
            collector=self._event_collector,
            jsonl_path=self._event_log_path,
        )
        try:
            if self._timeout is None:
                return await self._fetch(target, emitter)
            try:
                return await asyncio.wait_for(self._fetch(target, emitter), self._timeout)
            except asyncio.TimeoutError as e:
                raise ConnectionTimeout(
                    f"Fetch timed out after {self._timeout}s",
                    context=self._error_context(remote_path=target.path),
                ) from e
        except SecureFetchError as e:
            emitter.emit(EventType.ERROR, **e.to_dict())
            raise
        finally:
            emitter.close()

    async def _fetch(self, target: RemoteTarget, emitter: EventEmitter) -> bytes:
        auth = select_auth(self._params, self._answer_challenge)
        conn, client = await self._connect(auth, emitter)
        try:
            return await self._read(conn, client, target, emitter)
        finally:
            await self._disconnect(conn, emitter)

    async def _connect(
        self,
        auth: AuthConfig,
        emitter: EventEmitter,
    ) -> tuple[asyncssh.SSHClientConnection, FetchClient]:
        """Open and authenticate the session."""
        params = self._params
        connect_data: dict[str, Any] = {
            "host": params.host,
            "port": params.port,
            "username": params.username,
        }
        error_ctx = self._error_context(
            auth_method=auth.method.value,
            key_path=auth.key_source if auth.method == AuthMethod.PRIVATE_KEY else None,
        )

        emitter.emit(EventType.CONNECT, status="initiating", **connect_data)
        log.debug(f"Connecting to {params.host}:{params.port} using {auth.method.value}")

        client = FetchClient(auth.answer_challenge)
        options: dict[str, Any] = {
            "host": params.host,
            "port": params.port,
            "known_hosts": params.known_hosts,
            "connect_timeout": params.connect_timeout,
            "client_factory": lambda: client,
            **auth.to_asyncssh_options(),
        }
        if params.username is not None:
            options["username"] = params.username

        auth_start_ms = time.time() * 1000
        try:
            conn = await asyncssh.connect(**options)
        except asyncssh.PermissionDenied as e:
            emitter.emit(
                EventType.AUTH,
                status="failed",
                duration_ms=(time.time() * 1000) - auth_start_ms,
                error_message=str(e),
                **auth.to_dict(),
            )
            error_ctx.original_error = str(e)
            if client.challenge_declined:
                raise InteractiveAuthUnavailable(
                    "Interactive authentication is not possible without a password",
                    context=error_ctx,
                ) from e
            raise AuthFailed(f"Authentication failed: {e}", context=error_ctx) from e
        except Exception as e:
            raise _map_connect_exception(e, error_ctx) from e

        emitter.emit(
            EventType.AUTH,
            status="success",
            duration_ms=(time.time() * 1000) - auth_start_ms,
            challenges=client.challenge_count,
            **auth.to_dict(),
        )
        emitter.emit(
            EventType.CONNECT,
            status="connected",
            auth_method=auth.method.value,
            **connect_data,
        )
        return conn, client

    async def _read(
        self,
        conn: asyncssh.SSHClientConnection,
        client: FetchClient,
        target: RemoteTarget,
        emitter: EventEmitter,
    ) -> bytes:
        """Open the SFTP channel and read the target in full."""
        ctx = self._error_context(remote_path=target.path)

        try:
            sftp = await conn.start_sftp_client()
        except Exception as e:
            if _is_connection_lost(e, client):
                raise _connection_lost(e, client, ctx) from e
            ctx.original_error = str(e)
            raise ChannelOpenError(
                f"Error opening SFTP session: {e}",
                reason="channel_open_failed",
                context=ctx,
            ) from e

        emitter.emit(EventType.SFTP, status="opened", path=target.path)

        try:
            with emitter.timed_event(EventType.READ, path=target.path) as read_data:
                read_data["status"] = "failed"
                try:
                    async with sftp.open(target.path, "rb") as remote_file:
                        expected_size = (await remote_file.stat()).size
                        data = await remote_file.read()
                except Exception as e:
                    raise _map_read_exception(e, client, ctx) from e

                read_data.update(status="success", bytes=len(data))
        finally:
            sftp.exit()

        if expected_size is not None and len(data) != expected_size:
            ctx.extra.update(expected_bytes=expected_size, received_bytes=len(data))
            raise RemoteReadError(
                f"Error reading file: received {len(data)} of {expected_size} bytes",
                reason="truncated",
                context=ctx,
            )

        log.debug(f"Read {len(data)} bytes from {target.path}")
        return data

    async def _disconnect(
        self,
        conn: asyncssh.SSHClientConnection,
        emitter: EventEmitter,
    ) -> None:
        """Close the session."""
        emitter.emit(
            EventType.DISCONNECT,
            host=self._params.host,
            port=self._params.port,
        )
        conn.close()
        await conn.wait_closed()


def _is_connection_lost(exc: Exception, client: FetchClient) -> bool:
    return client.lost_error is not None or isinstance(exc, _CONNECTION_LOST_ERRORS)


def _connection_lost(
    exc: Exception,
    client: FetchClient,
    ctx: ErrorContext,
) -> SSHConnectionError:
    ctx.original_error = str(client.lost_error or exc)
    return SSHConnectionError(f"Connection lost: {ctx.original_error}", context=ctx)


def _map_read_exception(
    exc: Exception,
    client: FetchClient,
    ctx: ErrorContext,
) -> SecureFetchError:
    """Map a failure while reading the remote file to our error taxonomy."""
    if isinstance(exc, SecureFetchError):
        return exc

    if _is_connection_lost(exc, client):
        return _connection_lost(exc, client, ctx)

    ctx.original_error = str(exc)

    if isinstance(exc, asyncssh.SFTPNoSuchFile):
        reason = "no_such_file"
    elif isinstance(exc, asyncssh.SFTPPermissionDenied):
        reason = "permission_denied"
    elif isinstance(exc, asyncssh.SFTPError):
        reason = "sftp_error"
    else:
        reason = "unknown"

    return RemoteReadError(f"Error reading file: {exc}", reason=reason, context=ctx)


def _map_connect_exception(exc: Exception, ctx: ErrorContext) -> SecureFetchError:
    """Map asyncssh/OS exceptions raised while connecting to our error taxonomy."""
    ctx.original_error = str(exc)

    if isinstance(exc, SecureFetchError):
        return exc

    if isinstance(exc, asyncssh.HostKeyNotVerifiable):
        return HostKeyMismatch(f"Host key verification failed: {exc}", context=ctx)

    if isinstance(exc, asyncssh.DisconnectError):
        return SSHConnectionError(f"SSH connection error: {exc}", context=ctx)

    # TimeoutError is an OSError subclass, so it must be checked first
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ConnectionTimeout(f"Connection timed out: {exc}", context=ctx)

    if isinstance(exc, OSError):
        error_str = str(exc).lower()
        if isinstance(exc, ConnectionRefusedError) or "connection refused" in error_str:
            return ConnectionRefused(f"Connection refused: {exc}", context=ctx)
        if "timed out" in error_str or "timeout" in error_str:
            return ConnectionTimeout(f"Connection timed out: {exc}", context=ctx)
        if "unreachable" in error_str or "no route" in error_str:
            return HostUnreachable(f"Host unreachable: {exc}", context=ctx)
        return SSHConnectionError(f"SSH connection error: {exc}", context=ctx)

    return SSHConnectionError(f"Unexpected connection error: {exc}", context=ctx)


async def fetch_file(
    params: ConnectionParameters,
    target: RemoteTarget,
    **kwargs: Any,
) -> bytes:
    """Fetch one remote file; see RemoteFileFetcher for keyword arguments."""
    return await RemoteFileFetcher(params, **kwargs).fetch(target)

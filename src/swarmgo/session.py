"""Authenticated SSH sessions to a single host."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import asyncssh

from .config import SessionOptions
from .errors import AuthError, CommandTimeout, ConnectError

logger = logging.getLogger(__name__)

# Type alias for output callback
OutputCallback = Callable[[str, str], None]  # (alias, line) -> None


@dataclass(frozen=True)
class CommandResult:
    """Result of a remote command execution."""

    command: str
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _decode(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class RemoteSession:
    """One SSH connection to one host.

    Use :meth:`connect` to open a session and ``async with`` (or
    :meth:`close`) to release it.
    """

    def __init__(
        self,
        conn: asyncssh.SSHClientConnection,
        host: str,
        alias: str | None = None,
        command_timeout: float | None = None,
        on_output: OutputCallback | None = None,
    ):
        self._conn = conn
        self.host = host
        self.alias = alias or host
        self.command_timeout = command_timeout
        self.on_output = on_output
        self._closed = False
        self._released = False

    @classmethod
    async def connect(
        cls,
        host: str,
        user_name: str,
        private_key_path: str | Path,
        passphrase: str | None = None,
        *,
        options: SessionOptions | None = None,
        alias: str | None = None,
        on_output: OutputCallback | None = None,
    ) -> RemoteSession:
        """Open an authenticated session.

        Raises:
            AuthError: Key file missing, key undecryptable or login rejected
            ConnectError: Network, handshake or host key failure
        """
        options = options or SessionOptions()
        key_path = Path(private_key_path).expanduser()
        if not key_path.exists():
            raise AuthError(host, f"SSH key not found: {key_path}")

        connect_kwargs: dict[str, Any] = {
            "port": options.port,
            "username": user_name,
            "client_keys": [str(key_path)],
            "passphrase": passphrase,
        }
        if options.connect_timeout is not None:
            connect_kwargs["connect_timeout"] = options.connect_timeout
        if not options.strict_host_key_checking:
            logger.warning("Host key verification disabled for %s", host)
            connect_kwargs["known_hosts"] = None
        elif options.known_hosts is not None:
            connect_kwargs["known_hosts"] = str(options.known_hosts)

        logger.info("Opening SSH connection to %s@%s:%d", user_name, host, options.port)
        try:
            conn = await asyncssh.connect(host, **connect_kwargs)
        except asyncssh.PermissionDenied as e:
            raise AuthError(host, str(e)) from e
        except asyncssh.KeyImportError as e:
            raise AuthError(host, f"Cannot load key {key_path}: {e}") from e
        except asyncssh.Error as e:
            raise ConnectError(host, str(e)) from e
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectError(host, str(e) or type(e).__name__) from e

        return cls(
            conn,
            host,
            alias=alias,
            command_timeout=options.command_timeout,
            on_output=on_output,
        )

    def emit(self, line: str) -> None:
        """Report a line of output for this session's host."""
        if self.on_output:
            self.on_output(self.alias, line)

    async def execute(self, command: str) -> CommandResult:
        """Run one command and wait for it to exit.

        A non-zero exit status is returned, not raised.

        Raises:
            CommandTimeout: The command outlived ``command_timeout``
            ConnectError: The connection failed mid-command
        """
        if self._closed:
            raise ConnectError(self.host, "session is closed")

        self.emit(f"$ {command}")
        try:
            if self.command_timeout is None:
                result = await self._conn.run(command, check=False)
            else:
                result = await asyncio.wait_for(
                    self._conn.run(command, check=False), self.command_timeout
                )
        except asyncio.TimeoutError:
            # Abandons the remote command
            self._conn.close()
            self._closed = True
            raise CommandTimeout(self.host, command, self.command_timeout) from None
        except asyncssh.Error as e:
            raise ConnectError(self.host, str(e)) from e
        except OSError as e:
            raise ConnectError(self.host, str(e)) from e

        stdout = _decode(result.stdout)
        stderr = _decode(result.stderr)
        exit_code = result.exit_status if result.exit_status is not None else -1

        for line in stdout.splitlines():
            self.emit(line)
        for line in stderr.splitlines():
            self.emit(f"STDERR: {line}")
        if exit_code != 0:
            self.emit(f"Command exited with status {exit_code}")

        return CommandResult(
            command=command, stdout=stdout, stderr=stderr, exit_code=exit_code
        )

    async def close(self) -> None:
        """Release the connection, waiting for it to shut down."""
        if self._released:
            return
        self._released = True
        self._closed = True
        self._conn.close()
        await self._conn.wait_closed()

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> RemoteSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

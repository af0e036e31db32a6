"""Tests for RemoteSession."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest

from swarmgo.config import SessionOptions
from swarmgo.errors import AuthError, CommandTimeout, ConnectError
from swarmgo.session import RemoteSession


@pytest.fixture
def key_file(tmp_path: Path) -> Path:
    path = tmp_path / "prod"
    path.write_text("not really a key")
    return path


@pytest.fixture
def mock_conn() -> MagicMock:
    conn = MagicMock()
    conn.run = AsyncMock(
        return_value=MagicMock(stdout="hello\nworld\n", stderr="", exit_status=0)
    )
    conn.wait_closed = AsyncMock()
    return conn


class TestConnect:
    """Test session establishment and error mapping."""

    @pytest.mark.asyncio
    async def test_permissive_by_default(self, key_file: Path, mock_conn: MagicMock) -> None:
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(return_value=mock_conn)) as connect:
            session = await RemoteSession.connect("10.0.0.1", "cluster", key_file, alias="h1")

        connect.assert_awaited_once()
        args, kwargs = connect.call_args
        assert args == ("10.0.0.1",)
        assert kwargs["username"] == "cluster"
        assert kwargs["client_keys"] == [str(key_file)]
        assert kwargs["known_hosts"] is None
        assert session.alias == "h1"
        assert session.host == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_strict_uses_known_hosts(self, key_file: Path, mock_conn: MagicMock) -> None:
        options = SessionOptions(
            port=2222, strict_host_key_checking=True, known_hosts=Path("/etc/ssh/kh")
        )
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(return_value=mock_conn)) as connect:
            await RemoteSession.connect(
                "10.0.0.1", "cluster", key_file, "secret", options=options
            )

        kwargs = connect.call_args.kwargs
        assert kwargs["known_hosts"] == "/etc/ssh/kh"
        assert kwargs["port"] == 2222
        assert kwargs["passphrase"] == "secret"

    @pytest.mark.asyncio
    async def test_missing_key_is_auth_error(self, tmp_path: Path) -> None:
        with patch("swarmgo.session.asyncssh.connect", AsyncMock()) as connect:
            with pytest.raises(AuthError, match="SSH key not found"):
                await RemoteSession.connect("10.0.0.1", "cluster", tmp_path / "missing")
        connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_permission_denied_is_auth_error(self, key_file: Path) -> None:
        error = asyncssh.PermissionDenied("Permission denied")
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(side_effect=error)):
            with pytest.raises(AuthError) as exc_info:
                await RemoteSession.connect("10.0.0.1", "cluster", key_file)
        assert exc_info.value.host == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_bad_passphrase_is_auth_error(self, key_file: Path) -> None:
        error = asyncssh.KeyImportError("Unable to decrypt private key")
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(side_effect=error)):
            with pytest.raises(AuthError, match="Cannot load key"):
                await RemoteSession.connect("10.0.0.1", "cluster", key_file, "wrong")

    @pytest.mark.asyncio
    async def test_refused_is_connect_error(self, key_file: Path) -> None:
        error = ConnectionRefusedError("Connection refused")
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(side_effect=error)):
            with pytest.raises(ConnectError, match="Connection refused"):
                await RemoteSession.connect("10.0.0.1", "cluster", key_file)

    @pytest.mark.asyncio
    async def test_host_key_failure_is_connect_error(self, key_file: Path) -> None:
        error = asyncssh.HostKeyNotVerifiable("Host key is not trusted")
        options = SessionOptions(strict_host_key_checking=True)
        with patch("swarmgo.session.asyncssh.connect", AsyncMock(side_effect=error)):
            with pytest.raises(ConnectError) as exc_info:
                await RemoteSession.connect("10.0.0.1", "cluster", key_file, options=options)
        assert not isinstance(exc_info.value, AuthError)


class TestExecute:
    """Test command execution on an open session."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self, mock_conn: MagicMock) -> None:
        lines: list[tuple[str, str]] = []
        session = RemoteSession(
            mock_conn,
            "10.0.0.1",
            alias="h1",
            on_output=lambda alias, line: lines.append((alias, line)),
        )

        result = await session.execute("echo hello")

        assert result.stdout == "hello\nworld\n"
        assert result.exit_code == 0
        assert result.ok
        mock_conn.run.assert_awaited_once_with("echo hello", check=False)
        assert lines == [("h1", "$ echo hello"), ("h1", "hello"), ("h1", "world")]

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_data(self, mock_conn: MagicMock) -> None:
        mock_conn.run = AsyncMock(
            return_value=MagicMock(stdout=b"partial", stderr=b"boom", exit_status=3)
        )
        session = RemoteSession(mock_conn, "10.0.0.1")

        result = await session.execute("false")

        assert result.exit_code == 3
        assert result.stdout == "partial"
        assert result.stderr == "boom"
        assert not result.ok

    @pytest.mark.asyncio
    async def test_timeout_closes_connection(self, mock_conn: MagicMock) -> None:
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        mock_conn.run = hang
        session = RemoteSession(mock_conn, "10.0.0.1", command_timeout=0.05)

        with pytest.raises(CommandTimeout) as exc_info:
            await session.execute("sleep 100")

        assert isinstance(exc_info.value, ConnectError)
        assert exc_info.value.command == "sleep 100"
        mock_conn.close.assert_called_once()
        assert session.closed

    @pytest.mark.asyncio
    async def test_connection_lost_is_connect_error(self, mock_conn: MagicMock) -> None:
        mock_conn.run = AsyncMock(side_effect=asyncssh.ConnectionLost("Connection lost"))
        session = RemoteSession(mock_conn, "10.0.0.1")

        with pytest.raises(ConnectError, match="Connection lost"):
            await session.execute("uptime")

    @pytest.mark.asyncio
    async def test_execute_after_close(self, mock_conn: MagicMock) -> None:
        session = RemoteSession(mock_conn, "10.0.0.1")
        await session.close()

        with pytest.raises(ConnectError, match="closed"):
            await session.execute("uptime")

    @pytest.mark.asyncio
    async def test_context_manager_closes_once(self, mock_conn: MagicMock) -> None:
        async with RemoteSession(mock_conn, "10.0.0.1") as session:
            pass
        await session.close()

        mock_conn.close.assert_called_once()
        mock_conn.wait_closed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_after_timeout_waits(self, mock_conn: MagicMock) -> None:
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        mock_conn.run = hang
        session = RemoteSession(mock_conn, "10.0.0.1", command_timeout=0.05)

        with pytest.raises(CommandTimeout):
            await session.execute("sleep 100")
        await session.close()
        await session.close()

        mock_conn.wait_closed.assert_awaited_once()

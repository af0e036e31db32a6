"""Shared fixtures: scripted sessions that never touch the network."""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from swarmgo.config import Node, NodeRegistry
from swarmgo.errors import ConnectError
from swarmgo.executor import Orchestrator
from swarmgo.session import CommandResult


class FakeSession:
    """Stand-in for RemoteSession that answers from a script.

    ``script`` maps a command to ``(stdout, exit_code)``; unknown commands
    succeed with empty output.
    """

    def __init__(
        self,
        host: str,
        alias: str,
        script: dict[str, tuple[str, int]] | None = None,
        on_output: Any = None,
        delay: float = 0,
    ):
        self.host = host
        self.alias = alias
        self.script = script or {}
        self.on_output = on_output
        self.delay = delay
        self.executed: list[str] = []
        self.closed = False

    def emit(self, line: str) -> None:
        if self.on_output:
            self.on_output(self.alias, line)

    async def execute(self, command: str) -> CommandResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.executed.append(command)
        stdout, exit_code = self.script.get(command, ("", 0))
        return CommandResult(command=command, stdout=stdout, stderr="", exit_code=exit_code)

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class FakeConnector:
    """Session factory keyed by host.

    Hosts listed in ``unreachable`` raise ConnectError on connect.
    """

    def __init__(
        self,
        scripts: dict[str, dict[str, tuple[str, int]]] | None = None,
        unreachable: set[str] | None = None,
        delay: float = 0,
    ):
        self.scripts = scripts or {}
        self.unreachable = unreachable or set()
        self.delay = delay
        self.sessions: dict[str, FakeSession] = {}

    async def __call__(
        self,
        host: str,
        user_name: str,
        private_key_path: Any,
        passphrase: str | None = None,
        *,
        options: Any = None,
        alias: str | None = None,
        on_output: Any = None,
    ) -> FakeSession:
        if host in self.unreachable:
            raise ConnectError(host, "Connection refused")
        session = FakeSession(
            host,
            alias or host,
            self.scripts.get(host),
            on_output=on_output,
            delay=self.delay,
        )
        self.sessions[host] = session
        return session


@pytest.fixture
def registry() -> NodeRegistry:
    return NodeRegistry(
        [
            Node(alias="h1", host="10.0.0.1"),
            Node(alias="h2", host="10.0.0.2"),
            Node(alias="h3", host="10.0.0.3"),
        ]
    )


@pytest.fixture
def make_orchestrator(tmp_path: Path):
    def factory(connector: FakeConnector, **kwargs: Any) -> Orchestrator:
        return Orchestrator(
            "cluster", tmp_path / "id_rsa", connector=connector, **kwargs
        )

    return factory

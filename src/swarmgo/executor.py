"""Concurrent execution of work across multiple nodes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Protocol

from .batch import BatchResult, CommandBatch, CommandStep
from .config import ClusterConfig, Node, SessionOptions
from .credentials import CredentialResolver
from .errors import CommandFailure, SwarmgoError
from .session import CommandResult, OutputCallback, RemoteSession

logger = logging.getLogger(__name__)


class NodeStatus(Enum):
    """Status of a node's execution."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class HostOutcome:
    """What happened on one host during a dispatch."""

    alias: str
    host: str
    succeeded: bool
    failed_step_index: int | None = None
    output: str = ""
    error: Exception | None = None
    value: Any = None

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error else ""


StatusCallback = Callable[[str, NodeStatus], None]  # (alias, status) -> None
Work = Callable[[RemoteSession], Awaitable[Any]]


class Connector(Protocol):
    def __call__(
        self,
        host: str,
        user_name: str,
        private_key_path: str | Path,
        passphrase: str | None = None,
        *,
        options: SessionOptions | None = None,
        alias: str | None = None,
        on_output: OutputCallback | None = None,
    ) -> Awaitable[RemoteSession]: ...


class Orchestrator:
    """Runs work on many nodes at once, one SSH session per node."""

    def __init__(
        self,
        user_name: str,
        private_key_path: str | Path,
        passphrase: str | None = None,
        options: SessionOptions | None = None,
        max_concurrency: int | None = None,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        log_dir: Path | None = None,
        connector: Connector | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            user_name: Remote login name
            private_key_path: Private key used for every node
            passphrase: Passphrase of the private key, if encrypted
            options: Port, host key and timeout settings
            max_concurrency: Upper bound on simultaneously active hosts,
                or None for no bound
            on_output: Called with every output line of every host
            on_status: Called on every host status change
            log_dir: Directory for per-host log files, or None to disable
            connector: Session factory, RemoteSession.connect by default

        Raises:
            ValueError: If max_concurrency is not positive
        """
        if max_concurrency is not None and max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be > 0, got {max_concurrency}")

        self.user_name = user_name
        self.private_key_path = Path(private_key_path)
        self.passphrase = passphrase
        self.options = options or SessionOptions()
        self.max_concurrency = max_concurrency
        self.on_output = on_output
        self.on_status = on_status
        self.log_dir = log_dir
        self.connector: Connector = connector or RemoteSession.connect

    @classmethod
    def from_config(
        cls,
        config: ClusterConfig,
        passphrase: str | None = None,
        resolver: CredentialResolver | None = None,
        **kwargs: Any,
    ) -> Orchestrator:
        resolver = resolver or CredentialResolver()
        _, private_key = resolver.resolve(config.identity)
        kwargs.setdefault("log_dir", config.log_dir)
        return cls(
            config.identity.cluster_user_name,
            private_key,
            passphrase=passphrase,
            options=config.options,
            max_concurrency=config.max_concurrency,
            **kwargs,
        )

    def _setup_logging(self, nodes: list[Node], source: Path | None) -> dict[str, Path]:
        """Create a timestamped log directory with one file per node."""
        if self.log_dir is None:
            return {}
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        run_dir = self.log_dir / timestamp
        run_dir.mkdir(parents=True, exist_ok=True)

        # Copy the plan that drove this run next to its logs
        if source and source.exists():
            shutil.copy(source, run_dir / source.name)

        return {node.alias: run_dir / f"{node.alias}.log" for node in nodes}

    def _output_emitter(self, log_files: dict[str, Path]) -> OutputCallback:
        """Build the output callback for one dispatch."""

        def emit_output(alias: str, line: str) -> None:
            log_file = log_files.get(alias)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(line + "\n")

            if self.on_output:
                self.on_output(alias, line)

        return emit_output

    def _emit_status(self, alias: str, status: NodeStatus) -> None:
        if self.on_status:
            self.on_status(alias, status)

    async def dispatch(
        self, nodes: Iterable[Node], work: Work, source: Path | None = None
    ) -> dict[str, HostOutcome]:
        """Run ``work`` on every node concurrently.

        Every node gets exactly one outcome, whatever happens on the others.

        Args:
            nodes: Target nodes, aliases must be unique
            work: Coroutine function called with each node's open session
            source: File copied into the run's log directory, if logging

        Returns:
            Mapping of alias to HostOutcome

        Raises:
            ValueError: If two nodes share an alias
        """
        nodes = list(nodes)
        aliases = [node.alias for node in nodes]
        if len(set(aliases)) != len(aliases):
            raise ValueError(f"Duplicate aliases in dispatch: {aliases}")

        emit_output = self._output_emitter(self._setup_logging(nodes, source))
        for node in nodes:
            self._emit_status(node.alias, NodeStatus.PENDING)

        if self.max_concurrency is None:
            limiter: contextlib.AbstractAsyncContextManager[Any] = (
                contextlib.nullcontext()
            )
        else:
            limiter = asyncio.Semaphore(self.max_concurrency)

        outcomes: dict[str, HostOutcome] = {}

        async def run_and_record(node: Node) -> None:
            async with limiter:
                outcomes[node.alias] = await self._run_node(node, work, emit_output)

        # Run all nodes in parallel
        await asyncio.gather(*(run_and_record(node) for node in nodes))
        return outcomes

    async def _run_node(
        self, node: Node, work: Work, emit_output: OutputCallback
    ) -> HostOutcome:
        """Connect, run work, close, and describe the result."""
        self._emit_status(node.alias, NodeStatus.CONNECTING)
        emit_output(node.alias, f"Connecting to {self.user_name}@{node.host}...")

        try:
            session = await self.connector(
                node.host,
                self.user_name,
                self.private_key_path,
                self.passphrase,
                options=self.options,
                alias=node.alias,
                on_output=emit_output,
            )
        except SwarmgoError as e:
            return self._failed(node, e, emit_output)
        except Exception as e:
            logger.exception("Unexpected error connecting to %s", node.alias)
            return self._failed(node, e, emit_output)

        try:
            async with session:
                self._emit_status(node.alias, NodeStatus.RUNNING)
                result = await work(session)
        except SwarmgoError as e:
            return self._failed(node, e, emit_output)
        except Exception as e:
            logger.exception("Unexpected error on %s", node.alias)
            return self._failed(node, e, emit_output)

        outcome = self._to_outcome(node, result)
        self._emit_status(
            node.alias, NodeStatus.SUCCESS if outcome.succeeded else NodeStatus.FAILED
        )
        return outcome

    def _failed(
        self, node: Node, error: Exception, emit_output: OutputCallback
    ) -> HostOutcome:
        emit_output(node.alias, f"ERROR: {error}")
        self._emit_status(node.alias, NodeStatus.FAILED)
        return HostOutcome(alias=node.alias, host=node.host, succeeded=False, error=error)

    def _to_outcome(self, node: Node, result: Any) -> HostOutcome:
        if isinstance(result, BatchResult):
            return HostOutcome(
                alias=node.alias,
                host=node.host,
                succeeded=result.succeeded,
                failed_step_index=result.failed_step_index,
                output=result.output,
                error=result.failure,
                value=result,
            )
        if isinstance(result, CommandResult):
            error = None
            if not result.ok:
                error = CommandFailure(0, result.command, result.stdout, result.exit_code)
            return HostOutcome(
                alias=node.alias,
                host=node.host,
                succeeded=result.ok,
                failed_step_index=None if result.ok else 0,
                output=result.stdout,
                error=error,
                value=result,
            )
        return HostOutcome(
            alias=node.alias,
            host=node.host,
            succeeded=True,
            output=result if isinstance(result, str) else "",
            value=result,
        )

    async def run_batch(
        self,
        nodes: Iterable[Node],
        steps: Iterable[CommandStep],
        source: Path | None = None,
    ) -> dict[str, HostOutcome]:
        """Run the same ordered steps on every node."""
        steps = list(steps)

        async def work(session: RemoteSession) -> BatchResult:
            return await CommandBatch(steps).run(session)

        return await self.dispatch(nodes, work, source=source)

    async def run_command(
        self, nodes: Iterable[Node], command: str
    ) -> dict[str, HostOutcome]:
        async def work(session: RemoteSession) -> CommandResult:
            return await session.execute(command)

        return await self.dispatch(nodes, work)

    async def run_on(self, node: Node, work: Work) -> HostOutcome:
        outcomes = await self.dispatch([node], work)
        return outcomes[node.alias]

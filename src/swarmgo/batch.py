"""Sequential command batches run on a single host."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from .errors import CommandFailure

if TYPE_CHECKING:
    from .session import RemoteSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandStep:
    """A titled shell command."""

    title: str
    command: str


class BatchStatus(Enum):
    """Lifecycle of a batch."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Outcome of running a batch on one host."""

    status: BatchStatus
    output: str = ""
    outputs: list[str] = field(default_factory=list)
    failure: CommandFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is BatchStatus.SUCCEEDED

    @property
    def failed_step_index(self) -> int | None:
        return self.failure.step_index if self.failure else None

    @property
    def failed_step_title(self) -> str | None:
        return self.failure.title if self.failure else None


class CommandBatch:
    """Ordered steps that stop at the first non-zero exit."""

    def __init__(self, steps: Iterable[CommandStep]):
        self.steps = list(steps)
        self.status = BatchStatus.PENDING

    async def run(self, session: RemoteSession) -> BatchResult:
        """Run every step in order on ``session``.

        Transport errors from the session propagate; a failing command is
        reported in the returned result.
        """
        if self.status is not BatchStatus.PENDING:
            raise RuntimeError(f"Batch already {self.status.value}")
        self.status = BatchStatus.RUNNING

        outputs: list[str] = []
        try:
            for index, step in enumerate(self.steps):
                logger.info("%s: %s", session.alias, step.title)
                session.emit(step.title)

                result = await session.execute(step.command)
                outputs.append(result.stdout)

                if result.exit_code != 0:
                    self.status = BatchStatus.FAILED
                    failure = CommandFailure(
                        index, step.title, result.stdout, result.exit_code
                    )
                    logger.warning("%s: %s", session.alias, failure)
                    return BatchResult(
                        status=self.status,
                        output=result.stdout,
                        outputs=outputs,
                        failure=failure,
                    )
        except BaseException:
            self.status = BatchStatus.FAILED
            raise

        self.status = BatchStatus.SUCCEEDED
        return BatchResult(
            status=self.status,
            output=outputs[-1] if outputs else "",
            outputs=outputs,
        )

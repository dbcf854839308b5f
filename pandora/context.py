"""Execution context shared by tools, skills, and the orchestration cores.

``ExecutionContext`` is the single runtime interface handed to every tool and
skill invocation.  It carries two facets:

* **Scope**: ``workspace_id`` and ``run_id`` identify what the invocation is
  working on, and ``cancellation`` lets the caller stop it cooperatively.
* **Messaging** (fire-and-forget): ``info``, ``debug``, ``warning`` and
  ``error`` for developer-facing diagnostics.

Different implementations may route messages to a log, a UI event stream, or
a test harness.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from pandora.exceptions import SkillCancelledError


class CancellationToken:
    """Cooperative cancellation signal with an optional deadline.

    Long-running tools and skills should call :meth:`raise_if_cancelled`
    between units of work, or await :meth:`wait` when they own a blocking
    resource that must be released on cancellation.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self._event = asyncio.Event()
        self._reason: str | None = None
        self.deadline: float | None = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self.deadline is not None and time.monotonic() >= self.deadline:
            self.cancel("deadline exceeded")
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SkillCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()


class ExecutionContext(ABC):
    """Runtime context provided to tools and skills."""

    def __init__(
            self,
            workspace_id: str | None = None,
            run_id: str | None = None,
            cancellation: CancellationToken | None = None,
    ):
        self.workspace_id = workspace_id
        self.run_id = run_id
        self.cancellation = cancellation or CancellationToken()

    # -- Messaging (fire-and-forget) ----------------------------------------

    @abstractmethod
    async def debug(self, content: str):
        """Emit a developer-focused debug message."""
        ...

    @abstractmethod
    async def info(self, content: str):
        """Emit an informational message."""
        ...

    @abstractmethod
    async def warning(self, content: str):
        """Emit a warning about a recoverable condition."""
        ...

    @abstractmethod
    async def error(self, content: str):
        """Emit an error message describing a failure."""
        ...


class LoggingExecutionContext(ExecutionContext):
    """``ExecutionContext`` backed by Python's :mod:`logging` module.

    Each message level maps directly to the corresponding ``logging`` level
    and is prefixed with the run id when one is set.
    """

    def __init__(
            self,
            workspace_id: str | None = None,
            run_id: str | None = None,
            cancellation: CancellationToken | None = None,
            logger: logging.Logger | None = None,
    ):
        super().__init__(workspace_id=workspace_id, run_id=run_id, cancellation=cancellation)
        self._logger = logger or logging.getLogger(__name__)

    def _format(self, content: str) -> str:
        return f"[{self.run_id}] {content}" if self.run_id else content

    async def debug(self, content: str):
        self._logger.debug(self._format(content))

    async def info(self, content: str):
        self._logger.info(self._format(content))

    async def warning(self, content: str):
        self._logger.warning(self._format(content))

    async def error(self, content: str):
        self._logger.error(self._format(content))

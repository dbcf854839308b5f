"""Run ledger: durable record of agent and question runs plus the skill-output cache.

The ledger is owned outside the orchestration core. The runner and the
reasoning loop only rely on the :class:`RunLedger` protocol; an in-memory
implementation is provided for tests and single-process use, and
:mod:`pandora.pipeline.sql_ledger` persists to a relational database.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class RunKind(str, Enum):
    AGENT = "agent"
    QUESTION = "question"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not RunStatus.RUNNING


@dataclass(frozen=True)
class RunUpdate:
    """Fields written when a run changes state. ``None`` leaves a field untouched."""
    status: RunStatus
    error: str | None = None
    skill_results: list[dict[str, Any]] | None = None
    synthesized_output: str | None = None
    token_usage: dict[str, int] | None = None
    evidence: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class RunRecord:
    run_id: str
    kind: RunKind
    subject_id: str
    workspace_id: str | None
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    skill_results: list[dict[str, Any]] = field(default_factory=list)
    synthesized_output: str | None = None
    token_usage: dict[str, int] = field(default_factory=dict)
    evidence: dict[str, Any] | None = None
    duration_ms: int | None = None

    def apply(self, update: RunUpdate, now: datetime) -> None:
        self.status = update.status
        if update.status.terminal:
            self.completed_at = now
        for name in ("error", "skill_results", "synthesized_output", "token_usage", "evidence", "duration_ms"):
            value = getattr(update, name)
            if value is not None:
                setattr(self, name, value)


@dataclass(frozen=True)
class CachedSkillOutput:
    skill_id: str
    output: str
    summary: str
    token_usage: int
    evidence: dict[str, Any] | None
    completed_at: datetime


@runtime_checkable
class RunLedger(Protocol):
    async def insert_run(
            self,
            run_id: str,
            kind: RunKind,
            subject_id: str,
            workspace_id: str | None,
            status: RunStatus = RunStatus.RUNNING,
    ) -> None:
        ...

    async def update_run(self, run_id: str, update: RunUpdate) -> None:
        ...

    async def find_recent_completed_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            within_minutes: float,
    ) -> CachedSkillOutput | None:
        ...

    async def record_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            output: str,
            summary: str,
            token_usage: int,
            evidence: dict[str, Any] | None,
            *,
            run_id: str | None = None,
    ) -> None:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRunLedger:
    """Process-local ledger. Stored values are deep-copied on the way in."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self.runs: dict[str, RunRecord] = {}
        self._skill_outputs: list[tuple[str, CachedSkillOutput]] = []

    async def insert_run(
            self,
            run_id: str,
            kind: RunKind,
            subject_id: str,
            workspace_id: str | None,
            status: RunStatus = RunStatus.RUNNING,
    ) -> None:
        self.runs[run_id] = RunRecord(
            run_id=run_id,
            kind=kind,
            subject_id=subject_id,
            workspace_id=workspace_id,
            status=status,
            started_at=self._clock(),
        )

    async def update_run(self, run_id: str, update: RunUpdate) -> None:
        record = self.runs.get(run_id)
        if record is None:
            logger.warning(f"Ignoring update for unknown run {run_id}")
            return
        record.apply(copy.deepcopy(update), self._clock())

    def get_run(self, run_id: str) -> RunRecord | None:
        return self.runs.get(run_id)

    async def find_recent_completed_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            within_minutes: float,
    ) -> CachedSkillOutput | None:
        cutoff = self._clock() - timedelta(minutes=within_minutes)
        for stored_workspace, cached in reversed(self._skill_outputs):
            if stored_workspace == workspace_id and cached.skill_id == skill_id:
                if cached.completed_at >= cutoff:
                    return cached
                return None
        return None

    async def record_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            output: str,
            summary: str,
            token_usage: int,
            evidence: dict[str, Any] | None,
            *,
            run_id: str | None = None,
    ) -> None:
        self._skill_outputs.append((workspace_id, CachedSkillOutput(
            skill_id=skill_id,
            output=output,
            summary=summary,
            token_usage=token_usage,
            evidence=copy.deepcopy(evidence),
            completed_at=self._clock(),
        )))

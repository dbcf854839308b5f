"""Skill interfaces and execution results.

A skill is a scheduled analysis over CRM data (pipeline hygiene, forecast
rollups, rep scorecards, ...). Skills are implemented outside the
orchestration core; the core only sees the :class:`Skill` contract and the
:class:`SkillExecution` it returns.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pandora.context import ExecutionContext


class SkillStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SkillStepError:
    step: str | None
    error: str


@dataclass
class SkillExecution:
    """Result of one skill execution."""
    status: SkillStatus
    output: Any = None
    token_usage: dict[str, int] = field(default_factory=dict)
    evidence: dict[str, Any] | None = None
    errors: list[SkillStepError] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        """Tokens consumed across every provider the skill called."""
        return sum(self.token_usage.values())

    @property
    def error_message(self) -> str:
        return '; '.join(e.error for e in self.errors) or 'Skill execution failed'


class Skill(ABC):
    @property
    @abstractmethod
    def id(self) -> str:
        """Stable skill identifier, e.g. ``pipeline-hygiene``"""
        pass

    @property
    def description(self) -> str | None:
        return None

    @abstractmethod
    async def execute(self, ctx: ExecutionContext, params: dict[str, Any]) -> SkillExecution:
        """Run the skill for ``ctx.workspace_id``.

        Implementations should check ``ctx.cancellation`` between units of
        work so a timed-out run stops promptly.
        """
        raise NotImplementedError


@runtime_checkable
class SkillInvoker(Protocol):
    async def invoke(self, skill_id: str, params: dict[str, Any], ctx: ExecutionContext) -> SkillExecution:
        ...

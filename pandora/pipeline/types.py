from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepStatus(str, Enum):
    COMPLETED = "completed"
    CACHED = "cached"
    FAILED = "failed"


class AgentRunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class SkillOutput:
    """Output of one agent step, either freshly executed or read from the cache."""
    skill_id: str
    output: str
    summary: str
    token_usage: int = 0
    duration_ms: int = 0
    cached: bool = False
    evidence: dict[str, Any] | None = None

    @property
    def content(self) -> str:
        return self.output or self.summary


@dataclass
class AgentSkillResult:
    skill_id: str
    status: StepStatus
    duration_ms: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "skill_id": self.skill_id,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RunTokenUsage:
    skills: int = 0
    synthesis: int = 0

    @property
    def total(self) -> int:
        return self.skills + self.synthesis

    def to_dict(self) -> dict[str, int]:
        return {"skills": self.skills, "synthesis": self.synthesis, "total": self.total}


@dataclass
class AgentRunResult:
    run_id: str
    agent_id: str
    workspace_id: str
    status: AgentRunStatus
    duration_ms: int
    skill_results: list[AgentSkillResult] = field(default_factory=list)
    synthesized_output: str | None = None
    token_usage: RunTokenUsage = field(default_factory=RunTokenUsage)
    evidence: dict[str, Any] = field(default_factory=dict)

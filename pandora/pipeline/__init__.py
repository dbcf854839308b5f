from .delivery import (
    ChannelDeliveryDispatcher,
    DeliveryDispatcher,
    DeliveryHandler,
    DeliveryPayload,
    LoggingDeliveryHandler,
)
from .ledger import CachedSkillOutput, InMemoryRunLedger, RunKind, RunLedger, RunRecord, RunStatus, RunUpdate
from .registry import AgentRegistry
from .runner import PipelineRunner
from .synthesis import build_synthesis_prompt
from .types import AgentRunResult, AgentRunStatus, AgentSkillResult, RunTokenUsage, SkillOutput, StepStatus

__all__ = [
    "AgentRegistry",
    "AgentRunResult",
    "AgentRunStatus",
    "AgentSkillResult",
    "CachedSkillOutput",
    "ChannelDeliveryDispatcher",
    "DeliveryDispatcher",
    "DeliveryHandler",
    "DeliveryPayload",
    "InMemoryRunLedger",
    "LoggingDeliveryHandler",
    "PipelineRunner",
    "RunKind",
    "RunLedger",
    "RunRecord",
    "RunStatus",
    "RunTokenUsage",
    "RunUpdate",
    "SkillOutput",
    "StepStatus",
    "build_synthesis_prompt",
]

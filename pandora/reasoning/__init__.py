from .loop import (
    LoopConfig,
    LoopEvidence,
    LoopResult,
    ReasoningLoop,
    ReasoningStep,
    SkillEvidenceUse,
    ToolCallRecord,
)
from .plan import (
    CallToolPlan,
    GoalProgress,
    Plan,
    PlanAction,
    PlanDecodeError,
    RunSkillPlan,
    SynthesizePlan,
    decode_plan,
    extract_json_object,
    fallback_plan,
)

__all__ = [
    "CallToolPlan",
    "GoalProgress",
    "LoopConfig",
    "LoopEvidence",
    "LoopResult",
    "Plan",
    "PlanAction",
    "PlanDecodeError",
    "ReasoningLoop",
    "ReasoningStep",
    "RunSkillPlan",
    "SkillEvidenceUse",
    "SynthesizePlan",
    "ToolCallRecord",
    "decode_plan",
    "extract_json_object",
    "fallback_plan",
]

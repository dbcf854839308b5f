"""Plan decoding for the reasoning loop.

The planning LLM answers with a JSON object, sometimes wrapped in prose or a
code fence. :func:`decode_plan` extracts the first top-level object and
validates it as one of the :data:`Plan` variants. It never raises: malformed
output comes back as a :class:`PlanDecodeError` and the loop substitutes
:func:`fallback_plan`.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing_extensions import Annotated, Literal


class PlanAction(str, Enum):
    CALL_TOOL = "call_tool"
    RUN_SKILL = "run_skill"
    SYNTHESIZE = "synthesize_and_deliver"


class GoalProgress(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    SATISFIED = "satisfied"


class PlanBase(BaseModel):
    action: Annotated[PlanAction, Field(description="Next action to take")]
    observation: Annotated[str, Field(description="What the model sees in the evidence", default="")]
    reasoning: Annotated[str, Field(description="What is needed next and why", default="")]
    evaluation: Annotated[str, Field(description="What was learned from the last step", default="")]
    goal_progress: Annotated[GoalProgress, Field(default=GoalProgress.NONE)]


class CallToolPlan(PlanBase):
    action: Literal[PlanAction.CALL_TOOL] = PlanAction.CALL_TOOL  # type: ignore
    tool_name: Annotated[str, Field(description="Tool to call", min_length=1)]
    tool_params: Annotated[dict[str, Any], Field(default_factory=dict)]


class RunSkillPlan(PlanBase):
    """Deprecated in the loop: answered with a redirect to ``get_skill_evidence``."""
    action: Literal[PlanAction.RUN_SKILL] = PlanAction.RUN_SKILL  # type: ignore
    skill_id: Annotated[str | None, Field(default=None)]
    skill_params: Annotated[dict[str, Any], Field(default_factory=dict)]


class SynthesizePlan(PlanBase):
    action: Literal[PlanAction.SYNTHESIZE] = PlanAction.SYNTHESIZE  # type: ignore


Plan = Annotated[
    CallToolPlan | RunSkillPlan | SynthesizePlan,
    Field(discriminator='action')
]

_plan_adapter: TypeAdapter[Plan] = TypeAdapter(Plan)


@dataclass(frozen=True)
class PlanDecodeError:
    reason: str
    raw: str


def extract_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` in ``text``.

    Braces inside JSON strings are ignored, so prose before or after the
    object and braces in string values are both tolerated.
    """
    start = text.find('{')
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == '\\':
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == '{':
                depth += 1
            elif ch == '}':
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find('{', start + 1)
    return None


def decode_plan(text: str) -> CallToolPlan | RunSkillPlan | SynthesizePlan | PlanDecodeError:
    candidate = extract_json_object(text)
    if candidate is None:
        return PlanDecodeError("No JSON object in plan response", text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        return PlanDecodeError(f"Invalid JSON: {e}", text)
    if isinstance(data, dict):
        # Models often emit null for fields they consider not applicable.
        data = {key: value for key, value in data.items() if value is not None}
    try:
        return _plan_adapter.validate_python(data)
    except ValidationError as e:
        return PlanDecodeError(f"Invalid plan: {e.error_count()} validation errors", text)


def fallback_plan() -> SynthesizePlan:
    return SynthesizePlan(
        observation="Could not parse plan",
        reasoning="Synthesizing with available data",
        goal_progress=GoalProgress.PARTIAL,
    )

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from pandora.config.llm import Capability


class DeliveryChannel(str, Enum):
    SLACK = "slack"
    EMAIL = "email"
    API = "api"


class DeliveryFormat(str, Enum):
    SLACK = "slack"
    TEXT = "text"
    MARKDOWN = "markdown"


class AgentStep(BaseModel):
    """One skill executed by an agent run."""
    skill_id: Annotated[str, Field(description="Identifier of the skill to execute")]
    output_key: Annotated[str, Field(
        description="Placeholder name under which the output is exposed to the synthesis template",
    )]
    required: Annotated[bool, Field(
        description="Abort the whole run when this step fails",
        default=True,
    )]
    cache_ttl_minutes: Annotated[int, Field(
        description="Reuse a completed run of the same skill younger than this. 0 disables the cache.",
        default=30,
        ge=0,
    )]
    timeout_seconds: Annotated[float, Field(
        description="Deadline for a single execution of the skill",
        default=120,
        gt=0,
    )]
    params: Annotated[dict[str, Any], Field(
        description="Parameters passed to the skill",
        default_factory=dict,
    )]


class SynthesisSpec(BaseModel):
    enabled: Annotated[bool, Field(default=True)]
    system_prompt: Annotated[str, Field(
        description="System prompt of the synthesis call",
        default="",
    )]
    user_prompt_template: Annotated[str, Field(
        description="User prompt with {{output_key}} and {{skill_outputs}} placeholders",
        default="{{skill_outputs}}",
    )]
    capability: Annotated[Capability, Field(
        description="Capability routed by the LLM gateway",
        default=Capability.REASON,
    )]
    provider: Annotated[str | None, Field(
        description="Name of a configured chat LLM that overrides capability routing",
        default=None,
    )]
    max_tokens: Annotated[int, Field(default=4000, gt=0)]
    temperature: Annotated[float, Field(default=0.7, ge=0.0, le=2.0)]


class DeliverySpec(BaseModel):
    channel: Annotated[DeliveryChannel, Field(default=DeliveryChannel.API)]
    format: Annotated[DeliveryFormat, Field(default=DeliveryFormat.TEXT)]
    target: Annotated[str | None, Field(
        description="Channel-specific destination, e.g. a webhook URL or an email address",
        default=None,
    )]


class AgentDefinition(BaseModel):
    """A named, ordered pipeline of skills plus synthesis and delivery settings."""
    id: Annotated[str, Field(description="Unique agent identifier")]
    name: Annotated[str, Field(description="Human-readable agent name")]
    description: Annotated[str, Field(default="")]
    enabled: Annotated[bool, Field(default=True)]
    steps: Annotated[list[AgentStep], Field(min_length=1)]
    synthesis: Annotated[SynthesisSpec, Field(default_factory=SynthesisSpec)]
    delivery: Annotated[DeliverySpec, Field(default_factory=DeliverySpec)]

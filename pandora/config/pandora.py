from enum import Enum

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from pandora.config.agent import AgentDefinition
from pandora.config.llm import ChatConfig, RoutingConfig


class ToolKeyStrategy(str, Enum):
    """How tool calls are keyed for deduplication and evidence storage."""
    PREFIX = "prefix"
    DIGEST = "digest"


class LoopSettings(BaseModel):
    max_iterations: Annotated[int, Field(
        description="Default number of planning iterations for a question",
        default=5,
        ge=1,
    )]
    tool_key_strategy: Annotated[ToolKeyStrategy, Field(default=ToolKeyStrategy.PREFIX)]


class LedgerConfig(BaseModel):
    url: Annotated[str | None, Field(
        description="SQLAlchemy async database URL. An in-memory ledger is used when omitted.",
        default=None,
    )]
    echo: Annotated[bool, Field(description="Log emitted SQL", default=False)]


class TracingConfig(BaseModel):
    output_dir: Annotated[str | None, Field(
        description="Directory for YAML trace exports. Tracing is disabled when omitted.",
        default=None,
    )]


class PandoraConfig(BaseModel):
    chat_llms: Annotated[dict[str, ChatConfig], Field(default_factory=dict)]
    routing: Annotated[RoutingConfig, Field(default_factory=RoutingConfig)]
    loop: Annotated[LoopSettings, Field(default_factory=LoopSettings)]
    agents: Annotated[list[AgentDefinition], Field(default_factory=list)]
    ledger: Annotated[LedgerConfig, Field(default_factory=LedgerConfig)]
    tracing: Annotated[TracingConfig, Field(default_factory=TracingConfig)]
    template_lang: Annotated[str | None, Field(default=None)]

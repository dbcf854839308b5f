from .agent import AgentDefinition, AgentStep, DeliveryChannel, DeliveryFormat, DeliverySpec, SynthesisSpec
from .llm import (
    AzureOpenAIChatConfig,
    Capability,
    ChatConfig,
    ChatLLMType,
    DeepSeekChatConfig,
    OpenAIChatConfig,
    RoutingConfig,
    validate_chat_config,
)
from .loader import load_config
from .pandora import LedgerConfig, LoopSettings, PandoraConfig, ToolKeyStrategy, TracingConfig

__all__ = [
    "AgentDefinition",
    "AgentStep",
    "AzureOpenAIChatConfig",
    "Capability",
    "ChatConfig",
    "ChatLLMType",
    "DeepSeekChatConfig",
    "DeliveryChannel",
    "DeliveryFormat",
    "DeliverySpec",
    "LedgerConfig",
    "LoopSettings",
    "OpenAIChatConfig",
    "PandoraConfig",
    "RoutingConfig",
    "SynthesisSpec",
    "ToolKeyStrategy",
    "TracingConfig",
    "load_config",
    "validate_chat_config",
]

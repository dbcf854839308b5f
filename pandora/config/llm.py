import os
from enum import Enum

from pydantic import BaseModel, Field, TypeAdapter
from typing_extensions import Annotated, Literal


class Capability(str, Enum):
    """Capability classes a caller can ask the LLM gateway for."""
    REASON = "reason"
    EXTRACT = "extract"
    CLASSIFY = "classify"
    GENERATE = "generate"


class ChatLLMType(str, Enum):
    AzureOpenAI = "azure_openai"
    OpenAI = "openai"
    DeepSeek = "deepseek"


class OpenAIChatConfig(BaseModel):
    type: Literal[ChatLLMType.OpenAI]
    endpoint: Annotated[str | None, Field(
        description="The OpenAI endpoint URL. Uses the SDK default when omitted.",
        default=None,
    )]
    api_key: Annotated[str | None, Field(
        description="The API key for authentication",
        default_factory=lambda: os.environ.get("OPENAI_API_KEY"),
    )]
    timeout: Annotated[float, Field(
        description="Request timeout in seconds",
        default=180.0,
    )]
    model: Annotated[str, Field(
        description="The model identifier to use for chat completions",
    )]
    max_retries: Annotated[int, Field(
        description="Transport-level retries performed by the SDK client",
        default=2,
    )]


class AzureOpenAIChatConfig(OpenAIChatConfig):
    type: Literal[ChatLLMType.AzureOpenAI]  # type: ignore[assignment]
    endpoint: Annotated[str, Field(
        description="The Azure OpenAI endpoint URL",
    )]
    deployment: Annotated[str, Field(
        description="The deployment name for the chat model",
    )]
    api_version: Annotated[str, Field(
        description="The Azure OpenAI API version to use",
    )]


class DeepSeekChatConfig(OpenAIChatConfig):
    type: Literal[ChatLLMType.DeepSeek]  # type: ignore[assignment]
    api_key: Annotated[str | None, Field(
        description="The API key for authentication",
        default_factory=lambda: os.environ.get("DEEPSEEK_API_KEY"),
    )]
    endpoint: Annotated[str, Field(
        description="The DeepSeek endpoint URL",
        default="https://api.deepseek.com",
    )]


ChatConfig = Annotated[AzureOpenAIChatConfig | OpenAIChatConfig | DeepSeekChatConfig, Field(
    description="Configuration for the chat completion model",
    discriminator="type",
)]


def validate_chat_config(data: dict) -> ChatConfig:
    """Validate and return a ChatConfig instance from raw data."""
    return TypeAdapter(ChatConfig).validate_python(data)


class RoutingConfig(BaseModel):
    """Maps each capability to the name of a configured chat LLM."""
    routes: Annotated[dict[Capability, str], Field(
        description="Chat LLM name per capability",
        default_factory=dict,
    )]
    fallback: Annotated[str | None, Field(
        description="Chat LLM used for capabilities without an explicit route",
        default=None,
    )]

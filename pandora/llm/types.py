from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncAzureOpenAI, AsyncOpenAI

from pandora.config.llm import Capability

# Type alias for OpenAI clients
AsyncOpenAIClient = AsyncAzureOpenAI | AsyncOpenAI

__all__ = [
    "AsyncOpenAIClient",
    "Capability",
    "ChatLLM",
    "ChatMessage",
    "LLMResponse",
    "TokenUsage",
    "TrackingContext",
]


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True)
class LLMResponse:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class TrackingContext:
    """Attribution attached to an LLM call for usage accounting."""
    workspace_id: str | None = None
    run_id: str | None = None
    phase: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class ChatLLM(ABC):
    """Abstract base class for chat language models."""

    @abstractmethod
    async def chat(self, messages: list[ChatMessage], **params) -> LLMResponse:
        """Send a chat completion request.

        Args:
            messages: Ordered conversation, system prompt first when present
            **params: Additional parameters for the chat completion API

        Returns:
            Generated response text with token usage
        """
        pass

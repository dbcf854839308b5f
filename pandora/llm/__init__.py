from .factory import ChatLLMFactory
from .gateway import LLMGateway, RoutedLLMGateway
from .langchain import LangChainChatLLM
from .oai import OpenAIChatLLM
from .types import Capability, ChatLLM, ChatMessage, LLMResponse, TokenUsage, TrackingContext

__all__ = [
    "Capability",
    "ChatLLM",
    "ChatLLMFactory",
    "ChatMessage",
    "LLMGateway",
    "LLMResponse",
    "LangChainChatLLM",
    "OpenAIChatLLM",
    "RoutedLLMGateway",
    "TokenUsage",
    "TrackingContext",
]

import json

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from pandora.llm.types import ChatLLM, ChatMessage, LLMResponse, TokenUsage


def to_langchain_messages(messages: list[ChatMessage]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


class LangChainChatLLM(ChatLLM):
    """Adapts any langchain-core chat model to :class:`ChatLLM`."""

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def chat(self, messages: list[ChatMessage], **params) -> LLMResponse:
        result: AIMessage = await self.chat_model.ainvoke(to_langchain_messages(messages), **params)
        content = result.content if isinstance(result.content, str) else json.dumps(result.content)
        usage_metadata = result.usage_metadata or {}
        return LLMResponse(
            content=content,
            usage=TokenUsage(
                input=usage_metadata.get("input_tokens", 0),
                output=usage_metadata.get("output_tokens", 0),
            ),
        )

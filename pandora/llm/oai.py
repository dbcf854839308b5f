from openai import AsyncAzureOpenAI, AsyncOpenAI

from pandora.config.llm import AzureOpenAIChatConfig, DeepSeekChatConfig, OpenAIChatConfig
from pandora.exceptions import LLMError
from pandora.llm.types import AsyncOpenAIClient, ChatLLM, ChatMessage, LLMResponse, TokenUsage


class OpenAIChatLLM(ChatLLM):
    def __init__(
            self,
            client: AsyncOpenAIClient,
            model: str,
            *,
            chat_params: dict | None = None,
    ):
        self.client = client
        self.model = model
        self.chat_params: dict = chat_params or {}

    @classmethod
    def from_config(cls, config: AzureOpenAIChatConfig | OpenAIChatConfig | DeepSeekChatConfig) -> 'OpenAIChatLLM':
        if isinstance(config, AzureOpenAIChatConfig):
            client = AsyncAzureOpenAI(
                azure_endpoint=config.endpoint,
                azure_deployment=config.deployment,
                api_version=config.api_version,
                api_key=config.api_key,
                timeout=config.timeout,
                max_retries=config.max_retries,
            )
        else:
            client = AsyncOpenAI(
                base_url=config.endpoint,
                api_key=config.api_key,
                timeout=config.timeout,
                max_retries=config.max_retries,
            )
        return cls(client, config.model)

    async def chat(self, messages: list[ChatMessage], **params) -> LLMResponse:
        """
        Send a chat completion request to an OpenAI-compatible endpoint

        Args:
            messages: Conversation messages
            **params: Additional parameters for the chat completion API

        Returns:
            The first choice's content and the reported token usage
        """
        resp = await self.client.chat.completions.create(
            messages=[m.to_dict() for m in messages],
            model=self.model,
            **self.chat_params,
            **params,
        )
        if not resp.choices:
            raise LLMError(f"Empty completion from model {self.model}")
        usage = TokenUsage(
            input=resp.usage.prompt_tokens if resp.usage else 0,
            output=resp.usage.completion_tokens if resp.usage else 0,
        )
        return LLMResponse(content=resp.choices[0].message.content or "", usage=usage)

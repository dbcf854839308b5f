from pandora.config.llm import AzureOpenAIChatConfig, ChatConfig, DeepSeekChatConfig, OpenAIChatConfig
from pandora.exceptions import LLMError
from .oai import OpenAIChatLLM
from .types import ChatLLM


class ChatLLMFactory:
    @classmethod
    def build(cls, config: ChatConfig) -> ChatLLM:
        if isinstance(config, AzureOpenAIChatConfig | OpenAIChatConfig | DeepSeekChatConfig):
            return OpenAIChatLLM.from_config(config)
        raise LLMError(f'Unexpected Config: {config}')

    @classmethod
    def build_all(cls, configs: dict[str, ChatConfig]) -> dict[str, ChatLLM]:
        return {name: cls.build(config) for name, config in configs.items()}

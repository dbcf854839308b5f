"""Tests for capability routing and the chat LLM adapters."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from pandora.config.llm import Capability, RoutingConfig
from pandora.exceptions import LLMError, NoRouteConfiguredError
from pandora.llm.gateway import LLMGateway, RoutedLLMGateway
from pandora.llm.langchain import LangChainChatLLM, to_langchain_messages
from pandora.llm.oai import OpenAIChatLLM
from pandora.llm.types import ChatLLM, ChatMessage, LLMResponse, TokenUsage, TrackingContext
from pandora.tracer import SpanKind, Tracer


class EchoLLM(ChatLLM):
    def __init__(self, name: str):
        self.name = name
        self.requests = []

    async def chat(self, messages, **params):
        self.requests.append((messages, params))
        return LLMResponse(content=f"{self.name} says hi", usage=TokenUsage(input=7, output=3))


@pytest.fixture
def providers():
    return {"claude": EchoLLM("claude"), "deepseek": EchoLLM("deepseek")}


class TestRoutedLLMGateway:
    def test_satisfies_protocol(self, providers):
        assert isinstance(RoutedLLMGateway(providers), LLMGateway)

    def test_resolve_by_capability(self, providers):
        gateway = RoutedLLMGateway(providers, routes={Capability.EXTRACT: "deepseek"}, fallback="claude")
        assert gateway.resolve(Capability.EXTRACT)[0] == "deepseek"
        assert gateway.resolve(Capability.REASON)[0] == "claude"

    def test_explicit_provider_wins(self, providers):
        gateway = RoutedLLMGateway(providers, routes={Capability.REASON: "claude"})
        name, llm = gateway.resolve(Capability.REASON, provider="deepseek")
        assert name == "deepseek"
        assert llm is providers["deepseek"]

    def test_unknown_provider(self, providers):
        gateway = RoutedLLMGateway(providers, fallback="claude")
        with pytest.raises(NoRouteConfiguredError, match="'gpt'"):
            gateway.resolve(Capability.REASON, provider="gpt")

    def test_no_route(self, providers):
        gateway = RoutedLLMGateway(providers)
        with pytest.raises(NoRouteConfiguredError, match="No routing configured for 'classify'"):
            gateway.resolve(Capability.CLASSIFY)

    def test_route_to_missing_provider(self, providers):
        gateway = RoutedLLMGateway(providers, routes={Capability.REASON: "gpt"})
        with pytest.raises(NoRouteConfiguredError):
            gateway.resolve(Capability.REASON)

    def test_from_config(self, providers):
        routing = RoutingConfig.model_validate({"routes": {"reason": "claude"}, "fallback": "deepseek"})
        gateway = RoutedLLMGateway.from_config(providers, routing)
        assert gateway.routes == {Capability.REASON: "claude"}
        assert gateway.fallback == "deepseek"

    @pytest.mark.asyncio
    async def test_generate_prepends_system_prompt(self, providers):
        gateway = RoutedLLMGateway(providers, fallback="claude")

        response = await gateway.generate(
            Capability.REASON,
            "You are a revenue analyst.",
            [ChatMessage(role="user", content="How is Q3?")],
            max_tokens=1000,
            temperature=0.0,
        )

        assert response.content == "claude says hi"
        assert response.usage.total == 10
        [(messages, params)] = providers["claude"].requests
        assert messages == [
            ChatMessage(role="system", content="You are a revenue analyst."),
            ChatMessage(role="user", content="How is Q3?"),
        ]
        assert params == {"max_tokens": 1000, "temperature": 0.0}

    @pytest.mark.asyncio
    async def test_generate_records_llm_span(self, providers):
        gateway = RoutedLLMGateway(providers, routes={Capability.REASON: "deepseek"})
        tracer = Tracer()
        token = tracer.activate()
        root, root_token = tracer.start_span(SpanKind.RUN, "reasoning_loop")
        try:
            await gateway.generate(
                Capability.REASON,
                "system",
                [ChatMessage(role="user", content="q")],
                max_tokens=2000,
                temperature=0.3,
                tracking=TrackingContext(workspace_id="ws-1", run_id="run-1", phase="synthesize"),
            )
        finally:
            tracer.end_span(root, root_token)
            tracer.deactivate(token)

        [span] = root.children
        assert span.kind == SpanKind.LLM_CALL
        assert span.name == "synthesize"
        assert span.attributes["capability"] == "reason"
        assert span.attributes["route"] == "deepseek"
        assert span.attributes["run_id"] == "run-1"
        assert span.attributes["request"][0] == {"role": "system", "content": "system"}
        assert span.attributes["response"] == "deepseek says hi"
        assert span.attributes["input_tokens"] == 7
        assert span.attributes["output_tokens"] == 3

    @pytest.mark.asyncio
    async def test_generate_propagates_llm_errors(self):
        failing = MagicMock(spec=ChatLLM)
        failing.chat = AsyncMock(side_effect=LLMError("rate limited"))
        gateway = RoutedLLMGateway({"claude": failing}, fallback="claude")
        with pytest.raises(LLMError, match="rate limited"):
            await gateway.generate(Capability.REASON, "s", [], max_tokens=10, temperature=0.0)


class TestOpenAIChatLLM:
    def _client(self, choices, usage):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=choices, usage=usage))
        return client

    @pytest.mark.asyncio
    async def test_chat(self):
        client = self._client(
            [SimpleNamespace(message=SimpleNamespace(content="Pipeline is healthy"))],
            SimpleNamespace(prompt_tokens=120, completion_tokens=30),
        )
        llm = OpenAIChatLLM(client, "gpt-4o", chat_params={"top_p": 0.9})

        response = await llm.chat([ChatMessage(role="user", content="hi")], max_tokens=100)

        assert response == LLMResponse(content="Pipeline is healthy", usage=TokenUsage(input=120, output=30))
        client.chat.completions.create.assert_awaited_once_with(
            messages=[{"role": "user", "content": "hi"}],
            model="gpt-4o",
            top_p=0.9,
            max_tokens=100,
        )

    @pytest.mark.asyncio
    async def test_missing_usage(self):
        client = self._client([SimpleNamespace(message=SimpleNamespace(content=None))], None)
        response = await OpenAIChatLLM(client, "gpt-4o").chat([])
        assert response.content == ""
        assert response.usage.total == 0

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        client = self._client([], None)
        with pytest.raises(LLMError, match="Empty completion"):
            await OpenAIChatLLM(client, "gpt-4o").chat([])


class TestLangChainChatLLM:
    def test_message_conversion(self):
        converted = to_langchain_messages([
            ChatMessage(role="system", content="s"),
            ChatMessage(role="user", content="u"),
            ChatMessage(role="assistant", content="a"),
        ])
        assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage]
        assert [m.content for m in converted] == ["s", "u", "a"]

    @pytest.mark.asyncio
    async def test_chat_reads_usage_metadata(self):
        model = MagicMock()
        model.ainvoke = AsyncMock(return_value=AIMessage(
            content="Forecast looks soft",
            usage_metadata={"input_tokens": 40, "output_tokens": 12, "total_tokens": 52},
        ))
        llm = LangChainChatLLM(model)

        response = await llm.chat([ChatMessage(role="user", content="q")], temperature=0.3)

        assert response.content == "Forecast looks soft"
        assert response.usage == TokenUsage(input=40, output=12)
        args, kwargs = model.ainvoke.call_args
        assert isinstance(args[0][0], HumanMessage)
        assert kwargs == {"temperature": 0.3}

    @pytest.mark.asyncio
    async def test_chat_without_usage(self):
        model = MagicMock()
        model.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
        response = await LangChainChatLLM(model).chat([])
        assert response.usage.total == 0

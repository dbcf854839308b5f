"""Capability-routed access to chat LLMs.

Callers ask for a *capability* (reason, extract, classify, generate) rather
than a concrete model. The gateway resolves the capability to a configured
chat LLM, runs the request inside an LLM span, and returns the text with
its token usage.
"""

import logging
import time
from typing import Protocol, runtime_checkable

from pandora.config.llm import Capability, RoutingConfig
from pandora.exceptions import NoRouteConfiguredError
from pandora.tracer import SpanKind, optional_span
from .types import ChatLLM, ChatMessage, LLMResponse, TrackingContext

logger = logging.getLogger(__name__)


@runtime_checkable
class LLMGateway(Protocol):
    async def generate(
            self,
            capability: Capability,
            system_prompt: str,
            messages: list[ChatMessage],
            *,
            max_tokens: int,
            temperature: float,
            tracking: TrackingContext | None = None,
            provider: str | None = None,
    ) -> LLMResponse:
        ...


class RoutedLLMGateway:
    def __init__(
            self,
            providers: dict[str, ChatLLM],
            routes: dict[Capability, str] | None = None,
            fallback: str | None = None,
    ):
        self.providers = providers
        self.routes = routes or {}
        self.fallback = fallback

    @classmethod
    def from_config(cls, providers: dict[str, ChatLLM], routing: RoutingConfig) -> 'RoutedLLMGateway':
        return cls(providers, routes=dict(routing.routes), fallback=routing.fallback)

    def resolve(self, capability: Capability, provider: str | None = None) -> tuple[str, ChatLLM]:
        """Return the provider name and chat LLM serving a request.

        An explicit provider wins over capability routing. A capability with
        no route falls back to ``fallback``.
        """
        if provider is not None:
            if provider not in self.providers:
                raise NoRouteConfiguredError(provider)
            return provider, self.providers[provider]
        name = self.routes.get(capability, self.fallback)
        if name is None or name not in self.providers:
            raise NoRouteConfiguredError(capability.value)
        return name, self.providers[name]

    async def generate(
            self,
            capability: Capability,
            system_prompt: str,
            messages: list[ChatMessage],
            *,
            max_tokens: int,
            temperature: float,
            tracking: TrackingContext | None = None,
            provider: str | None = None,
    ) -> LLMResponse:
        route, chat_llm = self.resolve(capability, provider)
        request = [ChatMessage(role="system", content=system_prompt), *messages]
        attributes = {
            "capability": capability.value,
            "route": route,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "request": [m.to_dict() for m in request],
        }
        if tracking is not None:
            attributes["phase"] = tracking.phase
            attributes["run_id"] = tracking.run_id
        name = tracking.phase if tracking and tracking.phase else capability.value

        logger.debug(f"LLM request ({capability.value} via {route}), {len(request)} messages")
        async with optional_span(SpanKind.LLM_CALL, name, attributes) as span:
            start_time = time.monotonic()
            response = await chat_llm.chat(request, max_tokens=max_tokens, temperature=temperature)
            duration_ms = int((time.monotonic() - start_time) * 1000)
            if span is not None:
                span.set_attribute("response", response.content)
                span.set_attribute("input_tokens", response.usage.input)
                span.set_attribute("output_tokens", response.usage.output)
        logger.info(
            f"LLM response ({capability.value} via {route}) in {duration_ms}ms, "
            f"tokens in={response.usage.input} out={response.usage.output}"
        )
        return response

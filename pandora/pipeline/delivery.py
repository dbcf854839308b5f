"""Best-effort delivery of agent output to a channel.

Delivery never fails a run: the runner logs and swallows anything a
dispatcher raises, and :class:`ChannelDeliveryDispatcher` itself skips
payloads without content and channels without a handler.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pandora.config.agent import DeliveryChannel, DeliverySpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryPayload:
    agent_id: str
    agent_name: str
    run_id: str
    workspace_id: str
    content: str | None
    evidence: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DeliveryDispatcher(Protocol):
    async def deliver(self, spec: DeliverySpec, payload: DeliveryPayload) -> None:
        ...


@runtime_checkable
class DeliveryHandler(Protocol):
    async def send(self, spec: DeliverySpec, payload: DeliveryPayload) -> None:
        ...


class LoggingDeliveryHandler:
    """Writes deliveries to the log. Used where no real channel is wired up."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def send(self, spec: DeliverySpec, payload: DeliveryPayload) -> None:
        logger.log(
            self.level,
            f"[{payload.run_id}] {payload.agent_name} -> {spec.channel.value}"
            f"{f' ({spec.target})' if spec.target else ''} as {spec.format.value}, "
            f"{len(payload.content or '')} chars",
        )
        logger.debug(payload.content)


class ChannelDeliveryDispatcher:
    def __init__(
            self,
            handlers: dict[DeliveryChannel, DeliveryHandler] | None = None,
            default_handler: DeliveryHandler | None = None,
    ):
        self.handlers: dict[DeliveryChannel, DeliveryHandler] = dict(handlers or {})
        self.default_handler = default_handler

    def register(self, channel: DeliveryChannel, handler: DeliveryHandler) -> None:
        self.handlers[channel] = handler

    async def deliver(self, spec: DeliverySpec, payload: DeliveryPayload) -> None:
        if payload.content is None:
            logger.info(f"[{payload.run_id}] Nothing to deliver for agent {payload.agent_id}")
            return
        handler = self.handlers.get(spec.channel, self.default_handler)
        if handler is None:
            logger.warning(f"[{payload.run_id}] No delivery handler for channel {spec.channel.value}, skipping")
            return
        await handler.send(spec, payload)

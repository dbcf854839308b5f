import logging
from contextlib import asynccontextmanager
from contextvars import Token
from typing import Any, AsyncIterator, Optional

from pandora.tracer.context import (
    _active_tracer,
    _current_span,
    get_active_tracer,
    get_current_span,
    set_active_tracer,
    set_current_span,
)
from pandora.tracer.exporter import YAMLExporter
from pandora.tracer.span import Span, SpanKind

logger = logging.getLogger(__name__)


class Tracer:
    """Hierarchical span-based tracer.

    One tracer may be shared by concurrent runs: the current span lives in a
    ``ContextVar``, so each asyncio task chain builds its own tree.

    Parameters
    ----------
    exporter:
        An exporter used to persist a run's trace tree when the run span
        ends.  May be ``None`` (trace data is kept only in memory).
    """

    def __init__(
        self,
        exporter: YAMLExporter | None = None,
    ) -> None:
        self._exporter = exporter
        self._last_run_span: Optional[Span] = None

    # ------------------------------------------------------------------
    # Activation / deactivation
    # ------------------------------------------------------------------

    def activate(self) -> Token:
        """Push this tracer into the ``ContextVar`` so decorators find it."""
        return set_active_tracer(self)

    def deactivate(self, token: Token) -> None:
        """Restore the previous tracer (or ``None``) via *token*."""
        _active_tracer.reset(token)

    # ------------------------------------------------------------------
    # Span lifecycle
    # ------------------------------------------------------------------

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> tuple[Span, Token]:
        """Create a new span and make it the *current* span.

        The new span is automatically added as a child of the currently
        active span (if any).

        Returns ``(span, context_token)`` — the token must be passed to
        :pymethod:`end_span` to restore the previous span.
        """
        span = Span(kind=kind, name=name)
        if attributes:
            span.attributes.update(attributes)

        parent = get_current_span()
        if parent is not None:
            parent.add_child(span)
        elif kind == SpanKind.RUN:
            self._last_run_span = span

        token = set_current_span(span)
        return span, token

    def end_span(
        self,
        span: Span,
        token: Token,
        error: Exception | None = None,
    ) -> None:
        """Finish *span* and restore the previous span via *token*."""
        span.finish(error=error)
        _current_span.reset(token)

    # ------------------------------------------------------------------
    # Convenience: async context manager for inline spans
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def span(
        self,
        kind: SpanKind,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AsyncIterator[Span]:
        """Context-manager that wraps a block in a span of *kind*.

        Usage::

            async with tracer.span(SpanKind.ITERATION, "iteration_1"):
                plan = await ...
        """
        span, token = self.start_span(kind, name, attributes)
        try:
            yield span
        except Exception as exc:
            span.status = "error"
            span.error = str(exc)
            raise
        finally:
            self.end_span(span, token)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, span: Span | None = None) -> None:
        """Persist a root run span (the most recent one by default)."""
        if self._exporter is None:
            logger.debug("No exporter configured — skipping trace export.")
            return
        root = span or self._last_run_span
        if root is None:
            logger.warning("No run span recorded — nothing to export.")
            return
        if root.parent is not None:
            return
        self._exporter.export(root)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def last_run_span(self) -> Optional[Span]:
        """The most recently started root run span."""
        return self._last_run_span


@asynccontextmanager
async def optional_span(
    kind: SpanKind,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> AsyncIterator[Span | None]:
    """Open a span on the active tracer, or yield ``None`` when untraced."""
    tracer = get_active_tracer()
    if tracer is None:
        yield None
        return
    async with tracer.span(kind, name, attributes) as span:
        yield span


__all__ = [
    "Tracer",
    "optional_span",
    "get_active_tracer",
    "set_active_tracer",
    "get_current_span",
]

"""Context-variable state of the tracer.

The active tracer and the current span live in ``ContextVar`` objects so that
concurrent runs on one event loop each build their own span tree.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from pandora.tracer.span import Span
    from pandora.tracer.tracer import Tracer

_current_span: ContextVar[Any] = ContextVar("current_span", default=None)
_active_tracer: ContextVar[Any] = ContextVar("active_tracer", default=None)


def get_current_span() -> Optional[Span]:
    return _current_span.get()


def set_current_span(span: Optional[Span]) -> Token:
    return _current_span.set(span)


def get_active_tracer() -> Optional[Tracer]:
    return _active_tracer.get()


def set_active_tracer(tracer: Optional[Tracer]) -> Token:
    return _active_tracer.set(tracer)


def bind_current_run(run_id: str, workspace_id: str | None = None, **attributes: Any) -> Optional[Span]:
    """Attach a run's identity to the span that is currently open.

    Called by a run as soon as it has generated its id, while its ``RUN``
    span is the current one.  Spans opened afterwards inherit the identity.
    Extra keyword arguments are set as attributes.  Returns the span, or
    ``None`` when nothing is being traced.
    """
    span = get_current_span()
    if span is None:
        return None
    span.bind_run(run_id, workspace_id)
    for key, value in attributes.items():
        span.set_attribute(key, value)
    return span

"""Tracer decorators for the orchestration span levels.

Each decorator creates a span of the appropriate :class:`SpanKind`, pushes
it as the *current* span for the duration of the decorated ``async`` call,
and pops it on exit.  If no tracer has been :pymethod:`activate`-d the
decorated function runs untraced (zero overhead).

Usage::

    from pandora.tracer import trace_run, trace_step, trace_tool

    @trace_run("reasoning_loop")
    async def run(self, question, config):
        ...

    @trace_step()                          # name auto-extracted from skill_id
    async def _run_step(self, skill_id, ...):
        ...

    @trace_tool()                          # name auto-extracted from tool_name
    async def _invoke_tool(self, tool_name, ...):
        ...
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar

from pandora.tracer.context import get_active_tracer
from pandora.tracer.span import SpanKind

F = TypeVar("F", bound=Callable[..., Any])


# ---------------------------------------------------------------------------
# Internal helper
# ---------------------------------------------------------------------------

def _make_decorator(
    kind: SpanKind,
    name: str | None = None,
    *,
    auto_export: bool = False,
    name_kwarg: str | None = None,
) -> Callable[[F], F]:
    """Build a decorator that wraps an *async* function in a span.

    Parameters
    ----------
    kind:
        The semantic span level.
    name:
        Fixed label for the span.  If ``None`` the function name is used,
        or a keyword argument can be inspected (see *name_kwarg*).
    auto_export:
        If ``True`` the tracer's ``export()`` method is called with the span
        after it finishes (used by ``@trace_run``).
    name_kwarg:
        If set, the span name is read from the argument with this name at
        call time.
    """

    def decorator(fn: F) -> F:
        params = list(inspect.signature(fn).parameters.keys())

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_active_tracer()
            if tracer is None:
                return await fn(*args, **kwargs)

            span_name = name or fn.__name__
            if name_kwarg is not None:
                value = kwargs.get(name_kwarg)
                if value is None and name_kwarg in params:
                    idx = params.index(name_kwarg)
                    if idx < len(args):
                        value = args[idx]
                if value is not None:
                    span_name = str(value)

            span, token = tracer.start_span(kind, span_name)
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                span.status = "error"
                span.error = str(exc)
                raise
            finally:
                tracer.end_span(span, token)
                if auto_export:
                    tracer.export(span)

        return wrapper  # type: ignore[return-value]

    return decorator


# ---------------------------------------------------------------------------
# Public decorators
# ---------------------------------------------------------------------------


def trace_run(name: str | None = None) -> Callable[[F], F]:
    """Mark an async function as a **run**-level span.

    A run span is the root of the trace tree.  When it ends the tracer
    exports the collected data.
    """
    return _make_decorator(SpanKind.RUN, name, auto_export=True)


def trace_step(
    name: str | None = None,
    *,
    name_kwarg: str = "skill_id",
) -> Callable[[F], F]:
    """Mark an async function as a pipeline **step**-level span.

    By default the span name is read from the ``skill_id`` argument.
    """
    return _make_decorator(SpanKind.STEP, name, name_kwarg=name_kwarg)


def trace_tool(
    name: str | None = None,
    *,
    name_kwarg: str = "tool_name",
) -> Callable[[F], F]:
    """Mark an async function as a **tool-call**-level span.

    By default the span name is read from the ``tool_name`` argument.
    """
    return _make_decorator(SpanKind.TOOL_CALL, name, name_kwarg=name_kwarg)

from pandora.tracer.context import bind_current_run, get_active_tracer, get_current_span, set_current_span
from pandora.tracer.decorators import (
    trace_run,
    trace_step,
    trace_tool,
)
from pandora.tracer.exporter import YAMLExporter, summarize_trace
from pandora.tracer.span import Span, SpanKind
from pandora.tracer.tracer import Tracer, optional_span

__all__ = [
    "Tracer",
    "YAMLExporter",
    "summarize_trace",
    "Span",
    "SpanKind",
    "get_active_tracer",
    "get_current_span",
    "bind_current_run",
    "set_current_span",
    "optional_span",
    "trace_run",
    "trace_step",
    "trace_tool",
]

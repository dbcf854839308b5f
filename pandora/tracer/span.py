import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional


class SpanKind(str, Enum):
    """Hierarchy level of a span inside a run trace.

    The expected nesting order (outermost → innermost) is::

        RUN  →  ITERATION | STEP  →  TOOL_CALL  →  LLM_CALL

    A reasoning-loop run nests ``ITERATION`` spans, a pipeline run nests
    ``STEP`` spans.  Any span may directly nest any deeper-level span.
    """

    RUN = "run"
    ITERATION = "iteration"
    STEP = "step"
    TOOL_CALL = "tool_call"
    LLM_CALL = "llm_call"


def _span_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Span:
    """A single node in a run trace.

    Every span of one run carries the same ``run_id`` and ``workspace_id``
    so a sub-tree can be matched to its ledger row on its own.  Children
    inherit both from their parent when they are attached, and
    :meth:`bind_run` stamps them onto a tree that was started before the
    run id was known.
    """

    kind: SpanKind
    name: str
    span_id: str = field(default_factory=_span_id)
    run_id: Optional[str] = None
    workspace_id: Optional[str] = None
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    status: str = "ok"
    error: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list['Span'] = field(default_factory=list)
    parent: Optional['Span'] = field(default=None, repr=False)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def add_child(self, child: 'Span') -> None:
        child.parent = self
        if child.run_id is None:
            child.run_id = self.run_id
        if child.workspace_id is None:
            child.workspace_id = self.workspace_id
        self.children.append(child)

    def bind_run(self, run_id: str, workspace_id: str | None = None) -> None:
        """Stamp the run identity on this span and everything below it."""
        for span in self.walk():
            span.run_id = run_id
            if workspace_id is not None:
                span.workspace_id = workspace_id

    def walk(self) -> Iterator['Span']:
        """Yield this span and its descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def token_usage(self) -> dict[str, int]:
        """Sum the token counts recorded on the ``LLM_CALL`` spans of this sub-tree."""
        usage = {"input_tokens": 0, "output_tokens": 0}
        for span in self.walk():
            if span.kind != SpanKind.LLM_CALL:
                continue
            for key in usage:
                usage[key] += int(span.attributes.get(key) or 0)
        return usage

    def finish(self, error: Exception | None = None) -> None:
        """Close the span; a non-``None`` *error* marks it failed."""
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        if error is not None:
            self.status = "error"
            self.error = str(error)

    def to_dict(self) -> dict[str, Any]:
        """Serialize this sub-tree to plain data.

        The run identity is written only where it differs from the parent's,
        which in practice means once, on the run span.
        """
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "name": self.name,
            "span_id": self.span_id,
        }
        inherited = (self.parent.run_id, self.parent.workspace_id) if self.parent else (None, None)
        if (self.run_id, self.workspace_id) != inherited:
            d["run_id"] = self.run_id
            d["workspace_id"] = self.workspace_id
        d["start_time"] = self.start_time.isoformat()
        if self.end_time is not None:
            d["end_time"] = self.end_time.isoformat()
        if self.duration_ms is not None:
            d["duration_ms"] = round(self.duration_ms, 2)
        d["status"] = self.status
        if self.error is not None:
            d["error"] = self.error
        if self.attributes:
            d["attributes"] = self.attributes
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d

"""YAML exporter for run traces.

Each file holds one run: a ``summary`` block for a quick look at what the run
cost and where it failed, followed by the full span ``trace``.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from pandora.tracer.span import Span, SpanKind

logger = logging.getLogger(__name__)


def summarize_trace(root_span: Span) -> dict[str, Any]:
    spans = list(root_span.walk())
    summary: dict[str, Any] = {
        "run_id": root_span.run_id,
        "workspace_id": root_span.workspace_id,
        "name": root_span.name,
        "status": root_span.status,
        "duration_ms": round(root_span.duration_ms, 2) if root_span.duration_ms is not None else None,
        "spans": len(spans),
        "llm_calls": sum(1 for s in spans if s.kind == SpanKind.LLM_CALL),
        "tool_calls": sum(1 for s in spans if s.kind == SpanKind.TOOL_CALL),
        **root_span.token_usage(),
    }
    failed = [s.name for s in spans if s.status == "error" and s is not root_span]
    if failed:
        summary["failed_spans"] = failed
    return summary


class YAMLExporter:
    """Writes finished run traces into *output_dir*, one file per run."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, root_span: Span, filename: str | None = None) -> Path:
        """Write *root_span* and return the path of the file.

        Files are named after the run id when the run bound one, so a trace
        can be found from its ledger row.
        """
        if filename is None:
            ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"trace_{root_span.name}_{ts}_{root_span.run_id or root_span.span_id}.yaml"

        path = self.output_dir / filename
        data = {"summary": summarize_trace(root_span), "trace": root_span.to_dict()}
        with open(path, "w", encoding="utf-8") as fh:
            yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)

        logger.info(f"Trace of run {root_span.run_id or root_span.name} exported to {path}")
        return path

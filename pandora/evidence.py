"""Evidence bookkeeping shared by the reasoning loop and the pipeline runner.

Tool results accumulate across loop iterations and skill evidence
accumulates across pipeline steps. Both grow without bound, so everything
that leaves this module for a prompt or a ledger row is clipped to a fixed
character budget first.
"""

import hashlib
import json
import logging
from typing import Any, Iterator

from pandora.config.pandora import ToolKeyStrategy

logger = logging.getLogger(__name__)

TOOL_KEY_PREFIX_CHARS = 120
# Roughly 3000 tokens at 4 characters per token.
PREVIEW_MAX_CHARS = 12_000
PREVIEW_MAX_ARRAY_ITEMS = 20
SYNTHESIS_ENTRY_MAX_CHARS = 12_000
TOOL_RESULT_MESSAGE_MAX_CHARS = 2_000

EVIDENCE_MAX_BYTES = 5 * 1024 * 1024
EVIDENCE_MAX_LIST_ITEMS = 500


def canonical_json(value: Any) -> str:
    """Deterministic compact JSON: sorted keys, no whitespace, non-ASCII kept."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def tool_key(
        tool_name: str,
        params: dict[str, Any] | None,
        strategy: ToolKeyStrategy = ToolKeyStrategy.PREFIX,
) -> str:
    """Identity of a tool call, used for deduplication and as the evidence key.

    The prefix strategy keeps only the first 120 characters of the parameter
    JSON, so two calls whose parameters share that prefix collide. The digest
    strategy hashes the full parameter JSON instead.
    """
    serialized = canonical_json(params or {})
    if strategy == ToolKeyStrategy.DIGEST:
        return f"{tool_name}:{hashlib.sha256(serialized.encode('utf-8')).hexdigest()}"
    return f"{tool_name}:{serialized[:TOOL_KEY_PREFIX_CHARS]}"


def failure_sentinel(message: str) -> str:
    return f"[TOOL FAILED: {message}]"


def truncate_arrays(value: Any, max_items: int = PREVIEW_MAX_ARRAY_ITEMS) -> Any:
    """Shallow copy of a mapping with top-level lists cut to ``max_items``.

    Every cut list gets a sibling ``<key>_truncated: True`` flag. Values that
    are not mappings are returned unchanged.
    """
    if not isinstance(value, dict):
        return value
    shallow = dict(value)
    for key, item in value.items():
        if isinstance(item, list) and len(item) > max_items:
            shallow[key] = item[:max_items]
            shallow[f"{key}_truncated"] = True
    return shallow


class EvidenceAccumulator:
    """Insertion-ordered map from ToolKey to tool result or failure sentinel."""

    def __init__(self):
        self._entries: dict[str, Any] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self):
        return self._entries.items()

    def record_success(self, key: str, result: Any) -> None:
        self._entries[key] = result

    def record_failure(self, key: str, message: str) -> None:
        self._entries[f"{key}:error"] = failure_sentinel(message)

    def preview(
            self,
            max_chars: int = PREVIEW_MAX_CHARS,
            max_array_items: int = PREVIEW_MAX_ARRAY_ITEMS,
    ) -> dict[str, str]:
        """Serialized entries bounded for the planning prompt."""
        previews: dict[str, str] = {}
        for key, value in self._entries.items():
            serialized = json.dumps(value, ensure_ascii=False, default=str)
            if len(serialized) > max_chars:
                serialized = json.dumps(truncate_arrays(value, max_array_items), ensure_ascii=False, default=str)
                serialized = serialized[:max_chars]
            previews[key] = serialized
        return previews

    def synthesis_block(self, max_chars: int = SYNTHESIS_ENTRY_MAX_CHARS) -> str:
        """All entries as ``[key]:\\n<json>`` blocks, or an empty string."""
        return "\n\n".join(
            f"[{key}]:\n{json.dumps(value, ensure_ascii=False, default=str)[:max_chars]}"
            for key, value in self._entries.items()
        )

    def to_dict(self) -> dict[str, Any]:
        return dict(self._entries)


# (result key, record type, per-call cap, name field, key fields)
_CITATION_SOURCES: list[tuple[str, str, int, str, tuple[str, ...]]] = [
    ("deals", "deal", 20, "name", ("amount", "stage", "close_date", "owner_name")),
    ("accounts", "account", 10, "name", ("total_pipeline", "open_deal_count")),
    ("conversations", "conversation", 15, "title", ("date", "account_name", "duration_minutes")),
    ("contacts", "contact", 10, "name", ("title", "account_name")),
]


def extract_cited_records(results: list[Any]) -> list[dict[str, Any]]:
    """Records referenced by successful tool results, deduplicated by id."""
    cited: list[dict[str, Any]] = []
    seen: set[str] = set()
    for result in results:
        if not isinstance(result, dict):
            continue
        for result_key, record_type, cap, name_field, key_fields in _CITATION_SOURCES:
            records = result.get(result_key)
            if not isinstance(records, list):
                continue
            for record in records[:cap]:
                if not isinstance(record, dict):
                    continue
                record_id = record.get("id")
                if not record_id or record_id in seen:
                    continue
                seen.add(record_id)
                cited.append({
                    "type": record_type,
                    "id": record_id,
                    "name": record.get(name_field),
                    "key_fields": {field: record.get(field) for field in key_fields},
                })
    return cited


def cap_evidence_payload(
        evidence: dict[str, Any],
        max_bytes: int = EVIDENCE_MAX_BYTES,
        max_list_items: int = EVIDENCE_MAX_LIST_ITEMS,
) -> dict[str, Any]:
    """Bound the per-skill evidence map written to the run ledger.

    When the serialized payload exceeds ``max_bytes``, every list in each
    skill's evidence is capped to ``max_list_items`` and that skill's
    evidence is flagged ``_truncated: True``. The input is not mutated.
    """
    size = len(json.dumps(evidence, ensure_ascii=False, default=str).encode("utf-8"))
    if size <= max_bytes:
        return evidence
    logger.warning(f"Evidence payload is {size} bytes, capping lists to {max_list_items} entries")
    capped: dict[str, Any] = {}
    for skill_id, skill_evidence in evidence.items():
        if not isinstance(skill_evidence, dict):
            capped[skill_id] = skill_evidence
            continue
        entry = {
            key: value[:max_list_items] if isinstance(value, list) else value
            for key, value in skill_evidence.items()
        }
        entry["_truncated"] = True
        capped[skill_id] = entry
    return capped

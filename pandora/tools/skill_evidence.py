from typing import Any

from pandora.context import ExecutionContext
from pandora.exceptions import ToolError
from pandora.pipeline.ledger import RunLedger
from .base import BaseTool

MAX_EVALUATED_RECORDS = 50
MAX_SUMMARY_CHARS = 2000


class SkillEvidenceTool(BaseTool):
    """Reads the latest completed output of a skill from the run ledger."""

    def __init__(self, ledger: RunLedger, skill_ids: list[str] | None = None):
        self.ledger = ledger
        self.skill_ids = skill_ids

    @property
    def name(self) -> str:
        return "get_skill_evidence"

    @property
    def description(self) -> str | None:
        return (
            "Retrieve the most recent output from a skill: its findings (claims with severity) "
            "plus the records it evaluated. Check skill evidence before querying raw data."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        skill_id: dict[str, Any] = {"type": "string", "description": "The skill to pull evidence from"}
        if self.skill_ids:
            skill_id["enum"] = list(self.skill_ids)
        return {
            "type": "object",
            "properties": {
                "skill_id": skill_id,
                "max_age_hours": {
                    "type": "number",
                    "description": "Only return if run within this many hours (default 24)",
                },
                "filter_severity": {
                    "type": "string",
                    "description": "Only return findings of this severity",
                },
            },
            "required": ["skill_id"],
        }

    async def call(self, ctx: ExecutionContext, **params) -> dict[str, Any] | None:
        if ctx.workspace_id is None:
            raise ToolError("get_skill_evidence requires a workspace")
        skill_id = params["skill_id"]
        max_age_hours = float(params.get("max_age_hours") or 24)
        cached = await self.ledger.find_recent_completed_skill_output(
            ctx.workspace_id, skill_id, within_minutes=max_age_hours * 60,
        )
        if cached is None:
            await ctx.info(f"No completed run of {skill_id} within {max_age_hours:g}h")
            return None

        evidence = cached.evidence or {}
        claims = list(evidence.get("claims") or [])
        severity = params.get("filter_severity")
        if severity:
            claims = [c for c in claims if isinstance(c, dict) and c.get("severity") == severity]
        evaluated_records = list(evidence.get("evaluated_records") or [])
        summary = cached.summary or cached.output
        return {
            "skill_id": skill_id,
            "last_run_at": cached.completed_at.isoformat(),
            "is_stale": False,
            "claims": claims,
            "evaluated_records": evaluated_records[:MAX_EVALUATED_RECORDS],
            "parameters": evidence.get("parameters") or {},
            "summary": summary[:MAX_SUMMARY_CHARS] if summary else None,
            "record_count": len(evaluated_records),
            "claim_count": len(claims),
        }

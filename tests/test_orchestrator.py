import pytest
import yaml

from pandora import create_orchestrator
from pandora.config import AgentDefinition, AgentStep, PandoraConfig, RoutingConfig, TracingConfig
from pandora.config.llm import Capability
from pandora.exceptions import NoChatLLMConfigError
from pandora.llm.types import ChatLLM, LLMResponse, TokenUsage
from pandora.pipeline.ledger import InMemoryRunLedger, RunKind, RunStatus
from pandora.pipeline.sql_ledger import SqlRunLedger
from pandora.pipeline.types import AgentRunStatus
from pandora.skills.registry import SkillRegistry
from pandora.tools.registry import ToolRegistry

from fakes import RecordingDispatcher, StaticSkill, plan


class ScriptedLLM(ChatLLM):
    def __init__(self, responses: list[str]):
        self.responses = list(responses)
        self.requests = []

    async def chat(self, messages, **params):
        self.requests.append(messages)
        return LLMResponse(content=self.responses.pop(0), usage=TokenUsage(input=20, output=10))


def make_config(**kwargs) -> PandoraConfig:
    return PandoraConfig(
        routing=RoutingConfig(routes={Capability.REASON: "claude"}),
        agents=[AgentDefinition(
            id="weekly-brief",
            name="Weekly Brief",
            steps=[AgentStep(skill_id="pipeline-hygiene", output_key="hygiene")],
        )],
        **kwargs,
    )


class TestCreateOrchestrator:
    @pytest.mark.asyncio
    async def test_answer_with_skill_evidence(self):
        ledger = InMemoryRunLedger()
        await ledger.record_skill_output(
            "ws-1", "pipeline-hygiene", "3 stale deals", "3 stale deals", 0,
            {"claims": [{"claim_id": "c1", "severity": "critical"}], "evaluated_records": [{"id": "d1"}]},
        )
        llm = ScriptedLLM([
            plan("call_tool", tool_name="get_skill_evidence", tool_params={"skill_id": "pipeline-hygiene"},
                 query_description="hygiene findings"),
            plan("synthesize", goal_progress="satisfied"),
            "Three deals are stale. CONFIDENCE: HIGH",
        ])
        orchestrator = create_orchestrator(
            make_config(),
            skill_registry=SkillRegistry([StaticSkill("pipeline-hygiene")]),
            chat_llms={"claude": llm},
            ledger=ledger,
        )

        result = await orchestrator.answer("Which deals are stale?", "ws-1")

        assert result.answer == "Three deals are stale. CONFIDENCE: HIGH"
        assert result.tokens_used == 90
        [use] = result.evidence.skill_evidence_used
        assert use.skill_id == "pipeline-hygiene"
        assert use.claims_referenced == 1
        assert "get_skill_evidence" in llm.requests[0][0].content
        [record] = [r for r in ledger.runs.values() if r.kind == RunKind.QUESTION]
        assert record.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_execute_agent(self):
        dispatcher = RecordingDispatcher()
        orchestrator = create_orchestrator(
            make_config(),
            skill_registry=SkillRegistry([StaticSkill("pipeline-hygiene", output="3 stale")]),
            chat_llms={"claude": ScriptedLLM(["Weekly brief"])},
            delivery=dispatcher,
        )

        result = await orchestrator.execute_agent("weekly-brief", "ws-1")

        assert result.status == AgentRunStatus.COMPLETED
        assert result.synthesized_output == "Weekly brief"
        assert len(dispatcher.deliveries) == 1
        assert isinstance(orchestrator.ledger, InMemoryRunLedger)

    @pytest.mark.asyncio
    async def test_traces_exported(self, tmp_path):
        orchestrator = create_orchestrator(
            make_config(tracing=TracingConfig(output_dir=str(tmp_path))),
            skill_registry=SkillRegistry([StaticSkill("pipeline-hygiene")]),
            chat_llms={"claude": ScriptedLLM(["Weekly brief"])},
        )

        result = await orchestrator.execute_agent("weekly-brief", "ws-1", dry_run=True)

        [path] = list(tmp_path.glob(f"trace_agent_run_*_{result.run_id}.yaml"))
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        assert data["summary"]["workspace_id"] == "ws-1"
        assert data["trace"]["attributes"]["agent_id"] == "weekly-brief"
        assert data["trace"]["children"][0]["name"] == "pipeline-hygiene"

    def test_requires_a_chat_llm(self):
        with pytest.raises(NoChatLLMConfigError):
            create_orchestrator(make_config())

    def test_keeps_registered_evidence_tool(self):
        tools = ToolRegistry()
        create_orchestrator(make_config(), tool_registry=tools, chat_llms={"claude": ScriptedLLM([])})
        evidence_tool = tools.get("get_skill_evidence")
        assert evidence_tool is not None

        create_orchestrator(make_config(), tool_registry=tools, chat_llms={"claude": ScriptedLLM([])})
        assert tools.get("get_skill_evidence") is evidence_tool

    @pytest.mark.asyncio
    async def test_sql_ledger_from_config(self, tmp_path):
        config = make_config()
        config.ledger.url = f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}"
        orchestrator = create_orchestrator(config, chat_llms={"claude": ScriptedLLM([])})
        assert isinstance(orchestrator.ledger, SqlRunLedger)
        await orchestrator.prepare_storage()
        await orchestrator.ledger.dispose()

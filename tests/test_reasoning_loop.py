"""Tests for pandora.reasoning.loop."""

import pytest

from pandora.config.llm import Capability
from pandora.config.pandora import ToolKeyStrategy
from pandora.exceptions import LLMError
from pandora.pipeline.ledger import RunKind, RunStatus
from pandora.reasoning.loop import LoopConfig, ReasoningLoop, SkillEvidenceUse
from pandora.tracer import Tracer

from fakes import FakeGateway, FakeToolInvoker, plan

JANE_DEALS = {
    "deals": [
        {"id": f"deal-{i}", "name": f"Deal {i}", "amount": 1000 * i, "stage": "proposal",
         "close_date": "2024-06-30", "owner_name": "Jane"}
        for i in range(1, 13)
    ],
    "total": 12,
    "query_description": "Open deals owned by Jane",
}


def build_loop(responses, tools=None, ledger=None) -> tuple[ReasoningLoop, FakeGateway, FakeToolInvoker]:
    gateway = FakeGateway(responses)
    invoker = FakeToolInvoker(tools or {})
    return ReasoningLoop(gateway, invoker, ledger=ledger), gateway, invoker


class TestReasoningLoop:
    @pytest.mark.asyncio
    async def test_answers_with_one_tool_call(self):
        loop, gateway, invoker = build_loop(
            [
                plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane", "status": "open"}),
                plan("synthesize_and_deliver", goal_progress="satisfied"),
                "Jane has 12 open deals.",
            ],
            tools={"query_deals": JANE_DEALS},
        )

        result = await loop.run("How many open deals does Jane have?",
                                LoopConfig(tools=["query_deals"], workspace_id="ws-1"))

        assert result.answer == "Jane has 12 open deals."
        assert len(result.evidence.tool_calls) == 1
        assert result.evidence.loop_iterations == 2
        assert [s.action for s in result.evidence.reasoning_chain] == ["call_tool", "synthesize_and_deliver"]
        assert invoker.calls == [("query_deals", {"owner": "Jane", "status": "open"})]
        assert len(gateway.calls) == 3
        assert result.tokens_used == 45
        assert len(result.evidence.cited_records) == 12
        assert result.evidence.tool_calls[0].description == "Open deals owned by Jane"

    @pytest.mark.asyncio
    async def test_trace_carries_run_identity(self):
        loop, _, _ = build_loop(
            [
                plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"}),
                plan("synthesize_and_deliver", goal_progress="satisfied"),
                "Jane has 12 open deals.",
            ],
            tools={"query_deals": JANE_DEALS},
        )
        tracer = Tracer()
        token = tracer.activate()
        try:
            result = await loop.run("How many open deals does Jane have?",
                                    LoopConfig(tools=["query_deals"], workspace_id="ws-1"))
        finally:
            tracer.deactivate(token)

        root = tracer.last_run_span
        assert root.name == "reasoning_loop"
        assert root.attributes["max_iterations"] == LoopConfig().max_iterations
        assert [s.name for s in root.children] == ["iteration_1", "iteration_2"]
        assert {(s.run_id, s.workspace_id) for s in root.walk()} == {(result.run_id, "ws-1")}

    @pytest.mark.asyncio
    async def test_llm_call_parameters(self):
        loop, gateway, _ = build_loop(
            [
                plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"}),
                plan("synthesize_and_deliver"),
                "answer",
            ],
            tools={"query_deals": {"deals": []}},
        )

        await loop.run("Jane's deals?", LoopConfig(tools=["query_deals", "get_skill_evidence"]))

        planning, _, synthesis = gateway.calls
        assert planning["capability"] == Capability.REASON
        assert planning["max_tokens"] == 1000
        assert planning["temperature"] == 0
        assert "query_deals, get_skill_evidence" in planning["system_prompt"]
        assert synthesis["capability"] == Capability.REASON
        assert synthesis["max_tokens"] == 2000
        assert synthesis["temperature"] == 0.3
        assert "CONFIDENCE" in synthesis["system_prompt"]
        [message] = synthesis["messages"]
        assert message.role == "user"
        assert message.content == (
            'Question: Jane\'s deals?\n\nData gathered:\n[query_deals:{"owner":"Jane"}]:\n{"deals": []}'
        )

    @pytest.mark.asyncio
    async def test_evidence_preview_in_next_planning_prompt(self):
        loop, gateway, _ = build_loop(
            [
                plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"}),
                plan("synthesize_and_deliver"),
                "answer",
            ],
            tools={"query_deals": {"total": 12}},
        )

        await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert "ACCUMULATED EVIDENCE" not in gateway.calls[0]["system_prompt"]
        second = gateway.calls[1]["system_prompt"]
        assert "ACCUMULATED EVIDENCE (1 sources)" in second
        assert '[query_deals:{"owner":"Jane"}]: {"total": 12}' in second

    @pytest.mark.asyncio
    async def test_transcript_carries_plans_and_tool_results(self):
        first_plan = plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"})
        loop, gateway, _ = build_loop(
            [first_plan, plan("synthesize_and_deliver"), "answer"],
            tools={"query_deals": {"total": 12}},
        )

        await loop.run("q", LoopConfig(tools=["query_deals"]))

        transcript = gateway.calls[1]["messages"]
        assert [m.role for m in transcript] == ["user", "assistant", "user"]
        assert transcript[0].content == "q"
        assert transcript[1].content == first_plan
        assert transcript[2].content == '[Tool result]: Tool "query_deals" result: {"total": 12}'

    @pytest.mark.asyncio
    async def test_tool_result_message_is_clipped(self):
        loop, gateway, _ = build_loop(
            [plan("call_tool", tool_name="big", tool_params={}), plan("synthesize_and_deliver"), "answer"],
            tools={"big": {"blob": "x" * 5000}},
        )

        await loop.run("q", LoopConfig(tools=["big"]))

        message = gateway.calls[1]["messages"][-1].content
        prefix = '[Tool result]: Tool "big" result: '
        assert message.startswith(prefix)
        assert len(message) == len(prefix) + 2000

    @pytest.mark.asyncio
    async def test_duplicate_call_is_not_reinvoked(self):
        repeated = plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"})
        loop, gateway, invoker = build_loop(
            [repeated, repeated, plan("synthesize_and_deliver"), "answer"],
            tools={"query_deals": {"total": 12}},
        )

        result = await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert len(invoker.calls) == 1
        assert len(result.evidence.tool_calls) == 1
        assert result.evidence.loop_iterations == 3
        assert gateway.calls[2]["messages"][-1].content == (
            '[System: Tool "query_deals" was already called with these parameters. '
            'Use accumulated evidence or call a different tool.]'
        )

    @pytest.mark.asyncio
    async def test_prefix_collision_is_treated_as_duplicate(self):
        first = plan("call_tool", tool_name="search", tool_params={"q": "x" * 200 + "a"})
        second = plan("call_tool", tool_name="search", tool_params={"q": "x" * 200 + "b"})
        loop, _, invoker = build_loop(
            [first, second, plan("synthesize_and_deliver"), "answer"],
            tools={"search": {"hits": 1}},
        )

        await loop.run("q", LoopConfig(tools=["search"]))

        assert len(invoker.calls) == 1

    @pytest.mark.asyncio
    async def test_digest_strategy_calls_both(self):
        first = plan("call_tool", tool_name="search", tool_params={"q": "x" * 200 + "a"})
        second = plan("call_tool", tool_name="search", tool_params={"q": "x" * 200 + "b"})
        loop, _, invoker = build_loop(
            [first, second, plan("synthesize_and_deliver"), "answer"],
            tools={"search": {"hits": 1}},
        )

        await loop.run("q", LoopConfig(tools=["search"], tool_key_strategy=ToolKeyStrategy.DIGEST))

        assert len(invoker.calls) == 2

    @pytest.mark.asyncio
    async def test_tool_failure_becomes_evidence(self):
        loop, gateway, _ = build_loop(
            [
                plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"}),
                plan("synthesize_and_deliver"),
                "I could not reach the CRM.",
            ],
            tools={"query_deals": RuntimeError("connection refused")},
        )

        result = await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert result.answer == "I could not reach the CRM."
        [call] = result.evidence.tool_calls
        assert call.error == "connection refused"
        assert call.result is None
        assert call.description == "query_deals"
        assert gateway.calls[1]["messages"][-1].content == \
            '[Tool result]: Tool "query_deals" failed: connection refused'
        synthesis_message = gateway.calls[2]["messages"][0].content
        assert '[query_deals:{"owner":"Jane"}:error]:\n"[TOOL FAILED: connection refused]"' in synthesis_message
        assert result.evidence.cited_records == []

    @pytest.mark.asyncio
    async def test_failed_call_is_not_retried(self):
        failing = plan("call_tool", tool_name="query_deals", tool_params={})
        loop, _, invoker = build_loop(
            [failing, failing, plan("synthesize_and_deliver"), "answer"],
            tools={"query_deals": RuntimeError("boom")},
        )

        await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert len(invoker.calls) == 1

    @pytest.mark.asyncio
    async def test_run_skill_is_redirected(self):
        loop, gateway, invoker = build_loop(
            [
                plan("run_skill", skill_id="pipeline-hygiene"),
                plan("synthesize_and_deliver"),
                "answer",
            ],
        )

        result = await loop.run("q", LoopConfig())

        assert invoker.calls == []
        assert result.evidence.tool_calls == []
        assert gateway.calls[1]["messages"][-1].content == (
            '[System: For skill data, use get_skill_evidence tool with skill_id="pipeline-hygiene" '
            'instead of run_skill.]'
        )

    @pytest.mark.asyncio
    async def test_unparseable_plan_falls_back_to_synthesis(self):
        loop, gateway, invoker = build_loop(["Let me think about that for a moment.", "best effort answer"])

        result = await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert result.answer == "best effort answer"
        assert len(gateway.calls) == 2
        assert invoker.calls == []
        [step] = result.evidence.reasoning_chain
        assert step.observation == "Could not parse plan"
        assert step.action == "synthesize_and_deliver"
        assert gateway.calls[1]["messages"][0].content == "Question: q\n\nData gathered:\nNo data gathered."

    @pytest.mark.asyncio
    async def test_call_tool_without_name_falls_back(self):
        loop, gateway, invoker = build_loop(['{"action": "call_tool", "goal_progress": "none"}', "answer"])

        result = await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert invoker.calls == []
        assert result.evidence.reasoning_chain[0].observation == "Could not parse plan"

    @pytest.mark.asyncio
    async def test_satisfied_goal_stops_before_tool_call(self):
        loop, gateway, invoker = build_loop(
            [plan("call_tool", goal_progress="satisfied", tool_name="query_deals"), "answer"],
            tools={"query_deals": {}},
        )

        result = await loop.run("q", LoopConfig(tools=["query_deals"]))

        assert invoker.calls == []
        assert result.evidence.loop_iterations == 1
        assert len(gateway.calls) == 2

    @pytest.mark.asyncio
    async def test_iterations_are_bounded(self):
        plans = [plan("call_tool", tool_name="query_deals", tool_params={"page": i}) for i in range(3)]
        loop, gateway, invoker = build_loop(plans + ["answer"], tools={"query_deals": {"total": 1}})

        result = await loop.run("q", LoopConfig(tools=["query_deals"], max_iterations=3))

        assert len(gateway.calls) == 4
        assert len(invoker.calls) == 3
        assert result.evidence.loop_iterations == 3
        assert result.answer == "answer"

    @pytest.mark.asyncio
    async def test_prior_context_seeds_transcript(self):
        loop, gateway, _ = build_loop([plan("synthesize_and_deliver"), "answer"])

        await loop.run("And last month?", LoopConfig(prior_context="User asked about Q2 pipeline."))

        assert gateway.calls[0]["messages"][0].content == \
            "User asked about Q2 pipeline.\n\nCurrent question: And last month?"
        assert gateway.calls[1]["messages"][0].content.startswith("Question: And last month?")

    @pytest.mark.asyncio
    async def test_custom_planning_prompt_is_used_verbatim(self):
        loop, gateway, _ = build_loop([plan("synthesize_and_deliver"), "answer"])

        await loop.run("q", LoopConfig(planning_prompt="Only ever synthesize."))

        assert gateway.calls[0]["system_prompt"] == "Only ever synthesize."

    @pytest.mark.asyncio
    async def test_skill_evidence_use_is_recorded(self):
        loop, _, _ = build_loop(
            [
                plan("call_tool", tool_name="get_skill_evidence", tool_params={"skill_id": "pipeline-hygiene"}),
                plan("synthesize_and_deliver"),
                "answer",
            ],
            tools={"get_skill_evidence": {
                "skill_id": "pipeline-hygiene",
                "last_run_at": "2024-05-01T08:00:00+00:00",
                "claim_count": 7,
            }},
        )

        result = await loop.run("q", LoopConfig(tools=["get_skill_evidence"]))

        assert result.evidence.skill_evidence_used == [
            SkillEvidenceUse(skill_id="pipeline-hygiene", last_run_at="2024-05-01T08:00:00+00:00",
                             claims_referenced=7),
        ]

    @pytest.mark.asyncio
    async def test_same_script_gives_same_result(self):
        script = [
            plan("call_tool", tool_name="query_deals", tool_params={"owner": "Jane"}),
            plan("synthesize_and_deliver"),
            "Jane has 12 open deals.",
        ]
        first, _, _ = build_loop(list(script), tools={"query_deals": JANE_DEALS})
        second, _, _ = build_loop(list(script), tools={"query_deals": JANE_DEALS})

        a = await first.run("q", LoopConfig(tools=["query_deals"]))
        b = await second.run("q", LoopConfig(tools=["query_deals"]))

        assert a.answer == b.answer
        assert a.evidence.to_dict() == b.evidence.to_dict()
        assert a.run_id != b.run_id

    @pytest.mark.asyncio
    async def test_llm_error_propagates_and_marks_run_failed(self, ledger):
        loop, _, _ = build_loop([LLMError("rate limited")], ledger=ledger)

        with pytest.raises(LLMError, match="rate limited"):
            await loop.run("q", LoopConfig(workspace_id="ws-1"))

        [record] = ledger.runs.values()
        assert record.kind == RunKind.QUESTION
        assert record.status == RunStatus.FAILED
        assert record.error == "rate limited"

    @pytest.mark.asyncio
    async def test_completed_question_is_recorded(self, ledger):
        loop, _, _ = build_loop([plan("synthesize_and_deliver"), "answer"], ledger=ledger)

        result = await loop.run("q", LoopConfig(workspace_id="ws-1"))

        record = ledger.get_run(result.run_id)
        assert record.status == RunStatus.COMPLETED
        assert record.workspace_id == "ws-1"
        assert record.synthesized_output == "answer"
        assert record.token_usage == {"total": 30}
        assert record.evidence["loop_iterations"] == 1
        assert record.completed_at is not None

"""Reasoning loop for interactive questions.

Each iteration asks the planning LLM for the next action, executes at most
one tool call, and feeds the result back into the transcript. When the model
is satisfied, asks to synthesize, or the iteration budget runs out, a final
synthesis call turns the accumulated evidence into an answer.

Failures inside the loop are data: a malformed plan becomes a synthesize
action and a failed tool call becomes a ``[TOOL FAILED: ...]`` evidence
entry. Only LLM gateway errors escape.
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from pandora.config.llm import Capability
from pandora.config.pandora import ToolKeyStrategy
from pandora.context import ExecutionContext, LoggingExecutionContext
from pandora.evidence import (
    TOOL_RESULT_MESSAGE_MAX_CHARS,
    EvidenceAccumulator,
    extract_cited_records,
    tool_key,
)
from pandora.llm.gateway import LLMGateway
from pandora.llm.types import ChatMessage, TrackingContext
from pandora.pipeline.ledger import RunKind, RunLedger, RunStatus, RunUpdate
from pandora.template import TemplateEnvironment
from pandora.tools.base import ToolInvoker
from pandora.tracer import SpanKind, bind_current_run, optional_span, trace_run
from .plan import CallToolPlan, GoalProgress, PlanAction, PlanDecodeError, RunSkillPlan, decode_plan, fallback_plan

logger = logging.getLogger(__name__)

PLAN_MAX_TOKENS = 1000
PLAN_TEMPERATURE = 0.0
SYNTHESIS_MAX_TOKENS = 2000
SYNTHESIS_TEMPERATURE = 0.3
SKILL_EVIDENCE_TOOL = "get_skill_evidence"


@dataclass
class LoopConfig:
    tools: list[str] = field(default_factory=list)
    max_iterations: int = 5
    prior_context: str | None = None
    workspace_id: str | None = None
    planning_prompt: str | None = None
    tool_key_strategy: ToolKeyStrategy = ToolKeyStrategy.PREFIX


@dataclass(frozen=True)
class ToolCallRecord:
    tool: str
    params: dict[str, Any]
    result: Any
    error: str | None
    description: str


@dataclass(frozen=True)
class SkillEvidenceUse:
    skill_id: str
    last_run_at: str | None
    claims_referenced: int


@dataclass(frozen=True)
class ReasoningStep:
    step: int
    observation: str
    action: str
    evaluation: str


@dataclass
class LoopEvidence:
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    skill_evidence_used: list[SkillEvidenceUse] = field(default_factory=list)
    loop_iterations: int = 0
    reasoning_chain: list[ReasoningStep] = field(default_factory=list)
    cited_records: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LoopResult:
    answer: str
    evidence: LoopEvidence
    tokens_used: int
    latency_ms: int
    run_id: str


@dataclass
class _LoopState:
    transcript: list[ChatMessage]
    evidence: EvidenceAccumulator = field(default_factory=EvidenceAccumulator)
    called: set[str] = field(default_factory=set)
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    skill_evidence_used: list[SkillEvidenceUse] = field(default_factory=list)
    reasoning_chain: list[ReasoningStep] = field(default_factory=list)
    tokens_used: int = 0

    def say(self, role: str, content: str) -> None:
        self.transcript.append(ChatMessage(role=role, content=content))


class ReasoningLoop:
    def __init__(
            self,
            gateway: LLMGateway,
            tools: ToolInvoker,
            template_env: TemplateEnvironment | None = None,
            ledger: RunLedger | None = None,
            lang: str | None = None,
    ):
        self.gateway = gateway
        self.tools = tools
        self.template_env = template_env or TemplateEnvironment(package_name='pandora', default_lang=lang)
        self.ledger = ledger
        self.lang = lang

    @trace_run("reasoning_loop")
    async def run(self, question: str, config: LoopConfig | None = None) -> LoopResult:
        config = config or LoopConfig()
        run_id = str(uuid.uuid4())
        bind_current_run(run_id, config.workspace_id, max_iterations=config.max_iterations)
        start_time = time.monotonic()
        logger.info(f"[{run_id}] Answering question with up to {config.max_iterations} iterations")
        await self._insert_run(run_id, question, config)
        try:
            result = await self._run(run_id, question, config, start_time)
        except Exception as e:
            await self._update_run(run_id, RunUpdate(
                status=RunStatus.FAILED,
                error=str(e),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            ))
            raise
        await self._update_run(run_id, RunUpdate(
            status=RunStatus.COMPLETED,
            synthesized_output=result.answer,
            token_usage={"total": result.tokens_used},
            evidence=result.evidence.to_dict(),
            duration_ms=result.latency_ms,
        ))
        logger.info(
            f"[{run_id}] Answered after {result.evidence.loop_iterations} iterations, "
            f"{len(result.evidence.tool_calls)} tool calls, {result.tokens_used} tokens"
        )
        return result

    async def _run(self, run_id: str, question: str, config: LoopConfig, start_time: float) -> LoopResult:
        initial = f"{config.prior_context}\n\nCurrent question: {question}" if config.prior_context else question
        state = _LoopState(transcript=[ChatMessage(role="user", content=initial)])
        ctx = LoggingExecutionContext(workspace_id=config.workspace_id, run_id=run_id, logger=logger)

        for iteration in range(config.max_iterations):
            async with optional_span(SpanKind.ITERATION, f"iteration_{iteration + 1}") as span:
                plan = await self._plan(run_id, iteration, config, state)
                if span is not None:
                    span.set_attribute("action", plan.action.value)
                    span.set_attribute("goal_progress", plan.goal_progress.value)
                if plan.action == PlanAction.SYNTHESIZE or plan.goal_progress == GoalProgress.SATISFIED:
                    break
                if isinstance(plan, CallToolPlan):
                    await self._call_tool(plan, config, state, ctx)
                elif isinstance(plan, RunSkillPlan) and plan.skill_id:
                    state.say("user", (
                        f'[System: For skill data, use get_skill_evidence tool with '
                        f'skill_id="{plan.skill_id}" instead of run_skill.]'
                    ))

        answer = await self._synthesize(run_id, question, config, state)
        evidence = LoopEvidence(
            tool_calls=list(state.tool_calls),
            skill_evidence_used=list(state.skill_evidence_used),
            loop_iterations=len(state.reasoning_chain),
            reasoning_chain=list(state.reasoning_chain),
            cited_records=extract_cited_records([
                call.result for call in state.tool_calls if call.error is None and call.result
            ]),
        )
        return LoopResult(
            answer=answer,
            evidence=evidence,
            tokens_used=state.tokens_used,
            latency_ms=int((time.monotonic() - start_time) * 1000),
            run_id=run_id,
        )

    def _planning_prompt(self, config: LoopConfig, state: _LoopState) -> str:
        if config.planning_prompt:
            return config.planning_prompt
        template = self.template_env.load_template('plan_next_action.jinja2', lang=self.lang)
        return template.render(tools=config.tools, evidence=state.evidence.preview())

    async def _plan(self, run_id: str, iteration: int, config: LoopConfig, state: _LoopState):
        response = await self.gateway.generate(
            Capability.REASON,
            self._planning_prompt(config, state),
            list(state.transcript),
            max_tokens=PLAN_MAX_TOKENS,
            temperature=PLAN_TEMPERATURE,
            tracking=TrackingContext(workspace_id=config.workspace_id, run_id=run_id, phase=f"plan_{iteration}"),
        )
        state.tokens_used += response.usage.total

        plan = decode_plan(response.content)
        if isinstance(plan, PlanDecodeError):
            logger.warning(f"[{run_id}] Could not decode plan at iteration {iteration + 1}: {plan.reason}")
            plan = fallback_plan()
        logger.debug(f"[{run_id}] Plan {iteration + 1}: {plan.action.value} ({plan.goal_progress.value})")

        state.reasoning_chain.append(ReasoningStep(
            step=iteration + 1,
            observation=plan.observation,
            action=plan.action.value,
            evaluation=plan.evaluation,
        ))
        state.say("assistant", response.content)
        return plan

    async def _call_tool(self, plan: CallToolPlan, config: LoopConfig, state: _LoopState, ctx: ExecutionContext):
        key = tool_key(plan.tool_name, plan.tool_params, config.tool_key_strategy)
        if key in state.called:
            logger.info(f"[{ctx.run_id}] Skipping duplicate call {key}")
            state.say("user", (
                f'[System: Tool "{plan.tool_name}" was already called with these parameters. '
                f'Use accumulated evidence or call a different tool.]'
            ))
            return
        state.called.add(key)

        result: Any = None
        error: str | None = None
        try:
            result = await self.tools.invoke(plan.tool_name, plan.tool_params, ctx)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning(f"[{ctx.run_id}] Tool {plan.tool_name} failed: {error}")
            state.evidence.record_failure(key, error)
        else:
            state.evidence.record_success(key, result)
            if plan.tool_name == SKILL_EVIDENCE_TOOL and isinstance(result, dict):
                state.skill_evidence_used.append(SkillEvidenceUse(
                    skill_id=plan.tool_params.get("skill_id") or "unknown",
                    last_run_at=result.get("last_run_at"),
                    claims_referenced=result.get("claim_count") or 0,
                ))

        description = plan.tool_name
        if isinstance(result, dict):
            description = result.get("query_description") or result.get("formatted") or plan.tool_name
        state.tool_calls.append(ToolCallRecord(
            tool=plan.tool_name,
            params=dict(plan.tool_params),
            result=result,
            error=error,
            description=description,
        ))

        if error is not None:
            summary = f'Tool "{plan.tool_name}" failed: {error}'
        else:
            serialized = json.dumps(result, ensure_ascii=False, default=str)
            summary = f'Tool "{plan.tool_name}" result: {serialized[:TOOL_RESULT_MESSAGE_MAX_CHARS]}'
        state.say("user", f"[Tool result]: {summary}")

    async def _synthesize(self, run_id: str, question: str, config: LoopConfig, state: _LoopState) -> str:
        system_prompt = self.template_env.load_template('synthesize_answer.jinja2', lang=self.lang).render()
        gathered = state.evidence.synthesis_block() or "No data gathered."
        response = await self.gateway.generate(
            Capability.REASON,
            system_prompt,
            [ChatMessage(role="user", content=f"Question: {question}\n\nData gathered:\n{gathered}")],
            max_tokens=SYNTHESIS_MAX_TOKENS,
            temperature=SYNTHESIS_TEMPERATURE,
            tracking=TrackingContext(workspace_id=config.workspace_id, run_id=run_id, phase="synthesize"),
        )
        state.tokens_used += response.usage.total
        return response.content

    async def _insert_run(self, run_id: str, question: str, config: LoopConfig) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.insert_run(run_id, RunKind.QUESTION, question[:200], config.workspace_id)
        except Exception:
            logger.exception(f"[{run_id}] Failed to record question run")

    async def _update_run(self, run_id: str, update: RunUpdate) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.update_run(run_id, update)
        except Exception:
            logger.exception(f"[{run_id}] Failed to update question run")

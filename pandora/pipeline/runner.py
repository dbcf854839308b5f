"""Pipeline runner: executes an agent's skills in order and synthesizes the result.

A run walks the agent's steps strictly in order. Each step is served from the
ledger's skill-output cache when a fresh enough output exists, otherwise the
skill is executed under its own deadline. Optional steps may fail without
stopping the run; a failed required step aborts it. The surviving outputs are
synthesized into one report, handed to the delivery dispatcher, and the run
is written to the ledger.

Run states::

    running -> completed | partial | failed
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any

from pandora.config.agent import AgentDefinition, AgentStep
from pandora.context import CancellationToken, LoggingExecutionContext
from pandora.evidence import cap_evidence_payload
from pandora.exceptions import (
    AgentError,
    AgentExecutionError,
    RequiredStepFailedError,
    SkillCancelledError,
    SkillExecutionError,
    SkillTimeoutError,
)
from pandora.llm.gateway import LLMGateway
from pandora.llm.types import ChatMessage, TrackingContext
from pandora.skills.types import SkillInvoker, SkillStatus
from pandora.tracer import bind_current_run, trace_run, trace_step
from .delivery import DeliveryDispatcher, DeliveryPayload
from .ledger import RunKind, RunLedger, RunStatus, RunUpdate
from .registry import AgentRegistry
from .synthesis import build_synthesis_prompt
from .types import AgentRunResult, AgentRunStatus, AgentSkillResult, RunTokenUsage, SkillOutput, StepStatus

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 500


def summarize_output(output: Any) -> str:
    if not output:
        return ''
    if isinstance(output, str):
        return output[:SUMMARY_MAX_CHARS]
    return json.dumps(output, ensure_ascii=False, default=str)[:SUMMARY_MAX_CHARS]


def render_output(output: Any) -> str:
    if output is None:
        return ''
    if isinstance(output, str):
        return output
    return json.dumps(output, indent=2, ensure_ascii=False, default=str)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _discard_late_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned skill task failed after its deadline: {error}")


class PipelineRunner:
    def __init__(
            self,
            agents: AgentRegistry,
            skills: SkillInvoker,
            gateway: LLMGateway,
            ledger: RunLedger,
            delivery: DeliveryDispatcher | None = None,
    ):
        self.agents = agents
        self.skills = skills
        self.gateway = gateway
        self.ledger = ledger
        self.delivery = delivery

    @trace_run("agent_run")
    async def execute_agent(self, agent_id: str, workspace_id: str, *, dry_run: bool = False) -> AgentRunResult:
        agent = self.agents.require(agent_id)
        run_id = str(uuid.uuid4())
        start_time = time.monotonic()
        logger.info(f"[{run_id}] Starting agent {agent_id} for workspace {workspace_id}")
        bind_current_run(run_id, workspace_id, agent_id=agent_id)

        await self._write_ledger(self.ledger.insert_run(run_id, RunKind.AGENT, agent_id, workspace_id))

        outputs: dict[str, SkillOutput] = {}
        skill_results: list[AgentSkillResult] = []
        try:
            for step in agent.steps:
                step_start = time.monotonic()
                try:
                    output = await self._run_step(step, skill_id=step.skill_id, workspace_id=workspace_id, run_id=run_id)
                except Exception as e:
                    skill_results.append(AgentSkillResult(
                        skill_id=step.skill_id,
                        status=StepStatus.FAILED,
                        duration_ms=_elapsed_ms(step_start),
                        error=str(e),
                    ))
                    if step.required:
                        error = RequiredStepFailedError(step.skill_id, run_id, reason=str(e))
                        logger.error(f"[{run_id}] {error}")
                        await self._write_ledger(self.ledger.update_run(run_id, RunUpdate(
                            status=RunStatus.FAILED,
                            error=str(error),
                            skill_results=[r.to_dict() for r in skill_results],
                            duration_ms=_elapsed_ms(start_time),
                        )))
                        raise error from e
                    logger.warning(f"[{run_id}] Optional skill {step.skill_id} failed, continuing: {e}")
                    continue

                outputs[step.output_key] = output
                skill_results.append(AgentSkillResult(
                    skill_id=step.skill_id,
                    status=StepStatus.CACHED if output.cached else StepStatus.COMPLETED,
                    duration_ms=output.duration_ms,
                ))

            synthesized_output: str | None = None
            synthesis_tokens = 0
            if agent.synthesis.enabled and outputs:
                logger.info(f"[{run_id}] Synthesizing {len(outputs)} skill outputs")
                synthesized_output, synthesis_tokens = await self._synthesize(agent, outputs, workspace_id, run_id)

            evidence = {o.skill_id: o.evidence for o in outputs.values() if o.evidence is not None}
            if not dry_run and self.delivery is not None:
                await self._deliver(agent, run_id, workspace_id, synthesized_output, evidence)

            failed = any(r.status == StepStatus.FAILED for r in skill_results)
            result = AgentRunResult(
                run_id=run_id,
                agent_id=agent_id,
                workspace_id=workspace_id,
                status=AgentRunStatus.PARTIAL if failed else AgentRunStatus.COMPLETED,
                duration_ms=_elapsed_ms(start_time),
                skill_results=skill_results,
                synthesized_output=synthesized_output,
                token_usage=RunTokenUsage(
                    skills=sum(o.token_usage for o in outputs.values() if not o.cached),
                    synthesis=synthesis_tokens,
                ),
                evidence=evidence,
            )
            await self._write_ledger(self.ledger.update_run(run_id, RunUpdate(
                status=RunStatus(result.status.value),
                skill_results=[r.to_dict() for r in skill_results],
                synthesized_output=synthesized_output,
                token_usage=result.token_usage.to_dict(),
                evidence=cap_evidence_payload(evidence),
                duration_ms=result.duration_ms,
            )))
            logger.info(
                f"[{run_id}] Agent {agent_id} {result.status.value} in {result.duration_ms}ms, "
                f"{result.token_usage.total} tokens"
            )
            return result
        except AgentError:
            raise
        except Exception as e:
            logger.exception(f"[{run_id}] Agent {agent_id} failed")
            await self._write_ledger(self.ledger.update_run(run_id, RunUpdate(
                status=RunStatus.FAILED,
                error=str(e),
                skill_results=[r.to_dict() for r in skill_results],
                duration_ms=_elapsed_ms(start_time),
            )))
            raise AgentExecutionError(f"Agent {agent_id} failed: {e}", run_id=run_id) from e

    @trace_step()
    async def _run_step(self, step: AgentStep, skill_id: str, workspace_id: str, run_id: str) -> SkillOutput:
        cached = await self._find_cached(step, workspace_id, run_id)
        if cached is not None:
            return cached

        step_start = time.monotonic()
        execution = await self._execute_with_deadline(step, workspace_id, run_id)
        if execution.status == SkillStatus.FAILED:
            raise SkillExecutionError(skill_id, execution.error_message)

        output = SkillOutput(
            skill_id=skill_id,
            output=render_output(execution.output),
            summary=summarize_output(execution.output),
            token_usage=execution.total_tokens,
            duration_ms=_elapsed_ms(step_start),
            cached=False,
            evidence=execution.evidence,
        )
        await self._write_ledger(self.ledger.record_skill_output(
            workspace_id, skill_id, output.output, output.summary, output.token_usage, output.evidence,
            run_id=run_id,
        ))
        logger.info(f"[{run_id}] Skill {skill_id} completed in {output.duration_ms}ms")
        return output

    async def _find_cached(self, step: AgentStep, workspace_id: str, run_id: str) -> SkillOutput | None:
        if step.cache_ttl_minutes <= 0:
            return None
        try:
            cached = await self.ledger.find_recent_completed_skill_output(
                workspace_id, step.skill_id, within_minutes=step.cache_ttl_minutes,
            )
        except Exception as e:
            logger.warning(f"[{run_id}] Cache lookup for {step.skill_id} failed, executing instead: {e}")
            return None
        if cached is None:
            return None
        logger.info(f"[{run_id}] Using cached output of {step.skill_id} from {cached.completed_at.isoformat()}")
        return SkillOutput(
            skill_id=step.skill_id,
            output=cached.output,
            summary=cached.summary,
            token_usage=cached.token_usage,
            duration_ms=0,
            cached=True,
            evidence=cached.evidence,
        )

    async def _execute_with_deadline(self, step: AgentStep, workspace_id: str, run_id: str):
        token = CancellationToken(timeout_seconds=step.timeout_seconds)
        ctx = LoggingExecutionContext(workspace_id=workspace_id, run_id=run_id, cancellation=token, logger=logger)
        task = asyncio.create_task(self.skills.invoke(step.skill_id, dict(step.params), ctx))
        try:
            done, _ = await asyncio.wait({task}, timeout=step.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            # The abandoned task may still finish; its result is discarded.
            token.cancel("timed out")
            task.cancel()
            task.add_done_callback(_discard_late_result)
            logger.warning(f"[{run_id}] Skill {step.skill_id} exceeded {step.timeout_seconds:g}s, abandoning it")
            raise SkillTimeoutError(step.skill_id, step.timeout_seconds)
        try:
            return task.result()
        except SkillCancelledError as e:
            # The skill noticed the expired deadline before the wait returned.
            raise SkillTimeoutError(step.skill_id, step.timeout_seconds) from e

    async def _synthesize(
            self,
            agent: AgentDefinition,
            outputs: dict[str, SkillOutput],
            workspace_id: str,
            run_id: str,
    ) -> tuple[str, int]:
        spec = agent.synthesis
        response = await self.gateway.generate(
            spec.capability,
            spec.system_prompt,
            [ChatMessage(role="user", content=build_synthesis_prompt(spec.user_prompt_template, outputs))],
            max_tokens=spec.max_tokens,
            temperature=spec.temperature,
            tracking=TrackingContext(
                workspace_id=workspace_id,
                run_id=run_id,
                phase="synthesize",
                extra={"agent_id": agent.id},
            ),
            provider=spec.provider,
        )
        return response.content, response.usage.total

    async def _deliver(
            self,
            agent: AgentDefinition,
            run_id: str,
            workspace_id: str,
            content: str | None,
            evidence: dict[str, Any],
    ) -> None:
        payload = DeliveryPayload(
            agent_id=agent.id,
            agent_name=agent.name,
            run_id=run_id,
            workspace_id=workspace_id,
            content=content,
            evidence=evidence,
        )
        try:
            await self.delivery.deliver(agent.delivery, payload)
        except Exception:
            logger.exception(f"[{run_id}] Delivery via {agent.delivery.channel.value} failed")

    @staticmethod
    async def _write_ledger(write) -> None:
        try:
            await write
        except Exception:
            logger.exception("Run ledger write failed")

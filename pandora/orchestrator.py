"""Assembly of the orchestration core.

:class:`Orchestrator` is the single entry point for callers such as an HTTP
handler or a scheduler: it answers questions through the reasoning loop and
executes agents through the pipeline runner. Collaborators are passed in;
:func:`create_orchestrator` builds them from a :class:`PandoraConfig`.
"""

import logging
from dataclasses import replace
from pathlib import Path

from pandora.config.pandora import PandoraConfig
from pandora.exceptions import NoChatLLMConfigError
from pandora.llm.factory import ChatLLMFactory
from pandora.llm.gateway import LLMGateway, RoutedLLMGateway
from pandora.llm.types import ChatLLM
from pandora.pipeline.delivery import ChannelDeliveryDispatcher, DeliveryDispatcher, LoggingDeliveryHandler
from pandora.pipeline.ledger import InMemoryRunLedger, RunLedger
from pandora.pipeline.registry import AgentRegistry
from pandora.pipeline.runner import PipelineRunner
from pandora.pipeline.sql_ledger import SqlRunLedger
from pandora.pipeline.types import AgentRunResult
from pandora.reasoning.loop import LoopConfig, LoopResult, ReasoningLoop
from pandora.skills.registry import SkillRegistry
from pandora.skills.types import SkillInvoker
from pandora.template import TemplateEnvironment
from pandora.tools.base import ToolInvoker
from pandora.tools.registry import ToolRegistry
from pandora.tools.skill_evidence import SkillEvidenceTool
from pandora.tracer import Tracer, YAMLExporter

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
            self,
            gateway: LLMGateway,
            tools: ToolInvoker,
            skills: SkillInvoker,
            ledger: RunLedger,
            agents: AgentRegistry,
            delivery: DeliveryDispatcher | None = None,
            template_env: TemplateEnvironment | None = None,
            lang: str | None = None,
            tracer: Tracer | None = None,
            default_loop_config: LoopConfig | None = None,
    ):
        self.ledger = ledger
        self.agents = agents
        self.tracer = tracer
        self.default_loop_config = default_loop_config or LoopConfig()
        self.reasoning_loop = ReasoningLoop(gateway, tools, template_env=template_env, ledger=ledger, lang=lang)
        self.pipeline_runner = PipelineRunner(agents, skills, gateway, ledger, delivery=delivery)

    async def prepare_storage(self) -> None:
        """Create the ledger tables when the ledger is database-backed."""
        if isinstance(self.ledger, SqlRunLedger):
            await self.ledger.create_tables()

    async def answer(
            self,
            question: str,
            workspace_id: str | None = None,
            *,
            prior_context: str | None = None,
            config: LoopConfig | None = None,
    ) -> LoopResult:
        if config is None:
            config = replace(self.default_loop_config, workspace_id=workspace_id, prior_context=prior_context)
        if self.tracer is None:
            return await self.reasoning_loop.run(question, config)
        token = self.tracer.activate()
        try:
            return await self.reasoning_loop.run(question, config)
        finally:
            self.tracer.deactivate(token)

    async def execute_agent(self, agent_id: str, workspace_id: str, *, dry_run: bool = False) -> AgentRunResult:
        if self.tracer is None:
            return await self.pipeline_runner.execute_agent(agent_id, workspace_id, dry_run=dry_run)
        token = self.tracer.activate()
        try:
            return await self.pipeline_runner.execute_agent(agent_id, workspace_id, dry_run=dry_run)
        finally:
            self.tracer.deactivate(token)


def create_orchestrator(
        config: PandoraConfig,
        *,
        tool_registry: ToolRegistry | None = None,
        skill_registry: SkillRegistry | None = None,
        chat_llms: dict[str, ChatLLM] | None = None,
        ledger: RunLedger | None = None,
        delivery: DeliveryDispatcher | None = None,
) -> Orchestrator:
    """Build an :class:`Orchestrator` from configuration.

    ``chat_llms`` are merged over the providers built from
    ``config.chat_llms``, so callers can plug in any ``ChatLLM`` (for
    example a :class:`~pandora.llm.langchain.LangChainChatLLM`).
    The ``get_skill_evidence`` tool is registered unless the tool registry
    already has one.
    """
    providers = ChatLLMFactory.build_all(config.chat_llms)
    providers.update(chat_llms or {})
    if not providers:
        raise NoChatLLMConfigError()
    gateway = RoutedLLMGateway.from_config(providers, config.routing)

    if ledger is None:
        if config.ledger.url:
            ledger = SqlRunLedger.from_url(config.ledger.url, echo=config.ledger.echo)
        else:
            logger.info("No ledger URL configured, using an in-memory run ledger")
            ledger = InMemoryRunLedger()

    skills = skill_registry or SkillRegistry()
    tools = tool_registry or ToolRegistry()
    if tools.get("get_skill_evidence") is None:
        tools.register(SkillEvidenceTool(ledger, skill_ids=skills.ids() or None))

    tracer = None
    if config.tracing.output_dir:
        tracer = Tracer(exporter=YAMLExporter(Path(config.tracing.output_dir)))

    return Orchestrator(
        gateway=gateway,
        tools=tools,
        skills=skills,
        ledger=ledger,
        agents=AgentRegistry(config.agents),
        delivery=delivery or ChannelDeliveryDispatcher(default_handler=LoggingDeliveryHandler()),
        template_env=TemplateEnvironment(package_name='pandora', default_lang=config.template_lang),
        lang=config.template_lang,
        tracer=tracer,
        default_loop_config=LoopConfig(
            tools=tools.names(),
            max_iterations=config.loop.max_iterations,
            tool_key_strategy=config.loop.tool_key_strategy,
        ),
    )

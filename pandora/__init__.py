from .config import PandoraConfig, load_config
from .orchestrator import Orchestrator, create_orchestrator
from .pipeline import AgentRunResult, PipelineRunner
from .reasoning import LoopConfig, LoopResult, ReasoningLoop

__all__ = [
    "AgentRunResult",
    "LoopConfig",
    "LoopResult",
    "Orchestrator",
    "PandoraConfig",
    "PipelineRunner",
    "ReasoningLoop",
    "create_orchestrator",
    "load_config",
]

from .base import BaseTool, ToolInvoker
from .registry import ToolRegistry
from .skill_evidence import SkillEvidenceTool

__all__ = [
    "BaseTool",
    "SkillEvidenceTool",
    "ToolInvoker",
    "ToolRegistry",
]

from .registry import SkillRegistry
from .types import Skill, SkillExecution, SkillInvoker, SkillStatus, SkillStepError

__all__ = [
    "Skill",
    "SkillExecution",
    "SkillInvoker",
    "SkillRegistry",
    "SkillStatus",
    "SkillStepError",
]

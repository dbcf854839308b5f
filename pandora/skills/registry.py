import logging
from typing import Any

from pandora.context import ExecutionContext
from pandora.exceptions import SkillNotFoundError
from .types import Skill, SkillExecution

logger = logging.getLogger(__name__)


class SkillRegistry:
    """Skills addressable by id. Implements the ``SkillInvoker`` protocol."""

    def __init__(self, skills: list[Skill] | None = None):
        self._skills: dict[str, Skill] = {}
        for skill in skills or []:
            self.register(skill)

    def register(self, skill: Skill) -> None:
        if skill.id in self._skills:
            logger.warning(f"Skill '{skill.id}' is already registered, replacing it")
        self._skills[skill.id] = skill

    def get(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    def ids(self) -> list[str]:
        return list(self._skills.keys())

    def __contains__(self, skill_id: str) -> bool:
        return skill_id in self._skills

    async def invoke(self, skill_id: str, params: dict[str, Any], ctx: ExecutionContext) -> SkillExecution:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillNotFoundError(skill_id)
        await ctx.debug(f"Executing skill {skill_id} with params {params}")
        return await skill.execute(ctx, params)

import logging

from pandora.config.agent import AgentDefinition
from pandora.exceptions import AgentDisabledError, AgentNotFoundError

logger = logging.getLogger(__name__)


class AgentRegistry:
    def __init__(self, agents: list[AgentDefinition] | None = None):
        self._agents: dict[str, AgentDefinition] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: AgentDefinition) -> None:
        if agent.id in self._agents:
            logger.warning(f"Agent '{agent.id}' is already registered, replacing it")
        self._agents[agent.id] = agent

    def get(self, agent_id: str) -> AgentDefinition | None:
        return self._agents.get(agent_id)

    def agents(self) -> list[AgentDefinition]:
        return list(self._agents.values())

    def require(self, agent_id: str) -> AgentDefinition:
        """Return an enabled agent or raise before any run is recorded."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if not agent.enabled:
            raise AgentDisabledError(agent_id)
        return agent

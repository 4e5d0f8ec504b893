"""Agent catalog with per-agent status and a single-flight guard."""

import logging
from collections.abc import Iterable

from council.models import Agent, AgentStatus

logger = logging.getLogger(__name__)


class AgentNotFound(LookupError):
    """No agent with this identifier exists in the registry."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class AgentUnavailable(RuntimeError):
    """The agent exists but is not online (offline or already busy)."""

    def __init__(self, agent: Agent) -> None:
        self.agent_id = agent.id
        self.status = agent.status
        super().__init__(f"Agent {agent.name} is {agent.status}, not online")


class AgentRegistry:
    """Insertion-ordered table of agents keyed by id.

    Status is the only mutable field. ``acquire``/``release`` keep at most one
    in-flight query per agent: the check and the flip to ``busy`` happen with
    no await in between, so concurrent tasks on one event loop cannot both win.
    """

    def __init__(self, agents: Iterable[Agent]) -> None:
        self._agents: dict[str, Agent] = {}
        codes: set[str] = set()
        for agent in agents:
            if agent.id in self._agents:
                raise ValueError(f"Duplicate agent id: {agent.id}")
            if agent.code in codes:
                raise ValueError(f"Duplicate agent code: {agent.code}")
            codes.add(agent.code)
            self._agents[agent.id] = agent

    @classmethod
    def from_config(cls, agent_configs: Iterable) -> "AgentRegistry":
        """Build from ``AgentConfig`` entries (see config.config_loader)."""
        return cls(
            Agent(
                id=cfg.id,
                code=cfg.code,
                name=cfg.name,
                role=cfg.role,
                model=cfg.model,
                system_prompt=cfg.system_prompt,
            )
            for cfg in agent_configs
        )

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def all(self) -> list[Agent]:
        return list(self._agents.values())

    def find(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    def by_code(self, code: str) -> Agent | None:
        return next((a for a in self._agents.values() if a.code == code), None)

    def online(self) -> list[Agent]:
        return [a for a in self._agents.values() if a.status == "online"]

    def select(self, agent_ids: Iterable[str] | None = None) -> list[Agent]:
        """Online agents among ``agent_ids`` in registry order; all online when empty."""
        wanted = set(agent_ids or ())
        if not wanted:
            return self.online()
        return [a for a in self._agents.values() if a.id in wanted and a.status == "online"]

    def set_status(self, agent_id: str, status: AgentStatus) -> None:
        self.get(agent_id).status = status

    def set_all(self, status: AgentStatus) -> None:
        for agent in self._agents.values():
            agent.status = status

    def acquire(self, agent_id: str) -> Agent:
        """Mark an online agent busy and return it.

        Raises:
            AgentNotFound: Unknown identifier.
            AgentUnavailable: Agent is offline or already has a query in flight.
        """
        agent = self.get(agent_id)
        if agent.status != "online":
            raise AgentUnavailable(agent)
        agent.status = "busy"
        return agent

    def release(self, agent_id: str) -> None:
        """Return a busy agent to online. An agent taken offline mid-call stays offline."""
        agent = self.get(agent_id)
        if agent.status == "busy":
            agent.status = "online"
        else:
            logger.debug("Agent %s released while %s; status kept", agent.code, agent.status)

"""Single-agent query: one question against one agent's persona and model."""

import logging
import time
from collections.abc import AsyncIterator

from council.models import Agent, ChatMessage, QueryResult, StreamEvent
from council.providers.base import ModelGateway, ModelOptions
from council.registry import AgentRegistry

logger = logging.getLogger(__name__)

QUERY_OPTIONS = ModelOptions(temperature=0.7, top_p=0.9, num_predict=512)
STREAM_OPTIONS = ModelOptions(temperature=0.7, num_predict=2048)


def build_messages(agent: Agent, question: str, context: str | None = None) -> list[ChatMessage]:
    """Persona system prompt, optional context turn, then the question."""
    messages = [ChatMessage(role="system", content=agent.system_prompt)]
    if context:
        messages.append(ChatMessage(role="user", content=f"Context: {context}"))
    messages.append(ChatMessage(role="user", content=question))
    return messages


class AgentRunner:
    """Dispatches questions to individual agents, holding them busy while in flight."""

    def __init__(self, registry: AgentRegistry, gateway: ModelGateway) -> None:
        self._registry = registry
        self._gateway = gateway

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    async def query(self, agent_id: str, question: str, context: str | None = None) -> QueryResult:
        """Ask one agent and wait for the full answer.

        Raises:
            AgentNotFound: Unknown agent id.
            AgentUnavailable: Agent offline or already busy.
            GatewayError: The model call failed; the agent is released regardless.
        """
        agent = self._registry.acquire(agent_id)
        try:
            start = time.monotonic()
            text = await self._gateway.complete(
                agent.model, build_messages(agent, question, context), QUERY_OPTIONS
            )
            duration_ms = (time.monotonic() - start) * 1000
        finally:
            self._registry.release(agent_id)

        logger.debug("Agent %s answered in %.0fms", agent.code, duration_ms)
        return QueryResult(response=text, agent=agent, duration_ms=duration_ms)

    async def stream(
        self, agent_id: str, question: str, context: str | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Ask one agent and yield token events, then a ``complete`` event with the full text."""
        agent = self._registry.acquire(agent_id)
        try:
            parts: list[str] = []
            async for token in self._gateway.stream(
                agent.model, build_messages(agent, question, context), STREAM_OPTIONS
            ):
                parts.append(token)
                yield StreamEvent(kind="token", content=token, agent=agent)
            yield StreamEvent(kind="complete", content="".join(parts), agent=agent)
        finally:
            self._registry.release(agent_id)

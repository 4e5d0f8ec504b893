"""Shared pytest fixtures and test doubles."""

import asyncio
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from config.config_loader import AgentConfig, DeliberationConfig
from council.models import Agent, ChatMessage
from council.monitor import AvailabilityMonitor
from council.orchestrator import DeliberationOrchestrator
from council.providers.base import BackendUnavailable, GatewayError, ModelGateway, ModelOptions
from council.query import AgentRunner
from council.registry import AgentRegistry


class FakeGateway(ModelGateway):
    """In-memory gateway. Records every transmitted conversation after safety injection.

    Replies are looked up by model name; ``reply_fn(model, messages)`` overrides
    that when given. Models in ``fail_models`` raise ``GatewayError``; ``delays``
    holds per-model sleeps in seconds.
    """

    def __init__(
        self,
        models: list[str] | None = None,
        replies: dict[str, str] | None = None,
        default_reply: str = "Mock analysis.",
        reply_fn: Callable[[str, list[ChatMessage]], str] | None = None,
        fail_models: set[str] | None = None,
        delays: dict[str, float] | None = None,
        available: bool = True,
        timeout_sec: float = 5.0,
    ) -> None:
        super().__init__(timeout_sec)
        self.models = models or []
        self.replies = replies or {}
        self.default_reply = default_reply
        self.reply_fn = reply_fn
        self.fail_models = fail_models or set()
        self.delays = delays or {}
        self.available = available
        self.chat_calls: list[tuple[str, list[ChatMessage]]] = []
        self.stream_calls: list[tuple[str, list[ChatMessage]]] = []
        self.generate_calls: list[tuple[str, str, str, ModelOptions]] = []
        self.closed = False

    def _reply(self, model: str, messages: list[ChatMessage]) -> str:
        if model in self.fail_models:
            raise GatewayError(model, "simulated failure")
        if self.reply_fn is not None:
            return self.reply_fn(model, messages)
        return self.replies.get(model, self.default_reply)

    async def list_models(self) -> list[str]:
        if not self.available:
            raise BackendUnavailable(None, "connection refused")
        return list(self.models)

    async def aclose(self) -> None:
        self.closed = True

    async def _chat(self, model: str, messages: list[ChatMessage], options: ModelOptions) -> str:
        self.chat_calls.append((model, messages))
        await asyncio.sleep(self.delays.get(model, 0))
        return self._reply(model, messages)

    async def _chat_stream(
        self, model: str, messages: list[ChatMessage], options: ModelOptions
    ) -> AsyncIterator[str]:
        self.stream_calls.append((model, messages))
        await asyncio.sleep(self.delays.get(model, 0))
        text = self._reply(model, messages)
        for word in text.split(" "):
            yield word + " "

    async def _generate(self, model: str, prompt: str, system: str, options: ModelOptions) -> str:
        self.generate_calls.append((model, prompt, system, options))
        await asyncio.sleep(self.delays.get(model, 0))
        return self._reply(model, [ChatMessage(role="user", content=prompt)])


def make_agent(code: str, name: str | None = None, status: str = "online") -> Agent:
    """Agent whose model is unique to it, so FakeGateway can address it by model."""
    return Agent(
        id=f"agent-{code}",
        code=code,
        name=name or f"{code.upper()} Agent",
        role=f"{code} role",
        model=f"m-{code}:1b",
        system_prompt=f"You are the {code} expert.",
        status=status,
    )


SAMPLE_CODES = ["chief", "cfo", "ciso", "coo", "cro"]


@pytest.fixture
def sample_agents() -> list[Agent]:
    return [make_agent(code) for code in SAMPLE_CODES]


@pytest.fixture
def registry(sample_agents: list[Agent]) -> AgentRegistry:
    return AgentRegistry(sample_agents)


@pytest.fixture
def gateway(sample_agents: list[Agent]) -> FakeGateway:
    return FakeGateway(
        models=[a.model for a in sample_agents],
        replies={a.model: f"{a.name} says proceed carefully." for a in sample_agents},
    )


@pytest.fixture
def runner(registry: AgentRegistry, gateway: FakeGateway) -> AgentRunner:
    return AgentRunner(registry, gateway)


@pytest.fixture
def orchestrator(runner: AgentRunner) -> DeliberationOrchestrator:
    return DeliberationOrchestrator(runner, DeliberationConfig())


@pytest.fixture
async def monitor(gateway: FakeGateway, registry: AgentRegistry) -> AvailabilityMonitor:
    mon = AvailabilityMonitor(gateway, registry)
    await mon.probe()
    return mon


@pytest.fixture
def sample_agent_configs() -> list[AgentConfig]:
    return [
        AgentConfig(
            id=f"agent-{code}",
            code=code,
            name=f"{code.upper()} Agent",
            role=f"{code} role",
            model=f"m-{code}:1b",
            system_prompt=f"You are the {code} expert.",
        )
        for code in SAMPLE_CODES
    ]


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
gateway:
  base_url: http://ollama.test:11434
  timeout_sec: 30
deliberation:
  chief_code: chief
  max_cross_examinations: 2
defaults:
  output_dir: ./out
agents:
  - id: agent-chief
    code: chief
    name: Chief Agent
    role: Synthesizer
    model: qwen2.5:14b
    system_prompt: You chair the council.
  - id: agent-cfo
    code: cfo
    name: CFO Agent
    role: Finance
    model: llama3.1:8b
    system_prompt: You are the CFO.
""",
        encoding="utf-8",
    )
    return path

"""Tests for council/registry.py and council/query.py."""

import asyncio

import pytest

from config.config_loader import AgentConfig
from council.providers.base import GatewayError
from council.query import AgentRunner, build_messages
from council.registry import AgentNotFound, AgentRegistry, AgentUnavailable
from council.safety import SAFETY_PREAMBLE
from tests.conftest import FakeGateway, make_agent


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError, match="Duplicate"):
        AgentRegistry([make_agent("cfo"), make_agent("cfo")])


def test_duplicate_codes_rejected():
    other = make_agent("cfo")
    other.id = "agent-finance"
    with pytest.raises(ValueError, match="Duplicate agent code: cfo"):
        AgentRegistry([make_agent("cfo"), other])


def test_from_config_starts_offline(sample_agent_configs: list[AgentConfig]):
    registry = AgentRegistry.from_config(sample_agent_configs)
    assert len(registry) == 5
    assert all(a.status == "offline" for a in registry.all())
    assert "agent-cfo" in registry


def test_get_unknown_raises_not_found(registry: AgentRegistry):
    with pytest.raises(AgentNotFound):
        registry.get("agent-nobody")
    assert registry.find("agent-nobody") is None


def test_select_preserves_registry_order_and_filters_offline(registry: AgentRegistry):
    registry.set_status("agent-ciso", "offline")
    selected = registry.select(["agent-cro", "agent-ciso", "agent-cfo"])
    assert [a.code for a in selected] == ["cfo", "cro"]


def test_select_empty_means_all_online(registry: AgentRegistry):
    registry.set_status("agent-coo", "offline")
    assert [a.code for a in registry.select(None)] == ["chief", "cfo", "ciso", "cro"]
    assert registry.select([]) == registry.online()


def test_acquire_release_cycle(registry: AgentRegistry):
    agent = registry.acquire("agent-cfo")
    assert agent.status == "busy"
    with pytest.raises(AgentUnavailable):
        registry.acquire("agent-cfo")
    registry.release("agent-cfo")
    assert agent.status == "online"


def test_release_keeps_offline_agent_offline(registry: AgentRegistry):
    registry.acquire("agent-cfo")
    registry.set_status("agent-cfo", "offline")
    registry.release("agent-cfo")
    assert registry.get("agent-cfo").status == "offline"


def test_build_messages_with_context():
    agent = make_agent("cfo")
    messages = build_messages(agent, "Buy?", context="Q3 numbers are weak")
    assert [m.role for m in messages] == ["system", "user", "user"]
    assert messages[0].content == agent.system_prompt
    assert messages[1].content == "Context: Q3 numbers are weak"
    assert messages[2].content == "Buy?"


def test_build_messages_without_context():
    messages = build_messages(make_agent("cfo"), "Buy?")
    assert [m.role for m in messages] == ["system", "user"]


async def test_query_returns_response_and_duration(runner: AgentRunner, gateway: FakeGateway):
    result = await runner.query("agent-cfo", "Should we buy?")
    assert result.response == "CFO Agent says proceed carefully."
    assert result.agent.code == "cfo"
    assert result.duration_ms >= 0
    model, sent = gateway.chat_calls[0]
    assert model == "m-cfo:1b"
    assert sent[0].content.startswith(SAFETY_PREAMBLE)
    assert sent[0].content.endswith("You are the cfo expert.")
    assert runner.registry.get("agent-cfo").status == "online"


async def test_query_unknown_agent_raises_not_found(runner: AgentRunner):
    with pytest.raises(AgentNotFound):
        await runner.query("agent-ghost", "Q")


async def test_query_offline_agent_raises_unavailable(runner: AgentRunner, gateway: FakeGateway):
    runner.registry.set_status("agent-cfo", "offline")
    with pytest.raises(AgentUnavailable):
        await runner.query("agent-cfo", "Q")
    assert gateway.chat_calls == []


async def test_query_failure_releases_agent(registry: AgentRegistry):
    gw = FakeGateway(fail_models={"m-cfo:1b"})
    runner = AgentRunner(registry, gw)
    with pytest.raises(GatewayError):
        await runner.query("agent-cfo", "Q")
    assert registry.get("agent-cfo").status == "online"


async def test_agent_is_busy_while_in_flight(registry: AgentRegistry):
    gw = FakeGateway(delays={"m-cfo:1b": 0.05})
    runner = AgentRunner(registry, gw)
    task = asyncio.create_task(runner.query("agent-cfo", "Q"))
    await asyncio.sleep(0.01)
    assert registry.get("agent-cfo").status == "busy"
    with pytest.raises(AgentUnavailable):
        await runner.query("agent-cfo", "Another")
    await task
    assert registry.get("agent-cfo").status == "online"


async def test_stream_yields_tokens_then_complete(runner: AgentRunner):
    events = [e async for e in runner.stream("agent-ciso", "Risks?")]
    assert events[-1].kind == "complete"
    assert all(e.kind == "token" for e in events[:-1])
    assert events[-1].content == "".join(e.content for e in events[:-1])
    assert "CISO Agent says" in events[-1].content
    assert runner.registry.get("agent-ciso").status == "online"


async def test_stream_failure_releases_agent(registry: AgentRegistry):
    runner = AgentRunner(registry, FakeGateway(fail_models={"m-ciso:1b"}))
    with pytest.raises(GatewayError):
        async for _ in runner.stream("agent-ciso", "Q"):
            pass
    assert registry.get("agent-ciso").status == "online"

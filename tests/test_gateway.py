"""Tests for council/safety.py, council/providers/base.py and council/providers/ollama.py."""

import asyncio
import json

import httpx
import pytest

from council.models import ChatMessage
from council.providers.base import (
    BackendUnavailable,
    GatewayError,
    GatewayTimeout,
    HttpError,
    MalformedResponse,
    ModelOptions,
)
from council.providers.ollama import OllamaGateway
from council.safety import ROLE_SEPARATOR, SAFETY_PREAMBLE, inject_safety_preamble, secure_system_prompt
from tests.conftest import FakeGateway


def _gateway(handler, timeout_sec: float = 5.0) -> OllamaGateway:
    return OllamaGateway("http://ollama.test", timeout_sec=timeout_sec, transport=httpx.MockTransport(handler))


# --- safety injection ---


def test_inject_prepends_preamble_to_existing_system_message():
    messages = [ChatMessage("system", "You are the CFO."), ChatMessage("user", "Go?")]
    secured = inject_safety_preamble(messages)
    assert secured[0].role == "system"
    assert secured[0].content == f"{SAFETY_PREAMBLE}{ROLE_SEPARATOR}You are the CFO."
    assert secured[1].content == "Go?"
    assert len(secured) == 2


def test_inject_inserts_system_message_when_missing():
    secured = inject_safety_preamble([ChatMessage("user", "Hi")])
    assert [m.role for m in secured] == ["system", "user"]
    assert secured[0].content == SAFETY_PREAMBLE


def test_inject_does_not_mutate_input():
    messages = [ChatMessage("system", "Persona")]
    inject_safety_preamble(messages)
    assert messages[0].content == "Persona"


def test_inject_only_touches_first_system_message():
    messages = [ChatMessage("system", "A"), ChatMessage("system", "B")]
    secured = inject_safety_preamble(messages)
    assert secured[0].content.startswith(SAFETY_PREAMBLE)
    assert secured[1].content == "B"


def test_secure_system_prompt():
    assert secure_system_prompt(None) == SAFETY_PREAMBLE
    assert secure_system_prompt("Be brief.").startswith(SAFETY_PREAMBLE)
    assert secure_system_prompt("Be brief.").endswith("\n---\nBe brief.")


async def test_every_transmitted_conversation_starts_with_preamble():
    gw = FakeGateway(models=["m:1b"])
    await gw.complete("m:1b", [ChatMessage("system", "Persona"), ChatMessage("user", "Q")])
    await gw.complete("m:1b", [ChatMessage("user", "Q")])
    async for _ in gw.stream("m:1b", [ChatMessage("user", "Q")]):
        pass
    for _model, sent in gw.chat_calls + gw.stream_calls:
        assert sent[0].role == "system"
        assert sent[0].content.startswith(SAFETY_PREAMBLE)
    await gw.generate("m:1b", "Hello")
    assert gw.generate_calls[0][2] == SAFETY_PREAMBLE


async def test_complete_maps_timeout():
    gw = FakeGateway(models=["slow:1b"], delays={"slow:1b": 1.0}, timeout_sec=0.01)
    with pytest.raises(GatewayTimeout) as excinfo:
        await gw.complete("slow:1b", [ChatMessage("user", "Q")])
    assert isinstance(excinfo.value, TimeoutError)
    assert "slow:1b" in str(excinfo.value)


def test_model_options_payload_drops_unset_fields():
    assert ModelOptions(temperature=0.3).to_payload() == {"temperature": 0.3}
    assert ModelOptions().to_payload() == {}


# --- Ollama over httpx ---


async def test_list_models():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "qwen2.5:14b"}, {"name": "mistral:7b"}]})

    gw = _gateway(handler)
    assert await gw.list_models() == ["qwen2.5:14b", "mistral:7b"]
    await gw.aclose()


async def test_chat_sends_secured_messages_and_options():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "Proceed."}})

    gw = _gateway(handler)
    text = await gw.complete(
        "llama3.1:8b",
        [ChatMessage("system", "You are the COO."), ChatMessage("user", "Expand?")],
        ModelOptions(temperature=0.7, num_predict=512),
    )
    assert text == "Proceed."
    assert seen["model"] == "llama3.1:8b"
    assert seen["stream"] is False
    assert seen["options"] == {"temperature": 0.7, "num_predict": 512}
    assert seen["messages"][0]["content"].startswith(SAFETY_PREAMBLE)
    assert seen["messages"][0]["content"].endswith("You are the COO.")


async def test_generate_sends_secured_system():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"response": "ok", "done": True})

    gw = _gateway(handler)
    assert await gw.generate("llama3:8b", "Hello", options=ModelOptions(num_predict=1)) == "ok"
    assert seen["prompt"] == "Hello"
    assert seen["stream"] is False
    assert seen["system"] == SAFETY_PREAMBLE
    assert seen["options"] == {"num_predict": 1}


async def test_http_status_maps_to_http_error():
    gw = _gateway(lambda request: httpx.Response(404, json={"error": "model not found"}))
    with pytest.raises(HttpError) as excinfo:
        await gw.complete("missing:1b", [ChatMessage("user", "Q")])
    assert excinfo.value.status_code == 404
    assert excinfo.value.model == "missing:1b"


async def test_connect_error_maps_to_backend_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gw = _gateway(handler)
    with pytest.raises(BackendUnavailable):
        await gw.list_models()


async def test_read_timeout_maps_to_gateway_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    gw = _gateway(handler)
    with pytest.raises(GatewayTimeout):
        await gw.complete("m:1b", [ChatMessage("user", "Q")])


async def test_non_json_body_maps_to_malformed_response():
    gw = _gateway(lambda request: httpx.Response(200, text="<html>proxy error</html>"))
    with pytest.raises(MalformedResponse):
        await gw.complete("m:1b", [ChatMessage("user", "Q")])


async def test_chat_without_message_content_is_malformed():
    gw = _gateway(lambda request: httpx.Response(200, json={"done": True}))
    with pytest.raises(MalformedResponse):
        await gw.complete("m:1b", [ChatMessage("user", "Q")])


async def test_stream_yields_tokens_and_skips_malformed_lines():
    lines = [
        json.dumps({"message": {"content": "Hello"}, "done": False}),
        "this is not json",
        "",
        json.dumps(["not", "an", "object"]),
        json.dumps({"message": {"content": " world"}, "done": False}),
        json.dumps({"message": {"content": ""}, "done": True}),
        json.dumps({"message": {"content": "after done"}, "done": False}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content="\n".join(lines).encode())

    gw = _gateway(handler)
    tokens = [t async for t in gw.stream("m:1b", [ChatMessage("user", "Q")])]
    assert tokens == ["Hello", " world"]


async def test_stream_error_chunk_raises():
    body = json.dumps({"error": "model crashed"}).encode()
    gw = _gateway(lambda request: httpx.Response(200, content=body))
    with pytest.raises(GatewayError, match="model crashed"):
        async for _ in gw.stream("m:1b", [ChatMessage("user", "Q")]):
            pass


async def test_stream_http_error_raises():
    gw = _gateway(lambda request: httpx.Response(500, content=b"boom"))
    with pytest.raises(HttpError):
        async for _ in gw.stream("m:1b", [ChatMessage("user", "Q")]):
            pass


async def test_stream_connect_error_maps_to_backend_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    gw = _gateway(handler)
    with pytest.raises(BackendUnavailable):
        async for _ in gw.stream("m:1b", [ChatMessage("user", "Q")]):
            pass


async def test_other_http_errors_map_to_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    gw = _gateway(handler)
    with pytest.raises(GatewayError, match="redirect loop"):
        await gw.list_models()


async def test_stream_decoding_error_maps_to_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("bad gzip", request=request)

    gw = _gateway(handler)
    with pytest.raises(GatewayError, match="bad gzip"):
        async for _ in gw.stream("m:1b", [ChatMessage("user", "Q")]):
            pass


async def test_base_url_trailing_slash_is_stripped():
    gw = OllamaGateway("http://ollama.test/", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    assert gw.base_url == "http://ollama.test"
    await gw.aclose()


async def test_timeout_is_per_call():
    gw = FakeGateway(models=["a:1b", "b:1b"], delays={"a:1b": 1.0}, timeout_sec=0.05)
    results = await asyncio.gather(
        gw.complete("a:1b", [ChatMessage("user", "Q")]),
        gw.complete("b:1b", [ChatMessage("user", "Q")]),
        return_exceptions=True,
    )
    assert isinstance(results[0], GatewayTimeout)
    assert results[1] == "Mock analysis."

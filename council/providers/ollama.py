"""Ollama gateway over httpx: /api/tags, /api/generate and /api/chat."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from council.models import ChatMessage
from council.providers.base import (
    DEFAULT_TIMEOUT_SEC,
    BackendUnavailable,
    GatewayError,
    GatewayTimeout,
    HttpError,
    MalformedResponse,
    ModelGateway,
    ModelOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
_CONNECT_TIMEOUT_SEC = 10.0


class OllamaGateway(ModelGateway):
    """Local Ollama runtime reached over HTTP."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout_sec)
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_sec, connect=_CONNECT_TIMEOUT_SEC),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def list_models(self) -> list[str]:
        data = await self._request("GET", "/api/tags", model=None)
        models = data.get("models") or []
        return [m["name"] for m in models if isinstance(m, dict) and "name" in m]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _chat(self, model: str, messages: list[ChatMessage], options: ModelOptions) -> str:
        payload = self._chat_payload(model, messages, options, stream=False)
        data = await self._request("POST", "/api/chat", model=model, payload=payload)
        try:
            return data["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise MalformedResponse(model, "Chat response has no message content") from exc

    async def _chat_stream(
        self, model: str, messages: list[ChatMessage], options: ModelOptions
    ) -> AsyncIterator[str]:
        payload = self._chat_payload(model, messages, options, stream=True)
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise HttpError(model, response.status_code, response.reason_phrase)
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed stream line from %s: %.80s", model, line)
                        continue
                    if not isinstance(chunk, dict):
                        logger.debug("Skipping non-object stream line from %s", model)
                        continue
                    if chunk.get("error"):
                        raise GatewayError(model, f"Stream error: {chunk['error']}")
                    content = (chunk.get("message") or {}).get("content")
                    if content:
                        yield content
                    if chunk.get("done"):
                        break
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(model, f"Stream stalled for more than {self.timeout_sec:g}s") from exc
        except httpx.TransportError as exc:
            raise BackendUnavailable(model, f"Cannot reach {self._base_url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(model, f"HTTP error talking to {self._base_url}: {exc}") from exc

    async def _generate(self, model: str, prompt: str, system: str, options: ModelOptions) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "system": system,
            "stream": False,
        }
        opts = options.to_payload()
        if opts:
            payload["options"] = opts
        data = await self._request("POST", "/api/generate", model=model, payload=payload)
        try:
            return data["response"]
        except KeyError as exc:
            raise MalformedResponse(model, "Generate response has no 'response' field") from exc

    @staticmethod
    def _chat_payload(
        model: str, messages: list[ChatMessage], options: ModelOptions, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
        }
        opts = options.to_payload()
        if opts:
            payload["options"] = opts
        return payload

    async def _request(
        self,
        method: str,
        path: str,
        model: str | None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(model, f"{method} {path} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise HttpError(model, exc.response.status_code, exc.response.reason_phrase) from exc
        except httpx.TransportError as exc:
            raise BackendUnavailable(model, f"Cannot reach {self._base_url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(model, f"HTTP error talking to {self._base_url}: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse(model, f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise MalformedResponse(model, f"{method} {path} returned {type(data).__name__}, expected object")
        return data

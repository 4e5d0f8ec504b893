"""Abstract model gateway: safety injection and timeouts around a chat transport."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass
from typing import Any

from council.models import ChatMessage
from council.safety import inject_safety_preamble, secure_system_prompt

DEFAULT_TIMEOUT_SEC = 120.0


class GatewayError(Exception):
    """Raised when a model gateway call fails."""

    def __init__(self, model: str | None, message: str) -> None:
        self.model = model
        prefix = f"[{model}] " if model else ""
        super().__init__(f"{prefix}{message}")


class BackendUnavailable(GatewayError):
    """The inference backend could not be reached."""


class HttpError(GatewayError):
    """The backend answered with a non-2xx status."""

    def __init__(self, model: str | None, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(model, f"HTTP {status_code}: {message}")


class GatewayTimeout(GatewayError, TimeoutError):
    """A single call exceeded its deadline."""


class MalformedResponse(GatewayError):
    """A response body (or extraction target) could not be parsed."""


@dataclass
class ModelOptions:
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    num_predict: int | None = None   # max output tokens
    stop: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class ModelGateway(ABC):
    """Client for a chat/completion backend.

    The public methods rewrite every outbound conversation with the safety
    preamble and enforce the per-call timeout; subclasses only implement the
    transport hooks, so no implementation can skip either step.
    """

    def __init__(self, timeout_sec: float = DEFAULT_TIMEOUT_SEC) -> None:
        self.timeout_sec = timeout_sec

    async def complete(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ModelOptions | None = None,
    ) -> str:
        """Run one non-streaming chat exchange and return the assistant text.

        Raises:
            GatewayTimeout: When the call exceeds ``timeout_sec``.
            GatewayError: On any transport, status or parse failure.
        """
        secured = inject_safety_preamble(messages)
        try:
            return await asyncio.wait_for(
                self._chat(model, secured, options or ModelOptions()),
                timeout=self.timeout_sec,
            )
        except GatewayTimeout:
            raise
        except TimeoutError as exc:
            raise GatewayTimeout(model, f"Request timed out after {self.timeout_sec:g}s") from exc

    async def stream(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ModelOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield assistant token fragments as they arrive."""
        secured = inject_safety_preamble(messages)
        async for token in self._chat_stream(model, secured, options or ModelOptions()):
            yield token

    async def generate(
        self,
        model: str,
        prompt: str,
        system: str | None = None,
        options: ModelOptions | None = None,
    ) -> str:
        """Single-shot completion (no conversation), used by use-cases and warming."""
        try:
            return await asyncio.wait_for(
                self._generate(model, prompt, secure_system_prompt(system), options or ModelOptions()),
                timeout=self.timeout_sec,
            )
        except GatewayTimeout:
            raise
        except TimeoutError as exc:
            raise GatewayTimeout(model, f"Request timed out after {self.timeout_sec:g}s") from exc

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the names of models currently available on the backend."""
        ...

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""
        return None

    @abstractmethod
    async def _chat(self, model: str, messages: list[ChatMessage], options: ModelOptions) -> str:
        ...

    @abstractmethod
    def _chat_stream(
        self, model: str, messages: list[ChatMessage], options: ModelOptions
    ) -> AsyncIterator[str]:
        ...

    @abstractmethod
    async def _generate(self, model: str, prompt: str, system: str, options: ModelOptions) -> str:
        ...

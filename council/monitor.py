"""Backend availability polling, agent status flips and model pre-warming."""

import asyncio
import logging
from collections.abc import Callable

from council.models import ProbeResult
from council.providers.base import GatewayError, ModelGateway, ModelOptions
from council.registry import AgentRegistry

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SEC = 30.0
_WARM_PROMPT = "Hello"


class AvailabilityMonitor:
    """Polls the gateway for loaded models and keeps agent statuses in sync.

    Usage:
        async with AvailabilityMonitor(gateway, registry) as monitor:
            if monitor.available:
                await monitor.pre_warm()
    """

    def __init__(
        self,
        gateway: ModelGateway,
        registry: AgentRegistry,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._interval_sec = interval_sec
        self._last = ProbeResult(available=False)
        self._logged_connection = False
        self._task: asyncio.Task | None = None

    @property
    def available(self) -> bool:
        return self._last.available

    def status(self) -> ProbeResult:
        """Last known probe result (no network call)."""
        return ProbeResult(available=self._last.available, models=list(self._last.models))

    async def probe(self) -> ProbeResult:
        """Ask the backend which models it has and flip each agent accordingly."""
        try:
            models = await self._gateway.list_models()
        except (GatewayError, OSError) as exc:
            logger.warning("Model backend not available: %s", exc)
            self._last = ProbeResult(available=False)
            self._registry.set_all("offline")
            return self.status()

        self._last = ProbeResult(available=True, models=models)
        for agent in self._registry.all():
            present = any(m.startswith(agent.model_family) for m in models)
            if not present:
                agent.status = "offline"
            elif agent.status != "busy":
                agent.status = "online"

        if not self._logged_connection:
            logger.info("Connected to model backend. Available models: %s", ", ".join(models) or "none")
            self._logged_connection = True
        return self.status()

    async def pre_warm(
        self,
        on_progress: Callable[[str, int, int], None] | None = None,
    ) -> list[str]:
        """Load every online agent's model into memory with a one-token completion.

        Returns the models that warmed successfully. Failures are logged and skipped.
        """
        if not self.available:
            logger.warning("Cannot pre-warm models: backend not available")
            return []

        models = list(dict.fromkeys(a.model for a in self._registry.online()))
        logger.info("Pre-warming %d models: %s", len(models), ", ".join(models))

        warmed: list[str] = []
        for index, model in enumerate(models, start=1):
            if on_progress:
                on_progress(model, index, len(models))
            try:
                await self._gateway.generate(model, _WARM_PROMPT, options=ModelOptions(num_predict=1))
            except Exception as exc:
                logger.warning("Failed to pre-warm %s: %s", model, exc)
                continue
            warmed.append(model)
            logger.info("Pre-warmed: %s", model)
        return warmed

    def start(self) -> asyncio.Task:
        """Begin polling on the running loop. The first probe runs immediately."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def __aenter__(self) -> "AvailabilityMonitor":
        await self.probe()
        self._task = asyncio.create_task(self._poll_forever(initial_delay=True))
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _poll_forever(self, initial_delay: bool = False) -> None:
        if initial_delay:
            await asyncio.sleep(self._interval_sec)
        while True:
            await self.probe()
            await asyncio.sleep(self._interval_sec)

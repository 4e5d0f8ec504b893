"""Council session: a recorded deliberation that never fails for lack of a backend."""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime

from council.models import CouncilSession, DeliberationSession
from council.monitor import AvailabilityMonitor
from council.orchestrator import (
    DeliberationCallbacks,
    DeliberationOrchestrator,
    NoAgentsOnline,
    ProgressCallback,
)
from council.store import RecordStore

logger = logging.getLogger(__name__)

COLLECTION = "council_sessions"
MODES = ("standard", "full", "quick")
DEGRADED_CONFIDENCE = 70
DEGRADED_SYNTHESIS = (
    "The council could not convene: no model backend or agents are available. "
    "Start the model backend and retry for an AI-assisted recommendation."
)


def _check_mode(mode: str) -> None:
    if mode not in MODES:
        raise ValueError(f"Unknown council mode {mode!r}; expected one of {', '.join(MODES)}")


class CouncilSessionRunner:
    """Runs a deliberation and records it as a ``CouncilSession``.

    Modes: ``standard`` is the basic two-phase session, ``full`` adds
    cross-examination, ``quick`` streams without cross-examination.
    """

    def __init__(
        self,
        orchestrator: DeliberationOrchestrator,
        monitor: AvailabilityMonitor,
        store: RecordStore | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._monitor = monitor
        self._store = store

    async def deliberate(
        self,
        query: str,
        mode: str = "standard",
        agent_ids: list[str] | None = None,
        locale: str | None = None,
        callbacks: DeliberationCallbacks | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DeliberationSession:
        """Run the orchestrator entry point for ``mode`` without recording.

        Raises:
            NoAgentsOnline: When no requested agent is online.
        """
        _check_mode(mode)
        if mode == "standard":
            return await self._orchestrator.deliberate(
                query, agent_ids, on_progress=on_progress, locale=locale
            )
        return await self._orchestrator.deliberate_with_streaming(
            query, agent_ids, callbacks=callbacks, locale=locale, quick_mode=(mode == "quick")
        )

    def record(
        self,
        query: str,
        mode: str,
        deliberation: DeliberationSession | None,
        agent_ids: list[str] | None = None,
        decision_id: str | None = None,
    ) -> CouncilSession:
        """Wrap a finished deliberation (or its absence) and store it."""
        _check_mode(mode)
        if deliberation is None:
            session = CouncilSession(
                id=f"council-{uuid.uuid4().hex[:12]}",
                query=query,
                mode=mode,
                agents=agent_ids or [],
                responses=[],
                synthesis=DEGRADED_SYNTHESIS,
                confidence=DEGRADED_CONFIDENCE,
                total_duration_ms=0.0,
                run_at=datetime.now(),
                decision_id=decision_id,
                degraded=True,
            )
        else:
            session = CouncilSession(
                id=f"council-{uuid.uuid4().hex[:12]}",
                query=query,
                mode=mode,
                agents=list(deliberation.agent_ids),
                responses=list(deliberation.responses),
                synthesis=deliberation.synthesis,
                confidence=deliberation.confidence,
                total_duration_ms=deliberation.total_duration_ms,
                run_at=datetime.now(),
                decision_id=decision_id,
                locale=deliberation.locale,
            )

        if self._store is not None:
            self._store.create(COLLECTION, session)
            logger.debug("Recorded council session %s", session.id)
        return session

    async def run(
        self,
        query: str,
        mode: str = "standard",
        agent_ids: Iterable[str] | None = None,
        decision_id: str | None = None,
        locale: str | None = None,
    ) -> CouncilSession:
        _check_mode(mode)
        ids = list(agent_ids) if agent_ids else None

        deliberation: DeliberationSession | None = None
        if self._monitor.available:
            try:
                deliberation = await self.deliberate(query, mode, ids, locale=locale)
            except NoAgentsOnline as exc:
                logger.warning("Council session degraded: %s", exc)
        else:
            logger.warning("Council session degraded: model backend unavailable")

        return self.record(query, mode, deliberation, agent_ids=ids, decision_id=decision_id)

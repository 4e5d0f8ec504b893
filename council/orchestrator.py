"""Deliberation orchestration: parallel analysis, cross-examination, chief synthesis.

Phase 1: INITIAL_ANALYSIS   -- every selected agent answers concurrently
Phase 2: CROSS_EXAMINATION  -- rule-paired challenge/rebuttal, streamed (optional)
Phase 3: SYNTHESIS          -- chief agent merges everything, streamed

Per-agent failures become placeholder text at the point they happen; only an
empty agent selection (or caller cancellation) aborts a session.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from config.config_loader import DeliberationConfig
from council.conflicts import detect_conflicts
from council.localization import language_instruction, localize
from council.models import Agent, AgentResponse, CrossExamination, DeliberationSession
from council.query import AgentRunner

logger = logging.getLogger(__name__)

PHASES = ("init", "initial_analysis", "cross_examination", "synthesis", "complete")

# Confidence points per response for each entry point.
BASIC_RESPONSE_WEIGHT = 5
STREAMING_RESPONSE_WEIGHT = 3


class NoAgentsOnline(RuntimeError):
    """No requested agent is online; there is nothing to deliberate."""


class DeliberationCancelled(RuntimeError):
    """The caller set the cancel event before the session completed."""


ProgressCallback = Callable[[str, str, str], None]


@dataclass
class DeliberationCallbacks:
    """Optional, best-effort progress hooks. Exceptions raised by hooks are logged and ignored."""

    on_phase_change: Callable[[str], None] | None = None
    on_agent_start: Callable[[Agent], None] | None = None
    on_token: Callable[[Agent, str], None] | None = None
    on_agent_complete: Callable[[Agent, str, float], None] | None = None
    on_challenge: Callable[[Agent, Agent, str], None] | None = None
    on_rebuttal: Callable[[Agent, str], None] | None = None
    on_synthesis_start: Callable[[], None] | None = None
    on_synthesis_token: Callable[[str], None] | None = None
    on_complete: Callable[[str, int], None] | None = None


def _emit(hook: Callable | None, *args: object) -> None:
    if hook is None:
        return
    try:
        hook(*args)
    except Exception as exc:
        logger.warning("Progress callback %s failed: %s", getattr(hook, "__name__", hook), exc)


class _PhaseTracker:
    """Forward-only phase state machine."""

    def __init__(self, on_change: Callable[[str], None] | None = None) -> None:
        self.phase = "init"
        self._on_change = on_change

    def advance(self, phase: str) -> None:
        if PHASES.index(phase) <= PHASES.index(self.phase):
            raise RuntimeError(f"Illegal phase transition {self.phase} -> {phase}")
        logger.debug("Deliberation phase: %s -> %s", self.phase, phase)
        self.phase = phase
        _emit(self._on_change, phase)


def _check_cancel(cancel: asyncio.Event | None, phase: str) -> None:
    if cancel is not None and cancel.is_set():
        raise DeliberationCancelled(f"Deliberation cancelled before {phase}")


def _placeholder(agent: Agent, what: str) -> str:
    return f"[{what} unavailable - {agent.name} encountered an error]"


def _concatenated_synthesis(responses: Iterable[AgentResponse]) -> str:
    return "\n\n".join(f"**{r.agent_name}**: {r.response}" for r in responses)


class DeliberationOrchestrator:
    """Coordinates one multi-agent session per call.

    Usage:
        orchestrator = DeliberationOrchestrator(AgentRunner(registry, gateway))
        session = await orchestrator.deliberate_with_streaming(
            "Should we acquire the fintech?", callbacks=DeliberationCallbacks(on_token=...),
        )
        print(session.synthesis, session.confidence)
    """

    def __init__(self, runner: AgentRunner, config: DeliberationConfig | None = None) -> None:
        self._runner = runner
        self._registry = runner.registry
        self._config = config or DeliberationConfig()

    def _select(self, agent_ids: Iterable[str] | None) -> list[Agent]:
        selected = self._registry.select(agent_ids)
        if not selected:
            raise NoAgentsOnline("No agents are online. Please ensure the model backend is running.")
        return selected

    def _chief(self) -> Agent | None:
        chief = self._registry.by_code(self._config.chief_code)
        if chief is not None and chief.status == "online":
            return chief
        return None

    async def deliberate(
        self,
        question: str,
        agent_ids: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
        locale: str | None = None,
    ) -> DeliberationSession:
        """Basic session: concurrent analysis, then a non-streamed chief synthesis.

        ``on_progress(phase, agent_id, message)`` is called at each step. A
        non-default ``locale`` prefixes the analysis and synthesis prompts.

        Raises:
            NoAgentsOnline: When no requested agent is online.
        """
        start = time.monotonic()
        locale = locale or self._config.default_locale
        instruction = language_instruction(locale)
        agents = self._select(agent_ids)
        tracker = _PhaseTracker()

        tracker.advance("initial_analysis")
        _emit(on_progress, "initial_analysis", "", "Starting individual analysis...")
        responses = await self._initial_analysis(
            agents,
            localize(question, instruction),
            on_start=lambda a: _emit(on_progress, "initial_analysis", a.id, f"{a.name} is analyzing..."),
            on_complete=lambda a, _text, _ms: _emit(
                on_progress, "initial_analysis", a.id, f"{a.name} completed analysis."
            ),
        )

        tracker.advance("synthesis")
        _emit(on_progress, "synthesis", "", "Synthesizing responses...")
        synthesis, synthesizer = await self._basic_synthesis(question, responses, instruction)

        tracker.advance("complete")
        session = DeliberationSession(
            question=question,
            agent_ids=tuple(a.id for a in agents),
            responses=tuple(responses),
            cross_examinations=(),
            synthesis=synthesis,
            synthesizer=synthesizer,
            total_duration_ms=(time.monotonic() - start) * 1000,
            response_weight=BASIC_RESPONSE_WEIGHT,
            locale=locale,
            mode="basic",
        )
        logger.info(
            "Deliberation complete: %d responses, confidence %d, %.1fs",
            len(responses), session.confidence, session.total_duration_ms / 1000,
        )
        return session

    async def deliberate_with_streaming(
        self,
        question: str,
        agent_ids: Iterable[str] | None = None,
        callbacks: DeliberationCallbacks | None = None,
        locale: str | None = None,
        quick_mode: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> DeliberationSession:
        """Full session with cross-examination and token-streamed challenge/rebuttal/synthesis.

        Args:
            question: The question put to the council.
            agent_ids: Restrict to these agents (online ones only); all online when empty.
            callbacks: Progress hooks.
            locale: Response language; non-default locales prefix every prompt.
            quick_mode: Skip cross-examination.
            cancel: Checked before each phase and each pairing.

        Raises:
            NoAgentsOnline: When no requested agent is online.
            DeliberationCancelled: When ``cancel`` is set mid-session.
        """
        cb = callbacks or DeliberationCallbacks()
        start = time.monotonic()
        locale = locale or self._config.default_locale
        instruction = language_instruction(locale)
        agents = self._select(agent_ids)
        tracker = _PhaseTracker(cb.on_phase_change)

        _check_cancel(cancel, "initial_analysis")
        tracker.advance("initial_analysis")
        phase_start = time.monotonic()
        responses = await self._initial_analysis(
            agents,
            localize(question, instruction),
            on_start=lambda a: _emit(cb.on_agent_start, a),
            on_complete=lambda a, text, ms: _emit(cb.on_agent_complete, a, text, ms),
        )
        logger.info(
            "Phase 1 completed in %.0fms (%d agents in parallel)",
            (time.monotonic() - phase_start) * 1000, len(agents),
        )

        cross_examinations: list[CrossExamination] = []
        if len(agents) > 1 and not quick_mode:
            _check_cancel(cancel, "cross_examination")
            tracker.advance("cross_examination")
            cross_examinations = await self._cross_examine(responses, instruction, cb, cancel)

        _check_cancel(cancel, "synthesis")
        tracker.advance("synthesis")
        _emit(cb.on_synthesis_start)
        synthesis, synthesizer = await self._streamed_synthesis(
            question, responses, cross_examinations, instruction, cb
        )

        tracker.advance("complete")
        session = DeliberationSession(
            question=question,
            agent_ids=tuple(a.id for a in agents),
            responses=tuple(responses),
            cross_examinations=tuple(cross_examinations),
            synthesis=synthesis,
            synthesizer=synthesizer,
            total_duration_ms=(time.monotonic() - start) * 1000,
            response_weight=STREAMING_RESPONSE_WEIGHT,
            locale=locale,
            mode="quick" if quick_mode else "streaming",
        )
        _emit(cb.on_complete, synthesis, session.confidence)
        logger.info(
            "Deliberation complete: %d responses, %d cross-examinations, confidence %d, %.1fs",
            len(responses), len(cross_examinations), session.confidence, session.total_duration_ms / 1000,
        )
        return session

    # --- Phase 1 ---

    async def _initial_analysis(
        self,
        agents: list[Agent],
        prompt: str,
        on_start: Callable[[Agent], None],
        on_complete: Callable[[Agent, str, float], None],
    ) -> list[AgentResponse]:
        """Query all agents concurrently; results keep ``agents`` order."""
        return list(await asyncio.gather(*(self._analyze(a, prompt, on_start, on_complete) for a in agents)))

    async def _analyze(
        self,
        agent: Agent,
        prompt: str,
        on_start: Callable[[Agent], None],
        on_complete: Callable[[Agent, str, float], None],
    ) -> AgentResponse:
        """Never raises: a failed query becomes a placeholder response."""
        on_start(agent)
        start = time.monotonic()
        failed = False
        try:
            result = await self._runner.query(agent.id, prompt)
            text = result.response
        except Exception as exc:
            logger.warning("Agent %s failed in initial analysis: %s", agent.code, exc)
            text = _placeholder(agent, "Analysis")
            failed = True
        duration_ms = (time.monotonic() - start) * 1000
        on_complete(agent, text, duration_ms)
        return AgentResponse(
            agent_id=agent.id,
            agent_code=agent.code,
            agent_name=agent.name,
            role=agent.role,
            response=text,
            duration_ms=duration_ms,
            failed=failed,
        )

    # --- Phase 2 ---

    async def _cross_examine(
        self,
        responses: list[AgentResponse],
        instruction: str,
        cb: DeliberationCallbacks,
        cancel: asyncio.Event | None,
    ) -> list[CrossExamination]:
        # Agents whose analysis failed have nothing to challenge or defend.
        pairings = detect_conflicts(
            [r.agent_code for r in responses if not r.failed],
            [a.code for a in self._registry.online()],
            limit=self._config.max_cross_examinations,
        )
        logger.info("Cross-examination: %d pairing(s) selected", len(pairings))
        by_code = {r.agent_code: r for r in responses}
        excerpt_chars = self._config.excerpt_chars

        results: list[CrossExamination] = []
        for pairing in pairings:
            _check_cancel(cancel, "next cross-examination")
            challenger = self._registry.by_code(pairing.challenger_code)
            target = self._registry.by_code(pairing.target_code)
            if challenger is None or target is None:
                continue

            stated = by_code[target.code].response
            excerpt = stated[:excerpt_chars] + ("..." if len(stated) > excerpt_chars else "")
            challenge_prompt = localize(
                f'The {target.name} stated:\n\n"{excerpt}"\n\n'
                f"As the {challenger.name}, raise a constructive challenge or clarifying "
                "question about this analysis.",
                instruction,
            )
            _emit(cb.on_agent_start, challenger)
            challenge = await self._stream_text(
                challenger, challenge_prompt, lambda t, a=challenger: _emit(cb.on_token, a, t)
            )
            if challenge is None:
                challenge = _placeholder(challenger, "Challenge")
            _emit(cb.on_challenge, challenger, target, challenge)

            rebuttal_prompt = localize(
                f'The {challenger.name} challenged your analysis:\n\n"{challenge}"\n\n'
                "Provide a thoughtful response. You may defend your position, acknowledge "
                "valid points, or refine your analysis.",
                instruction,
            )
            _emit(cb.on_agent_start, target)
            rebuttal = await self._stream_text(
                target, rebuttal_prompt, lambda t, a=target: _emit(cb.on_token, a, t)
            )
            if rebuttal is None:
                rebuttal = _placeholder(target, "Rebuttal")
            _emit(cb.on_rebuttal, target, rebuttal)

            results.append(
                CrossExamination(
                    challenger_id=challenger.id,
                    challenger_name=challenger.name,
                    target_id=target.id,
                    target_name=target.name,
                    reason=pairing.reason,
                    challenge=challenge,
                    rebuttal=rebuttal,
                )
            )
        return results

    async def _stream_text(
        self, agent: Agent, prompt: str, on_token: Callable[[str], None]
    ) -> str | None:
        """Stream one answer, forwarding tokens. Returns None when the call fails."""
        parts: list[str] = []
        try:
            async for event in self._runner.stream(agent.id, prompt):
                if event.kind == "token":
                    parts.append(event.content)
                    on_token(event.content)
        except Exception as exc:
            logger.warning("Agent %s failed while streaming: %s", agent.code, exc)
            return None
        return "".join(parts)

    # --- Phase 3 ---

    async def _basic_synthesis(
        self, question: str, responses: list[AgentResponse], instruction: str
    ) -> tuple[str, str | None]:
        chief = self._chief()
        if chief is None:
            return _concatenated_synthesis(responses), None

        analyses = "\n\n---\n\n".join(f"{r.agent_name} ({r.role}):\n{r.response}" for r in responses)
        prompt = localize(
            "Based on the following domain expert analyses, provide a comprehensive synthesis "
            f"and actionable recommendations:\n\nOriginal Question: {question}\n\n"
            f"Expert Analyses:\n{analyses}",
            instruction,
        )
        try:
            result = await self._runner.query(chief.id, prompt)
        except Exception as exc:
            logger.warning("Chief synthesis by %s failed, concatenating instead: %s", chief.code, exc)
            return _concatenated_synthesis(responses), None
        return result.response, chief.name

    async def _streamed_synthesis(
        self,
        question: str,
        responses: list[AgentResponse],
        cross_examinations: list[CrossExamination],
        instruction: str,
        cb: DeliberationCallbacks,
    ) -> tuple[str, str | None]:
        chief = self._chief()
        if chief is None:
            logger.info("No chief agent online; synthesis is a concatenation of responses")
            return _concatenated_synthesis(responses), None

        sections = [f"## {r.agent_name}\n{r.response}" for r in responses]
        sections += [
            f"## Cross-Examination: {ce.challenger_name} -> {ce.target_name}\n"
            f"Challenge: {ce.challenge}\nRebuttal: {ce.rebuttal}"
            for ce in cross_examinations
        ]
        prompt = localize(
            "Synthesize all analyses and cross-examinations into a comprehensive recommendation:"
            f"\n\nOriginal Question: {question}\n\n" + "\n\n---\n\n".join(sections),
            instruction,
        )
        synthesis = await self._stream_text(chief, prompt, lambda t: _emit(cb.on_synthesis_token, t))
        if synthesis is None:
            logger.warning("Chief synthesis by %s failed, concatenating instead", chief.code)
            return _concatenated_synthesis(responses), None
        return synthesis, chief.name

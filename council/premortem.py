"""Pre-mortem analysis: assume the decision failed, enumerate how."""

import logging
import uuid
from datetime import datetime
from typing import Any

from council.extraction import extract_json_block
from council.models import FailureMode, Mitigation, PreMortemResult, Recommendation
from council.monitor import AvailabilityMonitor
from council.providers.base import GatewayError, MalformedResponse, ModelGateway, ModelOptions
from council.store import RecordStore

logger = logging.getLogger(__name__)

COLLECTION = "premortems"
_ACTIONS = ("proceed", "proceed_with_caution", "delay", "abort")

_PROMPT = """You are a Pre-Mortem Analysis expert. Analyze the following decision for potential failure modes.

DECISION: {decision}
{extras}
Return your analysis as a single JSON object inside a ```json fenced block, with this shape:
{{
  "failure_modes": [
    {{
      "rank": 1,
      "title": "Failure mode title",
      "probability": 0.0-1.0,
      "cost_impact": dollar amount,
      "category": "Financial|Operational|Technical|Market|Regulatory",
      "mitigations": [{{"action": "mitigation step", "effectiveness": 0.0-1.0}}]
    }}
  ],
  "recommendation": {{
    "action": "proceed|proceed_with_caution|delay|abort",
    "reasoning": "explanation",
    "conditions": ["condition 1", "condition 2"]
  }},
  "executive_summary": "2-3 sentence summary"
}}"""


def default_failure_modes(budget: float) -> list[FailureMode]:
    """Five generic failure modes with cost impact scaled to ``budget``."""
    return [
        FailureMode(1, "Resource constraints lead to timeline delays", 0.35, budget * 0.15, "Operational", [
            Mitigation("Build 20% buffer into timeline estimates", 0.7),
            Mitigation("Identify backup resources upfront", 0.5),
        ]),
        FailureMode(2, "Stakeholder misalignment causes scope creep", 0.4, budget * 0.25, "Operational", [
            Mitigation("Lock scope with signed-off requirements", 0.8),
            Mitigation("Establish change control process", 0.6),
        ]),
        FailureMode(3, "Market conditions change during execution", 0.25, budget * 0.4, "Market", [
            Mitigation("Build checkpoints for go/no-go decisions", 0.7),
            Mitigation("Develop contingency plans", 0.5),
        ]),
        FailureMode(4, "Technical implementation challenges", 0.3, budget * 0.2, "Technical", [
            Mitigation("Conduct proof-of-concept first", 0.8),
            Mitigation("Engage technical experts early", 0.7),
        ]),
        FailureMode(5, "Regulatory or compliance issues emerge", 0.15, budget * 0.5, "Regulatory", [
            Mitigation("Early legal and compliance review", 0.9),
            Mitigation("Monitor regulatory landscape", 0.6),
        ]),
    ]


def default_recommendation(failure_modes: list[FailureMode]) -> Recommendation:
    avg = sum(f.probability for f in failure_modes) / max(1, len(failure_modes))
    if avg > 0.5:
        return Recommendation(
            "delay",
            "High probability of multiple failure modes suggests further analysis or risk mitigation is needed.",
            ["Complete detailed risk mitigation plan", "Secure executive sponsorship"],
        )
    if avg > 0.3:
        return Recommendation(
            "proceed_with_caution",
            "Moderate risk profile with manageable failure modes. Recommend enhanced monitoring.",
            ["Implement key mitigations", "Establish weekly risk reviews"],
        )
    return Recommendation(
        "proceed",
        "Risk profile is acceptable with standard precautions.",
        ["Standard project governance", "Regular status reporting"],
    )


def _default_summary(decision: str, failure_modes: list[FailureMode], rec: Recommendation) -> str:
    tail = {
        "proceed": "Proceed with standard precautions.",
        "proceed_with_caution": "Proceed with enhanced monitoring.",
    }.get(rec.action, "Consider alternatives before proceeding.")
    return f'Analysis of "{decision[:50]}..." identified {len(failure_modes)} potential failure modes. {tail}'


def _parse_failure_modes(raw: Any, model: str) -> list[FailureMode]:
    if not isinstance(raw, list) or not raw:
        raise MalformedResponse(model, "failure_modes missing or empty")
    try:
        modes = [
            FailureMode(
                rank=int(item.get("rank", i)),
                title=str(item["title"]),
                probability=min(1.0, max(0.0, float(item["probability"]))),
                cost_impact=float(item.get("cost_impact", 0)),
                category=str(item.get("category", "Operational")),
                mitigations=[
                    Mitigation(
                        action=str(m["action"]),
                        effectiveness=float(m["effectiveness"]) if m.get("effectiveness") is not None else None,
                        cost=float(m["cost"]) if m.get("cost") is not None else None,
                    )
                    for m in item.get("mitigations", [])
                ],
            )
            for i, item in enumerate(raw, start=1)
        ]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedResponse(model, f"Invalid failure mode entry: {exc}") from exc
    return sorted(modes, key=lambda f: f.rank)


def _parse_recommendation(raw: Any) -> Recommendation | None:
    if not isinstance(raw, dict) or raw.get("action") not in _ACTIONS:
        return None
    conditions = raw.get("conditions") or []
    return Recommendation(
        action=raw["action"],
        reasoning=str(raw.get("reasoning", "")),
        conditions=[str(c) for c in conditions] if isinstance(conditions, list) else [],
    )


class PreMortemAnalyzer:
    """Runs a pre-mortem through a single-shot prompt, with deterministic defaults.

    Never raises for backend problems: an unavailable backend or an unparseable
    reply yields the default failure-mode set.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        monitor: AvailabilityMonitor,
        model: str = "llama3:8b",
        store: RecordStore | None = None,
        default_budget: float = 100_000,
        default_agents: list[str] | None = None,
    ) -> None:
        self._gateway = gateway
        self._monitor = monitor
        self._model = model
        self._store = store
        self._default_budget = default_budget
        self._default_agents = default_agents or ["cfo", "ciso", "pessimist"]

    def _build_prompt(
        self, decision: str, context: str | None, budget: float | None, timeframe: str | None
    ) -> str:
        extras = []
        if context:
            extras.append(f"CONTEXT: {context}")
        if budget:
            extras.append(f"BUDGET: ${budget:,.0f}")
        if timeframe:
            extras.append(f"TIMEFRAME: {timeframe}")
        return _PROMPT.format(decision=decision, extras="\n".join(extras) + ("\n" if extras else ""))

    async def run(
        self,
        decision: str,
        context: str | None = None,
        budget: float | None = None,
        timeframe: str | None = None,
        agents: list[str] | None = None,
    ) -> PreMortemResult:
        failure_modes: list[FailureMode] = []
        recommendation: Recommendation | None = None
        summary = ""

        if self._monitor.available:
            try:
                raw = await self._gateway.generate(
                    self._model,
                    self._build_prompt(decision, context, budget, timeframe),
                    options=ModelOptions(temperature=0.3),
                )
                data = extract_json_block(raw, self._model)
                failure_modes = _parse_failure_modes(data.get("failure_modes"), self._model)
                recommendation = _parse_recommendation(data.get("recommendation"))
                summary = str(data.get("executive_summary") or "")
            except GatewayError as exc:
                logger.warning("Pre-mortem model analysis failed, using defaults: %s", exc)
                failure_modes = []
        else:
            logger.info("Model backend unavailable; pre-mortem uses default failure modes")

        used_fallback = not failure_modes
        if used_fallback:
            failure_modes = default_failure_modes(budget or self._default_budget)
            recommendation = default_recommendation(failure_modes)
            summary = _default_summary(decision, failure_modes, recommendation)

        exposure = sum(f.probability * f.cost_impact for f in failure_modes)
        risk = min(100.0, sum(f.probability * 100 for f in failure_modes) / max(1, len(failure_modes)))

        result = PreMortemResult(
            id=f"premortem-{uuid.uuid4().hex[:12]}",
            decision=decision,
            context=context,
            analyzed_at=datetime.now(),
            failure_modes=failure_modes,
            total_risk_weighted_exposure=exposure,
            overall_risk_score=round(risk),
            recommendation=recommendation
            or Recommendation("proceed_with_caution", "Analysis incomplete", []),
            executive_summary=summary or "Analysis completed.",
            agents_used=agents or list(self._default_agents),
            used_fallback=used_fallback,
        )
        if self._store is not None:
            self._store.create(COLLECTION, result)
        return result

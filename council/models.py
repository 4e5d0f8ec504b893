"""Pure dataclasses for the council deliberation pipeline. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

AgentStatus = Literal["online", "offline", "busy"]
MessageRole = Literal["system", "user", "assistant"]


@dataclass
class Agent:
    id: str
    code: str              # short code used by conflict pairing ("cfo", "opposing-counsel")
    name: str
    role: str
    model: str             # backing checkpoint, e.g. "qwen2.5:14b"
    system_prompt: str
    status: AgentStatus = "offline"

    @property
    def model_family(self) -> str:
        return self.model.split(":")[0]


@dataclass
class ChatMessage:
    role: MessageRole
    content: str


@dataclass
class QueryResult:
    response: str
    agent: Agent
    duration_ms: float


@dataclass
class StreamEvent:
    kind: Literal["token", "complete"]
    content: str
    agent: Agent


@dataclass
class ProbeResult:
    available: bool
    models: list[str] = field(default_factory=list)


@dataclass
class AgentResponse:
    agent_id: str
    agent_code: str
    agent_name: str
    role: str
    response: str
    duration_ms: float
    failed: bool = False   # True when response is an error placeholder


@dataclass
class CrossExamination:
    challenger_id: str
    challenger_name: str
    target_id: str
    target_name: str
    reason: str
    challenge: str
    rebuttal: str


@dataclass(frozen=True)
class ConflictPairing:
    challenger_code: str
    target_code: str
    reason: str


@dataclass(frozen=True)
class DeliberationSession:
    question: str
    agent_ids: tuple[str, ...]
    responses: tuple[AgentResponse, ...]
    cross_examinations: tuple[CrossExamination, ...]
    synthesis: str
    synthesizer: str | None       # chief agent name, None for concatenated synthesis
    total_duration_ms: float
    response_weight: int          # confidence points per response (call-site constant)
    locale: str = "en"
    mode: str = "streaming"       # "basic", "streaming", "quick"

    @property
    def confidence(self) -> int:
        score = 70 + self.response_weight * len(self.responses) + 5 * len(self.cross_examinations)
        return min(95, score)


# --- Domain use-case results ---


@dataclass
class Mitigation:
    action: str
    effectiveness: float | None = None
    cost: float | None = None


@dataclass
class FailureMode:
    rank: int
    title: str
    probability: float
    cost_impact: float
    category: str
    mitigations: list[Mitigation] = field(default_factory=list)


@dataclass
class Recommendation:
    action: Literal["proceed", "proceed_with_caution", "delay", "abort"]
    reasoning: str
    conditions: list[str] = field(default_factory=list)


@dataclass
class PreMortemResult:
    id: str
    decision: str
    context: str | None
    analyzed_at: datetime
    failure_modes: list[FailureMode]
    total_risk_weighted_exposure: float
    overall_risk_score: int
    recommendation: Recommendation
    executive_summary: str
    agents_used: list[str]
    used_fallback: bool = False


@dataclass(frozen=True)
class BoardMember:
    id: str
    name: str
    role: str
    personality: str


@dataclass
class BoardQuestion:
    id: str
    question: str
    asked_by: BoardMember
    category: str
    difficulty: str
    suggested_answer: str


@dataclass
class GhostBoardResult:
    id: str
    proposal_title: str
    proposal_content: str
    board_type: str
    difficulty: str
    duration_min: int
    board_members: list[BoardMember]
    questions: list[BoardQuestion]
    preparedness_score: int
    key_gaps: list[str]
    strength_areas: list[str]
    overall_assessment: str
    run_at: datetime


@dataclass
class CouncilSession:
    id: str
    query: str
    mode: str
    agents: list[str]
    responses: list[AgentResponse]
    synthesis: str
    confidence: int
    total_duration_ms: float
    run_at: datetime
    decision_id: str | None = None
    degraded: bool = False
    locale: str | None = None

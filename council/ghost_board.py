"""Ghost board: rehearse a proposal against simulated board members."""

import hashlib
import logging
import re
import uuid
from datetime import datetime

from council.models import BoardMember, BoardQuestion, GhostBoardResult
from council.monitor import AvailabilityMonitor
from council.providers.base import GatewayError, ModelGateway, ModelOptions
from council.store import RecordStore

logger = logging.getLogger(__name__)

COLLECTION = "ghost_boards"
MINUTES_PER_QUESTION = 3

BOARD_MEMBERS: dict[str, list[BoardMember]] = {
    "standard": [
        BoardMember("chair", "Victoria Sterling", "Board Chair", "Strategic, long-term focused"),
        BoardMember("investor1", "James Chen", "Lead Investor", "Returns-focused, analytical"),
        BoardMember("independent1", "Sarah Mitchell", "Independent Director", "Governance-focused, objective"),
        BoardMember("industry", "Michael Torres", "Industry Expert", "Market-savvy, practical"),
    ],
    "vc_backed": [
        BoardMember("partner", "Alexandra Reeves", "Managing Partner", "Growth-obsessed, aggressive"),
        BoardMember("associate", "Kevin Park", "Partner", "Metrics-driven, analytical"),
        BoardMember("founder", "Rachel Green", "Operating Partner", "Execution-focused, hands-on"),
    ],
    "public_company": [
        BoardMember("chair", "Robert Harrison", "Board Chair", "Governance-focused, conservative"),
        BoardMember("audit", "Patricia Wells", "Audit Committee Chair", "Compliance-focused, detail-oriented"),
        BoardMember("comp", "William Chang", "Compensation Chair", "Shareholder-focused, balanced"),
        BoardMember("nom", "Elizabeth Foster", "Nominating Chair", "Culture-focused, strategic"),
    ],
    "private_equity": [
        BoardMember("deal", "Marcus Webb", "Deal Partner", "EBITDA-obsessed, aggressive"),
        BoardMember("ops", "Diana Rodriguez", "Operating Partner", "Efficiency-focused, demanding"),
        BoardMember("cfo", "Thomas Barrett", "Portfolio CFO", "Cash-focused, analytical"),
    ],
}

_ROLE_QUESTIONS: dict[str, list[str]] = {
    "Board Chair": [
        'How does "{proposal}" align with our 3-year strategic vision?',
        "What are the key milestones and how will we measure success?",
    ],
    "Lead Investor": [
        "What is the expected ROI and payback period?",
        "How does this compare to alternative uses of capital?",
    ],
    "Independent Director": [
        "Have we fully evaluated the governance implications?",
        "What conflicts of interest should we be aware of?",
    ],
    "Managing Partner": [
        "How will this accelerate our path to exit?",
        "What is the impact on our key growth metrics?",
    ],
    "Audit Committee Chair": [
        "What are the financial controls and compliance requirements?",
        "How will we ensure proper oversight?",
    ],
}
_FALLBACK_QUESTION = "What is the risk-adjusted return on this initiative?"

KEY_GAPS = ["Financial projections need more detail", "Risk mitigation not fully addressed"]
STRENGTH_AREAS = ["Clear problem statement", "Strong market analysis"]

_QUESTION_RE = re.compile(r"QUESTION:\s*(.+?)(?=ANSWER:|$)", re.DOTALL)
_ANSWER_RE = re.compile(r"ANSWER:\s*(.+?)$", re.DOTALL)

_PROMPT = """You are {name}, {role} on a corporate board. Your personality: {personality}.

A proposal is being presented:
TITLE: {title}
CONTENT: {content}

Generate ONE challenging {difficulty} question you would ask about this proposal. Be specific and probing.
Then provide a suggested strong answer.

Format:
QUESTION: [your question]
ANSWER: [suggested answer]"""


def deterministic_int(low: int, high: int, *seed: str) -> int:
    """Stable integer in [low, high] derived from the seed strings."""
    digest = hashlib.sha256("|".join(seed).encode("utf-8")).digest()
    return low + int.from_bytes(digest[:8], "big") % (high - low + 1)


def default_question(member: BoardMember, proposal: str) -> str:
    choices = _ROLE_QUESTIONS.get(member.role, [_FALLBACK_QUESTION])
    picked = choices[deterministic_int(0, len(choices) - 1, "ghost-q", member.role, proposal)]
    return picked.format(proposal=proposal)


def parse_question_answer(text: str) -> tuple[str | None, str | None]:
    """Split a ``QUESTION: ... ANSWER: ...`` reply. Missing parts come back as None."""
    q = _QUESTION_RE.search(text)
    a = _ANSWER_RE.search(text)
    question = q.group(1).strip() if q else ""
    answer = a.group(1).strip() if a else ""
    return question or None, answer or None


def assess(score: int) -> str:
    if score >= 80:
        return "Well-prepared for board presentation. Minor refinements recommended."
    if score >= 60:
        return "Moderately prepared. Address key gaps before presenting."
    return "Additional preparation needed. Significant gaps identified."


class GhostBoardSimulator:
    """Asks each simulated board member for one hard question, one prompt per member."""

    def __init__(
        self,
        gateway: ModelGateway,
        monitor: AvailabilityMonitor,
        model: str = "llama3:8b",
        store: RecordStore | None = None,
    ) -> None:
        self._gateway = gateway
        self._monitor = monitor
        self._model = model
        self._store = store

    async def _ask(
        self, member: BoardMember, title: str, content: str, difficulty: str
    ) -> tuple[str, str]:
        if not self._monitor.available:
            return (
                default_question(member, title),
                "Provide specific metrics, risk analysis, and implementation roadmap.",
            )
        prompt = _PROMPT.format(
            name=member.name,
            role=member.role,
            personality=member.personality,
            title=title,
            content=content,
            difficulty=difficulty,
        )
        try:
            raw = await self._gateway.generate(
                self._model, prompt, options=ModelOptions(temperature=0.7, num_predict=500)
            )
        except GatewayError as exc:
            logger.warning("Board member %s question failed, using default: %s", member.id, exc)
            return (
                default_question(member, title),
                "Provide specific metrics and a clear implementation roadmap.",
            )
        question, answer = parse_question_answer(raw)
        return (
            question or default_question(member, title),
            answer or "Address the concern with specific data and a clear action plan.",
        )

    async def run(
        self,
        title: str,
        content: str,
        board_type: str = "standard",
        difficulty: str = "hard",
    ) -> GhostBoardResult:
        if board_type not in BOARD_MEMBERS:
            logger.info("Unknown board type %r, using standard board", board_type)
        members = BOARD_MEMBERS.get(board_type, BOARD_MEMBERS["standard"])

        questions: list[BoardQuestion] = []
        for member in members:
            question, answer = await self._ask(member, title, content, difficulty)
            questions.append(
                BoardQuestion(
                    id=f"q-{uuid.uuid4().hex[:8]}-{member.id}",
                    question=question,
                    asked_by=member,
                    category=member.role,
                    difficulty=difficulty,
                    suggested_answer=answer,
                )
            )

        score = deterministic_int(70, 89, "ghost-prep", title)
        result = GhostBoardResult(
            id=f"ghost-{uuid.uuid4().hex[:12]}",
            proposal_title=title,
            proposal_content=content,
            board_type=board_type,
            difficulty=difficulty,
            duration_min=len(questions) * MINUTES_PER_QUESTION,
            board_members=list(members),
            questions=questions,
            preparedness_score=score,
            key_gaps=list(KEY_GAPS),
            strength_areas=list(STRENGTH_AREAS),
            overall_assessment=assess(score),
            run_at=datetime.now(),
        )
        if self._store is not None:
            self._store.create(COLLECTION, result)
        return result

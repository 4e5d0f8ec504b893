"""Tests for council/models.py."""

import dataclasses

import pytest

from council.models import AgentResponse, CrossExamination, DeliberationSession
from tests.conftest import make_agent


def _session(n_responses: int, n_cross: int, weight: int) -> DeliberationSession:
    responses = tuple(
        AgentResponse(f"a{i}", f"c{i}", f"Agent {i}", "role", "text", 1.0) for i in range(n_responses)
    )
    cross = tuple(CrossExamination("a0", "A", "a1", "B", "reason", "ch", "re") for _ in range(n_cross))
    return DeliberationSession(
        question="Q?",
        agent_ids=tuple(r.agent_id for r in responses),
        responses=responses,
        cross_examinations=cross,
        synthesis="S",
        synthesizer=None,
        total_duration_ms=1.0,
        response_weight=weight,
    )


def test_model_family_strips_tag():
    agent = make_agent("cfo")
    agent.model = "qwen2.5:14b"
    assert agent.model_family == "qwen2.5"
    agent.model = "mistral"
    assert agent.model_family == "mistral"


@pytest.mark.parametrize(
    "responses, cross, weight, expected",
    [
        (3, 1, 3, 84),
        (3, 0, 5, 85),
        (1, 0, 3, 73),
        (0, 0, 3, 70),
        (10, 3, 3, 95),
        (5, 0, 5, 95),
    ],
)
def test_confidence_formula(responses, cross, weight, expected):
    assert _session(responses, cross, weight).confidence == expected


def test_confidence_bounded_and_monotonic():
    for weight in (3, 5):
        previous = 0
        for n in range(12):
            score = _session(n, 0, weight).confidence
            assert 70 <= score <= 95
            assert score >= previous
            previous = score


def test_session_is_immutable():
    session = _session(1, 0, 3)
    with pytest.raises(dataclasses.FrozenInstanceError):
        session.synthesis = "rewritten"  # type: ignore[misc]

import asyncio

import pytest

from app.services.extraction.canonicalizer import canonicalize
from app.services.llms.groq_service import ReasoningRateLimited, ReasoningVerdict, start_cooldown
from app.services.verdict.aggregator import EvidenceAggregator, decide, has_red_flag
from app.services.verdict.overrides import FactOverrideTable
from app.services.verdict.types import EvidenceItem, Relationship, ScoredEvidence, Verdict


def _item(idx: int = 0, snippet: str = "snippet") -> EvidenceItem:
    return EvidenceItem(
        snippet=snippet, provider="google", url=f"https://example.org/{idx}", title=f"Doc {idx}", rank=idx
    )


def _scored(similarity: float, relationship: Relationship, idx: int = 0) -> ScoredEvidence:
    return ScoredEvidence(item=_item(idx), similarity=similarity, relationship=relationship)


class _FakeReasoning:
    def __init__(self, answer=None, error: Exception | None = None):
        self.answer = answer
        self.error = error
        self.calls = 0

    async def verify(self, claim, evidence, context=None, time_context="present"):  # noqa: ANN001
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.answer


def test_eiffel_tower_in_paris_is_true():
    result = decide("The Eiffel Tower is in Paris", [_scored(0.8, Relationship.ENTAILMENT)])

    assert result.verdict == "true"
    assert result.confidence >= 80
    assert result.confidence == 90


def test_eiffel_tower_in_berlin_is_false():
    result = decide("The Eiffel Tower is in Berlin", [_scored(0.1, Relationship.CONTRADICTION)])

    assert result.verdict == "false"
    assert result.confidence == 60


def test_middle_band_with_entailment_is_misleading():
    result = decide(
        "Paris has 10 million residents",
        [_scored(0.7, Relationship.ENTAILMENT, 0), _scored(0.1, Relationship.NEUTRAL, 1)],
    )

    assert result.verdict == "misleading"
    assert result.confidence == 50


def test_low_similarity_is_unverified_and_capped():
    result = decide("Atlantis was in the Atlantic", [_scored(0.1, Relationship.NEUTRAL)])

    assert result.verdict == "unverified"
    assert result.confidence == 10


def test_no_evidence_is_unverified():
    result = decide("Atlantis was in the Atlantic", [])

    assert result.verdict == "unverified"
    assert result.confidence == 0
    assert result.evidence == ()
    assert result.explanation == "No evidence available."


def test_red_flag_claim_without_support_is_false():
    assert has_red_flag("I own the Eiffel Tower")
    assert not has_red_flag("Gustave Eiffel built the tower")

    result = decide("I own the Eiffel Tower", [])
    assert result.verdict == "false"
    assert result.confidence == 60


def test_decision_is_deterministic():
    scored = [
        _scored(0.65, Relationship.ENTAILMENT, 0),
        _scored(0.2, Relationship.CONTRADICTION, 1),
        _scored(0.9, Relationship.ENTAILMENT, 2),
    ]

    first = decide("claim", scored)
    second = decide("claim", list(scored))

    assert (first.verdict, first.confidence, first.explanation, first.evidence) == (
        second.verdict,
        second.confidence,
        second.explanation,
        second.evidence,
    )


def test_top_five_evidence_ordered_by_similarity():
    scored = [_scored(0.1 * i, Relationship.NEUTRAL, i) for i in range(7)]

    result = decide("claim", scored)

    assert len(result.evidence) == 5
    assert [item.rank for item in result.evidence] == [6, 5, 4, 3, 2]


@pytest.mark.asyncio
async def test_reasoning_verdict_is_used_directly(paris_evidence):
    reasoning = _FakeReasoning(ReasoningVerdict(verdict=Verdict.TRUE, confidence=93, explanation="Confirmed."))
    aggregator = EvidenceAggregator(reasoning=reasoning)

    result = await aggregator.aggregate("The Eiffel Tower is in Paris", paris_evidence)

    assert result.verdict == "true"
    assert result.confidence == 93
    assert result.method == "reasoning"
    assert result.evidence == tuple(paris_evidence)


@pytest.mark.asyncio
async def test_unverified_reasoning_falls_through_to_heuristics(paris_evidence):
    reasoning = _FakeReasoning(ReasoningVerdict(verdict=Verdict.UNVERIFIED, confidence=40, explanation="?"))
    aggregator = EvidenceAggregator(reasoning=reasoning)
    claim = "The Eiffel Tower is in Paris"

    result = await aggregator.aggregate(claim, paris_evidence, canonicalize(claim))

    assert result.method == "heuristic"
    assert result.verdict == "true"


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [asyncio.TimeoutError(), ReasoningRateLimited("429"), RuntimeError("boom")])
async def test_reasoning_failures_degrade(error, paris_evidence):
    aggregator = EvidenceAggregator(reasoning=_FakeReasoning(error=error))

    result = await aggregator.aggregate("The Eiffel Tower is in Paris", paris_evidence)

    assert result.method == "heuristic"
    assert result.verdict == "true"


@pytest.mark.asyncio
async def test_cooldown_skips_reasoning(paris_evidence):
    reasoning = _FakeReasoning(ReasoningVerdict(verdict=Verdict.FALSE, confidence=99, explanation="x"))
    aggregator = EvidenceAggregator(reasoning=reasoning)
    start_cooldown(60)

    result = await aggregator.aggregate("The Eiffel Tower is in Paris", paris_evidence)

    assert reasoning.calls == 0
    assert result.verdict == "true"


@pytest.mark.asyncio
async def test_override_beats_heuristics():
    aggregator = EvidenceAggregator(overrides=FactOverrideTable.load())
    claim = "The Earth is flat."

    result = await aggregator.aggregate(claim, [], canonicalize(claim))

    assert result.verdict == "false"
    assert result.method == "override:flat-earth"
    assert result.evidence


def test_mean_similarity_at_threshold_is_not_enough_for_true():
    at_threshold = decide("The Eiffel Tower is in Paris", [_scored(0.6, Relationship.ENTAILMENT)])
    above = decide("The Eiffel Tower is in Paris", [_scored(0.61, Relationship.ENTAILMENT)])

    assert at_threshold.verdict == "misleading"
    assert above.verdict == "true"

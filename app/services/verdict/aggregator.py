"""
Evidence aggregation: turns a claim plus retrieved evidence into one verdict.

Steps, in priority order:
  1. Reasoning service (Groq), when configured and not cooling down. A
     non-"unverified" answer is used as-is.
  2. Fact-override table, for known high-frequency claims.
  3. Deterministic decision table over TF-IDF similarity and
     entailment/contradiction classification.

Any step-1 timeout, provider error or rate-limit falls through to step 2/3.
"""

from __future__ import annotations

import asyncio
import re
from typing import List, Optional

from app.constants.config import (
    ENTAILMENT_THRESHOLD,
    FALSE_CONFIDENCE_FLOOR,
    MAX_EVIDENCE_ITEMS,
    MISLEADING_FLOOR,
    RELATIONSHIP_BOOST,
    UNVERIFIED_CONFIDENCE_CAP,
)
from app.core.logger import get_logger
from app.core.observability import stage_timer
from app.services.extraction.canonicalizer import TIME_PRESENT, CanonicalForm
from app.services.llms.groq_service import GroqService, ReasoningRateLimited, in_cooldown
from app.services.verdict.entailment import score_evidence
from app.services.verdict.overrides import FactOverrideTable
from app.services.verdict.types import EvidenceItem, Relationship, ScoredEvidence, Verdict, VerificationResult

logger = get_logger(__name__)

_RED_FLAG_RE = re.compile(
    r"\b(i|we)\s+(own|founded|invented|created|built|discovered|control)\b"
    r"|\b(i am|i'm|we are|we're)\s+the\s+(owner|founder|inventor|ceo|president|king|queen)\b"
    r"|\bbelongs?\s+to\s+(me|us)\b"
    r"|\b(my|our)\s+(company|property|country|planet)\b",
    flags=re.IGNORECASE,
)


def has_red_flag(claim: str) -> bool:
    """First-person ownership/assertion phrases that evidence can never back up."""
    return bool(_RED_FLAG_RE.search(claim or ""))


def _confidence(mean_similarity: float, entailments: int, contradictions: int) -> int:
    boost = RELATIONSHIP_BOOST * max(entailments, contradictions)
    return min(100, int(round(mean_similarity * 100 + boost)))


def decide(claim: str, scored: List[ScoredEvidence]) -> VerificationResult:
    """
    Decision table over already-scored evidence. Pure: same inputs, same output.

    - contradictions outnumber entailments          -> false (confidence >= 60)
    - entailments dominate, mean similarity > 0.6   -> true
    - entailments present, mean similarity >= 0.3   -> misleading
    - otherwise                                     -> unverified (confidence <= 30),
      or false when the claim carries a first-person red flag
    """
    entailments = sum(1 for s in scored if s.relationship == Relationship.ENTAILMENT)
    contradictions = sum(1 for s in scored if s.relationship == Relationship.CONTRADICTION)
    mean_similarity = sum(s.similarity for s in scored) / len(scored) if scored else 0.0
    confidence = _confidence(mean_similarity, entailments, contradictions)

    ranked = sorted(scored, key=lambda s: s.similarity, reverse=True)[:MAX_EVIDENCE_ITEMS]
    used = tuple(s.item for s in ranked)
    summary = f"{entailments} supporting, {contradictions} contradicting of {len(scored)} sources"

    if contradictions > entailments:
        verdict = Verdict.FALSE
        confidence = max(confidence, FALSE_CONFIDENCE_FLOOR)
        explanation = f"Evidence contradicts the claim ({summary})."
    elif entailments > contradictions and mean_similarity > ENTAILMENT_THRESHOLD:
        verdict = Verdict.TRUE
        explanation = f"Evidence supports the claim ({summary})."
    elif entailments > 0 and mean_similarity >= MISLEADING_FLOOR:
        verdict = Verdict.MISLEADING
        explanation = f"Evidence only partially supports the claim ({summary})."
    elif has_red_flag(claim) and mean_similarity < MISLEADING_FLOOR:
        verdict = Verdict.FALSE
        confidence = max(confidence, FALSE_CONFIDENCE_FLOOR)
        explanation = "Claim asserts personal ownership or status that no source supports."
    else:
        verdict = Verdict.UNVERIFIED
        confidence = min(confidence, UNVERIFIED_CONFIDENCE_CAP)
        explanation = (
            f"Insufficient evidence to verify the claim ({summary})." if scored else "No evidence available."
        )

    return VerificationResult(
        verdict=verdict.value,
        confidence=confidence,
        explanation=explanation,
        evidence=used,
    )


class EvidenceAggregator:
    def __init__(
        self,
        reasoning: Optional[GroqService] = None,
        overrides: Optional[FactOverrideTable] = None,
    ) -> None:
        self.reasoning = reasoning
        self.overrides = overrides or FactOverrideTable()

    async def _reason(
        self,
        claim: str,
        evidence: List[EvidenceItem],
        canonical: Optional[CanonicalForm],
        context: Optional[List[str]],
    ) -> Optional[VerificationResult]:
        if self.reasoning is None:
            return None
        if in_cooldown():
            logger.info("[Aggregator] Reasoning service cooling down. Skipping")
            return None

        time_context = canonical.time_context if canonical else TIME_PRESENT
        try:
            with stage_timer("reasoning"):
                answer = await self.reasoning.verify(claim, evidence, context=context, time_context=time_context)
        except ReasoningRateLimited:
            return None
        except asyncio.TimeoutError:
            logger.warning("[Aggregator] Reasoning service timed out. Falling back")
            return None
        except Exception as e:
            logger.warning(f"[Aggregator] Reasoning service failed: {e}. Falling back")
            return None

        if answer is None or answer.verdict == Verdict.UNVERIFIED:
            return None
        return VerificationResult(
            verdict=answer.verdict.value,
            confidence=answer.confidence,
            explanation=answer.explanation or "Verdict from reasoning service.",
            evidence=tuple(evidence[:MAX_EVIDENCE_ITEMS]),
            method="reasoning",
        )

    async def aggregate(
        self,
        claim: str,
        evidence: List[EvidenceItem],
        canonical: Optional[CanonicalForm] = None,
        context: Optional[List[str]] = None,
    ) -> VerificationResult:
        result = await self._reason(claim, evidence, canonical, context)
        if result is not None:
            logger.info(f"[Aggregator] Reasoning verdict={result.verdict} for {claim[:60]!r}")
            return result

        override = self.overrides.match(claim, canonical)
        if override is not None:
            logger.info(f"[Aggregator] Override {override.override_id} matched {claim[:60]!r}")
            return override.to_result()

        with stage_timer("heuristic"):
            result = decide(claim, score_evidence(claim, evidence, canonical))
        logger.info(
            f"[Aggregator] Heuristic verdict={result.verdict} confidence={result.confidence} for {claim[:60]!r}"
        )
        return result

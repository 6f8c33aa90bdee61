import asyncio
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.logger import get_logger
from app.core.observability import stage_timer
from app.core.schemas import ClaimResult, ClaimsVerifiedEvent, ClaimVerdict, SourceRef
from app.services.cache.result_cache import ResultCache
from app.services.evidence.retrieval import EvidenceRetriever
from app.services.extraction.canonicalizer import canonicalize, is_personal_claim
from app.services.extraction.claim_extractor import extract_claims
from app.services.verdict.aggregator import EvidenceAggregator
from app.services.verdict.types import Verdict, VerificationResult

logger = get_logger(__name__)

PERSONAL_CLAIM_EXPLANATION = "Personal/subjective claim."


def _to_wire(claim: str, result: VerificationResult, canonical: Optional[Dict[str, Any]]) -> ClaimVerdict:
    return ClaimVerdict(
        claim=claim,
        verdict=result.verdict,
        confidence=result.confidence,
        explanation=result.explanation,
        sources=[SourceRef(**source) for source in result.sources()],
        canonical=canonical,
        timestamp=result.timestamp,
    )


class ClaimVerifier:
    """
    End-to-end verification of claims:
    personal gate -> canonicalize -> cache -> retrieve -> aggregate -> cache store.
    """

    def __init__(
        self,
        cache: ResultCache,
        retriever: EvidenceRetriever,
        aggregator: EvidenceAggregator,
        min_score: Optional[int] = None,
        max_claims: Optional[int] = None,
    ) -> None:
        self.cache = cache
        self.retriever = retriever
        self.aggregator = aggregator
        self.min_score = min_score if min_score is not None else settings.CLAIM_MIN_SCORE
        self.max_claims = max_claims if max_claims is not None else settings.CLAIM_MAX_COUNT

    def preview(self, transcript: str) -> List[Dict[str, Any]]:
        """Extraction-only pass for interim transcripts."""
        candidates = extract_claims(transcript, min_score=self.min_score, max_claims=self.max_claims)
        return [c.to_preview() for c in candidates]

    async def verify_claim(self, claim: str, context: Optional[List[str]] = None) -> ClaimVerdict:
        if is_personal_claim(claim):
            logger.info(f"[Verifier] Skipping personal claim: {claim[:60]!r}")
            return ClaimVerdict(
                claim=claim,
                verdict=Verdict.UNVERIFIED.value,
                confidence=0,
                explanation=PERSONAL_CLAIM_EXPLANATION,
            )

        canonical = canonicalize(claim)
        canonical_dict = canonical.to_dict() if canonical else None

        cached = self.cache.get(claim)
        if cached is not None:
            return _to_wire(claim, cached.to_result(), cached.canonical or canonical_dict)

        with stage_timer("retrieval"):
            evidence = await self.retriever.retrieve(claim, canonical)
        result = await self.aggregator.aggregate(claim, evidence, canonical=canonical, context=context)

        if result.verdict == Verdict.UNVERIFIED.value and not result.evidence:
            logger.debug(f"[Verifier] Not caching evidence-less unverified result for {claim[:60]!r}")
        else:
            self.cache.store_result(claim, result, canonical_dict)
        return _to_wire(claim, result, canonical_dict)

    async def verify_single(self, claim: str, context: Optional[List[str]] = None) -> ClaimResult:
        verdict = await self.verify_claim(claim.strip(), context)
        return ClaimResult(
            claim=verdict.claim,
            verdict=verdict.verdict,
            confidence=verdict.confidence,
            sources=verdict.sources,
            explanation=verdict.explanation,
        )

    async def process_transcript(self, transcript: str, context: Optional[List[str]] = None) -> ClaimsVerifiedEvent:
        """
        Extract and verify every candidate claim of a final transcript.

        Personal claims are dropped. Claims are verified concurrently.
        Collaborator failures are absorbed per provider; anything else
        propagates so the dispatcher can retry or report the job.
        """
        with stage_timer("extraction"):
            candidates = extract_claims(transcript, min_score=self.min_score, max_claims=self.max_claims)
        claims = [c.text for c in candidates if not is_personal_claim(c.text)]
        logger.info(f"[Verifier] {len(claims)} claims to verify ({len(candidates)} candidates)")

        verified = await asyncio.gather(*(self.verify_claim(c, context) for c in claims))
        return ClaimsVerifiedEvent(transcript=transcript, claims=list(verified))

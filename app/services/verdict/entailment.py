from __future__ import annotations

import re
from typing import Iterable, List, Optional

from app.constants.config import CONTRADICTION_KEYWORDS, CONTRADICTION_MAX_SIMILARITY, ENTAILMENT_THRESHOLD
from app.core.logger import get_logger
from app.services.extraction.canonicalizer import CanonicalForm
from app.services.verdict.similarity import tfidf_cosine, tokenize
from app.services.verdict.types import EvidenceItem, Relationship, ScoredEvidence

logger = get_logger(__name__)

_CONTRADICTION_RE = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in CONTRADICTION_KEYWORDS) + r")\b|n't\b",
    flags=re.IGNORECASE,
)


def has_contradiction_keyword(text: str) -> bool:
    return bool(_CONTRADICTION_RE.search(text or ""))


def _key_terms(claim: str, canonical: Optional[CanonicalForm]) -> set[str]:
    if canonical and canonical.subject:
        terms = set(tokenize(canonical.subject))
        if terms:
            return terms
    return set(tokenize(claim))


def classify_relationship(
    claim: str,
    evidence_text: str,
    similarity: float,
    key_terms: Optional[Iterable[str]] = None,
    entailment_threshold: float = ENTAILMENT_THRESHOLD,
    contradiction_max_similarity: float = CONTRADICTION_MAX_SIMILARITY,
) -> Relationship:
    """
    Classify how an evidence snippet relates to a claim.

    ENTAILMENT when similarity is above the entailment threshold.
    CONTRADICTION when similarity is low and the snippet both negates
    (contradiction keyword) and talks about the claim's subject.
    NEUTRAL otherwise.
    """
    if similarity > entailment_threshold:
        return Relationship.ENTAILMENT

    terms = set(key_terms) if key_terms is not None else set(tokenize(claim))
    mentions_subject = bool(terms & set(tokenize(evidence_text)))
    if similarity < contradiction_max_similarity and mentions_subject and has_contradiction_keyword(evidence_text):
        return Relationship.CONTRADICTION
    return Relationship.NEUTRAL


def score_evidence(
    claim: str,
    evidence: List[EvidenceItem],
    canonical: Optional[CanonicalForm] = None,
) -> List[ScoredEvidence]:
    """Similarity-score and classify every evidence item against the claim."""
    terms = _key_terms(claim, canonical)
    scored: List[ScoredEvidence] = []
    for item in evidence:
        if not item.snippet:
            continue
        similarity = tfidf_cosine(claim, item.snippet)
        relationship = classify_relationship(claim, item.snippet, similarity, key_terms=terms)
        scored.append(ScoredEvidence(item=item, similarity=similarity, relationship=relationship))
    logger.debug(
        "[Entailment] Scored %d items: %s",
        len(scored),
        [(round(s.similarity, 3), s.relationship.value) for s in scored],
    )
    return scored

"""
Claim extraction for live transcripts.

Splits a transcript into clause-level spans, drops conversational noise
(greetings, questions, first-person opinions) and scores what remains with
independent verifiability heuristics. Pure: no I/O, never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from app.constants.config import (
    SCORE_COPULA,
    SCORE_DOMAIN_PATTERN,
    SCORE_MAX,
    SCORE_NAMED_ENTITY,
    SCORE_NUMBER,
    SCORE_OWNERSHIP,
    SCORE_YEAR,
)
from app.core.logger import get_logger
from app.services.common.claim_segmentation import is_filler_span, split_into_spans
from app.services.common.text_cleaner import normalize_claim_text

logger = get_logger(__name__)

DEFAULT_MIN_SCORE = 30
DEFAULT_MAX_CLAIMS = 20

_WH_START_RE = re.compile(r"^(who|what|when|where|why|how|which|whose|whom)\b", flags=re.IGNORECASE)
# Leading auxiliary counts only before a pronoun or determiner ("Will Smith won ..." is a claim).
_AUX_START_RE = re.compile(
    r"^(is|are|was|were|do|does|did|can|could|would|should|will|shall|has|have|"
    r"isn't|aren't|wasn't|don't|doesn't|didn't|won't)\s+"
    r"(you|i|we|they|he|she|it|there|this|that|these|those|anyone|anybody|someone|the|a|an)\b",
    flags=re.IGNORECASE,
)
_OPINION_RE = re.compile(
    r"\b(i think|i believe|i feel|i guess|i suppose|i reckon|i'd say|i would say|"
    r"in my opinion|in my view|personally|imo|it seems to me|"
    r"i love|i like|i hate|i prefer|i hope|i wish)\b",
    flags=re.IGNORECASE,
)
_YEAR_RE = re.compile(r"\b(1[0-9]{3}|20[0-9]{2})\b")
_NUMBER_RE = re.compile(r"\b\d+(?:[.,]\d+)?\s*(%|percent|million|billion|thousand)?\b", flags=re.IGNORECASE)
_CAPITALIZED_RE = re.compile(r"\b[A-Z][\w'\-]*(?:\s+(?:of\s+|the\s+|de\s+)?[A-Z][\w'\-]*)*")
_OWNERSHIP_RE = re.compile(
    r"\b(owns?|owned by|belongs? to|founded|founder of|ceo of|acquired|bought|purchased|"
    r"invented|created by|built by|is the owner of)\b",
    flags=re.IGNORECASE,
)
_POLITICAL_RE = re.compile(
    r"\b(president|prime minister|minister|senator|governor|king|queen|emperor|parliament|"
    r"congress|government|election|elected|chancellor|mayor|dictator|republic|democracy|"
    r"constitution|party|vote[sd]?)\b",
    flags=re.IGNORECASE,
)
_GEOGRAPHIC_RE = re.compile(
    r"\b(capital|country|city|continent|ocean|river|mountain|desert|island|located|"
    r"borders?|bordered|population|largest|smallest|tallest|longest|highest|"
    r"north|south|east|west)\b|\b(is|are|was|were)\s+(located\s+)?(in|on|at)\b",
    flags=re.IGNORECASE,
)
_DEFINITIONAL_RE = re.compile(
    r"\b(is defined as|means|refers to|is a type of|is a kind of|is known as|is called|"
    r"stands for|consists of|is made of|is composed of)\b",
    flags=re.IGNORECASE,
)
_COPULA_RE = re.compile(r"^\S.*?\s(is|are|was|were)\s+(the|a|an)\s+\w+", flags=re.IGNORECASE)
_SENTENCE_STARTERS = {
    "the",
    "a",
    "an",
    "it",
    "this",
    "that",
    "these",
    "those",
    "he",
    "she",
    "they",
    "we",
    "i",
    "you",
    "there",
    "and",
    "but",
    "so",
    "in",
    "on",
    "at",
    "my",
    "our",
    "his",
    "her",
    "their",
}


@dataclass(frozen=True)
class CandidateClaim:
    text: str
    score: int
    entities: Tuple[str, ...] = field(default_factory=tuple)
    tag: str = "general"

    def to_preview(self) -> Dict[str, Any]:
        return {
            "claim": self.text,
            "verdict": "unverified",
            "confidence": self.score,
            "entities": list(self.entities),
        }


def is_question(span: str) -> bool:
    s = span.strip()
    return s.endswith("?") or bool(_WH_START_RE.match(s) or _AUX_START_RE.match(s))


def is_opinion(span: str) -> bool:
    return bool(_OPINION_RE.search(span))


def detect_entities(span: str) -> List[str]:
    entities: List[str] = []
    for match in _CAPITALIZED_RE.finditer(span):
        words = match.group(0).split()
        if match.start() == 0 and words and words[0].lower() in _SENTENCE_STARTERS:
            words = words[1:]
        if not words or (len(words) == 1 and words[0].lower() in _SENTENCE_STARTERS):
            continue
        entity = " ".join(words)
        if entity not in entities:
            entities.append(entity)
    for year in _YEAR_RE.findall(span):
        if year not in entities:
            entities.append(year)
    return entities


def score_span(span: str) -> Tuple[int, List[str], str]:
    """
    Score one span against the verifiability heuristics.

    Returns:
        (score, entities, tag) where tag names the strongest matched category
    """
    score = 0
    tags: List[str] = []

    if _YEAR_RE.search(span):
        score += SCORE_YEAR
        tags.append("statistical")
    elif _NUMBER_RE.search(span):
        score += SCORE_NUMBER
        tags.append("statistical")

    entities = detect_entities(span)
    if any(not e.isdigit() for e in entities):
        score += SCORE_NAMED_ENTITY

    if _OWNERSHIP_RE.search(span):
        score += SCORE_OWNERSHIP
        tags.insert(0, "ownership")

    for tag, pattern in (
        ("political", _POLITICAL_RE),
        ("geographic", _GEOGRAPHIC_RE),
        ("definitional", _DEFINITIONAL_RE),
    ):
        if pattern.search(span):
            score += SCORE_DOMAIN_PATTERN
            tags.insert(1 if tags and tags[0] == "ownership" else 0, tag)
            break

    if _COPULA_RE.search(span):
        score += SCORE_COPULA

    return min(score, SCORE_MAX), entities, (tags[0] if tags else "general")


def extract_claims(
    transcript: str,
    min_score: int = DEFAULT_MIN_SCORE,
    max_claims: int = DEFAULT_MAX_CLAIMS,
) -> List[CandidateClaim]:
    """
    Extract verifiable candidate claims from a transcript.

    Args:
        transcript: Raw transcript text
        min_score: A span must score above this to be kept
        max_claims: Maximum number of claims returned

    Returns:
        Candidate claims ordered by descending score, deduplicated by
        normalized text. Malformed input yields an empty list.
    """
    if not isinstance(transcript, str) or not transcript.strip():
        return []

    try:
        best: Dict[str, CandidateClaim] = {}
        order: List[str] = []
        for span in split_into_spans(transcript):
            if is_filler_span(span) or is_question(span) or is_opinion(span):
                continue
            score, entities, tag = score_span(span)
            if score <= min_score:
                continue
            key = normalize_claim_text(span)
            if not key:
                continue
            candidate = CandidateClaim(text=span, score=score, entities=tuple(entities), tag=tag)
            if key not in best:
                order.append(key)
                best[key] = candidate
            elif score > best[key].score:
                best[key] = candidate

        ranked = sorted((best[k] for k in order), key=lambda c: c.score, reverse=True)
        return ranked[:max_claims]
    except Exception as e:
        logger.warning(f"[ClaimExtractor] Extraction failed, returning no claims: {e}")
        return []

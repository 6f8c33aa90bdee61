"""
Canonicalization of claims into (subject, relation, object, time_context) tuples.

The tuple feeds evidence retrieval and the fact-override table. Cache keys are
built from the cleaned claim text (``claim_cache_key``), never from the tuple,
so caching does not depend on which surface pattern happened to match.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

TIME_PAST = "past"
TIME_PRESENT = "present"
TIME_FUTURE = "future"
TIME_TIMELESS = "timeless"

_ARTICLE_RE = re.compile(r"^(the|a|an)\s+", flags=re.IGNORECASE)
_PAST_RE = re.compile(r"\b(was|were|had|did)\b", flags=re.IGNORECASE)
_FUTURE_RE = re.compile(r"\b(will|would|shall|should)\b", flags=re.IGNORECASE)
_PRESENT_RE = re.compile(r"\b(is|are|am)\b", flags=re.IGNORECASE)
_TIMELESS_RE = re.compile(r"\b(always|never|ever|timeless|eternal)\b", flags=re.IGNORECASE)

_COPULA_THE_OF_RE = re.compile(r"^(.+?)\s+(?:is|are|was|were|am)\s+the\s+(.+?)\s+of\s+(.+)$", flags=re.IGNORECASE)
_COPULA_OF_RE = re.compile(r"^(.+?)\s+(?:is|are|was|were|am)\s+(.+?)\s+of\s+(.+)$", flags=re.IGNORECASE)
_LOCATION_RE = re.compile(
    r"^(.+?)\s+(?:is|are|was|were)\s+(?:located\s+|situated\s+)?(?:in|at|on)\s+(.+)$",
    flags=re.IGNORECASE,
)
_COPULA_RE = re.compile(r"^(.+?)\s+(?:is|are|was|were|am)\s+(?:the\s+)?(.+)$", flags=re.IGNORECASE)
_ORBIT_RE = re.compile(r"^(.+?)\s+(?:revolves\s+around|orbits|revolves|circles)\s+(.+)$", flags=re.IGNORECASE)

_FIRST_PERSON_RE = [
    re.compile(r"^i\s+(am|think|believe|feel|know|say|claim|assert)\b", flags=re.IGNORECASE),
    re.compile(r"^my\s+", flags=re.IGNORECASE),
    re.compile(r"^i'm\s+", flags=re.IGNORECASE),
    re.compile(r"^i've\s+", flags=re.IGNORECASE),
    re.compile(r"\b(i am|i think|i believe|i feel|i know|i say|i claim|i assert)\b", flags=re.IGNORECASE),
]
_OPINION_MARKER_RE = re.compile(
    r"\b(in my opinion|i guess|i suppose|in my view|personally)\b",
    flags=re.IGNORECASE,
)
_PERSONAL_RELATIONSHIP_RE = re.compile(
    r"\b(my (friend|family|colleague|boss|teacher|wife|husband|partner|mom|mother|dad|father|"
    r"brother|sister|son|daughter|neighbou?r)s?)\b",
    flags=re.IGNORECASE,
)


@dataclass(frozen=True)
class CanonicalForm:
    subject: str
    relation: str
    object: Optional[str]
    time_context: str = TIME_PRESENT

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        if self.object:
            return f"({self.subject}, {self.relation}, {self.object}, {self.time_context})"
        return f"({self.subject}, {self.relation}, {self.time_context})"


def _strip_article(text: str) -> str:
    return _ARTICLE_RE.sub("", text.strip()).strip()


def detect_time_context(text: str) -> str:
    if _PAST_RE.search(text):
        return TIME_PAST
    if _FUTURE_RE.search(text):
        return TIME_FUTURE
    if _PRESENT_RE.search(text):
        return TIME_PRESENT
    if _TIMELESS_RE.search(text):
        return TIME_TIMELESS
    return TIME_PRESENT


def _copula_of(match: re.Match) -> Tuple[str, str, str]:
    return _strip_article(match.group(1)), match.group(2).strip(), _strip_article(match.group(3))


def _location(match: re.Match) -> Tuple[str, str, str]:
    return _strip_article(match.group(1)), "located_in", _strip_article(match.group(2))


def _copula(match: re.Match) -> Tuple[str, str, str]:
    return _strip_article(match.group(1)), "is", _strip_article(match.group(2))


def _orbit(match: re.Match) -> Tuple[str, str, str]:
    return _strip_article(match.group(1)), "orbits", _strip_article(match.group(2))


# Ordered: first match wins.
_PATTERNS: List[Tuple[str, re.Pattern, Callable[[re.Match], Tuple[str, str, str]]]] = [
    ("copula_the_of", _COPULA_THE_OF_RE, _copula_of),
    ("copula_of", _COPULA_OF_RE, _copula_of),
    ("location", _LOCATION_RE, _location),
    ("orbit", _ORBIT_RE, _orbit),
    ("copula", _COPULA_RE, _copula),
]


def canonicalize(claim_text: str) -> Optional[CanonicalForm]:
    """
    Decompose a claim into a CanonicalForm.

    Returns None for empty input. Claims matching no surface pattern fall back
    to (first token, middle tokens, last token).
    """
    if not claim_text or not claim_text.strip():
        return None

    claim = re.sub(r"\s+", " ", claim_text).strip().rstrip(".!?;:,")
    time_context = detect_time_context(claim)

    for name, pattern, build in _PATTERNS:
        match = pattern.match(claim)
        if not match:
            continue
        subject, relation, obj = build(match)
        if name == "orbit":
            time_context = TIME_TIMELESS
        return CanonicalForm(subject=subject, relation=relation, object=obj or None, time_context=time_context)

    words = claim.split()
    if len(words) >= 3:
        return CanonicalForm(
            subject=words[0],
            relation=" ".join(words[1:-1]),
            object=words[-1],
            time_context=time_context,
        )
    return CanonicalForm(subject=claim, relation="unknown", object=None, time_context=time_context)


def is_personal_claim(claim_text: str) -> bool:
    """
    True for first-person statements, opinion markers and mentions of personal
    relationships. Such claims are not sent for verification.
    """
    if not claim_text:
        return False
    text = claim_text.strip()
    if any(pattern.search(text) for pattern in _FIRST_PERSON_RE):
        return True
    if _OPINION_MARKER_RE.search(text):
        return True
    return bool(_PERSONAL_RELATIONSHIP_RE.search(text))

from __future__ import annotations

import re
from typing import List

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_BOUNDARY_RE = re.compile(
    r"(;\s*|,\s*|\s+(?:and|but|or|so|yet|while|whereas|however)\s+)",
    flags=re.IGNORECASE,
)
_LEADING_CONJ_RE = re.compile(r"^(and|or|but|so|yet|while|whereas|however)\s+", flags=re.IGNORECASE)
_CLAUSE_VERB_RE = re.compile(
    (
        r"\b("
        r"is|are|was|were|am|be|been|being|do|does|did|have|has|had|"
        r"will|would|can|could|shall|should|may|might|must|"
        r"owns?|founded|built|invented|discovered|won|lost|leads?|led|rules?|ruled|governs?|"
        r"orbits?|revolves?|borders?|contains?|covers?|became|becomes?|makes?|made|"
        r"causes?|prevents?|reduces?|increases?|grew|rose|fell|killed|signed|elected|"
        r"located|born|died|created|wrote|said|says|think|believe|feel|love|like|hate"
        r")\b|\b\w{3,}ed\b"
    ),
    flags=re.IGNORECASE,
)
_FILLER_WORDS = {
    "hi",
    "hello",
    "hey",
    "thanks",
    "thank",
    "you",
    "okay",
    "ok",
    "well",
    "so",
    "yeah",
    "yes",
    "no",
    "um",
    "umm",
    "uh",
    "uhh",
    "hmm",
    "like",
    "right",
    "alright",
    "good",
    "morning",
    "afternoon",
    "evening",
    "night",
    "welcome",
    "everyone",
    "everybody",
    "all",
    "guys",
    "folks",
    "there",
    "again",
    "bye",
    "goodbye",
    "cheers",
    "anyway",
    "basically",
    "actually",
    "oh",
    "wow",
}
_GREETING_START_RE = re.compile(
    r"^(hi|hello|hey|thanks|thank you|good (morning|afternoon|evening|night)|welcome|bye|goodbye)\b",
    flags=re.IGNORECASE,
)


def _clean(text: str) -> str:
    s = re.sub(r"\s+", " ", (text or "")).strip(" ,;")
    s = _LEADING_CONJ_RE.sub("", s)
    return s.strip(" ,;")


def _tokens(text: str) -> List[str]:
    return re.findall(r"\b[\w']+\b", (text or "").lower())


def is_filler_span(text: str) -> bool:
    """True for greetings and spans made only of conversational filler."""
    tokens = _tokens(text)
    if not tokens:
        return True
    if all(tok in _FILLER_WORDS for tok in tokens):
        return True
    return bool(_GREETING_START_RE.match(_clean(text))) and len(tokens) <= 4


def looks_independent_clause(text: str) -> bool:
    t = _clean(text)
    if len(_tokens(t)) < 2:
        return False
    return bool(_CLAUSE_VERB_RE.search(t))


def _should_split(left: str, delimiter: str, right: str) -> bool:
    if not _clean(right):
        return False
    if delimiter.strip() == ";":
        return True
    if is_filler_span(left):
        return True
    return looks_independent_clause(left) and looks_independent_clause(right)


def split_sentences(transcript: str) -> List[str]:
    if not transcript or not transcript.strip():
        return []
    return [s.strip() for s in _SENTENCE_RE.split(transcript.strip()) if s.strip()]


def split_into_spans(transcript: str) -> List[str]:
    """
    Split a spoken transcript into clause-level spans.

    Sentences are split first; inside a sentence, commas, semicolons and
    coordinating conjunctions only become boundaries when they separate two
    independent clauses (or peel off a leading greeting), so "In 1969, Neil
    Armstrong walked on the Moon" stays one span while "Tokyo is the capital
    of Japan and Paris is the capital of France" becomes two.
    """
    spans: List[str] = []
    for sentence in split_sentences(transcript):
        pieces = _BOUNDARY_RE.split(sentence)
        segments = [pieces[0]]
        for idx in range(1, len(pieces) - 1, 2):
            delimiter, part = pieces[idx], pieces[idx + 1]
            if _should_split(segments[-1], delimiter, part):
                segments.append(part)
            else:
                segments[-1] = f"{segments[-1]}{delimiter}{part}"
        for seg in segments:
            cleaned = _clean(seg)
            if cleaned:
                spans.append(cleaned)
    return spans


__all__ = ["split_into_spans", "split_sentences", "is_filler_span", "looks_independent_clause"]

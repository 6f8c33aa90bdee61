from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, List

import numpy as np

_STOPWORDS = {
    "the",
    "a",
    "an",
    "and",
    "or",
    "but",
    "to",
    "for",
    "of",
    "in",
    "on",
    "with",
    "by",
    "at",
    "is",
    "are",
    "was",
    "were",
    "be",
    "been",
    "being",
    "it",
    "its",
    "this",
    "that",
    "these",
    "those",
    "as",
    "from",
    "has",
    "have",
    "had",
    "can",
    "could",
    "should",
    "would",
    "may",
    "might",
    "will",
}


def stem(token: str) -> str:
    """Light suffix stripping so "orbits"/"orbiting"/"orbited" share a term."""
    t = token.lower()
    if len(t) > 5 and t.endswith("ing"):
        return t[:-3]
    if len(t) > 4 and t.endswith("ies"):
        return t[:-3] + "y"
    if len(t) > 4 and t.endswith("ed"):
        return t[:-2]
    if len(t) > 4 and t.endswith("es") and not t.endswith("ses"):
        return t[:-2]
    if len(t) > 3 and t.endswith("s") and not t.endswith("ss"):
        return t[:-1]
    return t


def tokenize(text: str) -> List[str]:
    words = re.findall(r"\b[a-zA-Z0-9][a-zA-Z0-9\-']*\b", (text or "").lower())
    return [stem(w) for w in words if w not in _STOPWORDS]


def _tfidf_vector(tokens: List[str], vocabulary: List[str], idf: Dict[str, float]) -> np.ndarray:
    counts = Counter(tokens)
    total = max(1, len(tokens))
    return np.array([(counts[term] / total) * idf[term] for term in vocabulary], dtype=float)


def tfidf_cosine(text_a: str, text_b: str) -> float:
    """
    TF-IDF cosine similarity between two texts, in [0, 1].

    IDF is computed over the pair with smoothing, so shared terms weigh less
    than terms unique to one side but never vanish.
    """
    tokens_a = tokenize(text_a)
    tokens_b = tokenize(text_b)
    if not tokens_a or not tokens_b:
        return 0.0

    set_a, set_b = set(tokens_a), set(tokens_b)
    vocabulary = sorted(set_a | set_b)
    idf = {term: 1.0 + math.log(3.0 / (1.0 + (term in set_a) + (term in set_b))) for term in vocabulary}

    vec_a = _tfidf_vector(tokens_a, vocabulary, idf)
    vec_b = _tfidf_vector(tokens_b, vocabulary, idf)
    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    return max(0.0, min(1.0, float(np.dot(vec_a, vec_b)) / norm))

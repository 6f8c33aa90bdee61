"""
Text cleaning and normalization utilities for claims, cache keys and evidence snippets.
"""

import hashlib
import html
import re

_TRAILING_PUNCT_RE = re.compile(r"[\s.,!?;:]+$")


def normalize_text(text: str) -> str:
    """
    Collapse internal whitespace and strip the ends.

    Args:
        text: Raw text to normalize

    Returns:
        Text with single spaces, stripped
    """
    if not isinstance(text, str):
        return ""
    return re.sub(r"\s+", " ", text).strip()


def normalize_claim_text(text: str) -> str:
    """
    Normalize a claim for cache lookups and deduplication.

    Lower-cases, collapses whitespace and strips trailing punctuation so that
    "The Earth orbits the Sun." and "  the earth   orbits the sun" compare equal.

    Args:
        text: Claim text

    Returns:
        Normalized claim text
    """
    normalized = normalize_text(text).lower()
    normalized = _TRAILING_PUNCT_RE.sub("", normalized)
    return normalized.strip()


def claim_cache_key(text: str) -> str:
    """
    Stable cache key for a claim: md5 of its normalized text.
    """
    return hashlib.md5(normalize_claim_text(text).encode("utf-8")).hexdigest()


def truncate_content(content: str, max_length: int = 2000) -> str:
    """
    Truncate content while preserving word boundaries.

    Args:
        content: Full content text
        max_length: Maximum length in characters

    Returns:
        Truncated content
    """
    if len(content) <= max_length:
        return content
    truncated = content[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space].strip() + "..."
    return truncated.strip() + "..."


def remove_html_tags(text: str) -> str:
    """
    Remove HTML tags and unescape entities (search snippets carry <span> markup).

    Args:
        text: Text potentially containing HTML

    Returns:
        Plain text
    """
    if not text:
        return ""
    return normalize_text(html.unescape(re.sub(r"<[^>]+>", " ", text)))

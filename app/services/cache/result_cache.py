"""
In-process verdict cache keyed by normalized claim text.

Eviction is insertion-ordered (FIFO): reads do not refresh an entry's
position, an overwrite of an existing key does. Each worker process owns its
own cache; nothing is shared across instances.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.logger import get_logger
from app.core.observability import cache_evictions_total, cache_lookups_total
from app.services.common.text_cleaner import claim_cache_key
from app.services.verdict.types import EvidenceItem, VerificationResult

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    key: str
    claim: str
    verdict: str
    confidence: int
    explanation: str = ""
    evidence_snapshot: Tuple[EvidenceItem, ...] = field(default_factory=tuple)
    canonical: Optional[Dict[str, Any]] = None
    created_at: float = 0.0

    def to_result(self) -> VerificationResult:
        return VerificationResult(
            verdict=self.verdict,
            confidence=self.confidence,
            explanation=self.explanation,
            evidence=self.evidence_snapshot,
            cached=True,
        )


class ResultCache:
    def __init__(
        self,
        max_size: int = 1000,
        ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._evictions = 0
        logger.info(f"[ResultCache] Initialized: max_size={max_size}, ttl={ttl / 3600:.1f}h")

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    def get(self, claim_text: str) -> Optional[CacheEntry]:
        key = claim_cache_key(claim_text)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                cache_lookups_total.labels(outcome="miss").inc()
                logger.debug(f"[ResultCache] MISS for: {claim_text[:50]!r}")
                return None
            if self._expired(entry, now):
                del self._entries[key]
                self._misses += 1
                cache_lookups_total.labels(outcome="expired").inc()
                logger.debug(f"[ResultCache] EXPIRED for: {claim_text[:50]!r}")
                return None
            self._hits += 1
        cache_lookups_total.labels(outcome="hit").inc()
        logger.debug(f"[ResultCache] HIT for: {claim_text[:50]!r}")
        return entry

    def set(
        self,
        claim_text: str,
        verdict: str,
        confidence: int,
        evidence: Optional[List[EvidenceItem]] = None,
        explanation: str = "",
        canonical: Optional[Dict[str, Any]] = None,
    ) -> CacheEntry:
        key = claim_cache_key(claim_text)
        entry = CacheEntry(
            key=key,
            claim=claim_text,
            verdict=verdict,
            confidence=int(confidence),
            explanation=explanation,
            evidence_snapshot=tuple(evidence or ()),
            canonical=canonical,
            created_at=self._clock(),
        )
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                oldest_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                cache_evictions_total.inc()
                logger.debug(f"[ResultCache] Evicted oldest entry {oldest_key}")
            self._entries[key] = entry
            self._stores += 1
        logger.debug(f"[ResultCache] STORED: {claim_text[:50]!r} ({len(entry.evidence_snapshot)} evidence items)")
        return entry

    def store_result(self, claim_text: str, result: VerificationResult, canonical: Optional[Dict[str, Any]] = None):
        return self.set(
            claim_text,
            result.verdict,
            result.confidence,
            evidence=list(result.evidence),
            explanation=result.explanation,
            canonical=canonical,
        )

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"[ResultCache] Cleaned {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            hit_rate = round(self._hits / lookups * 100, 1) if lookups else 0.0
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "stores": self._stores,
                "evictions": self._evictions,
                "hit_rate": hit_rate,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("[ResultCache] Cleared all entries")

    def __len__(self) -> int:
        return len(self._entries)

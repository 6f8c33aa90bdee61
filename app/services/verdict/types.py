from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Verdict(str, Enum):
    TRUE = "true"
    FALSE = "false"
    MISLEADING = "misleading"
    UNVERIFIED = "unverified"

    @classmethod
    def parse(cls, value: Any) -> Optional["Verdict"]:
        raw = str(value or "").strip().lower()
        aliases = {
            "supported": cls.TRUE,
            "correct": cls.TRUE,
            "refuted": cls.FALSE,
            "incorrect": cls.FALSE,
            "mixed": cls.MISLEADING,
            "partially true": cls.MISLEADING,
            "unverifiable": cls.UNVERIFIED,
            "unknown": cls.UNVERIFIED,
        }
        if raw in aliases:
            return aliases[raw]
        try:
            return cls(raw)
        except ValueError:
            return None


class Relationship(str, Enum):
    ENTAILMENT = "ENTAILMENT"
    CONTRADICTION = "CONTRADICTION"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class EvidenceItem:
    snippet: str
    provider: str
    url: str = ""
    title: str = ""
    rank: Optional[int] = None

    def source(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url, "provider": self.provider}


@dataclass(frozen=True)
class ScoredEvidence:
    item: EvidenceItem
    similarity: float
    relationship: Relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VerificationResult:
    verdict: str
    confidence: int
    explanation: str
    evidence: Tuple[EvidenceItem, ...] = field(default_factory=tuple)
    timestamp: datetime = field(default_factory=_utcnow)
    method: str = "heuristic"
    cached: bool = False

    def sources(self) -> list[Dict[str, str]]:
        return [item.source() for item in self.evidence]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "sources": self.sources(),
            "method": self.method,
            "cached": self.cached,
            "timestamp": self.timestamp.isoformat(),
        }

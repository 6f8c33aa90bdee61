"""
Data-driven fact overrides.

Known, high-frequency claims are answered from a table loaded at startup
(``app/constants/fact_overrides.json``) instead of hitting providers. A row
matches when every condition it declares matches: ``claim`` is searched in
the normalized claim text, ``subject`` / ``relation`` / ``object`` are
searched in the lower-cased canonical fields.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.constants.config import FACT_OVERRIDES_PATH
from app.core.logger import get_logger
from app.services.common.text_cleaner import normalize_claim_text
from app.services.extraction.canonicalizer import CanonicalForm
from app.services.verdict.types import EvidenceItem, Verdict, VerificationResult

logger = get_logger(__name__)

_CONDITION_FIELDS = ("claim", "subject", "relation", "object")


@dataclass(frozen=True)
class FactOverride:
    override_id: str
    verdict: Verdict
    confidence: int
    explanation: str
    conditions: Tuple[Tuple[str, "re.Pattern[str]"], ...]
    sources: Tuple[EvidenceItem, ...] = field(default_factory=tuple)

    def matches(self, normalized_claim: str, canonical: Optional[CanonicalForm]) -> bool:
        for name, pattern in self.conditions:
            if name == "claim":
                target = normalized_claim
            elif canonical is None:
                return False
            else:
                target = (getattr(canonical, name) or "").lower()
            if not pattern.search(target):
                return False
        return True

    def to_result(self) -> VerificationResult:
        return VerificationResult(
            verdict=self.verdict.value,
            confidence=self.confidence,
            explanation=self.explanation,
            evidence=self.sources,
            method=f"override:{self.override_id}",
        )


def _parse_row(row: Dict[str, Any]) -> FactOverride:
    verdict = Verdict.parse(row.get("verdict"))
    if verdict is None:
        raise ValueError(f"invalid verdict {row.get('verdict')!r}")
    conditions = tuple(
        (name, re.compile(row[name], flags=re.IGNORECASE)) for name in _CONDITION_FIELDS if row.get(name)
    )
    if not conditions:
        raise ValueError("row declares no match condition")
    sources = tuple(
        EvidenceItem(
            snippet=row.get("explanation", ""),
            provider="override",
            url=src.get("url", ""),
            title=src.get("title", ""),
            rank=idx,
        )
        for idx, src in enumerate(row.get("sources") or [])
    )
    return FactOverride(
        override_id=str(row.get("id") or "unnamed"),
        verdict=verdict,
        confidence=max(0, min(100, int(row.get("confidence", 90)))),
        explanation=str(row.get("explanation", "")),
        conditions=conditions,
        sources=sources,
    )


class FactOverrideTable:
    def __init__(self, overrides: Optional[List[FactOverride]] = None) -> None:
        self.overrides: List[FactOverride] = list(overrides or [])

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "FactOverrideTable":
        overrides: List[FactOverride] = []
        for row in rows:
            try:
                overrides.append(_parse_row(row))
            except (ValueError, re.error, TypeError) as e:
                logger.warning(f"[FactOverrides] Skipping row {row.get('id')!r}: {e}")
        return cls(overrides)

    @classmethod
    def load(cls, path: str = FACT_OVERRIDES_PATH) -> "FactOverrideTable":
        try:
            with open(path, "r", encoding="utf-8") as fh:
                rows = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[FactOverrides] Could not load {path}: {e}")
            return cls()
        table = cls.from_rows(rows if isinstance(rows, list) else [])
        logger.info(f"[FactOverrides] Loaded {len(table)} overrides from {path}")
        return table

    def match(self, claim: str, canonical: Optional[CanonicalForm]) -> Optional[FactOverride]:
        normalized = normalize_claim_text(claim)
        for override in self.overrides:
            if override.matches(normalized, canonical):
                return override
        return None

    def __len__(self) -> int:
        return len(self.overrides)

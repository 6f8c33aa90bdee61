"""
Verdict services: evidence scoring, fact overrides and aggregation.
"""

from app.services.verdict.aggregator import EvidenceAggregator, decide
from app.services.verdict.overrides import FactOverrideTable
from app.services.verdict.types import EvidenceItem, Relationship, ScoredEvidence, Verdict, VerificationResult

__all__ = [
    "EvidenceAggregator",
    "EvidenceItem",
    "FactOverrideTable",
    "Relationship",
    "ScoredEvidence",
    "Verdict",
    "VerificationResult",
    "decide",
]

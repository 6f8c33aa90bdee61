import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    RECEIVED = "RECEIVED"
    RATE_CHECK = "RATE_CHECK"
    REJECTED = "REJECTED"
    QUEUED = "QUEUED"
    INLINE = "INLINE"
    RUNNING = "RUNNING"
    DELIVERED = "DELIVERED"
    FAILED_RETRY = "FAILED_RETRY"
    FAILED_TERMINAL = "FAILED_TERMINAL"


class VerificationJob(BaseModel):
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    session_id: str
    claim_text: str
    prior_context: List[str] = Field(default_factory=list)
    enqueued_at: datetime = Field(default_factory=_utcnow)
    attempt: int = 0


class SourceRef(BaseModel):
    title: str = ""
    url: str = ""
    provider: str = ""


class ClaimVerdict(BaseModel):
    """Wire form of one verified claim inside ``claims-verified``."""

    claim: str
    verdict: str
    confidence: int
    explanation: str
    sources: List[SourceRef] = Field(default_factory=list)
    canonical: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ClaimsVerifiedEvent(BaseModel):
    transcript: str
    claims: List[ClaimVerdict] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class JobResult(BaseModel):
    job_id: str
    session_id: str
    transcript: str
    claims: List[ClaimVerdict]
    status: str
    completed_at: datetime = Field(default_factory=_utcnow)


class VerifyClaimRequest(BaseModel):
    claim: str = Field(min_length=1)


class ClaimResult(BaseModel):
    claim: str
    verdict: str
    confidence: int
    sources: List[SourceRef] = Field(default_factory=list)
    explanation: str

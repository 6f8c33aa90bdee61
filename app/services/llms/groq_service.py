import asyncio
import json
import re
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from groq import AsyncGroq

from app.constants.config import LLM_MAX_TOKENS_VERDICT, LLM_TEMPERATURE, MAX_EVIDENCE_ITEMS
from app.constants.llm_prompts import CLAIM_VERDICT_PROMPT
from app.core.config import settings
from app.core.logger import get_logger
from app.core.observability import external_calls_total
from app.services.common.text_cleaner import truncate_content
from app.services.verdict.types import EvidenceItem, Verdict

logger = get_logger(__name__)

# Process-wide cooldown shared by every GroqService instance (monotonic deadline).
_cooldown_until: float = 0.0


class ReasoningRateLimited(RuntimeError):
    """Raised when Groq answers 429; the service enters its cooldown window."""


@dataclass(frozen=True)
class ReasoningVerdict:
    verdict: Verdict
    confidence: int
    explanation: str


def in_cooldown() -> bool:
    return time.monotonic() < _cooldown_until


def start_cooldown(seconds: float) -> None:
    global _cooldown_until
    _cooldown_until = max(_cooldown_until, time.monotonic() + seconds)


def reset_cooldown() -> None:
    global _cooldown_until
    _cooldown_until = 0.0


def format_evidence_block(evidence: List[EvidenceItem], limit: int = MAX_EVIDENCE_ITEMS) -> str:
    lines = []
    for idx, item in enumerate(evidence[:limit], start=1):
        origin = item.title or item.provider
        lines.append(f"[{idx}] ({origin}) {truncate_content(item.snippet, 600)}")
    return "\n".join(lines) if lines else "(no evidence retrieved)"


def parse_verdict_payload(raw: str) -> Optional[ReasoningVerdict]:
    """Parse the model's JSON answer, tolerating code fences and surrounding prose."""
    if not raw:
        return None
    cleaned = re.sub(r"```(?:json)?", "", raw).strip()
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        cleaned = match.group(0)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    verdict = Verdict.parse(payload.get("verdict"))
    if verdict is None:
        return None
    try:
        confidence = float(payload.get("confidence", 50))
    except (TypeError, ValueError):
        confidence = 50.0
    if 0.0 < confidence <= 1.0:
        confidence *= 100
    return ReasoningVerdict(
        verdict=verdict,
        confidence=int(round(max(0.0, min(100.0, confidence)))),
        explanation=str(payload.get("explanation") or "").strip(),
    )


class GroqService:
    """
    Reasoning service client: asks a Groq-hosted LLM for a verdict over a
    claim and a formatted evidence block.

    A 429 from Groq starts a process-wide cooldown during which callers
    should skip the service entirely.
    """

    def __init__(self, client: Optional[Any] = None) -> None:
        api_key = settings.GROQ_API_KEY
        if client is None and not api_key:
            raise RuntimeError("Missing GROQ_API_KEY")

        self.client = client or AsyncGroq(api_key=api_key)
        self.model = settings.GROQ_MODEL
        self.timeout = settings.REASONING_TIMEOUT_S
        self.cooldown_seconds = settings.REASONING_COOLDOWN_S

    @staticmethod
    def is_configured() -> bool:
        key = settings.GROQ_API_KEY or ""
        return len(key) > 10 and not key.startswith("your_")

    def _is_rate_limit(self, error: Exception) -> bool:
        status = getattr(error, "status_code", None)
        return status == 429 or "429" in str(error) or "rate limit" in str(error).lower()

    async def ainvoke(self, prompt: str) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": LLM_TEMPERATURE,
            "max_tokens": LLM_MAX_TOKENS_VERDICT,
            "response_format": {"type": "json_object"},
        }
        try:
            response = await asyncio.wait_for(self.client.chat.completions.create(**kwargs), timeout=self.timeout)
        except asyncio.TimeoutError:
            external_calls_total.labels(provider="groq", status="timeout").inc()
            raise
        except Exception as e:
            if self._is_rate_limit(e):
                start_cooldown(self.cooldown_seconds)
                external_calls_total.labels(provider="groq", status="rate_limited").inc()
                logger.warning(f"[GroqService] Rate limit hit. Cooling down for {self.cooldown_seconds:.0f}s")
                raise ReasoningRateLimited(str(e)) from e
            external_calls_total.labels(provider="groq", status="error").inc()
            raise

        external_calls_total.labels(provider="groq", status="ok").inc()
        return response.choices[0].message.content or ""

    async def verify(
        self,
        claim: str,
        evidence: List[EvidenceItem],
        context: Optional[List[str]] = None,
        time_context: str = "present",
    ) -> Optional[ReasoningVerdict]:
        """
        Ask for a verdict. Returns None when the answer cannot be parsed.
        Raises ReasoningRateLimited, asyncio.TimeoutError or provider errors.
        """
        prompt = CLAIM_VERDICT_PROMPT.format(
            today=date.today().isoformat(),
            time_context=time_context,
            context="\n".join(context or []) or "(none)",
            claim=claim,
            evidence=format_evidence_block(evidence),
        )
        raw = await self.ainvoke(prompt)
        result = parse_verdict_payload(raw)
        if result is None:
            logger.warning(f"[GroqService] Unparseable verdict payload: {raw[:120]!r}")
        return result

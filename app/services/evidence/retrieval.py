import asyncio
from typing import Awaitable, List, Optional

from app.core.config import settings
from app.core.logger import get_logger
from app.services.evidence.google_search import GoogleSearchClient
from app.services.evidence.wikipedia import WikipediaClient
from app.services.extraction.canonicalizer import CanonicalForm
from app.services.verdict.types import EvidenceItem

logger = get_logger(__name__)


class EvidenceRetriever:
    """
    Fans a claim out to every configured provider in parallel.

    Each provider runs under its own timeout; a provider that fails or times
    out contributes nothing and never fails the whole retrieval. Results are
    ordered search first, then encyclopedia, duplicates (same URL) dropped.
    """

    def __init__(
        self,
        search: Optional[GoogleSearchClient] = None,
        wiki: Optional[WikipediaClient] = None,
    ) -> None:
        self.search = search
        self.wiki = wiki

    @classmethod
    def from_settings(cls) -> "EvidenceRetriever":
        search = None
        if GoogleSearchClient.is_configured():
            search = GoogleSearchClient()
        else:
            logger.warning("[EvidenceRetriever] Google CSE not configured. Web search disabled")

        wiki = WikipediaClient() if WikipediaClient.is_configured() else None
        return cls(search=search, wiki=wiki)

    @property
    def providers(self) -> List[str]:
        names = []
        if self.search is not None:
            names.append(GoogleSearchClient.PROVIDER)
        if self.wiki is not None:
            names.append(WikipediaClient.PROVIDER)
        return names

    async def _bounded(self, name: str, call: Awaitable[List[EvidenceItem]], timeout: float) -> List[EvidenceItem]:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[EvidenceRetriever] {name} timed out after {timeout:.1f}s")
            return []
        except Exception as e:
            logger.warning(f"[EvidenceRetriever] {name} failed: {e}")
            return []

    async def retrieve(self, claim: str, canonical: Optional[CanonicalForm] = None) -> List[EvidenceItem]:
        calls = []
        if self.search is not None:
            calls.append(self._bounded("google", self.search.search(claim), settings.SEARCH_TIMEOUT_S))
        if self.wiki is not None:
            terms = [canonical.subject, canonical.object or ""] if canonical else []
            terms.append(claim)
            calls.append(self._bounded("wikipedia", self.wiki.search_terms(terms), settings.WIKIPEDIA_TIMEOUT_S))

        if not calls:
            return []

        batches = await asyncio.gather(*calls)
        evidence: List[EvidenceItem] = []
        seen = set()
        for batch in batches:
            for item in batch:
                key = item.url or item.snippet
                if key in seen:
                    continue
                seen.add(key)
                evidence.append(item)

        logger.info(f"[EvidenceRetriever] {len(evidence)} evidence items for claim={claim[:60]!r}")
        return evidence

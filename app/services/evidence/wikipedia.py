import asyncio
import re
from typing import List, Optional
from urllib.parse import quote

import aiohttp

from app.constants.config import WIKIPEDIA_API_URL, WIKIPEDIA_MAX_TERMS, WIKIPEDIA_PAGE_URL, WIKIPEDIA_USER_AGENT
from app.core.config import settings
from app.core.logger import get_logger
from app.core.observability import external_calls_total
from app.services.common.text_cleaner import remove_html_tags
from app.services.verdict.types import EvidenceItem

logger = get_logger(__name__)


class WikipediaClient:
    """
    Encyclopedic evidence provider backed by the MediaWiki API.

    For each search term: take the best search hit, then fetch the plain-text
    intro (first sentences) of that page.
    """

    PROVIDER = "wikipedia"

    def __init__(self, timeout: Optional[float] = None, sentences: int = 3) -> None:
        self.timeout = timeout if timeout is not None else settings.WIKIPEDIA_TIMEOUT_S
        self.sentences = sentences
        self.headers = {"User-Agent": WIKIPEDIA_USER_AGENT}

    @staticmethod
    def is_configured() -> bool:
        return settings.WIKIPEDIA_ENABLED

    async def _get_json(self, session: aiohttp.ClientSession, params: dict) -> dict:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.get(WIKIPEDIA_API_URL, params=params, timeout=timeout) as resp:
            if resp.status != 200:
                external_calls_total.labels(provider=self.PROVIDER, status=str(resp.status)).inc()
                return {}
            return await resp.json()

    async def lookup(self, session: aiohttp.ClientSession, term: str) -> Optional[EvidenceItem]:
        query = re.sub(r"[^\w\s]", " ", term or "").strip()
        if len(query) < 2:
            return None

        try:
            found = await self._get_json(
                session,
                {"action": "query", "list": "search", "srsearch": query, "srlimit": 1, "format": "json"},
            )
            hits = (found.get("query") or {}).get("search") or []
            if not hits:
                return None
            hit = hits[0]
            title = hit.get("title", "")

            pages_payload = await self._get_json(
                session,
                {
                    "action": "query",
                    "titles": title,
                    "prop": "extracts",
                    "exintro": 1,
                    "explaintext": 1,
                    "exsentences": self.sentences,
                    "format": "json",
                },
            )
            pages = (pages_payload.get("query") or {}).get("pages") or {}
            page_id, page = next(iter(pages.items()), (None, None))
            snippet = ""
            if page and page_id != "-1":
                snippet = page.get("extract", "")
            snippet = snippet or remove_html_tags(hit.get("snippet", ""))
            if not snippet:
                return None
            external_calls_total.labels(provider=self.PROVIDER, status="ok").inc()
            return EvidenceItem(
                snippet=snippet.strip(),
                provider=self.PROVIDER,
                url=WIKIPEDIA_PAGE_URL.format(title=quote(title.replace(" ", "_"))),
                title=f"Wikipedia - {title}",
            )
        except Exception as e:
            external_calls_total.labels(provider=self.PROVIDER, status="error").inc()
            logger.warning(f"[Wikipedia] Lookup failed for term={term!r}: {e}")
            return None

    async def search_terms(self, terms: List[str]) -> List[EvidenceItem]:
        """Look up up to WIKIPEDIA_MAX_TERMS distinct terms in parallel, deduplicated by page URL."""
        unique = list(dict.fromkeys(t.strip() for t in terms if t and len(t.strip()) > 2))[:WIKIPEDIA_MAX_TERMS]
        if not unique:
            return []

        async with aiohttp.ClientSession(headers=self.headers) as session:
            found = await asyncio.gather(*(self.lookup(session, term) for term in unique))

        results: List[EvidenceItem] = []
        seen_urls = set()
        for item in found:
            if item is None or item.url in seen_urls:
                continue
            seen_urls.add(item.url)
            results.append(
                EvidenceItem(
                    snippet=item.snippet, provider=item.provider, url=item.url, title=item.title, rank=len(results)
                )
            )
        logger.info(f"[Wikipedia] {len(results)} pages for terms={unique}")
        return results

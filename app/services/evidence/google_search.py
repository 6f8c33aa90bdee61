from typing import List, Optional

import aiohttp

from app.constants.config import GOOGLE_CSE_CALLS_PER_SECOND, GOOGLE_CSE_MAX_RESULTS, GOOGLE_CSE_SEARCH_URL
from app.core.config import settings
from app.core.logger import get_logger
from app.core.observability import external_calls_total
from app.core.rate_limit import throttled
from app.services.common.text_cleaner import remove_html_tags
from app.services.verdict.types import EvidenceItem

logger = get_logger(__name__)


class GoogleSearchClient:
    """
    Google Custom Search (CSE) evidence provider.

    Returns the top results as EvidenceItems (title, link, snippet). Any
    network error, timeout or malformed payload yields an empty list.
    """

    PROVIDER = "google"

    def __init__(
        self,
        api_key: Optional[str] = None,
        cse_id: Optional[str] = None,
        timeout: Optional[float] = None,
        max_results: int = GOOGLE_CSE_MAX_RESULTS,
    ) -> None:
        self.api_key = api_key or settings.GOOGLE_API_KEY
        self.cse_id = cse_id or settings.GOOGLE_CSE_ID
        if not self.api_key or not self.cse_id:
            raise RuntimeError("Missing GOOGLE_API_KEY or GOOGLE_CSE_ID")
        self.timeout = timeout if timeout is not None else settings.SEARCH_TIMEOUT_S
        self.max_results = max_results

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.GOOGLE_API_KEY) and bool(settings.GOOGLE_CSE_ID)

    def _parse_items(self, data: dict) -> List[EvidenceItem]:
        items = []
        for rank, item in enumerate((data or {}).get("items", [])[: self.max_results]):
            snippet = remove_html_tags(item.get("snippet", ""))
            if not snippet:
                continue
            items.append(
                EvidenceItem(
                    snippet=snippet,
                    provider=self.PROVIDER,
                    url=item.get("link", ""),
                    title=item.get("title", ""),
                    rank=rank,
                )
            )
        return items

    @throttled(limit=GOOGLE_CSE_CALLS_PER_SECOND, period=1, name="google_cse")
    async def search(self, query: str, session: Optional[aiohttp.ClientSession] = None) -> List[EvidenceItem]:
        params = {"key": self.api_key, "cx": self.cse_id, "q": query}
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        owns_session = session is None
        session = session or aiohttp.ClientSession()
        try:
            async with session.get(GOOGLE_CSE_SEARCH_URL, params=params, timeout=timeout) as resp:
                if resp.status != 200:
                    external_calls_total.labels(provider=self.PROVIDER, status=str(resp.status)).inc()
                    logger.warning(f"[GoogleSearch] HTTP {resp.status} for query={query!r}")
                    return []
                data = await resp.json()
            results = self._parse_items(data)
            external_calls_total.labels(provider=self.PROVIDER, status="ok").inc()
            logger.info(f"[GoogleSearch] {len(results)} results for query={query!r}")
            return results
        except Exception as e:
            external_calls_total.labels(provider=self.PROVIDER, status="error").inc()
            logger.warning(f"[GoogleSearch] Search failed for query={query!r}: {e}")
            return []
        finally:
            if owns_session:
                await session.close()

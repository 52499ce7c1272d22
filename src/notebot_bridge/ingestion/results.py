"""
Results Module - Scrape the published-results page.
===================================================

The results listing is not part of the legacy corpus; it is read live from
the university's "results published" page and cached for 30 minutes. Any
network or parse failure yields an empty list, never an exception.
"""

from typing import Optional

import requests
from bs4 import BeautifulSoup
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from notebot_bridge.shared.config import get_settings
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import ScrapedResult
from notebot_bridge.storage.cache import KeyValueCache, NullCache

logger = get_logger(__name__)

RESULT_HEADING_SELECTOR = ".large-9.columns h3"


def parse_results_page(html: str, limit: Optional[int] = None) -> list[ScrapedResult]:
    """
    Extract result links from the results page HTML.

    Each entry is an ``h3`` holding an anchor; its date is the ``time``
    element of the heading's parent.

    Args:
        html: Page HTML
        limit: Maximum number of entries (None for all)

    Returns:
        Results in page order
    """
    soup = BeautifulSoup(html, "lxml")
    results: list[ScrapedResult] = []

    for heading in soup.select(RESULT_HEADING_SELECTOR):
        anchor = heading.find("a")
        if anchor is None:
            continue

        date_el = heading.parent.find("time") if heading.parent is not None else None
        results.append(
            ScrapedResult(
                href=anchor.get("href") or "",
                content=anchor.get_text(strip=True),
                date=date_el.get_text(strip=True) if date_el is not None else "",
            )
        )

    return results[:limit] if limit is not None else results


class ResultsScraper:
    """
    Fetches the latest published results, with caching and retries.

    Example:
        >>> scraper = ResultsScraper(cache=MemoryCache())
        >>> for result in scraper.fetch(limit=5):
        ...     print(result.date, result.content)
    """

    def __init__(
        self,
        cache: Optional[KeyValueCache] = None,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        cache_ttl: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        results_config = settings.results

        self.cache: KeyValueCache = cache if cache is not None else NullCache()
        self.url = url or results_config.url
        self.timeout = timeout if timeout is not None else results_config.timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.legacy_api.max_retries
        )
        self.cache_ttl = cache_ttl if cache_ttl is not None else results_config.cache_ttl
        self.default_limit = results_config.limit
        self.user_agent = results_config.user_agent

        self.retry_min_wait = settings.legacy_api.retry_min_wait
        self.retry_max_wait = settings.legacy_api.retry_max_wait

        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create the requests session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                }
            )
        return self._session

    def _download(self) -> str:
        @retry(
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(min=self.retry_min_wait, max=self.retry_max_wait),
            before_sleep=lambda retry_state: logger.warning(
                f"Retry {retry_state.attempt_number}/{self.max_retries} for {self.url}"
            ),
            reraise=True,
        )
        def _request_with_retry() -> requests.Response:
            return self.session.get(self.url, timeout=self.timeout)

        response = _request_with_retry()
        response.raise_for_status()
        return response.text

    def fetch(self, limit: Optional[int] = None) -> list[ScrapedResult]:
        """
        Latest published results.

        Args:
            limit: Maximum entries (default from config)

        Returns:
            Up to ``limit`` results; empty on any failure
        """
        limit = limit if limit is not None else self.default_limit
        cache_key = f"scraped-results:{limit}"

        cached = self.cache.get(cache_key)
        if cached:
            return [ScrapedResult.model_validate(item) for item in cached]

        try:
            html = self._download()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch results page {self.url}: {e}")
            return []

        results = parse_results_page(html, limit)
        if results:
            self.cache.set(
                cache_key, [r.model_dump() for r in results], ttl=self.cache_ttl
            )
        else:
            logger.warning(f"No results found on {self.url}")
        return results

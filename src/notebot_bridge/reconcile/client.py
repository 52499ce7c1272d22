"""
Client Module - HTTP access to a running legacy (V1) API.
=========================================================

The legacy API is ground truth for the reconciler and the comparison report.
Per node, any failure (non-2xx, timeout, connection error, body that is not
JSON) means "no data for this node" and is returned as None. Only the
initial probe escalates, via ``LegacySourceUnavailable``.
"""

from typing import Any, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from notebot_bridge.shared.config import Settings, get_settings
from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

PROBE_PATH = "/app/notes"


class LegacySourceUnavailable(RuntimeError):
    """The legacy API did not answer the reachability probe."""

    def __init__(self, base_url: str, reason: str = "no response"):
        self.base_url = base_url
        super().__init__(f"Legacy API not reachable at {base_url}: {reason}")


class LegacyApiClient:
    """
    JSON GET client for the legacy API with retries on transient errors.

    Example:
        >>> client = LegacyApiClient("http://localhost:6969")
        >>> client.fetch_list("/app/notes/1")
        [{'subName': 'Math-I', 'route': 'app/notes/1/math1'}, ...]
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = settings or get_settings()
        api_config = settings.legacy_api

        self.base_url = (base_url or settings.get_effective_legacy_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else api_config.timeout
        self.max_retries = max_retries if max_retries is not None else api_config.max_retries
        self.retry_min_wait = api_config.retry_min_wait
        self.retry_max_wait = api_config.retry_max_wait

        self._session = session
        self.requests_made = 0

    @property
    def session(self) -> requests.Session:
        """Get or create the requests session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Accept": "application/json"})
        return self._session

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get(self, url: str) -> requests.Response:
        @retry(
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(min=self.retry_min_wait, max=self.retry_max_wait),
            before_sleep=lambda retry_state: logger.warning(
                f"Retry {retry_state.attempt_number}/{self.max_retries} for {url}"
            ),
            reraise=True,
        )
        def _request_with_retry() -> requests.Response:
            self.requests_made += 1
            return self.session.get(url, timeout=self.timeout)

        return _request_with_retry()

    def fetch(self, path: str) -> Optional[Any]:
        """
        GET a legacy path and decode its JSON body.

        Args:
            path: Path relative to the base URL, e.g. ``/app/notes/1``

        Returns:
            Decoded JSON, or None when the node has no usable data
        """
        url = self.url_for(path)
        try:
            response = self._get(url)
        except requests.RequestException as e:
            logger.debug(f"Legacy request failed for {url}: {e}")
            return None

        if not response.ok:
            logger.debug(f"Legacy API returned {response.status_code} for {url}")
            return None

        try:
            return response.json()
        except ValueError:
            logger.debug(f"Legacy API returned non-JSON body for {url}")
            return None

    def fetch_list(self, path: str) -> Optional[list[Any]]:
        """Like ``fetch``, but only a JSON array counts as data."""
        data = self.fetch(path)
        return data if isinstance(data, list) else None

    def probe(self) -> None:
        """
        Check that the legacy API answers at all.

        Raises:
            LegacySourceUnavailable: If the probe path yields no data
        """
        if not self.fetch(PROBE_PATH):
            raise LegacySourceUnavailable(self.base_url)
        logger.info(f"Legacy API reachable at {self.base_url}")

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

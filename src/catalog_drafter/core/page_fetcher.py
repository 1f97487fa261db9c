import logging
import re
import time
from dataclasses import dataclass, field
from html import unescape
from typing import List, Optional, Tuple
from urllib.parse import quote, urlparse

import requests

from ..exceptions import FetchError
from ..models.page import FetchedPage, PageMetadata
from ..utils.config import ConfigManager

logger = logging.getLogger(__name__)

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
BLOCKED_STATUSES = {401, 403, 407, 429, 451}

_META_PATTERNS = {
    "title": re.compile(r"<title[^>]*>([^<]+)</title>", re.I),
    "description": re.compile(
        r"<meta[^>]*name=[\"']description[\"'][^>]*content=[\"']([^\"']+)[\"']", re.I
    ),
    "og_image": re.compile(
        r"<meta[^>]*property=[\"']og:image[\"'][^>]*content=[\"']([^\"']+)[\"']", re.I
    ),
    "canonical_url": re.compile(
        r"<link[^>]*rel=[\"']canonical[\"'][^>]*href=[\"']([^\"']+)[\"']", re.I
    ),
}


@dataclass
class FetchAttempt:
    """Outcome of one fetch strategy, kept for debugging"""

    strategy: str
    request_url: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    timed_out: bool = False
    elapsed: float = 0.0
    response: Optional[requests.Response] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_basic_metadata(html: str) -> PageMetadata:
    """Pull title, description, og:image and canonical URL with plain regexes"""
    values = {}
    for name, pattern in _META_PATTERNS.items():
        match = pattern.search(html)
        if match:
            values[name] = unescape(match.group(1).strip())
    return PageMetadata(**values)


class PageFetcher:
    """Fetches product page HTML through a chain of proxies, then directly"""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config_manager or ConfigManager()
        self.timeout = self.config.get("fetching.timeout_seconds", 15)
        self.min_body_bytes = self.config.get("fetching.min_body_bytes", 100)
        self.proxy_templates: List[str] = list(self.config.get("fetching.proxies", []))
        self.direct_fallback = self.config.get("fetching.direct_fallback", True)

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": self.config.get(
                    "fetching.user_agent",
                    "Mozilla/5.0 (compatible; CatalogDrafter/1.0)",
                ),
                "Accept-Language": "en-US,en;q=0.5",
            }
        )

        # Attempt log of the most recent fetch
        self.attempts: List[FetchAttempt] = []

    def strategies(self, url: str) -> List[Tuple[str, str]]:
        """Ordered (name, request URL) pairs to try for a page"""
        encoded = quote(url, safe="")
        strategies = []

        for template in self.proxy_templates:
            name = f"proxy:{urlparse(template).netloc or template}"
            strategies.append((name, template.format(url=encoded)))

        if self.direct_fallback:
            strategies.append(("direct", url))

        return strategies

    def fetch(self, url: str) -> FetchedPage:
        """
        Fetch a product page, trying each strategy exactly once

        Args:
            url: Product page URL

        Returns:
            FetchedPage from the first strategy that returned usable HTML

        Raises:
            FetchError: if the URL is invalid or every strategy failed
        """
        self.attempts = []

        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FetchError(
                FetchError.INVALID_RESPONSE,
                "Please enter a valid product URL (must start with http:// or https://)",
            )

        for name, request_url in self.strategies(url):
            attempt = self._attempt(name, request_url)
            self.attempts.append(attempt)

            if attempt.ok:
                response = attempt.response
                html = response.text
                logger.info(
                    f"Page fetched successfully ({len(html) / 1024:.1f} KB) via {name}"
                )
                return FetchedPage(
                    html=html,
                    final_url=url,
                    status_code=response.status_code,
                    content_type=response.headers.get("content-type", "text/html"),
                    metadata=extract_basic_metadata(html),
                    strategy=name,
                )

            logger.debug(f"Fetch strategy {name} failed for {url}: {attempt.error}")

        reason = self._failure_reason(self.attempts)
        logger.warning(
            f"All {len(self.attempts)} fetch strategies failed for {url} ({reason})"
        )
        raise FetchError(reason, attempts=self.attempts)

    def _attempt(self, name: str, request_url: str) -> FetchAttempt:
        attempt = FetchAttempt(strategy=name, request_url=request_url)
        start = time.monotonic()

        try:
            response = self.session.get(
                request_url, headers={"Accept": ACCEPT_HTML}, timeout=self.timeout
            )
        except requests.Timeout:
            attempt.error = "timeout"
            attempt.timed_out = True
        except requests.RequestException as e:
            attempt.error = f"request failed: {e}"
        else:
            attempt.status_code = response.status_code
            if not 200 <= response.status_code < 300:
                attempt.error = f"HTTP {response.status_code}"
            elif len((response.text or "").strip()) < self.min_body_bytes:
                attempt.error = "empty or invalid response"
            else:
                attempt.response = response

        attempt.elapsed = time.monotonic() - start
        return attempt

    @staticmethod
    def _failure_reason(attempts: List[FetchAttempt]) -> str:
        if attempts and all(a.timed_out for a in attempts):
            return FetchError.TIMEOUT
        if any(a.status_code in BLOCKED_STATUSES for a in attempts):
            return FetchError.BLOCKED
        return FetchError.INVALID_RESPONSE

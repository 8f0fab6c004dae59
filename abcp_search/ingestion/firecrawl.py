"""
Firecrawl REST client (scrape, crawl with job polling) and a search provider
that scrapes a Google results page through it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote_plus

import requests

from abcp_search.config.env import FirecrawlConfig
from abcp_search.ingestion.base import SearchHit, SearchProvider, TransportError

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.google.com/search?q="

INCLUDE_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "table", "tr", "td", "th", "div", "span", "a"]
EXCLUDE_TAGS = ["nav", "footer", "header", "aside", "script", "style"]


def build_scrape_payload(url: str) -> Dict[str, Any]:
    return {
        "url": url,
        "formats": ["markdown", "html"],
        "onlyMainContent": True,
        "includeTags": INCLUDE_TAGS,
        "excludeTags": EXCLUDE_TAGS,
    }


def build_crawl_payload(url: str, limit: int = 50) -> Dict[str, Any]:
    return {
        "url": url,
        "limit": limit,
        "scrapeOptions": {
            "formats": ["markdown", "html"],
            "onlyMainContent": True,
            "includeTags": INCLUDE_TAGS,
            "excludeTags": EXCLUDE_TAGS,
        },
    }


def _error_message(response: requests.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    return (body or {}).get("error") or f"HTTP {response.status_code}: {fallback}"


def _json(response: requests.Response) -> Dict[str, Any]:
    try:
        return response.json()
    except ValueError as e:
        raise TransportError("Firecrawl returned invalid JSON") from e


class FirecrawlClient:
    """
    Thin wrapper over the Firecrawl v0 REST API.

    Args:
        api_key: Firecrawl bearer token
        config: Base URL and crawl polling settings
        session: Optional requests session (tests inject a mock)
        timeout: Per-request timeout in seconds
        sleep: Sleep function used between crawl status polls
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[FirecrawlConfig] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.config = config or FirecrawlConfig()
        self.session = session or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    def _headers(self, api_key: Optional[str] = None) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key or self.api_key}",
            "Content-Type": "application/json",
        }

    def test_api_key(self, api_key: Optional[str] = None) -> bool:
        """Return True when a trivial scrape with the key succeeds."""
        try:
            response = self.session.post(
                f"{self.config.base_url}/v0/scrape",
                json={"url": "https://example.com", "formats": ["markdown"]},
                headers=self._headers(api_key),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Firecrawl key check failed: {e}")
            return False
        return response.status_code == 200

    def scrape(self, url: str) -> Dict[str, Any]:
        """Scrape one page; returns Firecrawl's ``data`` object (markdown, html, metadata)."""
        logger.debug(f"Firecrawl scrape: {url}")
        try:
            response = self.session.post(
                f"{self.config.base_url}/v0/scrape",
                json=build_scrape_payload(url),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Failed to connect to Firecrawl API: {e}") from e
        if not response.ok:
            raise TransportError(_error_message(response, "Failed to scrape website"))
        result = _json(response)
        if not result.get("success"):
            raise TransportError(result.get("error") or "Failed to scrape website")
        return result.get("data") or {}

    def crawl(self, url: str, limit: int = 50) -> Dict[str, Any]:
        """Start a crawl job and poll its status until completed, failed or out of attempts."""
        try:
            response = self.session.post(
                f"{self.config.base_url}/v0/crawl",
                json=build_crawl_payload(url, limit),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Failed to connect to Firecrawl API: {e}") from e
        if not response.ok:
            raise TransportError(_error_message(response, "Failed to start crawl"))
        started = _json(response)
        if not started.get("success"):
            raise TransportError(started.get("error") or "Failed to start crawl")

        job_id = started.get("jobId")
        logger.info(f"Firecrawl crawl started: job {job_id} for {url}")
        for _ in range(self.config.max_polls):
            self._sleep(self.config.poll_interval_sec)
            try:
                status_resp = self.session.get(
                    f"{self.config.base_url}/v0/crawl/status/{job_id}",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise TransportError(f"Failed to check crawl status: {e}") from e
            if not status_resp.ok:
                raise TransportError(_error_message(status_resp, "Failed to check crawl status"))
            status = _json(status_resp)
            if status.get("status") == "completed":
                return status
            if status.get("status") == "failed":
                raise TransportError("Crawl job failed")
        raise TransportError(
            f"Crawl timed out after {self.config.max_polls * self.config.poll_interval_sec:.0f}s"
        )


def crawl_documents(status: Dict[str, Any]) -> List[SearchHit]:
    """Flatten a completed crawl status payload into hits (one per crawled page)."""
    hits: List[SearchHit] = []
    for page in status.get("data") or []:
        meta = page.get("metadata") or {}
        content = page.get("markdown") or page.get("content") or ""
        if not content:
            continue
        hits.append(SearchHit(
            url=meta.get("sourceURL") or meta.get("url") or "",
            title=meta.get("title") or "",
            content=content,
        ))
    return hits


class FirecrawlSearch(SearchProvider):
    """Runs a query by scraping the Google results page for it."""

    name = "firecrawl"

    def __init__(self, client: FirecrawlClient):
        self.client = client

    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        url = GOOGLE_SEARCH_URL + quote_plus(query)
        data = self.client.scrape(url)
        markdown = data.get("markdown") or ""
        if not markdown:
            return []
        meta = data.get("metadata") or {}
        return [SearchHit(url=url, title=meta.get("title") or query, content=markdown)]

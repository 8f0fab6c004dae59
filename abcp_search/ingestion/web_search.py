"""
JSON web-search backends: SerpAPI, Bing Web Search v7, Google Custom Search.
Each one is a URL/params builder, a response parser and a thin provider class.
Parsers accept the minimal response shape and skip malformed rows.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from abcp_search.ingestion.base import SearchHit, SearchProvider, TransportError

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"
BING_URL = "https://api.bing.microsoft.com/v7.0/search"
GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"


def parse_serpapi(payload: Dict[str, Any]) -> List[SearchHit]:
    out: List[SearchHit] = []
    for row in payload.get("organic_results") or []:
        url = row.get("link")
        if not url:
            continue
        snippet = row.get("snippet") or ""
        out.append(SearchHit(url=url, title=row.get("title") or "", content=snippet, snippet=snippet))
    return out


def parse_bing(payload: Dict[str, Any]) -> List[SearchHit]:
    out: List[SearchHit] = []
    for row in (payload.get("webPages") or {}).get("value") or []:
        url = row.get("url")
        if not url:
            continue
        snippet = row.get("snippet") or ""
        out.append(SearchHit(url=url, title=row.get("name") or "", content=snippet, snippet=snippet))
    return out


def parse_google_cse(payload: Dict[str, Any]) -> List[SearchHit]:
    out: List[SearchHit] = []
    for row in payload.get("items") or []:
        url = row.get("link")
        if not url:
            continue
        snippet = row.get("snippet") or ""
        out.append(SearchHit(url=url, title=row.get("title") or "", content=snippet, snippet=snippet))
    return out


class _JSONSearch(SearchProvider):
    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_json(self, url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        logger.debug(f"{self.name} search: {params.get('q')}")
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"{self.name} request failed: {e}") from e
        if response.status_code != 200:
            raise TransportError(f"{self.name} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{self.name} returned invalid JSON") from e


class SerpAPISearch(_JSONSearch):
    name = "serpapi"

    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        params = {"q": query, "api_key": self.api_key, "num": num_results, "engine": "google"}
        return parse_serpapi(self._get_json(SERPAPI_URL, params))[:num_results]


class BingSearch(_JSONSearch):
    name = "bing"

    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        headers = {"Ocp-Apim-Subscription-Key": self.api_key}
        params = {"q": query, "count": num_results}
        return parse_bing(self._get_json(BING_URL, params, headers=headers))[:num_results]


class GoogleCSESearch(_JSONSearch):
    name = "google"

    def __init__(self, api_key: str, cx: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        super().__init__(api_key, session=session, timeout=timeout)
        self.cx = cx

    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        # Custom Search caps `num` at 10
        params = {"key": self.api_key, "cx": self.cx, "q": query, "num": min(num_results, 10)}
        return parse_google_cse(self._get_json(GOOGLE_CSE_URL, params))[:num_results]

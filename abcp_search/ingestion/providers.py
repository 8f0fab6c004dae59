from __future__ import annotations
from typing import Callable, Dict, Optional

import requests

from abcp_search.config.env import FirecrawlConfig, SearchConfig, get_firecrawl_config, validate_search_config
from abcp_search.ingestion.base import SearchProvider
from abcp_search.ingestion.firecrawl import FirecrawlClient, FirecrawlSearch
from abcp_search.ingestion.fixture import FixtureSearch
from abcp_search.ingestion.web_search import BingSearch, GoogleCSESearch, SerpAPISearch


def build_firecrawl_client(api_key: str, cfg: Optional[FirecrawlConfig] = None,
                           session: Optional[requests.Session] = None, timeout: float = 30.0) -> FirecrawlClient:
    """Firecrawl client using `FIRECRAWL_*` settings unless `cfg` is given."""
    return FirecrawlClient(api_key, config=cfg or get_firecrawl_config(), session=session, timeout=timeout)


def _firecrawl(cfg: SearchConfig, session: Optional[requests.Session]) -> SearchProvider:
    return FirecrawlSearch(build_firecrawl_client(cfg.api_key or "", session=session, timeout=cfg.timeout_sec))


def _serpapi(cfg: SearchConfig, session: Optional[requests.Session]) -> SearchProvider:
    return SerpAPISearch(cfg.api_key or "", session=session, timeout=cfg.timeout_sec)


def _bing(cfg: SearchConfig, session: Optional[requests.Session]) -> SearchProvider:
    return BingSearch(cfg.api_key or "", session=session, timeout=cfg.timeout_sec)


def _google(cfg: SearchConfig, session: Optional[requests.Session]) -> SearchProvider:
    return GoogleCSESearch(cfg.api_key or "", cfg.google_cx or "", session=session, timeout=cfg.timeout_sec)


def _fixture(cfg: SearchConfig, session: Optional[requests.Session]) -> SearchProvider:
    return FixtureSearch()


FACTORIES: Dict[str, Callable[[SearchConfig, Optional[requests.Session]], SearchProvider]] = {
    "firecrawl": _firecrawl,
    "serpapi": _serpapi,
    "bing": _bing,
    "google": _google,
    "fixture": _fixture,
}


def build_search_provider(cfg: SearchConfig, session: Optional[requests.Session] = None) -> SearchProvider:
    """Select the transport named by `cfg.provider`. Raises ConfigurationError when unusable."""
    validate_search_config(cfg)
    return FACTORIES[cfg.provider](cfg, session)

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(ValueError):
    """Missing or invalid transport credentials/settings."""


KNOWN_PROVIDERS = ("firecrawl", "serpapi", "bing", "google", "fixture")


@dataclass(frozen=True)
class SearchConfig:
    provider: str = "firecrawl"
    api_key: str | None = None
    google_cx: str | None = None  # Custom Search engine id (google provider only)
    num_results: int = 5
    delay_sec: float = 1.0
    max_results: int = 10
    timeout_sec: float = 30.0


def get_search_config() -> SearchConfig:
    provider = os.getenv("SEARCH_PROVIDER", "firecrawl").strip().lower()
    key = os.getenv("SEARCH_API_KEY") or os.getenv("FIRECRAWL_API_KEY")
    return SearchConfig(
        provider=provider,
        api_key=key or None,
        google_cx=os.getenv("GOOGLE_CSE_ID"),
        num_results=int(os.getenv("SEARCH_NUM_RESULTS", "5")),
        delay_sec=float(os.getenv("SEARCH_DELAY_SEC", "1.0")),
        max_results=int(os.getenv("SEARCH_MAX_RESULTS", "10")),
        timeout_sec=float(os.getenv("SEARCH_TIMEOUT_SEC", "30")),
    )


def validate_search_config(cfg: SearchConfig) -> None:
    if cfg.provider not in KNOWN_PROVIDERS:
        raise ConfigurationError(f"unknown search provider '{cfg.provider}'")
    if cfg.provider != "fixture" and not cfg.api_key:
        raise ConfigurationError(f"an API key is required for provider '{cfg.provider}'")
    if cfg.provider == "google" and not cfg.google_cx:
        raise ConfigurationError("GOOGLE_CSE_ID is required for provider 'google'")


@dataclass(frozen=True)
class FirecrawlConfig:
    base_url: str = "https://api.firecrawl.dev"
    poll_interval_sec: float = 10.0
    max_polls: int = 30


def get_firecrawl_config() -> FirecrawlConfig:
    return FirecrawlConfig(
        base_url=os.getenv("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev").rstrip("/"),
        poll_interval_sec=float(os.getenv("FIRECRAWL_POLL_INTERVAL_SEC", "10")),
        max_polls=int(os.getenv("FIRECRAWL_MAX_POLLS", "30")),
    )


@dataclass(frozen=True)
class HistoryConfig:
    capacity: int = 20
    path: Path | None = None


def get_history_config(artifacts_root: Path | None = None) -> HistoryConfig:
    raw = os.getenv("HISTORY_PATH")
    if raw:
        path: Path | None = Path(raw)
    elif artifacts_root is not None:
        path = artifacts_root / "history.json"
    else:
        path = None
    return HistoryConfig(capacity=int(os.getenv("HISTORY_CAPACITY", "20")), path=path)

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List


class TransportError(RuntimeError):
    """A search/scrape call failed or returned a non-success response."""


@dataclass(frozen=True)
class SearchHit:
    url: str
    title: str = ""
    content: str = ""
    snippet: str = ""

    @property
    def text(self) -> str:
        """Text handed to the extractor: title, snippet and content on separate lines."""
        parts = [self.title, self.snippet]
        if self.content != self.snippet:
            parts.append(self.content)
        return "\n".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "title": self.title, "content": self.content, "snippet": self.snippet}


class SearchProvider(ABC):
    """One web-search/scrape backend. Raises TransportError on failure."""

    name: str = "base"

    @abstractmethod
    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        ...

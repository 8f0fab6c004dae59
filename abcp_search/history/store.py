from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
import json
import logging
import threading
import time
import uuid

from abcp_search.extraction.core import ExtractionResult

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20


@dataclass(frozen=True)
class SearchHistoryEntry:
    id: str
    issuer: str
    timestamp: int  # epoch milliseconds
    results: Tuple[ExtractionResult, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "issuer": self.issuer,
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SearchHistoryEntry":
        return SearchHistoryEntry(
            id=str(data["id"]),
            issuer=data.get("issuer") or "",
            timestamp=int(data.get("timestamp") or 0),
            results=tuple(ExtractionResult.from_dict(r) for r in data.get("results") or []),
        )


def new_entry(issuer: str, results: Sequence[ExtractionResult], now_ms: Optional[int] = None) -> SearchHistoryEntry:
    ts = int(time.time() * 1000) if now_ms is None else now_ms
    return SearchHistoryEntry(id=f"h_{ts}_{uuid.uuid4().hex[:6]}", issuer=issuer, timestamp=ts, results=tuple(results))


class HistoryStore(ABC):
    """Most-recent-first search history, bounded to `capacity` entries."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = capacity
        self._lock = threading.Lock()

    @abstractmethod
    def _load(self) -> List[SearchHistoryEntry]:
        ...

    @abstractmethod
    def _save(self, entries: List[SearchHistoryEntry]) -> None:
        ...

    def append(self, entry: SearchHistoryEntry) -> None:
        with self._lock:
            entries = [entry] + self._load()
            self._save(entries[: self.capacity])

    def list(self) -> List[SearchHistoryEntry]:
        with self._lock:
            return list(self._load())

    def clear(self) -> None:
        with self._lock:
            self._save([])


class InMemoryHistoryStore(HistoryStore):
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        super().__init__(capacity)
        self._entries: List[SearchHistoryEntry] = []

    def _load(self) -> List[SearchHistoryEntry]:
        return self._entries

    def _save(self, entries: List[SearchHistoryEntry]) -> None:
        self._entries = list(entries)


class JsonFileHistoryStore(HistoryStore):
    """History persisted as a JSON array; a missing or corrupt file reads as empty."""

    def __init__(self, path: Path | str, capacity: int = DEFAULT_CAPACITY):
        super().__init__(capacity)
        self.path = Path(path)

    def _load(self) -> List[SearchHistoryEntry]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text())
            return [SearchHistoryEntry.from_dict(d) for d in raw]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable history file {self.path}: {e}")
            return []

    def _save(self, entries: List[SearchHistoryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps([e.to_dict() for e in entries], indent=2))

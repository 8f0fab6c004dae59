from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import time
import uuid

import os
import json
from pathlib import Path
import queue

from abcp_search.config.env import ConfigurationError, SearchConfig, get_history_config, get_search_config
from abcp_search.planner.core import plan_stages
from abcp_search.extraction.core import WEB_SEARCH_CONFIG, ExtractionResult, ExtractorConfig, extract
from abcp_search.extraction.aggregate import aggregate
from abcp_search.ingestion.base import SearchProvider, TransportError
from abcp_search.ingestion.providers import build_search_provider
from abcp_search.history.store import HistoryStore, JsonFileHistoryStore, new_entry
from abcp_search.exports.writers import write_queries, write_results
from abcp_search.exports.reports import summary_md

logger = logging.getLogger(__name__)


class NoResultsError(LookupError):
    """The whole query plan ran without producing a single extraction."""


@dataclass
class Run:
    id: str
    issuer: str
    status: str = "queued"  # queued|running|completed|failed
    events: List[Dict[str, Any]] = field(default_factory=list)
    queries: List[str] = field(default_factory=list)
    results: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, str] = field(default_factory=dict)  # filename -> content
    error: Optional[str] = None


class RunRegistry:
    def __init__(self):
        self._runs: Dict[str, Run] = {}
        self._lock = threading.Lock()

    def create(self, issuer: str) -> Run:
        rid = f"s_{uuid.uuid4().hex[:8]}"
        run = Run(id=rid, issuer=issuer)
        with self._lock:
            self._runs[rid] = run
        return run

    def get(self, rid: str) -> Optional[Run]:
        with self._lock:
            return self._runs.get(rid)


@dataclass
class SearchOutcome:
    issuer: str
    results: List[ExtractionResult]
    queries: List[str]
    query_stats: List[Dict[str, Any]]
    failures: Dict[str, str]


EventFn = Callable[[str, str], None]


class SearchOrchestrator:
    """
    Runs the query plan for an issuer against one transport and ranks what the extractor finds.

    Keyword queries run first; the site-restricted stage only runs when they
    yield nothing. A failing query is logged and skipped. Raises NoResultsError
    when nothing at all was extracted.
    """

    def __init__(
        self,
        config: SearchConfig,
        provider: SearchProvider,
        history: Optional[HistoryStore] = None,
        extractor_config: ExtractorConfig = WEB_SEARCH_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.provider = provider
        self.history = history
        self.extractor_config = extractor_config
        self._sleep = sleep

    def _run_stage(self, issuer: str, queries: List[str], records: List[ExtractionResult],
                   outcome: SearchOutcome, emit: EventFn) -> None:
        for query in queries:
            # Space out external calls to stay under provider rate limits
            if outcome.queries and self.config.delay_sec > 0:
                self._sleep(self.config.delay_sec)
            outcome.queries.append(query)
            try:
                hits = self.provider.search(query, self.config.num_results)
            except TransportError as e:
                logger.warning(f"Query failed ({self.provider.name}): {query}: {e}")
                outcome.failures[query] = str(e)
                outcome.query_stats.append({"query": query, "hits": 0, "records": 0, "error": str(e)})
                emit("Search", f"Query failed: {query}: {e}")
                continue
            found = 0
            for hit in hits:
                rec = extract(hit.text, issuer, self.extractor_config)
                if rec is not None:
                    records.append(rec.with_source(hit.url or self.provider.name))
                    found += 1
            logger.info(f"{query}: {len(hits)} hits, {found} records")
            outcome.query_stats.append({"query": query, "hits": len(hits), "records": found, "error": ""})
            emit("Search", f"{query}: {len(hits)} hits, {found} records")

    def search(self, issuer: str, on_event: Optional[EventFn] = None) -> SearchOutcome:
        emit: EventFn = on_event or (lambda stage, message: None)
        primary, fallback = plan_stages(issuer)
        if not primary:
            raise ValueError("issuer name is required")
        issuer = issuer.strip()
        outcome = SearchOutcome(issuer=issuer, results=[], queries=[], query_stats=[], failures={})
        records: List[ExtractionResult] = []

        emit("Plan", f"{len(primary)} keyword queries via {self.provider.name}")
        self._run_stage(issuer, primary, records, outcome, emit)
        if not records:
            emit("Plan", f"No results; trying {len(fallback)} site-restricted queries")
            self._run_stage(issuer, fallback, records, outcome, emit)

        emit("Aggregate", f"Ranking {len(records)} records")
        outcome.results = aggregate(records)[: self.config.max_results]
        if not outcome.results:
            raise NoResultsError(f"No liquidity provider information found for '{issuer}'")
        if self.history is not None:
            self.history.append(new_entry(issuer, outcome.results))
        return outcome


ARTIFACTS_ROOT = Path(os.environ.get("ARTIFACTS_ROOT", "./run_artifacts")).resolve()
ARTIFACTS_ROOT.mkdir(parents=True, exist_ok=True)
# Worker settings (configurable via env)
_MAX_WORKERS = int(os.environ.get("JOB_WORKERS", "2"))
_MAX_RETRIES = int(os.environ.get("JOB_MAX_RETRIES", "1"))
_BACKOFF_BASE = float(os.environ.get("JOB_BACKOFF_BASE", "0.1"))

# Track retries per run id
_retries: Dict[str, int] = {}

_JOB_Q: "queue.Queue[str]" = queue.Queue(maxsize=100)

_state_lock = threading.Lock()
_orchestrator: Optional[SearchOrchestrator] = None
_history: Optional[HistoryStore] = None


def get_history_store() -> HistoryStore:
    global _history
    with _state_lock:
        if _history is None:
            cfg = get_history_config(ARTIFACTS_ROOT)
            _history = JsonFileHistoryStore(cfg.path or ARTIFACTS_ROOT / "history.json", capacity=cfg.capacity)
        return _history


def get_orchestrator() -> SearchOrchestrator:
    """Current orchestrator, built from the environment on first use. Raises ConfigurationError."""
    global _orchestrator
    history = get_history_store()
    with _state_lock:
        if _orchestrator is None:
            cfg = get_search_config()
            _orchestrator = SearchOrchestrator(cfg, build_search_provider(cfg), history=history)
        return _orchestrator


def configure(orchestrator: Optional[SearchOrchestrator] = None, history: Optional[HistoryStore] = None) -> None:
    """Install an explicit orchestrator and/or history store (None resets to env-built defaults)."""
    global _orchestrator, _history
    with _state_lock:
        _orchestrator = orchestrator
        if history is not None:
            _history = history
            if orchestrator is not None and orchestrator.history is None:
                orchestrator.history = history


def _persist_run(run: "Run") -> None:
    """Persist artifacts and a metadata JSON for the run to disk."""
    run_dir = ARTIFACTS_ROOT / run.id
    run_dir.mkdir(parents=True, exist_ok=True)
    for name, body in (run.artifacts or {}).items():
        (run_dir / name).write_text(body)
    meta = {
        "run_id": run.id,
        "issuer": run.issuer,
        "status": run.status,
        "summary": run.summary,
        "queries": run.queries,
        "results": run.results,
        "events": run.events,
        "error": run.error,
        "artifacts": list(run.artifacts.keys()),
        "completed_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }
    (run_dir / "run.json").write_text(json.dumps(meta, indent=2))


def _worker_loop(worker_id: int = 0):  # pragma: no cover (verified via API tests)
    while True:
        rid = _JOB_Q.get()
        try:
            run = REGISTRY.get(rid)
            if run is None:
                continue
            try:
                orchestrate(run)
            except Exception:
                count = _retries.get(rid, 0)
                if count < _MAX_RETRIES:
                    _retries[rid] = count + 1
                    time.sleep(_BACKOFF_BASE * (2 ** count))
                    _JOB_Q.put(rid)
                    continue
                _retries.pop(rid, None)
            try:
                _persist_run(run)
            except OSError:
                logger.exception(f"Could not persist run {rid}")
        finally:
            _JOB_Q.task_done()


_workers: List[threading.Thread] = []
for i in range(max(1, _MAX_WORKERS)):
    t = threading.Thread(target=_worker_loop, kwargs={'worker_id': i}, daemon=True)
    t.start()
    _workers.append(t)


REGISTRY = RunRegistry()


def _event(run: Run, stage: str, message: str):
    run.events.append({"stage": stage, "message": message, "ts": time.time()})


def orchestrate(run: Run, orchestrator: Optional[SearchOrchestrator] = None):
    """Execute one search run, recording events, results and artifacts on `run`.

    Expected failures (bad configuration, nothing found) end the run as failed.
    Anything else also marks it failed and is re-raised so the worker can retry.
    """
    try:
        run.status = "running"
        run.error = None
        _event(run, "Start", f"Searching ABCP liquidity information for '{run.issuer}'")
        orch = orchestrator or get_orchestrator()
        outcome = orch.search(run.issuer, on_event=lambda stage, msg: _event(run, stage, msg))

        _event(run, "Export", "Generating CSVs and summary")
        run.queries = outcome.queries
        run.results = [r.to_dict() for r in outcome.results]
        run.artifacts = {
            "results.csv": write_results(outcome.results),
            "queries.csv": write_queries(outcome.query_stats),
            "summary.md": summary_md(outcome.issuer, outcome.results, outcome.queries, outcome.failures),
        }
        run.summary = {
            "results": len(outcome.results),
            "queries": len(outcome.queries),
            "failed_queries": len(outcome.failures),
            "top_confidence": outcome.results[0].confidence,
        }
        run.status = "completed"
        _event(run, "Done", "Run completed")
    except (ConfigurationError, NoResultsError, ValueError) as e:
        run.status = "failed"
        run.error = str(e)
        _event(run, "Error", str(e))
    except Exception as e:
        logger.exception(f"Run {run.id} failed")
        run.status = "failed"
        run.error = str(e)
        _event(run, "Error", str(e))
        raise


def start_run(issuer: str) -> str:
    run = REGISTRY.create(issuer)
    _JOB_Q.put(run.id)
    return run.id

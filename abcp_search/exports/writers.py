from __future__ import annotations
from typing import List, Dict, Any, Iterable
import csv
import io

from abcp_search.extraction.core import ExtractionResult

SCHEMAS = {
    "results": [
        "rank","issuer","liquidity_providers","administrator","sponsor","confidence","source"
    ],
    "queries": [
        "query","hits","records","error"
    ],
}


def write_csv(rows: Iterable[Dict[str, Any]], columns: List[str]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
    w.writeheader()
    for r in rows:
        w.writerow({k: r.get(k) for k in columns})
    return buf.getvalue()


def result_rows(results: Iterable[ExtractionResult]) -> List[Dict[str, Any]]:
    return [
        {
            "rank": i,
            "issuer": r.issuer,
            "liquidity_providers": "; ".join(r.liquidity_providers),
            "administrator": r.administrator or "",
            "sponsor": r.sponsor or "",
            "confidence": round(r.confidence, 2),
            "source": r.source,
        }
        for i, r in enumerate(results, start=1)
    ]


def write_results(results: Iterable[ExtractionResult]) -> str:
    return write_csv(result_rows(results), SCHEMAS["results"])


def write_queries(rows: Iterable[Dict[str, Any]]) -> str:
    return write_csv(rows, SCHEMAS["queries"])

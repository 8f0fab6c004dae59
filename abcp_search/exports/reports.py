from __future__ import annotations
from typing import Dict, Any, List, Sequence

from abcp_search.extraction.core import ExtractionResult


def summary_md(issuer: str, results: Sequence[ExtractionResult], queries: List[str],
               failures: Dict[str, Any] | None = None) -> str:
    lines = [f"# ABCP Search: {issuer}", ""]
    lines.append(f"- queries run: {len(queries)}")
    lines.append(f"- results: {len(results)}")
    for i, r in enumerate(results, start=1):
        lines.append(f"\n## {i}. confidence {round(r.confidence * 100)}%")
        lines.append(f"- liquidity providers: {', '.join(r.liquidity_providers) or '-'}")
        lines.append(f"- administrator: {r.administrator or '-'}")
        lines.append(f"- sponsor: {r.sponsor or '-'}")
        lines.append(f"- source: {r.source or '-'}")
    if failures:
        lines.append("\n## Failed queries")
        for q, err in failures.items():
            lines.append(f"- {q}: {err}")
    return "\n".join(lines) + "\n"

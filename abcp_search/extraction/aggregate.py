from __future__ import annotations
from typing import Iterable, List, Set, Tuple

from .core import ExtractionResult

DedupKey = Tuple[str, Tuple[str, ...], str, str]


def dedup_key(r: ExtractionResult) -> DedupKey:
    # Provider order follows pattern order, so compare as a sorted tuple
    return (r.issuer, tuple(sorted(r.liquidity_providers)), r.administrator or "", r.sponsor or "")


def aggregate(records: Iterable[ExtractionResult]) -> List[ExtractionResult]:
    """Drop repeated (issuer, providers, administrator, sponsor) records and rank by confidence.

    The first occurrence of a key wins, so the earliest source is kept.
    `sorted` is stable: equal confidences keep their input order.
    """
    seen: Set[DedupKey] = set()
    unique: List[ExtractionResult] = []
    for r in records:
        key = dedup_key(r)
        if key in seen:
            continue
        seen.add(key)
        unique.append(r)
    return sorted(unique, key=lambda r: -r.confidence)

from __future__ import annotations
import re
from collections import deque
from typing import Deque, List, Optional, Sequence

from abcp_search.ingestion.base import SearchHit, SearchProvider

# Offline canned results for demos and tests; no network access.
_QUOTED = re.compile(r'"([^"]+)"')

# Recent queries kept for inspection; older ones are dropped.
MAX_RECORDED_QUERIES = 100

DEFAULT_HITS: Sequence[SearchHit] = (
    SearchHit(
        url="https://sec.gov/example-abcp-filing",
        title="ABCP Program Information for {issuer}",
        content=(
            "Liquidity Provider: JPMorgan Chase Bank, N.A. Administrator: Wells Fargo Bank, N.A. "
            "Sponsor: {issuer}. This Asset Backed Commercial Paper program provides short-term "
            "funding through the issuance of commercial paper backed by various asset pools."
        ),
        snippet="SEC filing information about ABCP liquidity arrangements",
    ),
    SearchHit(
        url="https://example-bank.com/abcp-disclosures",
        title="ABCP Liquidity Support Facilities",
        content=(
            "Backup liquidity: Bank of America, N.A. Committed liquidity facility: Citibank, N.A. "
            "Program administrator: The Bank of New York Mellon. The program sponsor maintains "
            "credit enhancement through various mechanisms."
        ),
        snippet="Bank disclosure of ABCP liquidity arrangements",
    ),
)


def issuer_from_query(query: str) -> str:
    m = _QUOTED.search(query)
    return m.group(1) if m else query


class FixtureSearch(SearchProvider):
    """Returns the same hits for every query, with `{issuer}` filled from the quoted query term."""

    name = "fixture"

    def __init__(self, hits: Optional[Sequence[SearchHit]] = None):
        self.hits = tuple(DEFAULT_HITS if hits is None else hits)
        self.queries: Deque[str] = deque(maxlen=MAX_RECORDED_QUERIES)

    def search(self, query: str, num_results: int = 5) -> List[SearchHit]:
        self.queries.append(query)
        issuer = issuer_from_query(query)
        return [
            SearchHit(
                url=h.url,
                title=h.title.replace("{issuer}", issuer),
                content=h.content.replace("{issuer}", issuer),
                snippet=h.snippet.replace("{issuer}", issuer),
            )
            for h in self.hits[:num_results]
        ]

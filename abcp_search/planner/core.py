from typing import List, Tuple

# Keyword queries run first; site-restricted ones only when these yield nothing.
PRIMARY_TEMPLATES: Tuple[str, ...] = (
    '"{issuer}" ABCP liquidity provider facility',
    '"{issuer}" asset backed commercial paper liquidity support',
    '"{issuer}" ABCP program liquidity enhancement',
    '"{issuer}" commercial paper conduit liquidity facility',
)

SITE_TEMPLATES: Tuple[str, ...] = (
    'site:sec.gov "{issuer}" ABCP liquidity',
    'site:bloomberg.com "{issuer}" asset backed commercial paper',
    'site:reuters.com "{issuer}" ABCP facility',
    'site:moodys.com "{issuer}" liquidity provider',
)


def plan_stages(issuer_name: str) -> Tuple[List[str], List[str]]:
    """Return (primary, fallback) query lists for an issuer; both empty for a blank name."""
    issuer = (issuer_name or "").strip()
    if not issuer:
        return [], []
    primary = [t.format(issuer=issuer) for t in PRIMARY_TEMPLATES]
    fallback = [t.format(issuer=issuer) for t in SITE_TEMPLATES]
    return primary, fallback


def plan(issuer_name: str) -> List[str]:
    """Deterministic ordered query plan: keyword queries, then site-restricted ones."""
    primary, fallback = plan_stages(issuer_name)
    return primary + fallback

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple
import re

# Abbreviations that lead into the rest of a name ("U.S. Bank National Association").
PREFIX_ABBREVIATIONS: Tuple[str, ...] = ("U.S.", "U.K.")

# Organisation name: runs to a sentence end, colon, semicolon or line break.
# A period is kept inside a prefix abbreviation, or after a standalone letter
# (N.A., n.a.) that is not followed by a new capitalised word.
_NAME = (
    "(?:"
    + "|".join(re.escape(a) for a in PREFIX_ABBREVIATIONS)
    + r"|(?<![A-Za-z])[A-Za-z]\.(?!\s+[A-Z][a-z])|[^.;:\n])+"
)

# Keyword-to-name separators, one capture group each:
# - "Administrator: X": any name after a colon, on the same or the next line
# - "sponsored by X": running text, the name must start capitalised (optionally after "the")
# - "Liquidity Provider\nX": a single line break, the name must fill the next line
_AFTER_COLON = rf"[ \t]*:\s*(?=\w)({_NAME})"
_AFTER_SPACE = rf"[ \t]+(?=[A-Z0-9]|the\s+[A-Z0-9])({_NAME})"
_AFTER_LINE_BREAK = rf"[ \t]*\n[ \t]*(?=[A-Z0-9])({_NAME})(?=\.?[ \t]*(?:\n|\Z))"

_PUNCT = re.compile(r"[,.;:!?()\[\]{}]")

MAX_WORDS = 8

PROVIDER_KEYWORDS: Tuple[str, ...] = (
    r"liquidity\s+providers?",
    r"liquidity\s+facilit(?:y|ies)(?:\s+providers?)?",
    r"backup\s+liquidity(?:\s+(?:facilit(?:y|ies)|providers?|support))?",
    r"committed\s+liquidity(?:\s+(?:facilit(?:y|ies)|providers?|support))?",
    r"standby\s+liquidity(?:\s+(?:facilit(?:y|ies)|providers?|support))?",
)

EXTENDED_PROVIDER_KEYWORDS: Tuple[str, ...] = (
    r"revolving\s+(?:credit\s+)?facilit(?:y|ies)",
    r"credit\s+facilit(?:y|ies)",
)

ADMINISTRATOR_KEYWORDS: Tuple[str, ...] = (
    r"program\s+administrator",
    r"administrator",
    r"administrative\s+agent",
    r"trustee",
)

SPONSOR_KEYWORDS: Tuple[str, ...] = (
    r"program\s+sponsor",
    r"sponsor",
    r"sponsored\s+by",
    r"originator",
)

# Major global, Canadian and investment banks seen as ABCP liquidity providers.
MAJOR_BANKS: Tuple[str, ...] = (
    "JPMorgan Chase Bank", "JPMorgan Chase", "JPMorgan",
    "Bank of America", "Wells Fargo Bank", "Wells Fargo", "Citibank",
    "Goldman Sachs", "Morgan Stanley", "Deutsche Bank", "Barclays Bank", "Barclays",
    "HSBC Bank", "HSBC", "BNP Paribas", "Credit Agricole", "Societe Generale",
    "Mizuho Bank", "MUFG Bank", "Sumitomo Mitsui Banking Corporation",
    "Royal Bank of Canada", "Bank of Montreal", "BMO",
    "The Toronto-Dominion Bank", "TD Bank", "Bank of Nova Scotia", "Scotiabank",
    "Canadian Imperial Bank of Commerce", "CIBC", "National Bank of Canada",
)


def role_patterns(keywords: Sequence[str]) -> Tuple[Pattern[str], ...]:
    """Compile `<keyword><separator><name>` patterns; only the keyword matches case-insensitively."""
    return tuple(
        re.compile(rf"\b(?i:{kw})(?:{_AFTER_COLON}|{_AFTER_SPACE}|{_AFTER_LINE_BREAK})")
        for kw in keywords
    )


def named_bank_patterns(banks: Sequence[str]) -> Tuple[Pattern[str], ...]:
    """A listed bank name on the same line as a liquidity/facility keyword, in either order."""
    names = "|".join(re.escape(b) for b in sorted(banks, key=len, reverse=True))
    keyword = r"(?i:liquidity|facilit(?:y|ies))"
    return (
        re.compile(rf"\b({names})\b[^\n;]{{0,120}}?\b{keyword}"),
        re.compile(rf"\b{keyword}[^\n;]{{0,120}}?\b({names})\b"),
    )


@dataclass(frozen=True)
class ExtractorConfig:
    provider_patterns: Tuple[Pattern[str], ...]
    administrator_patterns: Tuple[Pattern[str], ...]
    sponsor_patterns: Tuple[Pattern[str], ...]
    provider_increment: float = 0.3
    administrator_increment: float = 0.2
    sponsor_increment: float = 0.2
    issuer_bonus: float = 0.3
    max_words: int = MAX_WORDS


# Reference configuration (search snippets / scraped pages).
WEB_SEARCH_CONFIG = ExtractorConfig(
    provider_patterns=role_patterns(PROVIDER_KEYWORDS),
    administrator_patterns=role_patterns(ADMINISTRATOR_KEYWORDS),
    sponsor_patterns=role_patterns(SPONSOR_KEYWORDS),
)

# Document-analysis variant: wider facility vocabulary, bank-name matches, larger issuer bonus.
DOCUMENT_CONFIG = ExtractorConfig(
    provider_patterns=(
        role_patterns(PROVIDER_KEYWORDS)
        + role_patterns(EXTENDED_PROVIDER_KEYWORDS)
        + named_bank_patterns(MAJOR_BANKS)
    ),
    administrator_patterns=role_patterns(ADMINISTRATOR_KEYWORDS),
    sponsor_patterns=role_patterns(SPONSOR_KEYWORDS),
    issuer_bonus=0.4,
)


@dataclass(frozen=True)
class ExtractionResult:
    issuer: str
    liquidity_providers: Tuple[str, ...] = field(default_factory=tuple)
    administrator: Optional[str] = None
    sponsor: Optional[str] = None
    confidence: float = 0.0  # 0..1
    source: str = ""

    def with_source(self, source: str) -> "ExtractionResult":
        return replace(self, source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issuer": self.issuer,
            "liquidityProviders": list(self.liquidity_providers),
            "administrator": self.administrator,
            "sponsor": self.sponsor,
            "confidence": self.confidence,
            "source": self.source,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ExtractionResult":
        return ExtractionResult(
            issuer=data.get("issuer") or "",
            liquidity_providers=tuple(data.get("liquidityProviders") or ()),
            administrator=data.get("administrator"),
            sponsor=data.get("sponsor"),
            confidence=float(data.get("confidence") or 0.0),
            source=data.get("source") or "",
        )


def clean_text(value: str, max_words: int = MAX_WORDS) -> str:
    """Drop punctuation, collapse whitespace and keep at most `max_words` words."""
    words = _PUNCT.sub(" ", value or "").split()
    return " ".join(words[:max_words])


def _captured(m: re.Match) -> str:
    # Only one separator branch takes part in a match
    return m.group(m.lastindex or 0)


def _first_match(text: str, patterns: Sequence[Pattern[str]], max_words: int) -> Optional[str]:
    for pattern in patterns:
        for m in pattern.finditer(text):
            value = clean_text(_captured(m), max_words)
            if value:
                return value
    return None


def extract(text: str, issuer_name: str, config: ExtractorConfig = WEB_SEARCH_CONFIG) -> Optional[ExtractionResult]:
    """Pull liquidity providers, administrator and sponsor for an issuer out of one text block.

    Scoring heuristic:
    - each distinct liquidity provider => +provider_increment
    - administrator / sponsor (first match wins) => +increment each
    - text mentions the issuer => +issuer_bonus
    Confidence is capped at 1.0. Returns None when the block is unrelated
    (no issuer, "abcp" or "commercial paper" mention) or yields no role.
    """
    if not text:
        return None
    lowered = text.lower()
    issuer = (issuer_name or "").strip()
    mentions_issuer = bool(issuer) and issuer.lower() in lowered
    if not (mentions_issuer or "abcp" in lowered or "commercial paper" in lowered):
        return None

    confidence = 0.0
    providers: List[str] = []
    for pattern in config.provider_patterns:
        for m in pattern.finditer(text):
            name = clean_text(_captured(m), config.max_words)
            if name and name not in providers:
                providers.append(name)
                confidence += config.provider_increment

    administrator = _first_match(text, config.administrator_patterns, config.max_words)
    if administrator is not None:
        confidence += config.administrator_increment

    sponsor = _first_match(text, config.sponsor_patterns, config.max_words)
    if sponsor is not None:
        confidence += config.sponsor_increment

    if mentions_issuer:
        confidence += config.issuer_bonus

    if not providers and administrator is None and sponsor is None:
        return None

    return ExtractionResult(
        issuer=issuer_name,
        liquidity_providers=tuple(providers),
        administrator=administrator,
        sponsor=sponsor,
        confidence=min(confidence, 1.0),
    )

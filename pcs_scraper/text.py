"""
Text normalisation and keyword matching for category labels.

Category labels on the portal are inconsistent in casing, spacing and
spelling ("Accomodation" shows up next to "Accommodation"), so everything is
compared in a normalised form.
"""
import re
import unicodedata
from typing import Iterable, List, Optional
from urllib.parse import parse_qs, urlparse

from pcs_scraper.models import Category

# Default keyword list. Passed through ScrapeConfig.keywords, never read
# directly by the components.
DEFAULT_KEYWORDS: List[str] = [
    "health",
    "accommodation",
    "accomodation",
    "transport",
    "transportation",
]

# Known misspellings merged into their canonical keyword
KEYWORD_ALIASES = {
    "accomodation": "accommodation",
}

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    if not text:
        return ""
    value = unicodedata.normalize("NFKD", unicodedata.normalize("NFKD", text).lower())
    value = "".join(c for c in value if not unicodedata.combining(c))
    return _WHITESPACE_RE.sub(" ", value).strip()


def canonical_keyword(keyword: str) -> str:
    """Normalise a keyword and merge known misspellings."""
    value = normalize(keyword)
    return KEYWORD_ALIASES.get(value, value)


def _canonical_text(text: str) -> str:
    value = normalize(text)
    for alias, canonical in KEYWORD_ALIASES.items():
        value = value.replace(alias, canonical)
    return value


def filter_categories(labels: Iterable[str], keywords: Optional[Iterable[str]] = None) -> List[Category]:
    """
    Select the category labels that contain any of the keywords.

    Args:
        labels: Raw label texts in tree order
        keywords: Keyword list (defaults to DEFAULT_KEYWORDS)

    Returns:
        One Category per distinct normalised label, in tree order, tagged with
        the first keyword that matched.
    """
    if keywords is None:
        keywords = DEFAULT_KEYWORDS

    canonical: List[str] = []
    for keyword in keywords:
        value = canonical_keyword(keyword)
        if value and value not in canonical:
            canonical.append(value)

    selected: List[Category] = []
    seen = set()
    for label in labels:
        norm_label = normalize(label)
        if not norm_label or norm_label in seen:
            continue
        haystack = _canonical_text(label)
        for keyword in canonical:
            if keyword in haystack:
                selected.append(Category(name=label.strip(), matched_keyword=keyword))
                seen.add(norm_label)
                break
    return selected


def matches_keywords(texts: Iterable[Optional[str]], keywords: Optional[Iterable[str]] = None) -> bool:
    """True if the combined texts mention any keyword."""
    if keywords is None:
        keywords = DEFAULT_KEYWORDS
    haystack = _canonical_text(" ".join(t for t in texts if t))
    if not haystack:
        return False
    return any(canonical_keyword(k) in haystack for k in keywords if k)


def extract_notice_id(detail_url: Optional[str]) -> Optional[str]:
    """Return the ID query parameter of a notice detail URL, or None."""
    if not detail_url or not isinstance(detail_url, str):
        return None
    try:
        query = urlparse(detail_url).query
    except ValueError:
        return None
    values = parse_qs(query).get("ID")
    if not values:
        return None
    return values[0] or None

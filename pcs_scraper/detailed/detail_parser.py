"""
Parsers for text pulled from notice detail pages.

Everything here works on plain strings so it can be tested without a browser.
The full notice text follows the EU notice layout (Section I ... Section VI,
numbered items like "II.2.1)") with one "Lot No:" marker per lot.
"""
import re
from typing import Dict, Iterable, List, Optional, Tuple

from pcs_scraper.errors import ParseFailure
from pcs_scraper.models import ContactBlock, ContactInfo, FullNotice, Lot, NoticeSection

AFFIRMATIVE_RE = re.compile(r"^\s*(?:yes|true|y)\b", re.IGNORECASE)
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

_CPV_LINE_RE = re.compile(r"CPV[^:\n]*:\s*([^\n]+)", re.IGNORECASE)
_CPV_TOKEN_RE = re.compile(r"(\d{5,})(?:-\d)?")

_LOT_RE = re.compile(r"Lot\s+No\s*[:.]?\s*(\d+)", re.IGNORECASE)
_TERMINAL_RE = re.compile(
    r"^\s*(?:Section\s+(?:III|IV|V|VI)\b|(?:III|IV|V|VI)\.\d+\))",
    re.IGNORECASE | re.MULTILINE,
)
_SECTION_RE = re.compile(r"^\s*(?:Section\s+)?([IVX]+)[:.)]\s+(.+?)\s*$", re.MULTILINE)
_ITEM_NUMBER_RE = re.compile(r"^[IVX]+(?:\.\d+)+\)")
_EIGHT_DIGIT_RE = re.compile(r"\b(\d{8})\b")
_START_RE = re.compile(r"\bStart(?:\s+date)?\s*:\s*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_END_RE = re.compile(r"\bEnd(?:\s+date)?\s*:\s*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_RENEWAL_RE = re.compile(r"subject to renewal\s*:?\s*(yes|no)", re.IGNORECASE)
_RENEWAL_DESC_RE = re.compile(r"Description of renewals\s*:?[ \t]*\n?\s*([^\n]+)", re.IGNORECASE)

_CONTACT_HEADING_RE = re.compile(
    r"^\s*(Main|Admin(?:istrative)?|Technical|Other)\s+Contact(?:s|\s+Details)?\s*:?\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_CONTACT_KEYS = {"main": "main", "admin": "admin", "administrative": "admin", "technical": "technical", "other": "other"}

# Canonical DetailRecord field -> labels that may carry it in a key/value table
FALLBACK_LABEL_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "notice title", "contract title", "name of contract"),
    "reference_no": ("reference no", "reference number", "reference", "ref no", "our reference"),
    "ocid": ("ocid", "open contracting id", "ocds id"),
    "published_by": ("published by", "buyer", "contracting authority", "organisation"),
    "publication_date": ("publication date", "date published", "published"),
    "deadline_date": ("deadline date", "closing date", "deadline"),
    "deadline_time": ("deadline time", "closing time"),
    "notice_type": ("notice type", "type of notice"),
}


def is_affirmative(value: Optional[str]) -> bool:
    """True for Yes/True/Y in any casing, with or without trailing text."""
    return bool(value) and bool(AFFIRMATIVE_RE.match(value))


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def extract_cpv_codes(text: Optional[str]) -> List[str]:
    """CPV codes listed after a "CPV:" label. Tokens shorter than 5 digits are ignored."""
    if not text:
        return []
    codes = []
    for match in _CPV_LINE_RE.finditer(text):
        for token in re.split(r"[,;]", match.group(1)):
            token_match = _CPV_TOKEN_RE.fullmatch(token.strip())
            if token_match:
                codes.append(token_match.group(1))
    return _dedupe(codes)


def _clean_label(label: str) -> str:
    return " ".join(label.replace("\xa0", " ").split()).rstrip(":").strip().lower()


def build_fallback_map(pairs: Iterable[Tuple[Optional[str], Optional[str]]]) -> Dict[str, str]:
    """Lowercased label -> value map. The first non-empty value per label wins."""
    mapping: Dict[str, str] = {}
    for label, value in pairs:
        if not label or not value:
            continue
        key = _clean_label(label)
        text = " ".join(value.split())
        if key and text and key not in mapping:
            mapping[key] = text
    return mapping


def resolve_fallback_fields(label_map: Dict[str, str], wanted: Iterable[str]) -> Dict[str, str]:
    """Look up each wanted field by its label synonyms."""
    found = {}
    for field_name in wanted:
        for synonym in FALLBACK_LABEL_SYNONYMS.get(field_name, ()):
            if label_map.get(synonym):
                found[field_name] = label_map[synonym]
                break
    return found


def _lot_title(block_lines: List[str]) -> Optional[str]:
    for line in block_lines:
        stripped = line.strip(" \t-:")
        if not stripped or stripped.isdigit() or _ITEM_NUMBER_RE.match(stripped):
            continue
        return stripped
    return None


def _parse_lot(number: str, block: str) -> Lot:
    first_line, _, rest = block.partition("\n")
    lines = [first_line] + rest.splitlines()
    renewal = _RENEWAL_RE.search(block)
    renewal_desc = _RENEWAL_DESC_RE.search(block)
    start = _START_RE.search(block)
    end = _END_RE.search(block)
    return Lot(
        lot_number=number,
        title=_lot_title(lines),
        cpv_codes=_dedupe(_EIGHT_DIGIT_RE.findall(block)),
        start_date=start.group(1) if start else None,
        end_date=end.group(1) if end else None,
        renewal=bool(renewal and renewal.group(1).lower() == "yes"),
        renewal_description=renewal_desc.group(1).strip() if renewal_desc else None,
    )


def parse_lots(text: str) -> List[Lot]:
    markers = list(_LOT_RE.finditer(text))
    lots = []
    for i, marker in enumerate(markers):
        stop = markers[i + 1].start() if i + 1 < len(markers) else len(text)
        block = text[marker.end():stop]
        terminal = _TERMINAL_RE.search(block)
        if terminal:
            block = block[:terminal.start()]
        lots.append(_parse_lot(marker.group(1), block))
    return lots


def parse_sections(text: str) -> List[NoticeSection]:
    sections = []
    seen = set()
    for match in _SECTION_RE.finditer(text):
        key = match.group(1).upper()
        if key in seen:
            continue
        seen.add(key)
        sections.append(NoticeSection(key=key, title=match.group(2)))
    return sections


def parse_full_notice(text: Optional[str]) -> FullNotice:
    """
    Parse the "Full Notice Text" panel.

    Raises:
        ParseFailure: if the text has neither lots nor section headings
    """
    if not text or not text.strip():
        raise ParseFailure("Full notice text is empty")
    lots = parse_lots(text)
    sections = parse_sections(text)
    if not lots and not sections:
        raise ParseFailure("No lots or section headings found in full notice text")
    return FullNotice(raw=text.strip(), lots=lots, sections=sections)


def _contact_block(raw: str) -> ContactBlock:
    name = None
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or EMAIL_RE.search(stripped):
            continue
        name = re.sub(r"^(?:contact\s+)?name\s*:\s*", "", stripped, flags=re.IGNORECASE) or None
        break
    emails = _dedupe(email.lower() for email in EMAIL_RE.findall(raw))
    return ContactBlock(raw=raw, name=name, emails=emails)


def parse_contacts(text: Optional[str]) -> Optional[ContactInfo]:
    """Split the contact panel into main/admin/technical/other blocks. None when none are found."""
    if not text:
        return None
    headings = list(_CONTACT_HEADING_RE.finditer(text))
    blocks: Dict[str, ContactBlock] = {}
    for i, heading in enumerate(headings):
        key = _CONTACT_KEYS[heading.group(1).lower()]
        if key in blocks:
            continue
        stop = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        raw = text[heading.end():stop].strip()
        blocks[key] = _contact_block(raw)
    if not blocks:
        return None
    return ContactInfo(**blocks)

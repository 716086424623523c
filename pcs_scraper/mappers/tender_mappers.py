"""
Mapping of source-specific tender records to the canonical ProcessedTender.

Each source has a fixed table of canonical field -> source path(s). Paths are
dotted, list items are addressed by index ("cpvCodes.0"), and the first
non-empty value wins. Anything missing maps to "", 0, [] or EPOCH.
"""
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from pcs_scraper.models import EPOCH, ProcessedTender, TenderContact, Timeline

Record = Union[Mapping[str, Any], BaseModel]

SCOTLAND_FIELD_MAP: Dict[str, Tuple[str, ...]] = {
    "government_id": ("referenceNo", "ocid"),
    "title": ("title",),
    "tender_status": ("noticeType",),
    "description": ("abstract",),
    "category": ("category",),
    "classification_id": ("cpvCodes.0",),
    "buyer": ("publishedBy",),
    "link": ("detailUrl",),
    "tender_category": ("category",),
    "bid_submission_portal": ("detailUrl",),
}
SCOTLAND_CONTACT_MAP: Dict[str, Tuple[str, ...]] = {
    "issuing_authority": ("publishedBy",),
    "contact_person": ("contactInfo.main.name",),
    "email": ("contactInfo.main.emails.0",),
}
SCOTLAND_CONSTANTS = {
    "region": "Scotland",
    "region_code": "S92000003",
    "currency": "GBP",
    "classification_scheme": "CPV",
}

OPEN_UK_FIELD_MAP: Dict[str, Tuple[str, ...]] = {
    "government_id": ("overview.referenceNumber", "id"),
    "title": ("overview.title",),
    "tender_status": ("overview.opportunityType",),
    "description": ("overview.description",),
    "category": ("overview.industryInfo.0.category",),
    "type": ("overview.opportunityType",),
    "classification_id": ("overview.industryInfo.0.classificationID",),
    "buyer": ("overview.account.companyName",),
    "region": ("overview.deliveryAreaInfo.0.description",),
    "region_code": ("overview.deliveryAreaInfo.0.code",),
}
OPEN_UK_CONTACT_MAP: Dict[str, Tuple[str, ...]] = {
    "issuing_authority": ("overview.account.companyName",),
    "email": ("overview.user.email",),
    "phone_no": ("overview.user.contactDetails.mobile",),
}
OPEN_UK_CONSTANTS = {
    "currency": "GBP",
    "classification_scheme": "CPV",
}

_DATE_FORMATS = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")
_DMY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_HM_RE = re.compile(r"(\d{1,2}):(\d{2})")


def _as_dict(record: Optional[Record]) -> Mapping[str, Any]:
    if record is None:
        return {}
    if isinstance(record, BaseModel):
        return record.model_dump(by_alias=True)
    return record


def lookup(source: Any, path: str) -> Any:
    """Resolve a dotted path through nested mappings and lists. Missing -> None."""
    current = source
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def _first(source: Mapping[str, Any], paths: Iterable[str]) -> Any:
    for path in paths:
        value = lookup(source, path)
        if value not in (None, ""):
            return value
    return None


def _map_strings(source: Mapping[str, Any], table: Mapping[str, Tuple[str, ...]]) -> Dict[str, str]:
    mapped = {}
    for field_name, paths in table.items():
        value = _first(source, paths)
        mapped[field_name] = "" if value is None else str(value).strip()
    return mapped


def parse_date(value: Any) -> datetime:
    """ISO-8601 or DD/MM/YYYY[ HH:MM[:SS]]. Anything else maps to EPOCH."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return EPOCH
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return EPOCH


def parse_scotland_date(date_text: Optional[str], time_text: Optional[str] = None) -> datetime:
    """Combine a DD/MM/YYYY date with an optional HH:MM time."""
    if not date_text:
        return EPOCH
    date_match = _DMY_RE.search(date_text)
    if not date_match:
        return EPOCH
    day, month, year = (int(part) for part in date_match.groups())
    hour = minute = 0
    time_match = _HM_RE.search(time_text or "")
    if time_match:
        hour, minute = int(time_match.group(1)), int(time_match.group(2))
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return EPOCH


def _parse_budget(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0
    # NaN and infinity are not valid JSON numbers
    return result if math.isfinite(result) else 0


def map_scotland_tender(record: Optional[Record]) -> ProcessedTender:
    item = _as_dict(record)
    deadline = parse_scotland_date(item.get("deadlineDate"), item.get("deadlineTime"))
    return ProcessedTender(
        **_map_strings(item, SCOTLAND_FIELD_MAP),
        **SCOTLAND_CONSTANTS,
        deadline=deadline,
        government_published_date=parse_date(_first(item, ("publicationDate", "date"))),
        timeline=Timeline(
            opening_date=parse_date(item.get("publicationDate")),
            closing_date=deadline,
        ),
        contact_info=TenderContact(**_map_strings(item, SCOTLAND_CONTACT_MAP)),
    )


def map_open_uk_tender(record: Optional[Record]) -> ProcessedTender:
    item = _as_dict(record)
    delivery_areas = lookup(item, "overview.deliveryAreaInfo") or []
    contact = _map_strings(item, OPEN_UK_CONTACT_MAP)
    names = (lookup(item, "overview.user.contactDetails.firstname"), lookup(item, "overview.user.contactDetails.surname"))
    contact["contact_person"] = " ".join(str(name) for name in names if name)
    return ProcessedTender(
        **_map_strings(item, OPEN_UK_FIELD_MAP),
        **OPEN_UK_CONSTANTS,
        deadline=parse_date(_first(item, ("overview.submissionEndDate", "overview.contractEndDate"))),
        budget=_parse_budget(lookup(item, "overview.contractValue")),
        counties=[str(area["description"]) for area in delivery_areas if isinstance(area, Mapping) and area.get("description")],
        government_published_date=parse_date(lookup(item, "overview.createdOn")),
        timeline=Timeline(
            opening_date=parse_date(lookup(item, "overview.expressionInterestStartDate")),
            closing_date=parse_date(lookup(item, "overview.expressionInterestEndDate")),
        ),
        contact_info=TenderContact(**contact),
    )

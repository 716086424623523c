"""Post-scrape filters used by the today-only run and the Open UK remap."""
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from pcs_scraper.mappers.tender_mappers import lookup
from pcs_scraper.text import matches_keywords

TODAY_FIELDS = ("date", "publicationDate", "deadlineDate")
OPEN_UK_TEXT_PATHS = (
    "opportunityName",
    "description",
    "eventName",
    "group",
    "overview.title",
    "overview.description",
)


def today_string(now: Optional[datetime] = None) -> str:
    """Today's date in the portal's DD/MM/YYYY format."""
    return (now or datetime.now()).strftime("%d/%m/%Y")


def is_today_notice(item: Union[Mapping[str, Any], BaseModel], today: str) -> bool:
    """True if the listing date, publication date or deadline date starts with today."""
    if isinstance(item, BaseModel):
        item = item.model_dump(by_alias=True)
    for key in TODAY_FIELDS:
        value = item.get(key)
        if isinstance(value, str) and value.strip().startswith(today):
            return True
    return False


def matches_open_uk_keywords(record: Mapping[str, Any], keywords: Optional[Iterable[str]] = None) -> bool:
    texts = []
    for path in OPEN_UK_TEXT_PATHS:
        value = lookup(record, path)
        if isinstance(value, str):
            texts.append(value)
    return matches_keywords(texts, keywords)


def filter_open_uk(records: Iterable[Mapping[str, Any]], keywords: Optional[Iterable[str]] = None) -> List[Mapping[str, Any]]:
    return [record for record in records if matches_open_uk_keywords(record, keywords)]

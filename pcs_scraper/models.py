"""Pydantic models for scraped and normalised tender data."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Sentinel for absent or unparseable dates
EPOCH = datetime(1970, 1, 1)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Category(CamelModel):
    """A category tree label selected by keyword."""
    name: str
    matched_keyword: str


class RawResultRow(CamelModel):
    """One row of the paginated search results."""
    date: Optional[str] = None
    title: Optional[str] = None
    detail_url: Optional[str] = None
    reference_no: Optional[str] = None
    ocid: Optional[str] = None
    published_by: Optional[str] = None
    deadline_date: Optional[str] = None
    notice_type: Optional[str] = None
    icon_flags: List[str] = Field(default_factory=list)
    raw_row_text: str = ""
    category: str = ""


class Lot(CamelModel):
    """Separable contract package parsed from the full notice text."""
    lot_number: str
    title: Optional[str] = None
    cpv_codes: List[str] = Field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    renewal: bool = False
    renewal_description: Optional[str] = None


class NoticeSection(CamelModel):
    """Top-level section heading (Roman numeral key) of a notice."""
    key: str
    title: str


class FullNotice(CamelModel):
    raw: str
    lots: List[Lot] = Field(default_factory=list)
    sections: List[NoticeSection] = Field(default_factory=list)


class ContactBlock(CamelModel):
    raw: str
    name: Optional[str] = None
    emails: List[str] = Field(default_factory=list)


class ContactInfo(CamelModel):
    main: Optional[ContactBlock] = None
    admin: Optional[ContactBlock] = None
    technical: Optional[ContactBlock] = None
    other: Optional[ContactBlock] = None


class DetailRecord(RawResultRow):
    """A result row enriched from its notice detail page."""
    notice_id: Optional[str] = None
    publication_date: Optional[str] = None
    deadline_time: Optional[str] = None
    has_documents: bool = False
    has_spd: bool = False
    abstract: Optional[str] = None
    cpv_codes: List[str] = Field(default_factory=list)
    raw_text: Optional[str] = None
    fallback_applied: bool = False
    full_notice: Optional[FullNotice] = None
    contact_info: Optional[ContactInfo] = None

    @classmethod
    def from_row(cls, row: RawResultRow) -> "DetailRecord":
        return cls.model_validate(row.model_dump())


class Timeline(CamelModel):
    opening_date: datetime = EPOCH
    closing_date: datetime = EPOCH
    evaluation_period: datetime = EPOCH
    contract_award_date: datetime = EPOCH


class TenderContact(CamelModel):
    issuing_authority: str = ""
    contact_person: str = ""
    email: str = ""
    phone_no: str = ""


class ProcessedTender(CamelModel):
    """Canonical cross-source tender record. Every field is always present."""
    government_id: str = ""
    title: str = ""
    tender_status: str = ""
    description: str = ""
    deadline: datetime = EPOCH
    category: str = ""
    type: str = ""
    budget: float = 0
    classification_id: str = ""
    classification_scheme: str = ""
    buyer: str = ""
    region: str = ""
    region_code: str = ""
    counties: List[str] = Field(default_factory=list)
    link: str = ""
    government_published_date: datetime = EPOCH
    regulatory_bodies: str = ""
    currency: str = ""
    tender_category: str = ""
    tender_service_type: str = ""
    bid_submission_portal: str = ""
    timeline: Timeline = Field(default_factory=Timeline)
    contact_info: TenderContact = Field(default_factory=TenderContact)


class RunMeta(CamelModel):
    """The __meta block of the output document."""
    fetched_at: str
    base_url: str
    selected_categories: List[str] = Field(default_factory=list)
    total_selected: int = 0
    keywords: List[str] = Field(default_factory=list)
    total_items: int = 0
    detail_enriched: bool = False
    published_from_date: Optional[str] = None
    published_to_date: Optional[str] = None
    filter: Optional[str] = None
    today: Optional[str] = None
    total_raw: Optional[int] = None

    def to_payload(self) -> Dict[str, object]:
        payload = self.model_dump(by_alias=True)
        # today-mode keys are only written when set
        for key in ("filter", "today", "totalRaw"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload

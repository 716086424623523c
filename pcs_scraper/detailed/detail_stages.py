"""
Enrichment stages applied to a notice detail page, in order.

Each stage reads the currently loaded detail page and returns a new
DetailRecord built on the one it was given. Earlier stages read the most
structured sources, later stages only add what is still missing.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from pcs_scraper.browser import ELEMENT_TEXT_JS, BrowserSession
from pcs_scraper.detailed.detail_parser import (
    FALLBACK_LABEL_SYNONYMS,
    build_fallback_map,
    extract_cpv_codes,
    is_affirmative,
    parse_contacts,
    parse_full_notice,
    resolve_fallback_fields,
)
from pcs_scraper.errors import ElementNotFound, ParseFailure
from pcs_scraper.models import DetailRecord
from pcs_scraper.settings import DetailSelectors, TimingConfig

# First non-empty text per field from its selector list, plus the page text
FIELD_TEXTS_JS = """(args) => {
    const firstText = (selectors) => {
        for (const sel of selectors) {
            let el = null;
            try { el = document.querySelector(sel); } catch (e) { continue; }
            if (!el) continue;
            const text = (el.innerText || el.textContent || '').trim();
            if (text) return text;
        }
        return null;
    };
    const fields = {};
    Object.entries(args.fields).forEach(([name, selectors]) => { fields[name] = firstText(selectors); });
    const main = document.querySelector(args.main) || document.body;
    return { fields: fields, rawText: main ? (main.innerText || '').trim() : null };
}"""

# [label, value] pairs from label/value table rows and dt/dd lists
KEY_VALUE_PAIRS_JS = """(selector) => {
    const pairs = [];
    const text = (el) => el ? (el.innerText || el.textContent || '').trim() : '';
    document.querySelectorAll(selector).forEach(row => {
        const cells = row.querySelectorAll('th, td');
        if (cells.length < 2) return;
        const label = cells[0];
        const isLabel = label.tagName === 'TH' ||
            !!label.querySelector('b, strong, em') ||
            /label|title|key/i.test(label.className || '');
        if (isLabel) pairs.push([text(label), text(cells[1])]);
    });
    document.querySelectorAll('dt').forEach(dt => {
        const dd = dt.nextElementSibling;
        if (dd && dd.tagName === 'DD') pairs.push([text(dt), text(dd)]);
    });
    return pairs;
}"""

TEXT_FIELDS = (
    "title",
    "reference_no",
    "ocid",
    "published_by",
    "publication_date",
    "deadline_date",
    "deadline_time",
    "notice_type",
    "abstract",
)
FLAG_FIELDS = ("has_documents", "has_spd")
REQUIRED_IDENTIFIERS = ("title", "reference_no", "ocid")


class EnrichmentStage(ABC):
    name = "stage"

    def __init__(self, selectors: DetailSelectors, timing: TimingConfig):
        self.selectors = selectors
        self.timing = timing
        self.log = logging.getLogger("detail_scraper")

    @abstractmethod
    async def apply(self, session: BrowserSession, record: DetailRecord) -> DetailRecord:
        ...

    async def _open_tab(self, session: BrowserSession, candidates: Sequence[str], panel: str) -> Optional[str]:
        """Click the first tab that exists and return its panel text. None when no tab exists."""
        for selector in candidates:
            if await session.query(selector) is None:
                continue
            await session.click(selector, timeout_ms=self.timing.click_timeout_ms)
            await session.pause(self.timing.tab_pause_ms)
            if panel:
                try:
                    await session.wait_for(panel, self.timing.tab_panel_timeout_ms, "visible")
                    text = await session.evaluate(ELEMENT_TEXT_JS, panel)
                    if text:
                        return text
                except ElementNotFound:
                    self.log.debug("Panel %s did not appear after clicking %s", panel, selector)
            return await session.evaluate(ELEMENT_TEXT_JS, self.selectors.main_content) or ""
        return None


class IdentifierFieldsStage(EnrichmentStage):
    """Named fields read from their known element ids."""
    name = "identifier_fields"

    async def apply(self, session: BrowserSession, record: DetailRecord) -> DetailRecord:
        payload = await session.evaluate(
            FIELD_TEXTS_JS, {"fields": self.selectors.fields, "main": self.selectors.main_content}
        )
        texts: Dict[str, Optional[str]] = (payload or {}).get("fields") or {}
        updates = {}
        for field_name in TEXT_FIELDS:
            value = (texts.get(field_name) or "").strip()
            if value:
                updates[field_name] = value
        for field_name in FLAG_FIELDS:
            if texts.get(field_name):
                updates[field_name] = is_affirmative(texts[field_name])
        codes = extract_cpv_codes(updates.get("abstract") or record.abstract)
        if codes:
            updates["cpv_codes"] = codes
        raw_text = (payload or {}).get("rawText")
        if raw_text:
            updates["raw_text"] = raw_text
        return record.model_copy(update=updates)


class StructuralFallbackStage(EnrichmentStage):
    """Generic label/value table scan, used only when an identifier is still missing."""
    name = "structural_fallback"

    async def apply(self, session: BrowserSession, record: DetailRecord) -> DetailRecord:
        missing = [f for f in REQUIRED_IDENTIFIERS if not getattr(record, f)]
        if not missing:
            return record
        self.log.debug("Missing %s for %s, scanning label/value rows", ", ".join(missing), record.detail_url)
        pairs = await session.evaluate(KEY_VALUE_PAIRS_JS, self.selectors.label_rows) or []
        label_map = build_fallback_map((pair[0], pair[1]) for pair in pairs if len(pair) >= 2)
        wanted = [f for f in FALLBACK_LABEL_SYNONYMS if not getattr(record, f)]
        updates = resolve_fallback_fields(label_map, wanted)
        updates["fallback_applied"] = True
        return record.model_copy(update=updates)


class FullNoticeStage(EnrichmentStage):
    name = "full_notice"

    async def apply(self, session: BrowserSession, record: DetailRecord) -> DetailRecord:
        text = await self._open_tab(session, self.selectors.full_notice_tab, self.selectors.full_notice_panel)
        if text is None:
            self.log.debug("No full notice tab on %s", record.detail_url)
            return record
        try:
            full_notice = parse_full_notice(text)
        except ParseFailure as exc:
            self.log.info("Full notice text not parsed for %s: %s", record.detail_url, exc)
            return record
        return record.model_copy(update={"full_notice": full_notice})


class ContactInfoStage(EnrichmentStage):
    name = "contact_info"

    async def apply(self, session: BrowserSession, record: DetailRecord) -> DetailRecord:
        text = await self._open_tab(session, self.selectors.contact_tab, self.selectors.contact_panel)
        if text is None:
            self.log.debug("No contact tab on %s", record.detail_url)
            return record
        contacts = parse_contacts(text)
        if contacts is None:
            return record
        return record.model_copy(update={"contact_info": contacts})


def default_stages(selectors: DetailSelectors, timing: TimingConfig) -> List[EnrichmentStage]:
    return [
        IdentifierFieldsStage(selectors, timing),
        StructuralFallbackStage(selectors, timing),
        FullNoticeStage(selectors, timing),
        ContactInfoStage(selectors, timing),
    ]

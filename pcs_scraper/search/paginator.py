"""
Result page extraction and pagination.

The pager on the portal is wired through more than one mechanism (a page-index
dropdown, a "Next" link, and ASP.NET __doPostBack scripts behind that link),
so advancing tries each in turn and then checks the page really changed.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

from pcs_scraper.browser import BrowserSession
from pcs_scraper.errors import ElementNotFound, PaginationStuck, ScriptEvaluationError, WaitTimeout
from pcs_scraper.models import RawResultRow
from pcs_scraper.settings import PaginationSelectors, ResultSelectors, TimingConfig
from pcs_scraper.waits import await_predicate

EXTRACT_ROWS_JS = """(args) => {
    return Array.from(document.querySelectorAll(args.rows)).map(row => {
        const cells = row.querySelectorAll('td');
        const metaCell = cells[0];
        const contentCell = cells[1] || row;
        const date = metaCell ? (metaCell.innerText || '').split('\\n')[0].trim() : null;
        const anchor = contentCell.querySelector(args.titleLink);
        let title = null;
        if (anchor) {
            const first = anchor.childNodes[0];
            title = ((first && first.textContent) || anchor.innerText || '').trim() || null;
        }
        const fields = {};
        const block = contentCell.querySelector(args.itemBlock);
        if (block) {
            block.querySelectorAll(args.fieldLabel).forEach(span => {
                const label = (span.innerText || '').replace(/:\\s*$/, '').trim();
                const next = span.nextSibling;
                const value = next && next.nodeType === Node.TEXT_NODE ? next.textContent.trim() : '';
                if (label) fields[label] = value;
            });
        }
        const icons = Array.from(row.querySelectorAll(args.icon))
            .map(img => img.getAttribute('alt'))
            .filter(Boolean);
        return {
            date: date || null,
            title: title,
            href: anchor ? anchor.getAttribute('href') : null,
            fields: fields,
            icons: icons,
            text: (row.innerText || '').trim(),
        };
    });
}"""

READ_PAGER_JS = """(args) => {
    const select = document.querySelector(args.pageIndex);
    const next = document.querySelector(args.next);
    let script = null;
    if (next) {
        const href = next.getAttribute('href') || '';
        if (href.toLowerCase().startsWith('javascript:')) {
            script = href.slice('javascript:'.length);
        } else if (next.getAttribute('onclick')) {
            script = next.getAttribute('onclick');
        }
    }
    const rows = Array.from(document.querySelectorAll(args.rows));
    const signature = rows.length
        ? [rows.length, (rows[0].innerText || '').trim(), (rows[rows.length - 1].innerText || '').trim()].join('|')
        : '';
    return {
        pageIndex: select ? select.selectedIndex : null,
        lastIndex: select ? select.options.length - 1 : null,
        hasNext: !!next,
        nextDisabled: !!document.querySelector(args.disabledNext) || (!!next && (
            next.hasAttribute('disabled') ||
            next.classList.contains('disabled') ||
            next.classList.contains('aspNetDisabled') ||
            next.getAttribute('aria-disabled') === 'true'
        )),
        nextScript: script,
        rowSignature: signature,
    };
}"""

SET_PAGE_INDEX_JS = """(args) => {
    const select = document.querySelector(args.selector);
    if (!select || args.index >= select.options.length) return false;
    select.selectedIndex = args.index;
    select.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}"""

DO_POSTBACK_JS = """(args) => {
    if (typeof window.__doPostBack !== 'function') return false;
    window.__doPostBack(args.target, args.argument);
    return true;
}"""

RUN_INLINE_SCRIPT_JS = """(code) => {
    new Function(code)();
    return true;
}"""

_POSTBACK_RE = re.compile(r"""__doPostBack\(\s*['"]([^'"]*)['"]\s*,\s*['"]([^'"]*)['"]\s*\)""")

# Listing label -> RawResultRow field
ROW_FIELD_LABELS = {
    "reference no": "reference_no",
    "ocid": "ocid",
    "published by": "published_by",
    "deadline date": "deadline_date",
    "notice type": "notice_type",
}

_ROW_LABELS_ALT = "|".join(re.escape(label) for label in ROW_FIELD_LABELS)
_ROW_TEXT_RE = re.compile(
    rf"({_ROW_LABELS_ALT})\s*:\s*(.+?)(?=\s+(?:{_ROW_LABELS_ALT})\s*:|\n|$)",
    re.IGNORECASE,
)


def parse_postback(script: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return (event target, event argument) from a __doPostBack call."""
    if not script:
        return None
    match = _POSTBACK_RE.search(script)
    if not match:
        return None
    return match.group(1), match.group(2)


def fill_from_row_text(values: Dict[str, Optional[str]], raw_text: str) -> Dict[str, Optional[str]]:
    """Fill identifiers still missing from "Label: value" pairs in the row text."""
    filled = dict(values)
    for match in _ROW_TEXT_RE.finditer(raw_text or ""):
        field_name = ROW_FIELD_LABELS[match.group(1).lower()]
        value = match.group(2).strip()
        if value and not filled.get(field_name):
            filled[field_name] = value
    return filled


@dataclass
class PagerState:
    page_index: Optional[int]
    last_index: Optional[int]
    has_next: bool
    next_disabled: bool
    next_script: Optional[str]
    row_signature: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PagerState":
        return cls(
            page_index=payload.get("pageIndex"),
            last_index=payload.get("lastIndex"),
            has_next=bool(payload.get("hasNext")),
            next_disabled=bool(payload.get("nextDisabled")),
            next_script=payload.get("nextScript") or None,
            row_signature=payload.get("rowSignature") or "",
        )

    @property
    def has_index(self) -> bool:
        return self.page_index is not None and self.last_index is not None

    @property
    def is_last(self) -> bool:
        if self.has_index and self.page_index >= self.last_index:
            return True
        return not self.has_next or self.next_disabled


class Paginator:
    def __init__(
        self,
        session: BrowserSession,
        results: ResultSelectors,
        pagination: PaginationSelectors,
        timing: TimingConfig,
        base_url: str,
    ):
        self.session = session
        self.results = results
        self.pagination = pagination
        self.timing = timing
        self.base_url = base_url
        self.log = logging.getLogger("paginator")

    def _build_row(self, raw: Dict[str, Any], category: str) -> RawResultRow:
        labelled = {k.strip().lower(): v for k, v in (raw.get("fields") or {}).items()}
        values = {name: labelled.get(label) or None for label, name in ROW_FIELD_LABELS.items()}
        raw_text = raw.get("text") or ""
        values = fill_from_row_text(values, raw_text)
        href = raw.get("href")
        return RawResultRow(
            date=raw.get("date") or None,
            title=raw.get("title") or None,
            detail_url=urljoin(self.base_url, href) if href else None,
            icon_flags=list(raw.get("icons") or []),
            raw_row_text=raw_text,
            category=category,
            **values,
        )

    async def extract_current_page(self, category: str) -> List[RawResultRow]:
        await self.session.pause(self.timing.settle_ms)
        if await self.session.query(self.results.no_results):
            self.log.info("No results for %s", category)
            return []
        try:
            await self.session.wait_for(self.results.rows, self.timing.rows_timeout_ms, "attached")
        except ElementNotFound as exc:
            self.log.warning("⚠️ No result rows found: %s", exc)
            return []
        raw_rows = await self.session.evaluate(
            EXTRACT_ROWS_JS,
            {
                "rows": self.results.rows,
                "titleLink": self.results.title_link,
                "itemBlock": self.results.item_block,
                "fieldLabel": self.results.field_label,
                "icon": self.results.icon,
            },
        )
        return [self._build_row(raw, category) for raw in raw_rows or []]

    async def read_pager_state(self) -> PagerState:
        payload = await self.session.evaluate(
            READ_PAGER_JS,
            {
                "pageIndex": self.pagination.page_index,
                "next": self.pagination.next,
                "disabledNext": self.pagination.disabled_next,
                "rows": self.results.rows,
            },
        )
        return PagerState.from_payload(payload or {})

    async def _run_inline_script(self, script: str) -> None:
        postback = parse_postback(script)
        if postback:
            target, argument = postback
            self.log.debug("Invoking __doPostBack(%r, %r)", target, argument)
            if await self.session.evaluate(DO_POSTBACK_JS, {"target": target, "argument": argument}):
                return
        await self.session.evaluate(RUN_INLINE_SCRIPT_JS, script)

    async def advance(self, state: PagerState) -> str:
        """Move to the next page. Returns the mechanism that was used."""
        if state.has_index:
            moved = await self.session.evaluate(
                SET_PAGE_INDEX_JS, {"selector": self.pagination.page_index, "index": state.page_index + 1}
            )
            if moved:
                return "page_index"
        if state.has_next:
            try:
                await self.session.click(self.pagination.next, timeout_ms=self.timing.click_timeout_ms)
                return "next_click"
            except ElementNotFound:
                if not state.next_script:
                    raise
                self.log.warning("⚠️ Next click failed, invoking its inline script directly")
                await self._run_inline_script(state.next_script)
                return "inline_script"
        raise ElementNotFound("No pagination control available to advance")

    async def verify_advance(self, before: PagerState) -> PagerState:
        loading = self.results.loading
        try:
            await self.session.wait_for(loading, self.timing.loader_appear_timeout_ms, "visible")
        except ElementNotFound:
            self.log.debug("Loading indicator did not appear")
        else:
            try:
                await self.session.wait_for(loading, self.timing.loader_clear_timeout_ms, "hidden")
            except ElementNotFound:
                self.log.warning("⚠️ Loading indicator still visible after %sms", self.timing.loader_clear_timeout_ms)

        latest = before

        async def moved() -> bool:
            nonlocal latest
            try:
                latest = await self.read_pager_state()
            except ScriptEvaluationError as exc:
                # document is being replaced by the postback
                self.log.debug("Pager read failed while waiting: %s", exc)
                return False
            if before.page_index is not None:
                return latest.page_index is not None and latest.page_index > before.page_index
            return latest.row_signature != before.row_signature

        try:
            await await_predicate(
                moved,
                interval_ms=self.timing.advance_poll_interval_ms,
                timeout_ms=self.timing.advance_poll_timeout_ms,
                description="page index to advance",
            )
        except WaitTimeout as exc:
            raise PaginationStuck(f"Page did not advance from index {before.page_index}") from exc
        return latest

    async def collect(self, category: str, max_pages: int = 0) -> List[RawResultRow]:
        """Extract every page in order. max_pages > 0 caps the number of pages read."""
        rows: List[RawResultRow] = []
        page_number = 1
        while True:
            page_rows = await self.extract_current_page(category)
            rows.extend(page_rows)
            self.log.info("Page %s: %s rows (%s total)", page_number, len(page_rows), len(rows))

            if 0 < max_pages <= page_number:
                self.log.info("Reached max_pages limit (%s), stopping", max_pages)
                break
            try:
                state = await self.read_pager_state()
                if state.is_last:
                    self.log.info("No next page or next disabled, pagination complete")
                    break
                mechanism = await self.advance(state)
                self.log.info("Advancing to page %s via %s", page_number + 1, mechanism)
                await self.verify_advance(state)
            except PaginationStuck as exc:
                self.log.warning("⚠️ %s, keeping %s collected rows", exc, len(rows))
                break
            except (ElementNotFound, ScriptEvaluationError) as exc:
                self.log.warning("⚠️ Could not advance pagination: %s", exc)
                break
            page_number += 1
            await self.session.pause(self.timing.between_pages_ms)
        return rows

"""
Category picker automation.

Opens the CPV category modal, expands the whole tree, ticks every leaf whose
label matches one of the configured keywords and clicks "Add Codes", which
also runs the search.
"""
import asyncio
import logging
from typing import Awaitable, Dict, Iterable, List, Optional, Tuple

from pcs_scraper.browser import BrowserSession
from pcs_scraper.errors import ScrapeError
from pcs_scraper.models import Category
from pcs_scraper.settings import CategorySelectors, ResultSelectors, TimingConfig
from pcs_scraper.text import filter_categories, normalize

# Clicks every visible expander once and returns how many were clicked
EXPAND_VISIBLE_JS = """(selector) => {
    let count = 0;
    document.querySelectorAll(selector).forEach(icon => {
        const style = window.getComputedStyle(icon);
        if (style.display !== 'none' && style.visibility !== 'hidden') {
            try { icon.click(); count++; } catch (e) {}
        }
    });
    return count;
}"""

# Label text for every checkbox, one entry per checkbox (empty string when none)
CHECKBOX_LABELS_JS = """(selector) => {
    return Array.from(document.querySelectorAll(selector)).map(cb => {
        const label = cb.id ? document.querySelector(`label[for="${cb.id}"]`) : null;
        const container = label || cb.closest('div, li, span, tr') || cb.parentElement;
        return container ? (container.innerText || container.textContent || '').trim() : '';
    });
}"""

# Ticks the checkboxes at the given positions and returns their labels
CHECK_BY_INDEX_JS = """(args) => {
    const boxes = Array.from(document.querySelectorAll(args.selector));
    const checked = [];
    args.indices.forEach(i => {
        const cb = boxes[i];
        if (!cb) return;
        if (!cb.checked) cb.click();
        const label = cb.id ? document.querySelector(`label[for="${cb.id}"]`) : null;
        const container = label || cb.closest('div, li, span, tr') || cb.parentElement;
        checked.push(container ? (container.innerText || container.textContent || '').trim() : '');
    });
    return checked;
}"""


class CategorySelector:
    def __init__(
        self,
        session: BrowserSession,
        selectors: CategorySelectors,
        results: ResultSelectors,
        timing: TimingConfig,
    ):
        self.session = session
        self.selectors = selectors
        self.results = results
        self.timing = timing
        self.log = logging.getLogger("category_selector")

    async def open_picker(self) -> None:
        self.log.info("Opening categories modal")
        await self.session.wait_for(self.selectors.browse_button, self.timing.modal_timeout_ms)
        await self.session.click(self.selectors.browse_button, timeout_ms=self.timing.modal_timeout_ms)
        await self.session.wait_for(self.selectors.modal, self.timing.modal_timeout_ms)

    async def expand_tree(self) -> int:
        """Expand tree nodes until nothing is left to expand. Returns total expansions."""
        total = 0
        for iteration in range(1, self.timing.expand_max_iterations + 1):
            clicked = await self.session.evaluate(EXPAND_VISIBLE_JS, self.selectors.expand_icon)
            if not clicked:
                self.log.info("No more tree nodes to expand after %s iteration(s)", iteration - 1)
                return total
            total += clicked
            self.log.debug("Expanded %s node(s) in iteration %s", clicked, iteration)
            await self.session.pause(self.timing.expand_pause_ms)
        self.log.warning(
            "⚠️ Stopped expanding category tree after %s iterations", self.timing.expand_max_iterations
        )
        return total

    async def _checkbox_labels(self) -> List[str]:
        return list(await self.session.evaluate(CHECKBOX_LABELS_JS, self.selectors.checkboxes) or [])

    async def extract_labels(self) -> List[str]:
        labels = [label.strip() for label in await self._checkbox_labels() if label and label.strip()]
        self.log.info("Extracted %s category labels", len(labels))
        return labels

    def filter_by_keyword(self, labels: Iterable[str], keywords: Iterable[str]) -> List[Category]:
        return filter_categories(labels, keywords)

    async def commit_selection(self, labels: Iterable[str]) -> List[str]:
        """Tick every checkbox whose label is in labels, then click "Add Codes"."""
        wanted = {normalize(label) for label in labels}
        indices = [i for i, text in enumerate(await self._checkbox_labels()) if text and normalize(text) in wanted]
        checked: List[str] = []
        if indices:
            checked = list(
                await self.session.evaluate(
                    CHECK_BY_INDEX_JS, {"selector": self.selectors.checkboxes, "indices": indices}
                )
                or []
            )
        self.log.info("Selected %s matching categories", len(checked))

        self.log.info("Confirming Add Codes")
        await self.session.wait_for(self.selectors.add_codes_button, self.timing.add_codes_timeout_ms)
        await self.session.click(self.selectors.add_codes_button, timeout_ms=self.timing.add_codes_timeout_ms)
        return checked

    async def _race(self, waits: Dict[str, Awaitable[None]]) -> Optional[str]:
        """Run the waits concurrently and return the name of the first one that succeeds."""
        tasks = {name: asyncio.ensure_future(wait) for name, wait in waits.items()}
        pending = set(tasks.values())
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for name, task in tasks.items():
                    if task in done and task.exception() is None:
                        return name
            return None
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)

    async def await_search_settled(self) -> None:
        """Wait for the search triggered by "Add Codes" to render. Never raises."""
        loading = self.results.loading
        rows = self.results.rows
        try:
            first = await self._race({
                "loader": self.session.wait_for(loading, self.timing.search_race_timeout_ms, "visible"),
                "rows": self.session.wait_for(rows, self.timing.search_race_timeout_ms, "visible"),
            })
            if first == "loader":
                settled = await self._race({
                    "loader_gone": self.session.wait_for(loading, self.timing.search_settle_timeout_ms, "hidden"),
                    "rows": self.session.wait_for(rows, self.timing.search_settle_timeout_ms, "visible"),
                })
                if settled is None:
                    self.log.warning("⚠️ Loading indicator/results race timed out, continuing")
            elif first is None:
                self.log.warning("⚠️ Neither loading indicator nor result rows appeared, continuing")
        except ScrapeError as exc:
            self.log.warning("⚠️ Waiting for search results failed: %s", exc)
        self.log.info("Proceeding to results after Add Codes")

    async def select(self, keywords: Iterable[str]) -> Tuple[List[Category], List[str]]:
        keywords = list(keywords)
        await self.open_picker()
        await self.expand_tree()
        labels = await self.extract_labels()
        categories = self.filter_by_keyword(labels, keywords)
        self.log.info(
            "✅ %s of %s categories match keywords %s", len(categories), len(labels), ", ".join(keywords)
        )
        selected = await self.commit_selection([c.name for c in categories])
        await self.await_search_settled()
        return categories, selected

"""
Public Contracts Scotland category scrape.

Flow: open the search page, optionally set the publication date window,
select every category matching the keywords (which runs the search), walk all
result pages, enrich each row from its notice page and map the rows to the
canonical tender schema.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pcs_scraper.browser import BrowserLauncher, BrowserSession
from pcs_scraper.detailed.detail_scraper import DetailEnricher
from pcs_scraper.filters import is_today_notice
from pcs_scraper.mappers.tender_mappers import map_scotland_tender
from pcs_scraper.models import DetailRecord, RunMeta
from pcs_scraper.search.category_selector import CategorySelector
from pcs_scraper.search.date_filter import DateRangeFilter
from pcs_scraper.search.paginator import Paginator
from pcs_scraper.settings import ScrapeConfig, SelectorConfig
from pcs_scraper.text import canonical_keyword

# All selected categories are searched together, so rows carry one shared label
ALL_SELECTED = "ALL_SELECTED"


class JsonDocumentWriter:
    def __init__(self, output_path: Path):
        self.output_path = output_path
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, payload: Dict[str, Any]) -> None:
        with self.output_path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)


class ScotlandCategoryScraper:
    def __init__(
        self,
        scrape_cfg: ScrapeConfig,
        selectors: SelectorConfig,
        session: Optional[BrowserSession] = None,
        today: Optional[str] = None,
    ):
        self.cfg = scrape_cfg
        self.selectors = selectors
        self.session = session
        self.today = today
        self._launcher: Optional[BrowserLauncher] = None
        self.log = logging.getLogger("scotland_scraper")

    async def __aenter__(self) -> "ScotlandCategoryScraper":
        if self.session is None:
            self._launcher = BrowserLauncher(
                headless=self.cfg.headless,
                user_agent=self.cfg.user_agent,
                accept_language=self.cfg.accept_language,
                navigation_timeout_ms=self.cfg.navigation_timeout_ms,
            )
            self.session = await self._launcher.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._launcher:
            await self._launcher.close()

    def _components(self):
        timing = self.selectors.timing
        return (
            DateRangeFilter(self.session, self.selectors.calendar, self.selectors.results, timing),
            CategorySelector(self.session, self.selectors.categories, self.selectors.results, timing),
            Paginator(self.session, self.selectors.results, self.selectors.pagination, timing, self.cfg.base_url),
            DetailEnricher(
                self.session,
                self.selectors.detail,
                timing,
                retries=self.cfg.detail_retries,
                backoff_ms=self.cfg.detail_retry_backoff_ms,
                navigation_timeout_ms=self.cfg.navigation_timeout_ms,
            ),
        )

    async def run(self) -> Dict[str, Any]:
        assert self.session is not None
        date_filter, category_selector, paginator, enricher = self._components()

        self.log.info("Navigating to %s", self.cfg.base_url)
        await self.session.navigate(self.cfg.base_url, "domcontentloaded", self.cfg.navigation_timeout_ms)

        await date_filter.apply(self.cfg.published_from, self.cfg.published_to)
        categories, selected = await category_selector.select(self.cfg.keywords)
        if not selected:
            self.log.warning("⚠️ No categories were selected for keywords %s", self.cfg.keywords)

        rows = await paginator.collect(ALL_SELECTED, self.cfg.max_pages)
        self.log.info("Collected %s result rows", len(rows))

        if self.cfg.detail_pages:
            records = await enricher.enrich_all(rows, self.cfg.abort_on_failure, self.cfg.detail_delay_ms)
        else:
            records = [DetailRecord.from_row(row) for row in rows]

        total_raw = len(records)
        if self.today:
            records = [record for record in records if is_today_notice(record, self.today)]
            self.log.info("%s of %s notices are from %s", len(records), total_raw, self.today)

        items = [map_scotland_tender(record) for record in records]
        meta = RunMeta(
            fetched_at=datetime.now(timezone.utc).isoformat(),
            base_url=self.cfg.base_url,
            selected_categories=selected,
            total_selected=len(selected),
            keywords=[canonical_keyword(k) for k in self.cfg.keywords],
            total_items=len(items),
            detail_enriched=self.cfg.detail_pages,
            published_from_date=_format_day(self.cfg.published_from),
            published_to_date=_format_day(self.cfg.published_to),
            filter="today" if self.today else None,
            today=self.today,
            total_raw=total_raw if self.today else None,
        )
        self.log.info("✅ Scrape complete: %s items from %s categories", len(items), len(categories))
        return {
            "__meta": meta.to_payload(),
            "items": _dump_items(items),
        }


def _format_day(value) -> Optional[str]:
    return value.strftime("%d/%m/%Y") if value else None


def _dump_items(items) -> List[Dict[str, Any]]:
    return [item.model_dump(by_alias=True, mode="json") for item in items]

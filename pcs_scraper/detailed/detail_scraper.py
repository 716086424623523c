"""
Detail page enrichment.

Loads each result row's notice page with bounded retries and runs the
enrichment stages over it. A row is never dropped: it is either enriched or
kept as it came from the listing, unless abort_on_failure turns a failed page
into a run failure.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from pcs_scraper.browser import BrowserSession
from pcs_scraper.detailed.detail_stages import EnrichmentStage, default_stages
from pcs_scraper.errors import AbortedByPolicy, NavigationTimeout
from pcs_scraper.models import DetailRecord, RawResultRow
from pcs_scraper.settings import DetailSelectors, TimingConfig
from pcs_scraper.text import extract_notice_id

BACKOFF_FACTOR = 1.5


class DetailEnricher:
    def __init__(
        self,
        session: BrowserSession,
        selectors: DetailSelectors,
        timing: TimingConfig,
        retries: int = 3,
        backoff_ms: int = 700,
        navigation_timeout_ms: Optional[int] = None,
        stages: Optional[Sequence[EnrichmentStage]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.selectors = selectors
        self.timing = timing
        self.retries = retries
        self.backoff_ms = backoff_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.stages = list(stages) if stages is not None else default_stages(selectors, timing)
        self._sleep = sleep
        self.log = logging.getLogger("detail_scraper")

    async def navigate_with_retry(self, url: str) -> None:
        """
        Load url, retrying on NavigationTimeout.

        Retry k waits backoff_ms * 1.5^(k-1). After the last retry the final
        NavigationTimeout is re-raised.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.backoff_ms / 1000, exp_base=BACKOFF_FACTOR),
            retry=retry_if_exception_type(NavigationTimeout),
            before_sleep=before_sleep_log(self.log, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.session.navigate(url, "domcontentloaded", self.navigation_timeout_ms)

    async def fetch_detail(self, row: RawResultRow) -> DetailRecord:
        if not row.detail_url:
            raise ValueError("Row has no detail URL")
        self.log.info("Fetching detail page %s", row.detail_url)
        await self.navigate_with_retry(row.detail_url)

        record = DetailRecord.from_row(row).model_copy(update={"notice_id": extract_notice_id(row.detail_url)})
        for stage in self.stages:
            try:
                record = await stage.apply(self.session, record)
            except Exception as exc:
                self.log.warning("⚠️ Stage %s failed for %s: %s", stage.name, row.detail_url, exc)
        return record

    async def enrich_all(
        self, rows: Sequence[RawResultRow], abort_on_failure: bool = True, delay_ms: int = 600
    ) -> List[DetailRecord]:
        self.log.info("Beginning detail page enrichment for %s rows", len(rows))
        enriched: List[DetailRecord] = []
        for index, row in enumerate(rows):
            if not row.detail_url:
                self.log.warning("⚠️ Row %s (%s) has no detail URL, skipping enrichment", index, row.title)
                enriched.append(DetailRecord.from_row(row))
                continue
            try:
                enriched.append(await self.fetch_detail(row))
            except NavigationTimeout as exc:
                self.log.error("❌ Detail page failed for %s: %s", row.detail_url, exc)
                if abort_on_failure:
                    raise AbortedByPolicy(f"Aborting run after detail page failure: {row.detail_url}") from exc
                enriched.append(DetailRecord.from_row(row))
            await self.session.pause(delay_ms)
        enriched_count = sum(1 for record in enriched if record.notice_id or record.raw_text)
        self.log.info("✅ Enriched %s of %s rows", enriched_count, len(rows))
        return enriched

"""
Publication date window on the search page.

The portal only accepts dates picked from its calendar popup, so each endpoint
is set by stepping the popup month by month and clicking the day cell.
"""
import logging
from datetime import date, datetime
from typing import Optional, Tuple

from pcs_scraper.browser import ELEMENT_TEXT_JS, ELEMENT_VISIBLE_JS, BrowserSession
from pcs_scraper.errors import CalendarNavigationError, ElementNotFound, WaitTimeout
from pcs_scraper.settings import CalendarSelectors, ResultSelectors, TimingConfig
from pcs_scraper.waits import await_predicate

# Clicks the current-month day cell showing args.day, returns false when absent
CLICK_DAY_JS = """(args) => {
    const cells = Array.from(document.querySelectorAll(args.selector));
    for (const cell of cells) {
        if (args.exclude.some(cls => cell.classList.contains(cls))) continue;
        const text = (cell.innerText || cell.textContent || '').trim();
        if (text !== String(args.day)) continue;
        const target = cell.querySelector('a') || cell;
        target.click();
        return true;
    }
    return false;
}"""

_MONTH_LABEL_FORMATS = ("%B %Y", "%b %Y", "%B, %Y", "%m/%Y")


def parse_month_label(label: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse a calendar title such as "October 2026" into (year, month)."""
    if not label:
        return None
    text = " ".join(label.split())
    for fmt in _MONTH_LABEL_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.year, parsed.month
    return None


class DateRangeFilter:
    def __init__(
        self,
        session: BrowserSession,
        calendar: CalendarSelectors,
        results: ResultSelectors,
        timing: TimingConfig,
    ):
        self.session = session
        self.calendar = calendar
        self.results = results
        self.timing = timing
        self.log = logging.getLogger("date_filter")

    async def _displayed_month(self) -> Tuple[int, int]:
        label = await self.session.evaluate(ELEMENT_TEXT_JS, self.calendar.title)
        parsed = parse_month_label(label)
        if parsed is None:
            raise CalendarNavigationError(f"Unreadable calendar title: {label!r}")
        return parsed

    async def navigate_to_month(self, target: date) -> None:
        for step in range(self.timing.calendar_max_steps + 1):
            year, month = await self._displayed_month()
            diff = (target.year - year) * 12 + (target.month - month)
            if diff == 0:
                self.log.debug("Calendar shows %02d/%s after %s step(s)", month, year, step)
                return
            if step == self.timing.calendar_max_steps:
                break
            control = self.calendar.next_month if diff > 0 else self.calendar.prev_month
            await self.session.click(control, timeout_ms=self.timing.click_timeout_ms)
            await self.session.pause(self.timing.calendar_step_pause_ms)
        raise CalendarNavigationError(
            f"Could not reach {target:%m/%Y} within {self.timing.calendar_max_steps} month steps"
        )

    async def select_day(self, day: int) -> None:
        clicked = await self.session.evaluate(
            CLICK_DAY_JS,
            {
                "selector": self.calendar.day_cells,
                "exclude": list(self.calendar.other_month_classes),
                "day": day,
            },
        )
        if not clicked:
            raise ElementNotFound(f"Day {day} not found in the displayed month")

    async def set_endpoint(self, target: date, endpoint: str) -> None:
        """Set the "start" or "end" picker to target."""
        trigger = self.calendar.start_trigger if endpoint == "start" else self.calendar.end_trigger
        self.log.info("📅 Setting %s date to %s", endpoint, target.strftime("%d/%m/%Y"))
        await self.session.click(trigger, timeout_ms=self.timing.click_timeout_ms)
        await self.session.wait_for(self.calendar.popup, self.timing.calendar_popup_timeout_ms)
        await self.navigate_to_month(target)
        await self.select_day(target.day)

    async def _loader_gone(self) -> bool:
        return not await self.session.evaluate(ELEMENT_VISIBLE_JS, self.results.loading)

    async def apply(self, published_from: Optional[date], published_to: Optional[date]) -> bool:
        """Set the given endpoints and run the search once. Returns False when nothing was set."""
        if published_from is None and published_to is None:
            self.log.info("No publication date bounds given, using the portal default")
            return False
        if published_from is not None:
            await self.set_endpoint(published_from, "start")
        else:
            self.log.info("No start date given, leaving it unbounded")
        if published_to is not None:
            await self.set_endpoint(published_to, "end")
        else:
            self.log.info("No end date given, leaving it unbounded")

        await self.session.click(self.calendar.apply_button, timeout_ms=self.timing.click_timeout_ms)
        try:
            await await_predicate(
                self._loader_gone,
                interval_ms=self.timing.apply_poll_interval_ms,
                timeout_ms=self.timing.apply_poll_timeout_ms,
                description="loading indicator to clear",
            )
        except WaitTimeout as exc:
            self.log.warning("⚠️ %s, continuing", exc)
        return True

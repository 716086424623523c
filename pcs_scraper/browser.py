"""
Thin wrapper around a Playwright page.

Every component drives the portal through a BrowserSession so Playwright
timeouts and errors surface as the scraper's own exception types.
"""
import asyncio
import logging
from typing import Any, List, Optional

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from pcs_scraper.errors import ElementNotFound, NavigationTimeout, ScriptEvaluationError

# True when the first element matching the selector is rendered and not hidden
ELEMENT_VISIBLE_JS = """(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    const style = window.getComputedStyle(el);
    return style.display !== 'none' && style.visibility !== 'hidden' && el.offsetParent !== null;
}"""

# Trimmed innerText of the first element matching the selector, or null
ELEMENT_TEXT_JS = """(selector) => {
    const el = document.querySelector(selector);
    return el ? (el.innerText || el.textContent || '').trim() : null;
}"""


class BrowserSession:
    def __init__(self, page: Page, navigation_timeout_ms: int = 30_000):
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self.log = logging.getLogger("browser")

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        timeout = timeout_ms or self.navigation_timeout_ms
        self.log.debug("Navigating to %s (wait_until=%s, timeout=%sms)", url, wait_until, timeout)
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Timed out loading {url} after {timeout}ms") from exc
        except PlaywrightError as exc:
            raise NavigationTimeout(f"Failed to load {url}: {exc}") from exc

    async def query(self, selector: str) -> Optional[ElementHandle]:
        return await self.page.query_selector(selector)

    async def query_all(self, selector: str) -> List[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            if arg is None:
                return await self.page.evaluate(script)
            return await self.page.evaluate(script, arg)
        except PlaywrightError as exc:
            raise ScriptEvaluationError(f"In-page script failed: {exc}") from exc

    async def click(self, target: str, timeout_ms: int = 10_000) -> None:
        try:
            await self.page.click(target, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(f"{target} not clickable within {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            raise ElementNotFound(f"Click on {target} failed: {exc}") from exc

    async def wait_for(self, selector: str, timeout_ms: int, state: str = "visible") -> None:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms, state=state)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(f"{selector} not {state} within {timeout_ms}ms") from exc

    async def pause(self, ms: int) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000)


class BrowserLauncher:
    """Owns the Playwright runtime, one Chromium instance and one page."""

    def __init__(
        self,
        headless: bool = True,
        user_agent: Optional[str] = None,
        accept_language: Optional[str] = None,
        navigation_timeout_ms: int = 30_000,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.accept_language = accept_language
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.log = logging.getLogger("browser")

    async def start(self) -> BrowserSession:
        self.log.debug("Launching Chromium (headless=%s)", self.headless)
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=self.headless)
        headers = {"Accept-Language": self.accept_language} if self.accept_language else None
        self.context = await self.browser.new_context(
            user_agent=self.user_agent,
            extra_http_headers=headers,
        )
        page = await self.context.new_page()
        return BrowserSession(page, self.navigation_timeout_ms)

    async def close(self) -> None:
        if self.browser:
            await self.browser.close()
            self.browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

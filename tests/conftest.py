"""Shared fixtures: a scriptable stand-in for BrowserSession and fast selector config."""
import dataclasses
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from pcs_scraper.errors import ElementNotFound
from pcs_scraper.settings import DEFAULT_CONFIG_PATH, SelectorConfig, build_selector_config, load_config

BASE_URL = "https://www.publiccontractsscotland.gov.uk/search/search_mainpage.aspx"


class FakeSession:
    """
    Records every call and answers from scripted values.

    scripts maps a JS constant to a value, or to a callable taking the
    evaluate argument. waits maps (selector, state) to False (or a callable
    returning False) to make wait_for fail. on_click hooks run after a click.
    """

    def __init__(self, scripts: Optional[Dict[str, Any]] = None, present=()):
        self.scripts: Dict[str, Any] = dict(scripts or {})
        self.present = set(present)
        self.waits: Dict[Tuple[str, str], Any] = {}
        self.on_click: Dict[str, Callable[[], None]] = {}
        self.failing_clicks = set()
        self.navigate_errors: List[Optional[Exception]] = []
        self.navigations: List[str] = []
        self.clicks: List[str] = []
        self.waited: List[Tuple[str, str]] = []
        self.evaluations: List[Tuple[str, Any]] = []
        self.pauses: List[int] = []
        self.url = BASE_URL

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        self.navigations.append(url)
        if self.navigate_errors:
            error = self.navigate_errors.pop(0)
            if error is not None:
                raise error
        self.url = url

    async def query(self, selector: str):
        return object() if selector in self.present else None

    async def query_all(self, selector: str):
        return [object()] if selector in self.present else []

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluations.append((script, arg))
        value = self.scripts.get(script)
        return value(arg) if callable(value) else value

    def evaluated(self, script: str) -> List[Any]:
        return [arg for s, arg in self.evaluations if s == script]

    async def click(self, target: str, timeout_ms: int = 10_000) -> None:
        self.clicks.append(target)
        if target in self.failing_clicks:
            raise ElementNotFound(f"{target} not clickable")
        hook = self.on_click.get(target)
        if hook:
            hook()

    async def wait_for(self, selector: str, timeout_ms: int, state: str = "visible") -> None:
        self.waited.append((selector, state))
        outcome = self.waits.get((selector, state), True)
        if callable(outcome):
            outcome = outcome()
        if not outcome:
            raise ElementNotFound(f"{selector} not {state}")

    async def pause(self, ms: int) -> None:
        self.pauses.append(ms)


def sequence(*values):
    """Callable returning the given values in turn, repeating the last one."""
    remaining = list(values)

    def next_value(_arg=None):
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return next_value


@pytest.fixture
def selectors() -> SelectorConfig:
    config = build_selector_config(load_config(DEFAULT_CONFIG_PATH))
    config.timing = dataclasses.replace(
        config.timing,
        apply_poll_interval_ms=1,
        apply_poll_timeout_ms=30,
        advance_poll_interval_ms=1,
        advance_poll_timeout_ms=30,
    )
    return config


@pytest.fixture
def timing(selectors):
    return selectors.timing


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()

"""
Configuration for the Scotland category scraper.

Selectors, timings and run defaults live in config/selectors.yaml. Values given
on the command line override the YAML, which overrides the dataclass defaults.
"""
import argparse
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pcs_scraper.text import DEFAULT_KEYWORDS

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "selectors.yaml"
DEFAULT_BASE_URL = "https://www.publiccontractsscotland.gov.uk/search/search_mainpage.aspx"


@dataclass
class CategorySelectors:
    browse_button: str
    modal: str
    expand_icon: str
    checkboxes: str
    add_codes_button: str


@dataclass
class ResultSelectors:
    rows: str
    loading: str
    no_results: str
    title_link: str = "a.ns-list-link"
    item_block: str = "div.ns-item"
    field_label: str = "span.ns-item-title"
    icon: str = "img.ns-item-icon"


@dataclass
class PaginationSelectors:
    page_index: str
    next: str
    disabled_next: str


@dataclass
class CalendarSelectors:
    start_trigger: str
    end_trigger: str
    popup: str
    title: str
    prev_month: str
    next_month: str
    day_cells: str
    apply_button: str
    other_month_classes: List[str] = field(default_factory=list)


@dataclass
class DetailSelectors:
    fields: Dict[str, List[str]]
    main_content: str = "#maincontent"
    label_rows: str = "table tr"
    full_notice_tab: List[str] = field(default_factory=list)
    full_notice_panel: str = ""
    contact_tab: List[str] = field(default_factory=list)
    contact_panel: str = ""


@dataclass
class TimingConfig:
    """Every polling interval, timeout, pacing delay and cap, in milliseconds."""
    settle_ms: int = 800
    between_pages_ms: int = 800
    modal_timeout_ms: int = 12_000
    expand_pause_ms: int = 400
    expand_max_iterations: int = 30
    add_codes_timeout_ms: int = 10_000
    search_race_timeout_ms: int = 8_000
    search_settle_timeout_ms: int = 45_000
    rows_timeout_ms: int = 10_000
    calendar_popup_timeout_ms: int = 5_000
    calendar_max_steps: int = 24
    calendar_step_pause_ms: int = 200
    apply_poll_interval_ms: int = 500
    apply_poll_timeout_ms: int = 45_000
    loader_appear_timeout_ms: int = 3_000
    loader_clear_timeout_ms: int = 45_000
    advance_poll_interval_ms: int = 200
    advance_poll_timeout_ms: int = 30_000
    click_timeout_ms: int = 10_000
    tab_pause_ms: int = 600
    tab_panel_timeout_ms: int = 3_000


@dataclass
class SelectorConfig:
    categories: CategorySelectors
    results: ResultSelectors
    pagination: PaginationSelectors
    calendar: CalendarSelectors
    detail: DetailSelectors
    timing: TimingConfig = field(default_factory=TimingConfig)


@dataclass
class ScrapeConfig:
    base_url: str = DEFAULT_BASE_URL
    keywords: List[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    headless: bool = True
    max_pages: int = 0  # 0 = no limit
    detail_pages: bool = True
    detail_retries: int = 3
    detail_retry_backoff_ms: int = 700
    detail_delay_ms: int = 600
    abort_on_failure: bool = True
    navigation_timeout_ms: int = 30_000
    published_from: Optional[date] = None
    published_to: Optional[date] = None
    output_path: Path = Path("data/scotland_results.json")
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None


def load_config(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def parse_day_month_year(value: str) -> date:
    """Parse a DD/MM/YYYY date as used by the portal."""
    return datetime.strptime(value.strip(), "%d/%m/%Y").date()


def _known_keys(cls, block: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in block.items() if k in names}


def build_selector_config(raw: Dict[str, Any]) -> SelectorConfig:
    selectors = raw["selectors"]
    return SelectorConfig(
        categories=CategorySelectors(**_known_keys(CategorySelectors, selectors["categories"])),
        results=ResultSelectors(**_known_keys(ResultSelectors, selectors["results"])),
        pagination=PaginationSelectors(**_known_keys(PaginationSelectors, selectors["pagination"])),
        calendar=CalendarSelectors(**_known_keys(CalendarSelectors, selectors["calendar"])),
        detail=DetailSelectors(**_known_keys(DetailSelectors, selectors["detail"])),
        timing=TimingConfig(**_known_keys(TimingConfig, raw.get("timing") or {})),
    )


def _pick(args: Optional[argparse.Namespace], name: str, fallback: Any) -> Any:
    value = getattr(args, name, None) if args is not None else None
    return fallback if value is None else value


def build_configs(
    config_path: Path, args: Optional[argparse.Namespace] = None
) -> tuple[ScrapeConfig, SelectorConfig]:
    raw = load_config(config_path)
    scrape_block = raw.get("scrape") or {}
    defaults = ScrapeConfig()

    published_from = _pick(args, "published_from", scrape_block.get("published_from"))
    published_to = _pick(args, "published_to", scrape_block.get("published_to"))
    if isinstance(published_from, str):
        published_from = parse_day_month_year(published_from)
    if isinstance(published_to, str):
        published_to = parse_day_month_year(published_to)

    scrape_cfg = ScrapeConfig(
        base_url=raw.get("base_url") or defaults.base_url,
        keywords=list(_pick(args, "keywords", scrape_block.get("keywords") or defaults.keywords)),
        headless=_pick(args, "headless", scrape_block.get("headless", defaults.headless)),
        max_pages=_pick(args, "max_pages", scrape_block.get("max_pages", defaults.max_pages)),
        detail_pages=_pick(args, "detail_pages", scrape_block.get("detail_pages", defaults.detail_pages)),
        detail_retries=_pick(args, "detail_retries", scrape_block.get("detail_retries", defaults.detail_retries)),
        detail_retry_backoff_ms=_pick(
            args,
            "detail_retry_backoff_ms",
            scrape_block.get("detail_retry_backoff_ms", defaults.detail_retry_backoff_ms),
        ),
        detail_delay_ms=_pick(args, "detail_delay_ms", scrape_block.get("detail_delay_ms", defaults.detail_delay_ms)),
        abort_on_failure=_pick(
            args, "abort_on_failure", scrape_block.get("abort_on_failure", defaults.abort_on_failure)
        ),
        navigation_timeout_ms=scrape_block.get("navigation_timeout_ms", defaults.navigation_timeout_ms),
        published_from=published_from,
        published_to=published_to,
        output_path=Path(_pick(args, "output", scrape_block.get("output_path", defaults.output_path))),
        user_agent=scrape_block.get("user_agent"),
        accept_language=scrape_block.get("accept_language"),
    )
    return scrape_cfg, build_selector_config(raw)

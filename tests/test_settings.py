"""Tests for settings.py — YAML loading and command line overrides."""

import argparse
from datetime import date
from pathlib import Path

import pytest
import yaml

from pcs_scraper.settings import DEFAULT_CONFIG_PATH, build_configs, load_config, parse_day_month_year
from pcs_scraper.text import DEFAULT_KEYWORDS


def test_defaults_from_packaged_yaml():
    scrape_cfg, selector_cfg = build_configs(DEFAULT_CONFIG_PATH)

    assert scrape_cfg.base_url.endswith("search_mainpage.aspx")
    assert scrape_cfg.keywords == DEFAULT_KEYWORDS
    assert scrape_cfg.max_pages == 0
    assert scrape_cfg.detail_retries == 3
    assert scrape_cfg.detail_retry_backoff_ms == 700
    assert scrape_cfg.detail_delay_ms == 600
    assert scrape_cfg.abort_on_failure is True
    assert scrape_cfg.published_from is None
    assert selector_cfg.timing.modal_timeout_ms == 12_000
    assert selector_cfg.timing.expand_max_iterations == 30
    assert selector_cfg.timing.calendar_max_steps == 24
    assert selector_cfg.results.loading == ".pcs-updateprogress"
    assert "rcOtherMonth" in selector_cfg.calendar.other_month_classes
    assert set(selector_cfg.detail.fields) >= {"title", "reference_no", "ocid", "has_spd", "abstract"}


def test_command_line_overrides_yaml():
    args = argparse.Namespace(
        keywords=["health"],
        max_pages=2,
        headless=False,
        detail_pages=None,
        detail_retries=5,
        detail_retry_backoff_ms=None,
        detail_delay_ms=100,
        abort_on_failure=False,
        published_from=date(2026, 10, 1),
        published_to=None,
        output="out/run.json",
    )
    scrape_cfg, _ = build_configs(DEFAULT_CONFIG_PATH, args)

    assert scrape_cfg.keywords == ["health"]
    assert scrape_cfg.max_pages == 2
    assert scrape_cfg.headless is False
    assert scrape_cfg.detail_pages is True
    assert scrape_cfg.detail_retries == 5
    assert scrape_cfg.detail_retry_backoff_ms == 700
    assert scrape_cfg.detail_delay_ms == 100
    assert scrape_cfg.abort_on_failure is False
    assert scrape_cfg.published_from == date(2026, 10, 1)
    assert scrape_cfg.output_path == Path("out/run.json")


def test_yaml_overrides_defaults(tmp_path):
    raw = load_config(DEFAULT_CONFIG_PATH)
    raw["scrape"] = {"max_pages": 7, "published_from": "01/10/2026", "detail_pages": False}
    raw["timing"] = {"settle_ms": 50}
    config_path = tmp_path / "selectors.yaml"
    config_path.write_text(yaml.safe_dump(raw), encoding="utf-8")

    scrape_cfg, selector_cfg = build_configs(config_path)

    assert scrape_cfg.max_pages == 7
    assert scrape_cfg.detail_pages is False
    assert scrape_cfg.published_from == date(2026, 10, 1)
    assert scrape_cfg.detail_retries == 3
    assert selector_cfg.timing.settle_ms == 50
    assert selector_cfg.timing.between_pages_ms == 800


def test_parse_day_month_year():
    assert parse_day_month_year(" 05/11/2026 ") == date(2026, 11, 5)
    with pytest.raises(ValueError):
        parse_day_month_year("2026-11-05")

"""Tests for cli.py — argument handling, remap mode and exit codes."""

import json

import pytest

import pcs_scraper.cli as cli
from pcs_scraper.errors import AbortedByPolicy


class TestParseArgs:
    def test_defaults_leave_yaml_values(self):
        args = cli.parse_args([])
        assert args.headless is None
        assert args.detail_pages is None
        assert args.abort_on_failure is None
        assert args.max_pages is None
        assert args.keywords is None

    def test_switches(self):
        args = cli.parse_args(
            ["--headful", "--no-detail", "--no-abort", "--keywords", "health, transport", "--published-from", "01/10/2026"]
        )
        assert args.headless is False
        assert args.detail_pages is False
        assert args.abort_on_failure is False
        assert args.keywords == ["health", "transport"]
        assert args.published_from.day == 1 and args.published_from.month == 10

    def test_today_defaults(self):
        args = cli.parse_args(["--today"])
        assert args.abort_on_failure is False
        assert args.max_pages == cli.TODAY_MAX_PAGES
        assert args.output.startswith("data/scotland_today_")

    def test_today_keeps_explicit_values(self):
        args = cli.parse_args(["--today", "--max-pages", "2", "--output", "x.json"])
        assert args.max_pages == 2
        assert args.output == "x.json"

    def test_bad_date_rejected(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["--published-to", "2026-10-01"])


class TestRemap:
    def test_scotland_export(self, tmp_path):
        source = tmp_path / "raw.json"
        source.write_text(
            json.dumps({"__meta": {}, "items": [{"referenceNo": "R-1", "title": "Care"}, {"ocid": "O-2"}]}),
            encoding="utf-8",
        )
        assert cli.main(["--remap", str(source)]) == 0

        output = json.loads((tmp_path / "raw_processed.json").read_text(encoding="utf-8"))
        assert [item["governmentId"] for item in output["items"]] == ["R-1", "O-2"]
        assert output["__meta"]["source"] == "scotland"
        assert output["__meta"]["totalRaw"] == 2

    def test_open_uk_keyword_filter(self, tmp_path):
        source = tmp_path / "openuk.json"
        source.write_text(
            json.dumps([{"id": "a", "opportunityName": "Health visiting"}, {"id": "b", "opportunityName": "Printing"}]),
            encoding="utf-8",
        )
        target = tmp_path / "mapped.json"
        code = cli.main(["--remap", str(source), "--source", "open-uk", "--keywords", "health", "--output", str(target)])

        assert code == 0
        output = json.loads(target.read_text(encoding="utf-8"))
        assert [item["governmentId"] for item in output["items"]] == ["a"]
        assert output["__meta"]["totalItems"] == 1
        assert output["__meta"]["totalRaw"] == 2


def test_aborted_run_exits_non_zero(monkeypatch):
    async def aborted(args):
        raise AbortedByPolicy("detail page failed")

    monkeypatch.setattr(cli, "async_main", aborted)
    assert cli.main(["--no-detail"]) == 1

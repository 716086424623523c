"""Tests for search/paginator.py — row extraction, advance strategies, termination."""

import asyncio
import logging

import pytest

from conftest import BASE_URL, FakeSession
from pcs_scraper.errors import ElementNotFound, PaginationStuck, ScriptEvaluationError
from pcs_scraper.search.paginator import (
    DO_POSTBACK_JS,
    EXTRACT_ROWS_JS,
    READ_PAGER_JS,
    SET_PAGE_INDEX_JS,
    PagerState,
    Paginator,
    fill_from_row_text,
    parse_postback,
)


def make_paginator(session, selectors):
    return Paginator(session, selectors.results, selectors.pagination, selectors.timing, BASE_URL)


def raw_row(n):
    return {
        "date": f"1{n}/10/2026",
        "title": f"Notice {n}",
        "href": f"/search/show/search_view.aspx?ID=OCT{n}",
        "fields": {"Reference No": f"REF-{n}"},
        "icons": [],
        "text": f"Notice {n}",
    }


class Portal:
    """A results listing with `pages` pages and the given pager wiring."""

    def __init__(self, pages, with_index=True, advances=True):
        self.pages = pages
        self.page = 0
        self.with_index = with_index
        self.advances = advances

    def rows(self, _arg=None):
        return [raw_row(self.page)]

    def pager(self, _arg=None):
        last = self.pages - 1
        return {
            "pageIndex": self.page if self.with_index else None,
            "lastIndex": last if self.with_index else None,
            "hasNext": self.page < last,
            "nextDisabled": False,
            "nextScript": None,
            "rowSignature": f"page-{self.page}",
        }

    def set_index(self, arg):
        if self.advances:
            self.page = arg["index"]
        return True

    def next_page(self):
        if self.advances:
            self.page += 1


def portal_session(selectors, portal):
    session = FakeSession(
        scripts={
            EXTRACT_ROWS_JS: portal.rows,
            READ_PAGER_JS: portal.pager,
            SET_PAGE_INDEX_JS: portal.set_index,
        }
    )
    session.on_click[selectors.pagination.next] = portal.next_page
    return session


class TestHelpers:
    def test_parse_postback(self):
        script = "javascript:__doPostBack('ctl00$maincontent$lnkNext','Page$2')"
        assert parse_postback(script) == ("ctl00$maincontent$lnkNext", "Page$2")
        assert parse_postback("window.location='/x'") is None
        assert parse_postback(None) is None

    def test_fill_from_row_text(self):
        text = "Reference No: ABC-1 OCID: ocds-b5fd17-1\nPublished By: Glasgow City Council"
        filled = fill_from_row_text({"reference_no": "KEEP", "ocid": None}, text)
        assert filled["reference_no"] == "KEEP"
        assert filled["ocid"] == "ocds-b5fd17-1"
        assert filled["published_by"] == "Glasgow City Council"

    @pytest.mark.parametrize(
        "payload, is_last",
        [
            ({"pageIndex": 0, "lastIndex": 2, "hasNext": True}, False),
            ({"pageIndex": 2, "lastIndex": 2, "hasNext": True}, True),
            ({"hasNext": True, "nextDisabled": True}, True),
            ({"hasNext": False}, True),
            ({}, True),
        ],
    )
    def test_pager_state_is_last(self, payload, is_last):
        assert PagerState.from_payload(payload).is_last is is_last


class TestExtractCurrentPage:
    def test_no_results_indicator(self, selectors):
        session = FakeSession(present={selectors.results.no_results})
        assert asyncio.run(make_paginator(session, selectors).extract_current_page("ALL")) == []

    def test_rows_timeout_is_empty_page(self, selectors, caplog):
        session = FakeSession()
        session.waits[(selectors.results.rows, "attached")] = False
        with caplog.at_level(logging.WARNING):
            assert asyncio.run(make_paginator(session, selectors).extract_current_page("ALL")) == []
        assert caplog.records

    def test_builds_rows(self, selectors):
        row = {
            "date": "17/10/2026",
            "title": "Patient transport",
            "href": "/search/show/search_view.aspx?ID=OCT542085",
            "fields": {"Reference No": "GCC-123", "Notice Type": "Contract Notice"},
            "icons": ["Has documents"],
            "text": "Patient transport\nOCID: ocds-r6ebe6-0000542085\nPublished By: NHS Lothian",
        }
        session = FakeSession(scripts={EXTRACT_ROWS_JS: [row]})
        rows = asyncio.run(make_paginator(session, selectors).extract_current_page("ALL_SELECTED"))

        assert len(rows) == 1
        result = rows[0]
        assert result.detail_url == (
            "https://www.publiccontractsscotland.gov.uk/search/show/search_view.aspx?ID=OCT542085"
        )
        assert result.reference_no == "GCC-123"
        assert result.notice_type == "Contract Notice"
        assert result.ocid == "ocds-r6ebe6-0000542085"
        assert result.published_by == "NHS Lothian"
        assert result.icon_flags == ["Has documents"]
        assert result.category == "ALL_SELECTED"
        assert session.pauses == [selectors.timing.settle_ms]


class TestCollect:
    def test_page_index_strategy(self, selectors):
        portal = Portal(pages=3)
        session = portal_session(selectors, portal)
        rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))

        assert [r.title for r in rows] == ["Notice 0", "Notice 1", "Notice 2"]
        assert [a["index"] for a in session.evaluated(SET_PAGE_INDEX_JS)] == [1, 2]
        assert session.clicks == []
        timing = selectors.timing
        assert session.pauses == [
            timing.settle_ms,
            timing.between_pages_ms,
            timing.settle_ms,
            timing.between_pages_ms,
            timing.settle_ms,
        ]

    def test_max_pages_caps_the_loop(self, selectors):
        portal = Portal(pages=10)
        session = portal_session(selectors, portal)
        rows = asyncio.run(make_paginator(session, selectors).collect("ALL", max_pages=2))
        assert [r.title for r in rows] == ["Notice 0", "Notice 1"]

    def test_next_click_without_index_control(self, selectors):
        portal = Portal(pages=2, with_index=False)
        session = portal_session(selectors, portal)
        rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))
        assert [r.title for r in rows] == ["Notice 0", "Notice 1"]
        assert session.clicks == [selectors.pagination.next]

    def test_disabled_next_is_single_page(self, selectors):
        session = FakeSession(
            scripts={
                EXTRACT_ROWS_JS: [raw_row(0)],
                READ_PAGER_JS: {"hasNext": True, "nextDisabled": True},
            }
        )
        rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))
        assert len(rows) == 1
        assert session.clicks == []

    def test_stuck_page_keeps_collected_rows(self, selectors, caplog):
        portal = Portal(pages=3, advances=False)
        session = portal_session(selectors, portal)
        with caplog.at_level(logging.WARNING):
            rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))
        assert [r.title for r in rows] == ["Notice 0"]
        assert any("did not advance" in r.getMessage() for r in caplog.records)


class TestAdvance:
    def test_inline_postback_fallback(self, selectors):
        session = FakeSession(scripts={DO_POSTBACK_JS: True})
        session.failing_clicks.add(selectors.pagination.next)
        state = PagerState.from_payload(
            {"hasNext": True, "nextScript": "__doPostBack('ctl00$maincontent$lnkNext','')", "rowSignature": "a"}
        )
        mechanism = asyncio.run(make_paginator(session, selectors).advance(state))
        assert mechanism == "inline_script"
        assert session.evaluated(DO_POSTBACK_JS) == [{"target": "ctl00$maincontent$lnkNext", "argument": ""}]

    def test_failed_click_without_script(self, selectors):
        session = FakeSession()
        session.failing_clicks.add(selectors.pagination.next)
        state = PagerState.from_payload({"hasNext": True})
        with pytest.raises(ElementNotFound):
            asyncio.run(make_paginator(session, selectors).advance(state))

    def test_no_controls(self, selectors):
        with pytest.raises(ElementNotFound):
            asyncio.run(make_paginator(FakeSession(), selectors).advance(PagerState.from_payload({})))

    def test_verify_advance_uses_row_signature_without_index(self, selectors):
        session = FakeSession(scripts={READ_PAGER_JS: {"hasNext": True, "rowSignature": "same"}})
        before = PagerState.from_payload({"hasNext": True, "rowSignature": "same"})
        with pytest.raises(PaginationStuck):
            asyncio.run(make_paginator(session, selectors).verify_advance(before))


class FlakyPager:
    """Pager reads that fail while the postback replaces the document."""

    def __init__(self, portal, failures):
        self.portal = portal
        self.failures = set(failures)
        self.calls = 0

    def __call__(self, arg=None):
        self.calls += 1
        if self.calls in self.failures:
            raise ScriptEvaluationError("Execution context was destroyed, most likely because of a navigation")
        return self.portal.pager(arg)


class TestReloadDuringAdvance:
    def test_failed_read_while_polling_is_retried(self, selectors):
        portal = Portal(pages=3)
        session = portal_session(selectors, portal)
        session.scripts[READ_PAGER_JS] = FlakyPager(portal, failures={2})

        rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))

        assert [r.title for r in rows] == ["Notice 0", "Notice 1", "Notice 2"]

    def test_persistent_read_failure_keeps_collected_rows(self, selectors, caplog):
        portal = Portal(pages=3)
        session = portal_session(selectors, portal)
        session.scripts[READ_PAGER_JS] = FlakyPager(portal, failures=range(2, 10_000))

        with caplog.at_level(logging.WARNING):
            rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))

        assert [r.title for r in rows] == ["Notice 0"]
        assert any("did not advance" in r.getMessage() for r in caplog.records)

    def test_failed_read_before_advance_ends_collection(self, selectors, caplog):
        portal = Portal(pages=3)
        session = portal_session(selectors, portal)
        session.scripts[READ_PAGER_JS] = FlakyPager(portal, failures={1})

        with caplog.at_level(logging.WARNING):
            rows = asyncio.run(make_paginator(session, selectors).collect("ALL"))

        assert [r.title for r in rows] == ["Notice 0"]
        assert any("Could not advance pagination" in r.getMessage() for r in caplog.records)

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from broken_link_checker.models import (
    BreakageInfo,
    CheckerReport,
    InvalidLinkEvent,
    LinkEvent,
    PageReport,
)

PAGE = "http://localhost:1313/2021/03/deckgl-displaying-live-flight-info/"
L1 = "https://www.mapadsbox.com/mapbox-gljs"
L2 = "https://cors-anywhere.herokuapp.com/"


# ---------- PageReport ----------


def test_every_category_also_marks_checked():
    pr = PageReport(PAGE)
    pr.report_broken(L1, "title", "HTTP_404")
    pr.report_ignored(L2)
    pr.report_blacklisted("https://en.wikipedia.org/wiki/Saturn_V")

    assert pr.checked == {L1, L2, "https://en.wikipedia.org/wiki/Saturn_V"}
    assert set(pr.broken) | pr.ignored | pr.blacklisted <= pr.checked


def test_report_broken_keeps_breakage_info():
    pr = PageReport(PAGE)
    pr.report_broken(L1, "The link text", "HTTP_404")
    assert pr.broken[L1] == BreakageInfo(link_text="The link text", reason="HTTP_404")


def test_broken_links_keep_discovery_order():
    pr = PageReport(PAGE)
    links = [f"https://example.org/{i}" for i in (5, 1, 4, 2, 3)]
    for link in links:
        pr.report_broken(link)
    assert list(pr.broken) == links


def test_report_error_does_not_store_same_error_twice():
    pr = PageReport(PAGE)
    e = RuntimeError("boom")
    pr.report_error(e)
    pr.report_error(e)
    pr.report_error(RuntimeError("boom"))  # equal text, different error
    assert len(pr.errors) == 2


# ---------- CheckerReport ----------


def test_save_page_report_is_first_write_wins():
    cr = CheckerReport(PAGE)
    first = PageReport(L1)
    first.report_checked(L2)
    second = PageReport(L1)

    cr.save_page_report(first)
    cr.save_page_report(second)

    assert cr.page_reports[L1] is first
    assert cr.page_reports[L1].checked == {L2}


def test_duration_is_minus_one_without_end_time():
    cr = CheckerReport(PAGE)
    cr.set_start_time(datetime.now(timezone.utc))
    assert cr.duration_ms() == -1


def test_duration_is_minus_one_without_any_times():
    assert CheckerReport(PAGE).duration_ms() == -1


def test_duration_in_milliseconds():
    start = datetime.now(timezone.utc)
    cr = CheckerReport(PAGE)
    cr.set_start_time(start)
    cr.set_end_time(start + timedelta(milliseconds=100))
    assert cr.duration_ms() == 100


def test_duration_never_negative_when_clock_goes_backwards():
    start = datetime.now(timezone.utc)
    cr = CheckerReport(PAGE)
    cr.set_start_time(start)
    cr.set_end_time(start - timedelta(seconds=5))
    assert cr.duration_ms() == -1


def test_broken_links_present_and_totals():
    cr = CheckerReport(PAGE)
    clean = PageReport(L1)
    clean.report_checked("https://example.org/a")
    cr.save_page_report(clean)
    assert cr.are_broken_links_present() is False

    dirty = PageReport(L2)
    dirty.report_checked("https://example.org/b")
    dirty.report_broken("https://example.org/c")
    cr.save_page_report(dirty)

    assert cr.are_broken_links_present() is True
    assert cr.total_checked == 3
    assert cr.total_broken == 1


def test_pages_with_errors_includes_failed_pages_once():
    cr = CheckerReport(PAGE)
    committed = PageReport(L1)
    committed.report_error(ValueError("bad link"))
    cr.save_page_report(committed)

    failed = PageReport(L2)
    failed.report_error(ConnectionError("fetch failed"))
    cr.record_failed_page(failed)
    cr.record_failed_page(PageReport(L2))  # first write wins here too

    assert [pr.url for pr in cr.pages_with_errors()] == [L1, L2]
    assert cr.encountered_errors() is True
    assert L2 not in cr.page_reports


def test_encountered_errors_false_when_clean():
    cr = CheckerReport(PAGE)
    cr.save_page_report(PageReport(L1))
    assert cr.encountered_errors() is False


# ---------- LinkEvent boundary ----------


def _payload(**overrides):
    payload = {
        "base": {"original": PAGE},
        "url": {"original": L1, "parsed": {"host": "www.mapadsbox.com"}},
        "html": {"text": "Mapbox"},
        "broken": True,
        "brokenReason": "HTTP_404",
    }
    payload.update(overrides)
    return payload


def test_link_event_from_payload():
    event = LinkEvent.from_payload(_payload())
    assert event == LinkEvent(
        source_page_url=PAGE,
        link_url=L1,
        link_host="www.mapadsbox.com",
        link_text="Mapbox",
        is_broken=True,
        breakage_reason="HTTP_404",
    )


def test_link_event_derives_host_when_parsed_missing():
    event = LinkEvent.from_payload(_payload(url={"original": "https://EN.wikipedia.org/wiki/X"}))
    assert event.link_host == "en.wikipedia.org"


def test_link_event_tolerates_missing_optional_fields():
    payload = {"base": {"original": PAGE}, "url": {"original": L1}}
    event = LinkEvent.from_payload(payload)
    assert event.is_broken is False
    assert event.link_text is None
    assert event.breakage_reason is None


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "not a mapping",
        {},
        {"base": {"original": PAGE}},
        {"base": {}, "url": {"original": L1}},
        {"base": {"original": PAGE}, "url": {"original": ""}},
        _payload(broken="yes"),
        _payload(html="text"),
        _payload(brokenReason=404),
        _payload(url={"original": L1, "parsed": {"host": 7}}),
    ],
)
def test_link_event_rejects_malformed_payloads(payload):
    with pytest.raises(InvalidLinkEvent):
        LinkEvent.from_payload(payload)

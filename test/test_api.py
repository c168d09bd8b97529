from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from broken_link_checker.api import CrawlTimeout, check_links, exit_on_timeout
from broken_link_checker.config import load_config
from broken_link_checker.models import CheckerReport
from broken_link_checker.notifier import SenderDetails

SITE = "https://site.example/"
ABOUT = "https://site.example/about"
IGNORED = "https://flaky.example/known-bad"
WIKI = "https://en.wikipedia.org/wiki/Saturn_V"

ROOT_HTML = f"""
<a href="/about">About</a>
<a href="https://ext.example/gone">Gone</a>
<a href="https://ext.example/ok">Fine</a>
<a href="{WIKI}">Saturn V</a>
<a href="{IGNORED}">Known bad</a>
"""

ABOUT_HTML = """
<a href="/">Home</a>
<a href="https://ext.example/ok">Fine</a>
<a href="https://down.example/">Down</a>
"""


@pytest.fixture
def config(tmp_path):
    cfg = load_config(tmp_path / "missing.toml", environ={})
    cfg.update(
        {
            "rate_limit": 0,
            "honor_robots": False,
            "cache": {"enabled": False},
            "smtp_host": "smtp.example.com",
            "smtp_port": 2465,
        }
    )
    return cfg


@pytest.fixture
def site():
    with respx.mock(assert_all_called=False) as router:
        router.get(SITE).mock(return_value=httpx.Response(200, html=ROOT_HTML))
        router.get(ABOUT).mock(return_value=httpx.Response(200, html=ABOUT_HTML))
        router.head(SITE).mock(return_value=httpx.Response(200))
        router.head(ABOUT).mock(return_value=httpx.Response(200))
        router.head("https://ext.example/gone").mock(return_value=httpx.Response(404))
        router.head("https://ext.example/ok").mock(return_value=httpx.Response(200))
        router.head(WIKI).mock(return_value=httpx.Response(404))
        router.head(IGNORED).mock(return_value=httpx.Response(410))
        router.head("https://down.example/").mock(side_effect=httpx.ConnectError("refused"))
        yield router


class FakeSend:
    def __init__(self, delivered=True):
        self.delivered = delivered
        self.calls = []

    def __call__(self, sender, recipient, report, **kwargs):
        self.calls.append((sender, recipient, report, kwargs))
        return self.delivered


SENDER = SenderDetails("me@example.com", "pw")


def test_end_to_end_classifies_and_sends(site, config):
    send = FakeSend()
    report = check_links(
        SITE,
        "you@example.com",
        SENDER,
        reliable_hosts=["EN.wikipedia.org"],
        ignorable_links=[IGNORED],
        timeout=30,
        config=config,
        send=send,
    )

    assert list(report.page_reports) == [SITE, ABOUT]
    root = report.page_reports[SITE]
    assert len(root.checked) == 5
    assert list(root.broken) == ["https://ext.example/gone"]
    assert root.broken["https://ext.example/gone"].reason == "HTTP_404"
    assert root.blacklisted == {WIKI}
    assert root.ignored == {IGNORED}

    about = report.page_reports[ABOUT]
    assert list(about.broken) == ["https://down.example/"]
    assert about.broken["https://down.example/"].reason == "ERRNO_ConnectError"

    assert report.total_checked == 8
    assert report.total_broken == 2
    assert report.duration_ms() >= 0

    assert len(send.calls) == 1
    sender, recipient, sent_report, kwargs = send.calls[0]
    assert (sender, recipient, sent_report) == (SENDER, "you@example.com", report)
    assert kwargs == {"smtp_host": "smtp.example.com", "smtp_port": 2465}


def test_nothing_sent_when_nothing_broke(config):
    send = FakeSend()
    with respx.mock() as router:
        router.get(SITE).mock(
            return_value=httpx.Response(200, html='<a href="https://ext.example/ok">ok</a>')
        )
        router.head("https://ext.example/ok").mock(return_value=httpx.Response(200))
        report = check_links(SITE, "you@example.com", SENDER, config=config, send=send)

    assert not report.are_broken_links_present()
    assert send.calls == []


def test_ignored_and_reliable_breakage_alone_sends_nothing(config):
    send = FakeSend()
    html = f'<a href="{WIKI}">w</a><a href="{IGNORED}">i</a>'
    with respx.mock() as router:
        router.get(SITE).mock(return_value=httpx.Response(200, html=html))
        router.head(WIKI).mock(return_value=httpx.Response(404))
        router.head(IGNORED).mock(return_value=httpx.Response(404))
        check_links(
            SITE,
            "you@example.com",
            SENDER,
            reliable_hosts=["en.wikipedia.org"],
            ignorable_links=[IGNORED],
            config=config,
            send=send,
        )

    assert send.calls == []


def test_no_sender_means_no_mail(site, config):
    send = FakeSend()
    report = check_links(SITE, None, None, config=config, send=send)
    assert report.are_broken_links_present()
    assert send.calls == []


def test_undeliverable_report_is_logged(site, config, caplog):
    send = FakeSend(delivered=False)
    check_links(SITE, "you@example.com", SENDER, config=config, send=send)
    assert "could not be delivered" in caplog.text


def test_failed_root_page_lands_in_the_error_digest(config):
    with respx.mock() as router:
        router.get(SITE).mock(return_value=httpx.Response(503))
        report = check_links(SITE, None, None, config=config, send=FakeSend())

    assert report.page_reports == {}
    assert list(report.failed_pages) == [SITE]
    assert [pr.url for pr in report.pages_with_errors()] == [SITE]
    assert report.encountered_errors()


def _slow_transport():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, html="<p>late</p>")

    return httpx.MockTransport(handler)


def test_timeout_calls_hook_and_raises(config):
    seen = []
    with pytest.raises(CrawlTimeout):
        check_links(
            SITE,
            None,
            None,
            timeout=0.05,
            config=config,
            on_timeout=seen.append,
            transport=_slow_transport(),
        )

    assert len(seen) == 1
    assert isinstance(seen[0], CheckerReport)
    assert seen[0].page_reports == {}


def test_timeout_exits_with_status_one_by_default(config, caplog):
    with pytest.raises(SystemExit) as excinfo:
        check_links(SITE, None, None, timeout=0.05, config=config, transport=_slow_transport())

    assert excinfo.value.code == 1
    assert "Timed out when crawling." in caplog.text


def test_exit_on_timeout():
    with pytest.raises(SystemExit) as excinfo:
        exit_on_timeout(CheckerReport(SITE))
    assert excinfo.value.code == 1


def test_malformed_href_does_not_abort_the_run(config, caplog):
    html = '<a href="http://[oops/x">bad</a><a href="https://ext.example/ok">ok</a>'
    with respx.mock() as router:
        router.get(SITE).mock(return_value=httpx.Response(200, html=html))
        router.head("https://ext.example/ok").mock(return_value=httpx.Response(200))
        report = check_links(SITE, None, None, config=config, send=FakeSend())

    assert list(report.page_reports) == [SITE]
    assert report.page_reports[SITE].checked == {"https://ext.example/ok"}
    assert "Skipping malformed link" in caplog.text

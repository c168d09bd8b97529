# broken_link_checker/api.py
# The primary, programmer-facing API for the library.

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from broken_link_checker.config import load_config
from broken_link_checker.crawler import SiteChecker
from broken_link_checker.link_logic import CheckSession, handle_link, handle_page
from broken_link_checker.models import CheckerReport
from broken_link_checker.notifier import SenderDetails, send_email

log = logging.getLogger(__name__)

Sender = Callable[..., bool]


class CrawlTimeout(Exception):
    """The overall crawl deadline expired before the crawler finished."""


def exit_on_timeout(report: CheckerReport) -> None:
    """Default timeout hook: stop the process with a non-zero status."""
    sys.exit(1)


async def crawl_site(
    session: CheckSession,
    config: Dict[str, Any],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CheckerReport:
    """
    Run the crawler against `session.report.base_url`, feeding every event
    into the session. Returns the finished CheckerReport.
    """
    site_url = session.report.base_url
    session.start()
    async with SiteChecker(
        site_url,
        config,
        on_link=lambda event: handle_link(event, session),
        on_page=lambda error, page_url: handle_page(error, page_url, session),
        on_end=session.finish,
        transport=transport,
    ) as checker:
        await checker.crawl()
    return session.report


def check_links(
    site_url: str,
    recipient: Optional[str],
    sender: Optional[SenderDetails],
    reliable_hosts: Iterable[str] = (),
    ignorable_links: Iterable[str] = (),
    timeout: float = 600,
    *,
    config: Optional[Dict[str, Any]] = None,
    on_timeout: Callable[[CheckerReport], None] = exit_on_timeout,
    send: Sender = send_email,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CheckerReport:
    """
    Crawl a site, classify its links and email a report if anything broke.

    Args:
        site_url: The page the crawl starts from.
        recipient: Where the report goes. None disables sending.
        sender: The account the report is sent from. None disables sending.
        reliable_hosts: Hosts whose links are never checked.
        ignorable_links: Exact link URLs whose breakage is not reported.
        timeout: Overall crawl deadline in seconds.
        config: Crawler and SMTP settings; defaults from `load_config()`.
        on_timeout: Called with the partial report when the deadline expires.
            The default exits the process with status 1.
        send: Mail transport, `send_email` unless replaced.

    Returns:
        The CheckerReport for the crawl.
    """
    config = config if config is not None else load_config()
    session = CheckSession.create(site_url, reliable_hosts, ignorable_links)

    log.info("Checking site URLs. Beginning with %s", site_url)
    try:
        asyncio.run(asyncio.wait_for(crawl_site(session, config, transport=transport), timeout))
    except asyncio.TimeoutError:
        log.error("Timed out when crawling.")
        on_timeout(session.report)
        raise CrawlTimeout(f"crawl of {site_url} exceeded {timeout}s") from None

    report = session.report
    if not report.are_broken_links_present():
        log.info("Checks completed. No broken links found.")
        return report

    log.info(
        "Checks completed. %d broken links on %d pages.",
        report.total_broken,
        sum(1 for pr in report.page_reports.values() if pr.broken),
    )
    if sender is None or not recipient:
        log.warning("No sender or recipient configured; not emailing the report.")
        return report

    delivered = send(
        sender,
        recipient,
        report,
        smtp_host=config.get("smtp_host", "smtp.gmail.com"),
        smtp_port=int(config.get("smtp_port", 465)),
    )
    if not delivered:
        log.error("The report for %s could not be delivered to %s.", site_url, recipient)
    return report

# broken_link_checker/link_logic.py
"""
Per-link classification and per-page commit logic.

The crawler feeds two kinds of events in here:
- a link event for every link discovered on a page (`handle_link`)
- a completion event once a page is done (`handle_page`)

Decision order for a link (first match wins):
1. mark checked
2. host is reliable          -> blacklisted
3. broken and ignorable      -> ignored
4. broken                    -> broken
5. otherwise                 -> checked only

Faults raised while classifying are stored on the owning PageReport and never
propagate, so one bad event cannot abort the crawl.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Set, Union

from broken_link_checker.models import CheckerReport, LinkEvent, PageReport

log = logging.getLogger(__name__)

# Page key for link events whose source page cannot be read from the payload.
UNKNOWN_SOURCE_PAGE = "about:unknown-source-page"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_hosts(hosts: Iterable[str]) -> Set[str]:
    return {h.strip().lower() for h in hosts if h and h.strip()}


def _normalize_links(links: Iterable[str]) -> Set[str]:
    return {u.strip() for u in links if u and u.strip()}


@dataclass
class CheckSession:
    """
    Everything one crawl accumulates, passed explicitly to each event handler.

    `page_reports` is the working set: every page seen so far, committed or not.
    `report` only holds pages whose completion event arrived without error.
    """

    report: CheckerReport
    reliable_hosts: Set[str] = field(default_factory=set)
    ignorable_links: Set[str] = field(default_factory=set)
    page_reports: Dict[str, PageReport] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        site_url: str,
        reliable_hosts: Iterable[str] = (),
        ignorable_links: Iterable[str] = (),
    ) -> "CheckSession":
        return cls(
            report=CheckerReport(site_url),
            reliable_hosts=_normalize_hosts(reliable_hosts),
            ignorable_links=_normalize_links(ignorable_links),
        )

    def page_report_for(self, page_url: str) -> PageReport:
        page_report = self.page_reports.get(page_url)
        if page_report is None:
            page_report = PageReport(page_url)
        return page_report

    def start(self) -> None:
        self.report.set_start_time(_now())

    def finish(self) -> None:
        """
        Stamp the end time and surface errors from pages that never committed.
        """
        self.report.set_end_time(_now())
        for url, page_report in self.page_reports.items():
            if not page_report.errors:
                continue
            if url in self.report.page_reports:
                continue
            self.report.record_failed_page(page_report)


def is_reliable_host(host: str, reliable_hosts: Set[str]) -> bool:
    return host.lower() in reliable_hosts


def is_ignorable(url: str, ignorable_links: Set[str]) -> bool:
    return url in ignorable_links


def _source_page_of(result: Union[LinkEvent, Mapping[str, Any]]) -> str:
    if isinstance(result, LinkEvent):
        return result.source_page_url
    try:
        source = result["base"]["original"]  # type: ignore[index]
    except (KeyError, TypeError):
        return UNKNOWN_SOURCE_PAGE
    if not isinstance(source, str) or not source:
        return UNKNOWN_SOURCE_PAGE
    return source


def classify(event: LinkEvent, page_report: PageReport, session: CheckSession) -> str:
    """
    Apply the decision order to one event and return the category name.
    """
    page_report.report_checked(event.link_url)

    if is_reliable_host(event.link_host, session.reliable_hosts):
        # we're considering this host reliable, don't even consider checking it
        page_report.report_blacklisted(event.link_url)
        return "blacklisted"

    if event.is_broken and is_ignorable(event.link_url, session.ignorable_links):
        page_report.report_ignored(event.link_url)
        return "ignored"

    if event.is_broken:
        page_report.report_broken(
            event.link_url, event.link_text, event.breakage_reason
        )
        return "broken"

    return "checked"


def handle_link(
    result: Union[LinkEvent, Mapping[str, Any]], session: CheckSession
) -> None:
    """
    Classify one discovered link and store the outcome on its page report.

    `result` is either an already validated LinkEvent or the crawler's raw
    payload mapping, which is validated here.
    """
    source_url = _source_page_of(result)
    page_report = session.page_report_for(source_url)

    try:
        event = result if isinstance(result, LinkEvent) else LinkEvent.from_payload(result)
        category = classify(event, page_report, session)
        log.debug("%s on %s: %s", event.link_url, source_url, category)
    except Exception as e:
        log.error(
            "I encountered an error on %s, logging it and proceeding: %s",
            source_url,
            e,
            exc_info=True,
        )
        page_report.report_error(e)

    session.page_reports[source_url] = page_report


def handle_page(error: Any, page_url: str, session: CheckSession) -> None:
    """
    Commit a finished page into the crawl report, or record why it failed.

    A page with zero links still commits an empty report.
    """
    page_report = session.page_report_for(page_url)

    if not error:
        session.report.save_page_report(page_report)
    else:
        log.warning("Page %s failed: %s", page_url, error)
        page_report.report_error(error)
        session.report.record_failed_page(page_report)

    session.page_reports[page_url] = page_report

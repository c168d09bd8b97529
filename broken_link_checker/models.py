# broken_link_checker/models.py
# Defines the data structures used throughout the application: per-page and
# per-crawl reports, the link event boundary, and the outbound message value.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set
from urllib.parse import urlparse


class InvalidLinkEvent(ValueError):
    """Raised when a crawler payload does not have the shape of a link event."""


@dataclass(frozen=True)
class BreakageInfo:
    """What we know about why a link is broken."""

    link_text: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class PageReport:
    """
    Classification outcomes for the links discovered on one source page.

    Every link in `broken`, `ignored` or `blacklisted` is also in `checked`,
    and a link lands in at most one of those three.
    """

    url: str
    checked: Set[str] = field(default_factory=set)
    # Insertion-ordered so the digest lists broken links in discovery order.
    broken: Dict[str, BreakageInfo] = field(default_factory=dict)
    ignored: Set[str] = field(default_factory=set)
    blacklisted: Set[str] = field(default_factory=set)
    errors: List[Any] = field(default_factory=list)

    def report_checked(self, link: str) -> None:
        self.checked.add(link)

    def report_broken(
        self, link: str, link_text: Optional[str] = None, reason: Optional[str] = None
    ) -> None:
        self.report_checked(link)
        self.broken[link] = BreakageInfo(link_text=link_text, reason=reason)

    def report_ignored(self, link: str) -> None:
        self.report_checked(link)
        self.ignored.add(link)

    def report_blacklisted(self, link: str) -> None:
        self.report_checked(link)
        self.blacklisted.add(link)

    def report_error(self, error: Any) -> None:
        # Same object twice is one error; identity, not equality.
        if any(e is error for e in self.errors):
            return
        self.errors.append(error)


@dataclass
class CheckerReport:
    """Aggregate of all committed page reports for one crawl."""

    base_url: str
    page_reports: Dict[str, PageReport] = field(default_factory=dict)
    # Pages whose completion event carried an error. Kept apart so their
    # links never reach the digest, but their errors still get reported.
    failed_pages: Dict[str, PageReport] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def save_page_report(self, page_report: PageReport) -> None:
        """First write wins."""
        if page_report.url not in self.page_reports:
            self.page_reports[page_report.url] = page_report

    def record_failed_page(self, page_report: PageReport) -> None:
        if page_report.url not in self.failed_pages:
            self.failed_pages[page_report.url] = page_report

    def set_start_time(self, when: datetime) -> None:
        self.started_at = when

    def set_end_time(self, when: datetime) -> None:
        self.finished_at = when

    def duration_ms(self) -> int:
        """Elapsed crawl time in milliseconds, or -1 when timing is unavailable."""
        if self.started_at is None or self.finished_at is None:
            return -1
        if self.finished_at < self.started_at:
            return -1
        delta = self.finished_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def are_broken_links_present(self) -> bool:
        return any(pr.broken for pr in self.page_reports.values())

    def pages_with_errors(self) -> List[PageReport]:
        pages = [pr for pr in self.page_reports.values() if pr.errors]
        pages.extend(
            pr
            for url, pr in self.failed_pages.items()
            if pr.errors and url not in self.page_reports
        )
        return pages

    def encountered_errors(self) -> bool:
        return bool(self.pages_with_errors())

    @property
    def total_checked(self) -> int:
        return sum(len(pr.checked) for pr in self.page_reports.values())

    @property
    def total_broken(self) -> int:
        return sum(len(pr.broken) for pr in self.page_reports.values())


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if not isinstance(value, Mapping):
        raise InvalidLinkEvent(f"link event is missing the '{key}' section")
    return value


def _required_str(section: Mapping[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidLinkEvent(f"link event field '{where}.{key}' must be a non-empty string")
    return value


def _optional_str(value: Any, where: str) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise InvalidLinkEvent(f"link event field '{where}' must be a string")


@dataclass(frozen=True)
class LinkEvent:
    """
    One link-check result emitted by the crawler.

    This is the narrow boundary between the loosely shaped crawler payload and
    the aggregation logic. Use `from_payload` to validate raw mappings.
    """

    source_page_url: str
    link_url: str
    link_host: str
    link_text: Optional[str] = None
    is_broken: bool = False
    breakage_reason: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "LinkEvent":
        """
        Build a LinkEvent from the crawler's nested mapping:

            {base: {original}, url: {original, parsed: {host}},
             html: {text}, broken, brokenReason}

        Raises InvalidLinkEvent when the payload is malformed.
        """
        if not isinstance(payload, Mapping):
            raise InvalidLinkEvent(f"link event must be a mapping, got {type(payload).__name__}")

        base = _section(payload, "base")
        url = _section(payload, "url")
        source_page_url = _required_str(base, "original", "base")
        link_url = _required_str(url, "original", "url")

        parsed = url.get("parsed")
        host: Any = None
        if isinstance(parsed, Mapping):
            host = parsed.get("host")
        elif parsed is not None:
            host = getattr(parsed, "hostname", None)
        if host is None:
            host = urlparse(link_url).netloc
        if not isinstance(host, str):
            raise InvalidLinkEvent("link event field 'url.parsed.host' must be a string")

        html = payload.get("html") or {}
        if not isinstance(html, Mapping):
            raise InvalidLinkEvent("link event field 'html' must be a mapping")

        broken = payload.get("broken", False)
        if broken is None:
            broken = False
        if not isinstance(broken, bool):
            raise InvalidLinkEvent("link event field 'broken' must be a boolean")

        return cls(
            source_page_url=source_page_url,
            link_url=link_url,
            link_host=host.lower(),
            link_text=_optional_str(html.get("text"), "html.text"),
            is_broken=broken,
            breakage_reason=_optional_str(payload.get("brokenReason"), "brokenReason"),
        )


@dataclass(frozen=True)
class Attachment:
    """A file attached to an outbound message."""

    name: str
    data: str
    mime_type: str = "text/html"
    charset: str = "utf-8"


@dataclass
class Message:
    """The fully formed message handed to the mail transport."""

    from_: str
    to: str
    subject: str
    text_body: str
    content_type: str = "text/html; charset=UTF-8"
    attachments: List[Attachment] = field(default_factory=list)

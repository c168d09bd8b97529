# broken_link_checker/reports.py
# Renders a CheckerReport into the HTML email body and the HTML error log.
# Everything here is pure: same report in, same markup out.
from __future__ import annotations

import traceback
from html import escape
from typing import Any, Optional

from broken_link_checker.models import Attachment, CheckerReport, PageReport

PRODUCT_LABEL = "broken-link-checker"
ERROR_REPORT_FILENAME = "reported-errors.html"

LINK_TEXT_UNKNOWN = "Link text unknown"
REASON_UNKNOWN = "Reason for breaking is unknown"


def was_were(n: int) -> str:
    return "was" if n == 1 else "were"


def _count(n: int, emphasize: bool) -> str:
    return f"<strong>{n}</strong>" if emphasize else str(n)


def build_summary_line(page_report: PageReport, emphasize: bool = True) -> str:
    """
    One sentence describing what happened to the links on a page, e.g.

        I checked 4 links. 1 was broken, 1 was reported as ignorable,
        and 2 were from reliable hosts.

    With `emphasize` the counts are wrapped in <strong> for the HTML digest.
    """
    check_count = len(page_report.checked)
    broken_count = len(page_report.broken)
    ignore_count = len(page_report.ignored)
    reliable_count = len(page_report.blacklisted)

    plural = "" if check_count == 1 else "s"
    checked_clause = f"I checked {_count(check_count, emphasize)} link{plural}."
    broken_clause = f"{_count(broken_count, emphasize)} {was_were(broken_count)} broken"

    ignorable_clause = ""
    if ignore_count > 0:
        ignorable_clause = ", " if reliable_count > 0 else ", and "
        ignorable_clause += (
            f"{_count(ignore_count, emphasize)} {was_were(ignore_count)} reported as ignorable"
        )

    reliable_clause = ""
    if reliable_count == 1:
        reliable_clause = f", and {_count(reliable_count, emphasize)} was from a reliable host"
    elif reliable_count > 1:
        reliable_clause = f", and {_count(reliable_count, emphasize)} were from reliable hosts"

    return f"{checked_clause} {broken_clause}{ignorable_clause}{reliable_clause}."


def build_page_summary(page_url: str, page_report: PageReport) -> str:
    """The digest entry for one page: intro, summary line, list of broken links."""
    href = escape(page_url)
    page_intro = f'On the page <a href="{href}">{href}</a><br>'

    list_items = ""
    for broken, info in page_report.broken.items():
        link_text = escape(info.link_text or LINK_TEXT_UNKNOWN)
        reason = escape(info.reason or REASON_UNKNOWN)
        link = escape(broken)
        # Linking to the broken URL lets the reader check for false positives.
        list_items += f'<li>"{link_text}" - <a href="{link}">{link}</a> ({reason})</li>'

    return (
        f"<li>{page_intro}{build_summary_line(page_report)}"
        f"<h4>Broken Links:</h4><ul>{list_items}</ul></li><hr>"
    )


def build_email_template(report: CheckerReport) -> str:
    """The full HTML email body for a crawl."""
    site = escape(report.base_url)
    header = (
        f'<html lang="en"><head><title>Broken links found while parsing {site}</title>'
        "<style>.no-bullets { list-style-type: none; } "
        ".no-bullets > li { margin-bottom: 1.5em; } "
        "li > h5 { margin: 1em 0 1em 0; }</style></head><body>"
    )

    intro = (
        f'{header}Hi there,<br><p>I scanned <a href="{site}">{site}</a>. '
        f"In doing so I scanned <strong>{len(report.page_reports)}</strong> pages "
        f"which contained a total of <strong>{report.total_checked}</strong> links. "
        f"Of these, <strong>{report.total_broken}</strong> were broken links. "
        f"The scan took <strong>{report.duration_ms()}ms</strong>.</p>"
    )

    html = f'{intro}<ul class="no-bullets">'
    for page_url, page_report in report.page_reports.items():
        if page_report.broken:
            html += build_page_summary(page_url, page_report)
    html += f"</ul><p>Thanks,<br>{PRODUCT_LABEL}</p></body></html>"
    return html


def format_error(error: Any) -> str:
    """Full diagnostic text for an error: the traceback for exceptions."""
    if isinstance(error, BaseException):
        return "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    return str(error)


def build_error_document(report: CheckerReport) -> str:
    site = escape(report.base_url)
    data = (
        f'<html lang="en"><head><title>Errors Reported When Checking {site}</title>'
        "</head><body>"
    )
    data += f"<h1>Errors Reported When Checking {site}</h1>"

    for page_report in report.pages_with_errors():
        data += f"<p><h2>{escape(page_report.url)}</h2><ul>"
        for e in page_report.errors:
            data += f"<li><pre>{escape(format_error(e))}</pre></li>"
        data += "</ul></p>"

    data += "</body></html>"
    return data


def build_error_report(report: CheckerReport) -> Optional[Attachment]:
    """The error log as an attachment, or None if nothing went wrong."""
    if not report.encountered_errors():
        return None
    return Attachment(
        name=ERROR_REPORT_FILENAME,
        data=build_error_document(report),
        mime_type="text/html",
        charset="utf-8",
    )

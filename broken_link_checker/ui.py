# broken_link_checker/ui.py
# Presentation-only utilities for CLI output.
from __future__ import annotations

from typing import IO

from broken_link_checker.models import CheckerReport
from broken_link_checker.reports import build_summary_line


def _writeln(text: str = "", *, file: IO[str]) -> None:
    file.write(text + "\n")


def render_check_header(url: str, *, file: IO[str]) -> None:
    _writeln(f"Checking site URLs. Beginning with {url}", file=file)


def render_completion(report: CheckerReport, *, file: IO[str]) -> None:
    msg = "Checks completed. "
    if not report.are_broken_links_present():
        _writeln(msg + "No broken links found.", file=file)
        return
    _writeln(msg + "The following broke:", file=file)
    render_broken_section(report, file=file)


def render_broken_section(report: CheckerReport, *, file: IO[str]) -> None:
    for page_url, page_report in report.page_reports.items():
        if not page_report.broken:
            continue
        _writeln(f"\n--- {page_url} ---", file=file)
        _writeln(build_summary_line(page_report, emphasize=False), file=file)
        for link, info in page_report.broken.items():
            reason = info.reason or "unknown reason"
            _writeln(f"- {link}  [{reason}]", file=file)


def render_totals(report: CheckerReport, *, file: IO[str]) -> None:
    _writeln(
        f"\nPages: {len(report.page_reports)}  Links: {report.total_checked}  "
        f"Broken: {report.total_broken}  Took: {report.duration_ms()}ms",
        file=file,
    )


def render_errors_section(report: CheckerReport, *, file: IO[str]) -> None:
    pages = report.pages_with_errors()
    if not pages:
        return
    _writeln("\n--- Errors Encountered ---", file=file)
    for page_report in pages:
        for e in page_report.errors:
            _writeln(f"- {page_report.url}: {e}", file=file)

# broken_link_checker/cli.py
# Defines the command-line interface using argparse.

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import IO, Any, Sequence

from broken_link_checker import __version__
from broken_link_checker.api import CrawlTimeout, check_links
from broken_link_checker.cache import OS_DEFAULT, CacheConfig, FileCache
from broken_link_checker.config import load_config, split_list
from broken_link_checker.models import CheckerReport
from broken_link_checker.notifier import SenderDetails
from broken_link_checker.reports import build_email_template
from broken_link_checker.ui import (
    render_check_header,
    render_completion,
    render_errors_section,
    render_totals,
)

log = logging.getLogger(__name__)

USAGE_NOTE = (
    "Values may also come from environment variables of the same name in upper case "
    "(URL, RELIABLE_HOSTS, IGNORE, TIMEOUT, SENDER_EMAIL, SENDER_PASSWORD, RECIPIENT) "
    "or from [tool.broken_link_checker] in pyproject.toml."
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


def _size_label(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{num_bytes} B"
        size /= 1024
    return f"{size:.1f} TB"


def _open_cache(args: argparse.Namespace) -> FileCache:
    """The configured cache, forced on, with --dir / --os-default applied."""
    cfg = CacheConfig.from_dict(load_config()["cache"])
    cfg.enabled = True
    if args.dir:
        cfg.directory = args.dir
    elif args.os_default:
        cfg.directory = OS_DEFAULT
    return FileCache(cfg)


def _add_check_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", help="URL of the site to crawl for links.")
    parser.add_argument(
        "--reliable-hosts",
        metavar="HOST1,HOST2",
        help="A comma separated list of hosts considered reliable. Don't check these links.",
    )
    parser.add_argument(
        "--ignore",
        metavar="URL1,URL2",
        help="A comma separated list of links that can be ignored, e.g. to suppress false positives.",
    )
    parser.add_argument(
        "--timeout", type=float, help="The timeout of the crawler in seconds."
    )

    mail_group = parser.add_argument_group("mail arguments")
    mail_group.add_argument("--sender-email", help="The account sending the report.")
    mail_group.add_argument("--sender-password", help="The password of the sending account.")
    mail_group.add_argument("--recipient", help="The address receiving the report.")
    mail_group.add_argument(
        "--no-email",
        action="store_true",
        help="Do not send the report; print it (and write --html-out if given).",
    )

    parser.add_argument(
        "--html-out",
        metavar="FILEPATH",
        help="Also write the HTML report to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl a site, find its broken links, and email a report.",
        prog="broken_link_checker",
        epilog=USAGE_NOTE,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging output to stderr.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check", help="Crawl a site and email a report if any links are broken."
    )
    _add_check_args(check_parser)

    cache_parser = subparsers.add_parser("cache", help="Manage the link-check cache.")
    where = cache_parser.add_mutually_exclusive_group()
    where.add_argument("--dir", metavar="PATH", help="Cache directory to use instead of the configured one.")
    where.add_argument(
        "--os-default", action="store_true", help="Use the per-user OS cache directory."
    )
    actions = cache_parser.add_subparsers(dest="action", required=True)
    actions.add_parser("clear", help="Forget every cached link result.")
    actions.add_parser("stats", help="Print item count and size as JSON.")
    inspect_parser = actions.add_parser("inspect", help="Print the cached result for one link.")
    inspect_parser.add_argument("url", help="Link URL exactly as it appears on the page.")
    return parser


def _run_cache_command(args: argparse.Namespace, stdout: IO[str]) -> int:
    fc = _open_cache(args)
    try:
        if args.action == "clear":
            fc.clear_all()
            print(f"Cache cleared at: {fc.directory}", file=stdout)
        elif args.action == "stats":
            stats = dict(fc.stats())
            stats["size"] = _size_label(int(stats["bytes"]))
            print(json.dumps(stats, indent=2), file=stdout)
        else:
            record = fc.get(args.url)
            if record is None:
                print("Cache miss", file=stdout)
                return 2
            print(json.dumps(record, indent=2), file=stdout)
        return 0
    finally:
        fc.close()


def _write_html(report: CheckerReport, path: str, stdout: IO[str]) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(build_email_template(report), encoding="utf-8")
    print(f"HTML report written to {path}", file=stdout)


def _run_check_command(args: argparse.Namespace, stdout: IO[str]) -> int:
    overrides: dict[str, Any] = {
        "url": args.url,
        "reliable_hosts": split_list(args.reliable_hosts) if args.reliable_hosts else None,
        "ignore": split_list(args.ignore) if args.ignore else None,
        "timeout": args.timeout,
        "sender_email": args.sender_email,
        "sender_password": args.sender_password,
        "recipient": args.recipient,
    }
    try:
        config = load_config(overrides=overrides)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    missing = ["url"] if not config["url"] else []
    if not args.no_email:
        missing += [
            key
            for key in ("sender_email", "sender_password", "recipient")
            if not config[key]
        ]
    if missing:
        print(
            f"Missing required values: {', '.join(missing)}\n"
            "Usage: broken_link_checker check --url=<url> --reliable-hosts=<host1>,<host2> "
            "--ignore=<url1>,<url2> --timeout=600 --sender-email=<sender@example.com> "
            "--sender-password=<password> --recipient=<recipient@example.com>\n"
            f"{USAGE_NOTE}",
            file=sys.stderr,
        )
        return 1

    sender = None
    recipient = None
    if not args.no_email:
        sender = SenderDetails(config["sender_email"], config["sender_password"])
        recipient = config["recipient"]

    render_check_header(config["url"], file=stdout)
    try:
        report = check_links(
            config["url"],
            recipient,
            sender,
            config["reliable_hosts"],
            config["ignore"],
            config["timeout"],
            config=config,
        )
    except CrawlTimeout:
        print("Timed out when crawling.", file=stdout)
        return 1

    render_completion(report, file=stdout)
    render_totals(report, file=stdout)
    render_errors_section(report, file=stdout)
    if args.html_out:
        _write_html(report, args.html_out, stdout)
    return 0


def main(
    argv: Sequence[str] | None = None, stdout: IO[str] | None = None
) -> int:
    """Entry point for the command-line interface."""
    stdout = stdout or sys.stdout
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "cache":
        return _run_cache_command(args, stdout)
    return _run_check_command(args, stdout)


if __name__ == "__main__":
    sys.exit(main())

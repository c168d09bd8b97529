# broken_link_checker/crawler.py
"""
HTTPX-based site crawler.

Responsibilities:
- Walk the pages of one site breadth-first, fetching each page once.
- Check every clickable link on those pages (once per crawl, cached on disk).
- Emit events: one link event per link found on a page, one page event per
  finished page, one end event when the queue is exhausted.

It never touches report state; everything it learns goes out through the
callbacks, which link_logic.py consumes.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlparse
from urllib.robotparser import RobotFileParser

import httpx
from bs4 import BeautifulSoup

from broken_link_checker.cache import CacheConfig, FileCache
from broken_link_checker.models import LinkEvent

log = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}

# Paths with these extensions are checked as links but never parsed as pages.
NON_PAGE_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".ico", ".svg", ".avif",
    ".mp4", ".m4v", ".mov", ".webm", ".ogg", ".ogv", ".mp3", ".wav", ".flac",
    ".pdf", ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar",
    ".exe", ".msi", ".dmg", ".iso", ".woff", ".woff2", ".ttf", ".otf",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".css", ".js", ".mjs", ".map", ".xml", ".json", ".txt",
}

# Some servers refuse HEAD; retry those with GET before calling a link broken.
HEAD_REFUSED_STATUSES = {403, 405, 501}


@dataclass(frozen=True)
class LinkCheckResult:
    url: str
    final_url: str
    status: Optional[int]
    broken: bool
    reason: Optional[str] = None


# ---------- URL helpers ----------


def normalize_url(url: str) -> str:
    """
    Normalize scheme/netloc to lowercase, drop fragment, and trim trailing slash.
    Robust to malformed URLs (returns input on failure).
    """
    try:
        p = urlparse(url)
        if p.path == "/":
            path = ""
        elif p.path.endswith("/") and len(p.path) > 1:
            path = p.path[:-1]
        else:
            path = p.path

        return p._replace(
            scheme=(p.scheme or "").lower(),
            netloc=(p.netloc or "").lower(),
            path=path,
            fragment="",
        ).geturl()
    except ValueError:
        return url


def _scheme(u: str) -> str:
    try:
        return urlparse(u).scheme.lower()
    except ValueError:
        return ""


def _netloc(u: str) -> str:
    try:
        return urlparse(u).netloc.lower()
    except ValueError:
        return ""


def is_fetchable_url(u: str) -> bool:
    """Return True iff URL uses a scheme we can actually fetch (http/https)."""
    return _scheme(u) in ALLOWED_SCHEMES


def is_probably_page_url(u: str) -> bool:
    """
    Heuristic: http/https AND path extension NOT in NON_PAGE_EXTENSIONS.
    Extensionless paths and .html/.php style pages pass.
    """
    if not is_fetchable_url(u):
        return False
    _, ext = os.path.splitext(urlparse(u).path.lower())
    return not (ext and ext in NON_PAGE_EXTENSIONS)


def extract_links(
    soup: BeautifulSoup, page_url: str, excluded_schemes: Set[str]
) -> List[Tuple[str, Optional[str]]]:
    """
    Return (absolute link URL, link text) for every clickable link on a page,
    in document order, without duplicates. Links to the page itself and links
    with excluded schemes are dropped.
    """
    out: List[Tuple[str, Optional[str]]] = []
    seen: Set[str] = set()
    this_page = normalize_url(page_url)

    for el in soup.find_all(["a", "area"], href=True):
        href = str(el.get("href", "")).strip()
        if not href or href.startswith("#"):
            continue
        if _scheme(href) in excluded_schemes:
            continue
        try:
            resolved, _ = urldefrag(urljoin(page_url, href))
        except ValueError as e:
            log.warning("Skipping malformed link %r on %s: %s", href, page_url, e)
            continue
        if not is_fetchable_url(resolved):
            continue
        if normalize_url(resolved) == this_page:
            continue
        if resolved in seen:
            continue
        seen.add(resolved)
        text = el.get_text(" ", strip=True) or el.get("title") or el.get("alt") or None
        out.append((resolved, text))
    return out


def breakage_reason(error: Exception) -> str:
    """Opaque reason code for a transport-level failure."""
    return f"ERRNO_{type(error).__name__}"


@dataclass
class SiteChecker:
    """
    Crawl one site with httpx (no JS execution) and report on its links.

    Config keys consumed:
      - user_agent: str
      - request_timeout: float (seconds)
      - rate_limit: float (seconds between requests)
      - honor_robots: bool
      - max_pages: int | None
      - excluded_schemes: list[str]
      - cache: {enabled, directory, expire_seconds, store_broken}
    """

    root_url: str
    config: Dict[str, Any]
    on_link: Callable[[LinkEvent], None]
    on_page: Callable[[Any, str], None]
    on_end: Optional[Callable[[], None]] = None
    transport: Optional[httpx.AsyncBaseTransport] = None

    # Internal state
    queue: Deque[str] = field(default_factory=deque)
    enqueued_pages: Set[str] = field(default_factory=set)
    link_results: Dict[str, LinkCheckResult] = field(default_factory=dict)
    pages_crawled: int = 0

    _client: httpx.AsyncClient = field(init=False, repr=False)
    _cache: Optional[FileCache] = field(default=None, init=False, repr=False)
    _robots: Dict[str, Optional[RobotFileParser]] = field(
        default_factory=dict, init=False, repr=False
    )
    _site_host: str = field(init=False, default="")

    async def __aenter__(self) -> "SiteChecker":
        headers = {"User-Agent": self.config.get("user_agent", "broken-link-checker")}

        cache_raw = self.config.get("cache") or {}
        self._cache = FileCache(CacheConfig.from_dict(cache_raw))

        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.config.get("request_timeout", 10.0),
            headers=headers,
            transport=self.transport,
        )

        self._site_host = _netloc(self.root_url)
        self._enqueue(self.root_url)
        log.info("httpx session initialized. Site: %s", self.root_url)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._client.aclose()
        if self._cache:
            self._cache.close()
        log.info("httpx session closed.")

    # ---- politeness -------------------------------------------------------

    async def _throttle(self) -> None:
        delay = float(self.config.get("rate_limit", 0) or 0)
        if delay > 0:
            await asyncio.sleep(delay)

    async def _robots_for(self, url: str) -> Optional[RobotFileParser]:
        p = urlparse(url)
        key = f"{p.scheme}://{p.netloc}"
        if key in self._robots:
            return self._robots[key]

        parser: Optional[RobotFileParser] = None
        robots_url = f"{key}/robots.txt"
        try:
            await self._throttle()
            resp = await self._client.get(robots_url)
            if resp.status_code == 200:
                parser = RobotFileParser(robots_url)
                parser.parse(resp.text.splitlines())
        except httpx.HTTPError as e:
            log.info("Could not read %s, assuming everything is allowed: %s", robots_url, e)
        self._robots[key] = parser
        return parser

    async def _allowed_by_robots(self, url: str) -> bool:
        if not self.config.get("honor_robots", True):
            return True
        parser = await self._robots_for(url)
        if parser is None:
            return True
        return parser.can_fetch(self._client.headers.get("User-Agent", "*"), url)

    # ---- link checking ----------------------------------------------------

    async def check_link(self, url: str) -> LinkCheckResult:
        """
        Decide whether a link is broken. Each URL is requested at most once
        per crawl; successful results also come from the on-disk cache.
        """
        known = self.link_results.get(url)
        if known is not None:
            return known

        if self._cache:
            hit = self._cache.get(url)
            if hit is not None:
                log.debug("Cache hit for %s", url)
                result = LinkCheckResult(
                    url=url,
                    final_url=hit.get("final_url", url),
                    status=hit.get("status"),
                    broken=bool(hit.get("broken")),
                    reason=hit.get("reason"),
                )
                self.link_results[url] = result
                return result

        result = await self._request_link(url)
        self.link_results[url] = result
        if self._cache:
            self._cache.set_result(
                url,
                final_url=result.final_url,
                status=result.status,
                broken=result.broken,
                reason=result.reason,
            )
        return result

    async def _request_link(self, url: str) -> LinkCheckResult:
        try:
            await self._throttle()
            resp = await self._client.head(url)
            if resp.status_code in HEAD_REFUSED_STATUSES:
                await self._throttle()
                resp = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.info("Link %s failed: %s", url, e)
            return LinkCheckResult(
                url=url, final_url=url, status=None, broken=True, reason=breakage_reason(e)
            )

        status = resp.status_code
        if status >= 400:
            log.info("Link %s answered %d", url, status)
            return LinkCheckResult(
                url=url,
                final_url=str(resp.url),
                status=status,
                broken=True,
                reason=f"HTTP_{status}",
            )
        return LinkCheckResult(url=url, final_url=str(resp.url), status=status, broken=False)

    # ---- page crawling ----------------------------------------------------

    def _is_site_page(self, url: str) -> bool:
        return _netloc(url) == self._site_host and is_probably_page_url(url)

    def _enqueue(self, url: str) -> None:
        key = normalize_url(url)
        if key in self.enqueued_pages:
            return
        self.enqueued_pages.add(key)
        self.queue.append(url)

    async def _fetch_page(self, url: str) -> Optional[BeautifulSoup]:
        """
        Fetch a page and return its parsed tree, or None if it is not HTML.
        HTTP and network failures propagate to the caller as page errors.
        """
        await self._throttle()
        resp = await self._client.get(url)
        resp.raise_for_status()

        ctype = resp.headers.get("content-type", "").lower()
        if "text/html" not in ctype:
            log.info("Skipping non-HTML content at %s (%s)", url, ctype)
            return None
        return BeautifulSoup(resp.text, "html.parser")

    async def _process_page(self, url: str) -> None:
        excluded = {s.lower() for s in self.config.get("excluded_schemes", [])}

        try:
            soup = await self._fetch_page(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.error("Could not fetch page %s: %s", url, e)
            self.on_page(e, url)
            return
        if soup is None:
            # Nothing to parse; the page still completes, with no links.
            self.on_page(None, url)
            return

        self.pages_crawled += 1
        for link_url, link_text in extract_links(soup, url, excluded):
            result = await self.check_link(link_url)
            self.on_link(
                LinkEvent(
                    source_page_url=url,
                    link_url=link_url,
                    link_host=_netloc(link_url),
                    link_text=link_text,
                    is_broken=result.broken,
                    breakage_reason=result.reason,
                )
            )
            if not result.broken and self._is_site_page(link_url):
                self._enqueue(link_url)

        self.on_page(None, url)

    async def crawl(self) -> None:
        """Breadth-first crawl until the queue is empty or max_pages is reached."""
        max_pages = self.config.get("max_pages")

        while self.queue:
            if max_pages is not None and self.pages_crawled >= int(max_pages):
                log.info("Reached max_pages=%s, stopping.", max_pages)
                break
            url = self.queue.popleft()
            if not await self._allowed_by_robots(url):
                log.info("robots.txt disallows %s, not crawling it.", url)
                continue
            await self._process_page(url)

        if self.on_end is not None:
            self.on_end()

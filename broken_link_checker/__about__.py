"""Metadata for broken_link_checker."""

__all__ = [
    "__title__",
    "__version__",
    "__description__",
    "__credits__",
    "__requires_python__",
]

__title__ = "broken_link_checker"
__version__ = "0.1.0"
__description__ = (
    "Crawl a site, classify its links as broken, ignorable or reliable, and email a report."
)
__credits__ = [
    {"name": "Matthew D. Martin", "email": "matthewdeanmartin@users.noreply.github.com"}
]
__requires_python__ = ">=3.9"

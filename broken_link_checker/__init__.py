# Entrypoint for the broken_link_checker package.
# This file makes the public API available to programmers.

from __future__ import annotations

from broken_link_checker.api import check_links
from broken_link_checker.link_logic import CheckSession, handle_link, handle_page
from broken_link_checker.models import CheckerReport, LinkEvent, PageReport
from broken_link_checker.notifier import SenderDetails, build_email, send_email
from broken_link_checker.__about__ import __version__

# The __all__ variable defines the public API of the package.
# When a user writes `from broken_link_checker import *`, only these names will be imported.
__all__ = [
    "check_links",
    "CheckSession",
    "handle_link",
    "handle_page",
    "CheckerReport",
    "LinkEvent",
    "PageReport",
    "SenderDetails",
    "build_email",
    "send_email",
    "__version__",
]

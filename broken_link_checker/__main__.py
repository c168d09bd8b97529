# Allows the package to be run as a script using `python -m broken_link_checker`

from __future__ import annotations

import sys

from broken_link_checker.cli import main

if __name__ == "__main__":
    sys.exit(main())

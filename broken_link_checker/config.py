# broken_link_checker/config.py
"""
Centralized configuration management.

Handles loading defaults, merging in settings from pyproject.toml,
then environment variables, and applying runtime overrides.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import tomli

log = logging.getLogger(__name__)

# Environment variables understood by the checker, and the config key each one sets.
ENV_VARS = {
    "URL": "url",
    "RELIABLE_HOSTS": "reliable_hosts",
    "IGNORE": "ignore",
    "TIMEOUT": "timeout",
    "SENDER_EMAIL": "sender_email",
    "SENDER_PASSWORD": "sender_password",
    "RECIPIENT": "recipient",
}

LIST_KEYS = {"reliable_hosts", "ignore", "excluded_schemes"}

# This is the baseline configuration dictionary.
DEFAULT_CONFIG: dict[str, Any] = {
    "url": None,
    "reliable_hosts": [],  # Hosts never checked, counted as reliable
    "ignore": [],  # Exact link URLs whose breakage is not reported
    "timeout": 600,  # Overall crawl deadline in seconds
    "sender_email": None,
    "sender_password": None,
    "recipient": None,
    "smtp_host": "smtp.gmail.com",
    "smtp_port": 465,
    # --- Crawler settings ---
    "user_agent": "broken-link-checker/0.1 (+https://pypi.org/project/broken_link_checker/)",
    "request_timeout": 10.0,
    "rate_limit": 0.001,  # Seconds to wait between requests
    "honor_robots": True,
    "max_pages": None,  # None means no cap
    "excluded_schemes": ["data", "geo", "javascript", "mailto", "sms", "tel"],
    "cache": {
        "enabled": True,
        "directory": ".broken_link_checker_cache",
        "expire_seconds": 3600,  # 1 hour
        "store_broken": False,
    },
}


def _deep_merge_dict(
    base: MutableMapping[str, Any], overrides: Mapping[str, Any]
) -> MutableMapping[str, Any]:
    """Recursively merge dicts."""
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), MutableMapping):
            base[key] = _deep_merge_dict(base[key], value)
        else:
            base[key] = value
    return base


def split_list(value: Any) -> list[str]:
    """Accept "a,b" or ["a", "b"]; drop blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(item).strip() for item in items if str(item).strip()]


def _fresh_defaults() -> dict[str, Any]:
    config = DEFAULT_CONFIG.copy()
    config["cache"] = DEFAULT_CONFIG["cache"].copy()
    for key in LIST_KEYS:
        config[key] = list(DEFAULT_CONFIG[key])
    return config


def _load_pyproject(pyproject_path: Path) -> dict[str, Any]:
    if not pyproject_path.exists():
        log.debug("No pyproject.toml found at %s. Using default config.", pyproject_path)
        return {}
    try:
        with pyproject_path.open("rb") as f:
            toml_data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        log.warning(
            "Failed to load or parse %s: %s. Using default config.",
            pyproject_path,
            e,
            exc_info=True,
        )
        return {}

    project_config = toml_data.get("tool", {}).get("broken_link_checker", {})
    if project_config:
        log.info("Loading config from %s", pyproject_path)
    else:
        log.debug("No [tool.broken_link_checker] section in %s.", pyproject_path)
    return project_config


def _load_env(environ: Mapping[str, str]) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for var, key in ENV_VARS.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        found[key] = value
        if var != "SENDER_PASSWORD":
            log.debug("Config %s taken from environment variable %s", key, var)
    return found


def _coerce(config: dict[str, Any]) -> dict[str, Any]:
    for key in LIST_KEYS:
        config[key] = split_list(config.get(key))
    try:
        config["timeout"] = float(config["timeout"])
    except (TypeError, ValueError) as e:
        raise ValueError(f"timeout must be a number of seconds, got {config['timeout']!r}") from e
    config["smtp_port"] = int(config["smtp_port"])
    return config


def load_config(
    pyproject_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Loads configuration, later sources winning:

    1. DEFAULT_CONFIG.
    2. `[tool.broken_link_checker]` in `pyproject.toml`.
    3. Environment variables (URL, RELIABLE_HOSTS, IGNORE, TIMEOUT,
       SENDER_EMAIL, SENDER_PASSWORD, RECIPIENT).
    4. Explicit overrides (e.g. CLI arguments); None values are skipped.
    """
    config = _fresh_defaults()

    if pyproject_path is None:
        pyproject_path = Path.cwd() / "pyproject.toml"
    _deep_merge_dict(config, _load_pyproject(pyproject_path))

    _deep_merge_dict(config, _load_env(os.environ if environ is None else environ))

    if overrides:
        applied = {k: v for k, v in overrides.items() if v is not None}
        _deep_merge_dict(config, applied)
        log.debug("Applied overrides: %s", sorted(applied))

    return _coerce(config)

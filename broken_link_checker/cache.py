# broken_link_checker/cache.py
"""
Link-check results remembered between runs.

One diskcache record per link URL, exactly as it was discovered on the page:

    {"final_url": str, "status": int | None, "broken": bool, "reason": str | None}

Records expire after `expire_seconds`. Broken results are skipped unless
`store_broken` is set, so a link that was down last time is looked at again.
The directory is either a path (relative to the working directory) or the
marker "os-default", which resolves to the per-user cache dir from platformdirs.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import Any, Optional

import diskcache
from platformdirs import user_cache_dir as _user_cache_dir

log = logging.getLogger(__name__)

OS_DEFAULT = "os-default"
DEFAULT_DIRECTORY = ".broken_link_checker_cache"


@dataclasses.dataclass
class CacheConfig:
    enabled: bool = True
    directory: str = DEFAULT_DIRECTORY
    expire_seconds: int = 3600
    store_broken: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CacheConfig":
        defaults = cls()
        return cls(
            enabled=bool(raw.get("enabled", defaults.enabled)),
            directory=str(raw.get("directory", defaults.directory)),
            expire_seconds=int(raw.get("expire_seconds", defaults.expire_seconds)),
            store_broken=bool(raw.get("store_broken", defaults.store_broken)),
        )


class FileCache:
    """
    diskcache.Cache behind the few calls the crawler and the `cache` command need.
    A disabled cache never touches the disk and answers every lookup with a miss.
    """

    def __init__(self, cfg: CacheConfig, app_name: str = "broken_link_checker"):
        self.cfg = cfg
        self.app_name = app_name
        self._cache: Optional[diskcache.Cache] = None

        if cfg.enabled:
            self.create_cache_object()
        else:
            log.info("Link-check cache not enabled")

    def resolve_directory(self) -> str:
        if self.cfg.directory == OS_DEFAULT:
            return _user_cache_dir(self.app_name, appauthor=False)
        return self.cfg.directory

    def create_cache_object(self) -> None:
        if self._cache is not None:
            return
        directory = self.resolve_directory()
        log.info("Link-check cache at %s", directory)
        self._cache = diskcache.Cache(directory)

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()

    @property
    def directory(self) -> Optional[str]:
        return None if self._cache is None else str(self._cache.directory)

    def stats(self) -> dict[str, int | str]:
        """Item count, estimated bytes on disk and absolute directory."""
        if self._cache is None:
            return {"items": 0, "bytes": 0, "directory": ""}
        return {
            "items": len(self._cache),
            "bytes": int(self._cache.volume()),
            "directory": os.path.abspath(str(self._cache.directory)),
        }

    def clear_all(self) -> None:
        if self._cache is None:
            log.warning("Cache disabled, nothing to clear")
            return
        removed = self._cache.clear()
        log.info("Removed %d cached link results", removed)

    def get(self, url: str) -> Optional[dict[str, Any]]:
        if self._cache is None:
            return None
        return self._cache.get(url)

    def set_result(
        self,
        url: str,
        *,
        final_url: str,
        status: Optional[int],
        broken: bool,
        reason: Optional[str],
    ) -> None:
        if self._cache is None:
            return
        if broken and not self.cfg.store_broken:
            log.debug("Not caching broken result for %s (%s)", url, reason)
            return
        record = {"final_url": final_url, "status": status, "broken": broken, "reason": reason}
        self._cache.set(url, record, expire=self.cfg.expire_seconds)

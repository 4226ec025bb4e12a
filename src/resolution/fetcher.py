"""Package fetchers used by the dependency resolver.

A fetcher answers two questions for a remote address: which version tags
exist, and where on disk a given tag's content lives.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from typing import Dict, List, Optional, Protocol

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from versioning.vcs import VersionTag, address_to_clone_url, clone_at_version, list_remote_version_tags

from .cache import get_cached_package_path, is_cached, store_in_cache

logger = logging.getLogger(__name__)


class PackageFetcher(Protocol):
    """What the resolver needs from the outside world."""

    def list_tags(self, address: str) -> List[VersionTag]:
        ...

    def fetch(self, address: str, version_tag: VersionTag) -> str:
        """Return the local package root for this tag, fetching it if needed."""
        ...


class VcsPackageFetcher:
    """Fetch packages through git, backed by the local package cache.

    Tag listings are memoized per address for the fetcher's lifetime; the
    memo is shared by resolver worker threads.
    """

    def __init__(
        self,
        cache_root: Optional[str] = None,
        fetch_url_overrides: Optional[Dict[str, str]] = None,
        ls_remote_timeout: float = Constants.GIT_LS_REMOTE_TIMEOUT_SEC,
        clone_timeout: float = Constants.GIT_CLONE_TIMEOUT_SEC,
    ):
        self.cache_root = cache_root
        self.fetch_url_overrides = dict(fetch_url_overrides or {})
        self.ls_remote_timeout = ls_remote_timeout
        self.clone_timeout = clone_timeout
        self._tags: Dict[str, List[VersionTag]] = {}
        self._tags_lock = threading.Lock()

    def clone_url_for(self, address: str) -> str:
        override = self.fetch_url_overrides.get(address)
        if override:
            return override
        return address_to_clone_url(address)

    def list_tags(self, address: str) -> List[VersionTag]:
        with self._tags_lock:
            if address in self._tags:
                return self._tags[address]

        tags = list_remote_version_tags(self.clone_url_for(address), timeout=self.ls_remote_timeout)
        with self._tags_lock:
            self._tags[address] = tags
        return tags

    def fetch(self, address: str, version_tag: VersionTag) -> str:
        version = str(version_tag.version)
        if is_cached(address, version, self.cache_root):
            if is_debug_enabled(logger):
                logger.debug("Package cache hit", extra=extra_context(
                    event="cache", component="fetcher", action="fetch",
                    target=f"{address}@{version}", outcome="hit",
                ))
            return get_cached_package_path(address, version, self.cache_root)

        with tempfile.TemporaryDirectory(prefix="mthds-clone-") as tmp_dir:
            clone_dest = os.path.join(tmp_dir, "pkg")
            clone_at_version(self.clone_url_for(address), version_tag.tag, clone_dest, timeout=self.clone_timeout)
            return store_in_cache(clone_dest, address, version, self.cache_root)

"""Local package cache: ``<cache_root>/<address>/<version>``.

Stores go through a sibling staging directory and a rename so a reader never
observes a half-copied package.
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import Optional

from common.logging_utils import extra_context, is_debug_enabled
from constants import default_cache_root
from exceptions import PackageCacheError

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".staging"


def get_cached_package_path(address: str, version: str, cache_root: Optional[str] = None) -> str:
    """Return the cache directory for a package version.

    Raises:
        PackageCacheError: address/version would escape the cache root.
    """
    root = os.path.abspath(cache_root or default_cache_root())
    resolved = os.path.abspath(os.path.join(root, address, version))
    if not resolved.startswith(root + os.sep):
        raise PackageCacheError(
            f"Path traversal detected: address '{address}' and version '{version}' "
            "resolve outside cache root"
        )
    return resolved


def is_cached(address: str, version: str, cache_root: Optional[str] = None) -> bool:
    """A package is cached when its directory exists and is non-empty."""
    pkg_path = get_cached_package_path(address, version, cache_root)
    if not os.path.isdir(pkg_path):
        return False
    try:
        return bool(os.listdir(pkg_path))
    except OSError:
        return False


def store_in_cache(source_dir: str, address: str, version: str, cache_root: Optional[str] = None) -> str:
    """Copy source_dir into the cache (without .git) and return the final path.

    Raises:
        PackageCacheError: The copy or the rename failed.
    """
    final_path = get_cached_package_path(address, version, cache_root)
    staging_path = final_path + STAGING_SUFFIX

    try:
        os.makedirs(os.path.dirname(final_path), exist_ok=True)
        if os.path.exists(staging_path):
            shutil.rmtree(staging_path)

        shutil.copytree(source_dir, staging_path, ignore=shutil.ignore_patterns(".git"))

        if os.path.exists(final_path):
            shutil.rmtree(final_path)
        os.replace(staging_path, final_path)
    except OSError as e:
        if os.path.exists(staging_path):
            shutil.rmtree(staging_path, ignore_errors=True)
        raise PackageCacheError(f"Failed to store package '{address}@{version}' in cache: {e}") from e

    if is_debug_enabled(logger):
        logger.debug("Stored package in cache", extra=extra_context(
            event="cache", component="cache", action="store",
            target=f"{address}@{version}", outcome="success",
        ))
    return final_path


def remove_cached_package(address: str, version: str, cache_root: Optional[str] = None) -> bool:
    """Remove a cached package version; True when something was removed.

    Raises:
        PackageCacheError: The directory exists but could not be removed.
    """
    pkg_path = get_cached_package_path(address, version, cache_root)
    if not os.path.exists(pkg_path):
        return False
    try:
        shutil.rmtree(pkg_path)
    except OSError as e:
        raise PackageCacheError(
            f"Failed to remove cached package '{address}@{version}' at '{pkg_path}': {e}"
        ) from e
    return True

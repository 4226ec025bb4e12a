"""methods.lock generation, parsing and integrity verification.

The lock file is a TOML document with one table per locked address::

    ["github.com/org/scoring"]
    version = "1.2.0"
    hash = "sha256:..."
    source = "https://github.com/org/scoring"

Path overrides are never locked. A lock with no entries is written as an
empty file so its presence still records that locking ran.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from common import toml_io
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from exceptions import IntegrityError, LockFileError, VCSFetchError
from manifest.models import Manifest
from manifest.naming import is_valid_semver
from manifest.parser import load_manifest
from versioning.semver import parse_version
from versioning.vcs import VersionTag

from .cache import get_cached_package_path, is_cached
from .dependencies import ResolvedDependency, resolve_all_dependencies
from .fetcher import PackageFetcher

logger = logging.getLogger(__name__)

HASH_PREFIX = "sha256:"
HASH_RE = re.compile(r"^sha256:[0-9a-f]{64}$")
_HASH_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class LockedPackage:
    version: str
    hash: str
    source: str


@dataclass
class LockFile:
    """Locked packages keyed by address."""
    packages: Dict[str, LockedPackage] = field(default_factory=dict)


def _relative_posix_files(directory: str) -> List[Tuple[str, str]]:
    files = []
    for root, dirs, names in os.walk(directory):
        dirs[:] = [d for d in dirs if d != ".git"]
        for name in names:
            full_path = os.path.join(root, name)
            if not os.path.isfile(full_path):
                continue
            rel_path = os.path.relpath(full_path, directory).replace(os.sep, "/")
            files.append((rel_path, full_path))
    return sorted(files)


def compute_directory_hash(directory: str) -> str:
    """SHA-256 over every file's POSIX relative path and content, in sorted path order.

    Raises:
        LockFileError: directory does not exist or is not a directory.
    """
    if not os.path.isdir(directory):
        raise LockFileError(f"Directory '{directory}' does not exist or is not a directory")

    hasher = hashlib.sha256()
    for rel_path, full_path in _relative_posix_files(directory):
        hasher.update(rel_path.encode("utf-8"))
        with open(full_path, "rb") as f:
            for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
                hasher.update(chunk)
    return f"{HASH_PREFIX}{hasher.hexdigest()}"


def _validate_locked_package(address: str, entry: Dict) -> LockedPackage:
    version = entry.get("version")
    if not isinstance(version, str) or not is_valid_semver(version):
        raise LockFileError(f"Invalid version '{version}' for '{address}' in lock file")

    hash_value = entry.get("hash")
    if not isinstance(hash_value, str) or not HASH_RE.match(hash_value):
        raise LockFileError(f"Invalid hash for '{address}' in lock file")

    source = entry.get("source")
    if not isinstance(source, str) or not source.startswith("https://"):
        raise LockFileError(f"Invalid source '{source}' for '{address}' in lock file")

    return LockedPackage(version=version, hash=hash_value, source=source)


def parse_lock_file(content: str) -> LockFile:
    """Parse methods.lock text; blank content is an empty lock.

    Raises:
        LockFileError: Invalid TOML or an invalid entry.
    """
    if not content.strip():
        return LockFile()

    try:
        raw = toml_io.loads(content)
    except toml_io.TOMLDecodeError as e:
        raise LockFileError(f"Invalid TOML syntax in lock file: {e}") from e

    packages: Dict[str, LockedPackage] = {}
    for address, entry in raw.items():
        if not isinstance(entry, dict):
            raise LockFileError(f"Lock file entry for '{address}' must be a table, got {type(entry).__name__}")
        packages[address] = _validate_locked_package(address, entry)
    return LockFile(packages=packages)


def serialize_lock_file(lock_file: LockFile) -> str:
    """Serialize with addresses sorted; byte-identical for identical content."""
    doc = {}
    for address in sorted(lock_file.packages):
        locked = lock_file.packages[address]
        doc[address] = {"version": locked.version, "hash": locked.hash, "source": locked.source}
    if not doc:
        return ""
    return toml_io.dumps(doc)


def generate_lock_file(manifest: Manifest, resolved_deps: List[ResolvedDependency]) -> LockFile:
    """Build the lock from the root manifest and an already-resolved closure.

    Raises:
        LockFileError: A remote dependency has no manifest.
    """
    packages: Dict[str, LockedPackage] = {}
    for resolved in sorted(resolved_deps, key=lambda dep: dep.address):
        if resolved.version is None:
            continue
        if resolved.manifest is None:
            raise LockFileError(
                f"Remote dependency '{resolved.alias}' ({resolved.address}) has no manifest, "
                "cannot generate lock entry"
            )
        packages[resolved.address] = LockedPackage(
            version=resolved.version,
            hash=compute_directory_hash(resolved.package_root),
            source=f"https://{resolved.address}",
        )

    if is_debug_enabled(logger):
        logger.debug("Generated lock file", extra=extra_context(
            event="lock", component="lockfile", action="generate",
            target=manifest.address, count=len(packages), outcome="success",
        ))
    return LockFile(packages=packages)


def verify_locked_package(locked: LockedPackage, address: str, cache_root: Optional[str] = None) -> None:
    """Check a cached package against its locked hash.

    Raises:
        IntegrityError: The package is not cached or its content drifted.
    """
    cached_path = get_cached_package_path(address, locked.version, cache_root)
    if not os.path.isdir(cached_path):
        raise IntegrityError(f"Cached package '{address}@{locked.version}' not found at '{cached_path}'")

    actual_hash = compute_directory_hash(cached_path)
    if actual_hash != locked.hash:
        raise IntegrityError(
            f"Integrity check failed for '{address}@{locked.version}': "
            f"expected {locked.hash}, got {actual_hash}"
        )


def verify_lock_file(lock_file: LockFile, cache_root: Optional[str] = None) -> None:
    for address in sorted(lock_file.packages):
        verify_locked_package(lock_file.packages[address], address, cache_root)


def write_lock_file(path: str, lock_file: LockFile) -> None:
    """Write the lock atomically: a temp file in the same directory, then a rename.

    Raises:
        LockFileError: The file could not be written.
    """
    content = serialize_lock_file(lock_file)
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".methods.lock.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise LockFileError(f"Failed to write {path}: {e}") from e


def read_lock_file(path: str) -> LockFile:
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise LockFileError(f"Cannot read {path}: {e}") from e
    return parse_lock_file(content)


def lock_package(
    directory: str,
    fetcher: PackageFetcher,
    max_workers: int = Constants.RESOLVER_MAX_WORKERS,
) -> LockFile:
    """Resolve the package in directory and write its methods.lock.

    Any failure propagates before the lock file is touched.
    """
    manifest = load_manifest(os.path.join(directory, Constants.MANIFEST_FILENAME))
    with Timer() as t:
        resolved = resolve_all_dependencies(manifest, directory, fetcher, max_workers=max_workers)
        lock_file = generate_lock_file(manifest, resolved)

    lock_path = os.path.join(directory, Constants.LOCK_FILENAME)
    write_lock_file(lock_path, lock_file)
    logger.info("Wrote %s with %d packages (%d ms)", lock_path, len(lock_file.packages), t.duration_ms())
    return lock_file


def _tag_for_locked_version(fetcher: PackageFetcher, address: str, version: str) -> VersionTag:
    """Find the remote tag carrying the locked version, falling back to ``v<version>``."""
    target = parse_version(version)
    try:
        tags = fetcher.list_tags(address)
    except VCSFetchError as e:
        logger.warning("Could not list tags for %s, trying v%s: %s", address, version, e)
        tags = []
    for version_tag in tags:
        if version_tag.version == target:
            return version_tag
    return VersionTag(version=target, tag=f"v{version}")


def install_from_lock(
    directory: str,
    fetcher: PackageFetcher,
    cache_root: Optional[str] = None,
) -> Tuple[int, int]:
    """Fetch every locked package missing from the cache, then verify all hashes.

    Returns:
        (installed, already_cached) counts.

    Raises:
        LockFileError: methods.lock is missing or malformed.
        IntegrityError: A cached package does not match its lock entry.
    """
    lock_path = os.path.join(directory, Constants.LOCK_FILENAME)
    if not os.path.isfile(lock_path):
        raise LockFileError(f"No {Constants.LOCK_FILENAME} found in {directory}. Run 'lock' first.")
    lock_file = read_lock_file(lock_path)

    installed = 0
    cached = 0
    for address in sorted(lock_file.packages):
        locked = lock_file.packages[address]
        if is_cached(address, locked.version, cache_root):
            cached += 1
            continue
        fetcher.fetch(address, _tag_for_locked_version(fetcher, address, locked.version))
        installed += 1

    verify_lock_file(lock_file, cache_root)
    logger.info("Done. %d installed, %d already cached.", installed, cached)
    return installed, cached

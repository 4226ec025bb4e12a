"""Git-backed version discovery and checkout.

`list_remote_version_tags` and `clone_at_version` are the only functions here
that touch the network; everything else is pure.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Sequence

import semantic_version

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from exceptions import VCSFetchError, VersionResolutionError

from .semver import SemVerError, parse_constraint, parse_version_tag, select_minimum_version

logger = logging.getLogger(__name__)

_TAG_REF_PREFIX = "refs/tags/"
_DEREF_SUFFIX = "^{}"


@dataclass(frozen=True)
class VersionTag:
    """A semver-valid git tag: the parsed version and the original tag name."""
    version: semantic_version.Version
    tag: str


def address_to_clone_url(address: str) -> str:
    """Map a package address to an HTTPS clone URL ending in exactly one '.git'."""
    url = address if address.startswith("https://") else f"https://{address}"
    if not url.endswith(".git"):
        url = f"{url}.git"
    return url


def _run_git(args: Sequence[str], timeout: float) -> str:
    command = ["git", *args]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise VCSFetchError("git is not installed or not found on PATH") from e
    except subprocess.TimeoutExpired as e:
        raise VCSFetchError(f"Timed out running: git {' '.join(args)}") from e

    if result.returncode != 0:
        raise VCSFetchError(f"git {args[0]} failed: {(result.stderr or '').strip()}")
    return result.stdout


def parse_ls_remote_output(stdout: str) -> List[VersionTag]:
    """Extract semver tags from `git ls-remote --tags` output.

    Dereferenced annotated-tag entries (``^{}``) and non-semver tags are skipped.
    """
    tags: List[VersionTag] = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        ref = parts[1].strip()
        if ref.endswith(_DEREF_SUFFIX):
            continue
        tag_name = ref[len(_TAG_REF_PREFIX):] if ref.startswith(_TAG_REF_PREFIX) else ref
        version = parse_version_tag(tag_name)
        if version is not None:
            tags.append(VersionTag(version=version, tag=tag_name))
    return tags


def list_remote_version_tags(clone_url: str, timeout: float = Constants.GIT_LS_REMOTE_TIMEOUT_SEC) -> List[VersionTag]:
    """List the remote's tags that parse as semantic versions.

    Raises:
        VCSFetchError: git is missing, timed out or returned an error.
    """
    with Timer() as t:
        stdout = _run_git(["ls-remote", "--tags", clone_url], timeout)
    tags = parse_ls_remote_output(stdout)
    if is_debug_enabled(logger):
        logger.debug("Listed remote tags", extra=extra_context(
            event="vcs", component="vcs", action="ls_remote",
            target=safe_url(clone_url), outcome="success",
            count=len(tags), duration_ms=t.duration_ms(),
        ))
    return tags


def resolve_version_from_tags(version_tags: List[VersionTag], version_constraint: str) -> VersionTag:
    """Pick the minimum tag satisfying the constraint (MVS).

    Raises:
        VersionResolutionError: No tags, an invalid constraint, or no match.
    """
    if not version_tags:
        raise VersionResolutionError(
            f"No version tags available to satisfy constraint '{version_constraint}'"
        )

    try:
        constraint = parse_constraint(version_constraint)
    except SemVerError as e:
        raise VersionResolutionError(f"Invalid version constraint '{version_constraint}': {e}") from e

    selected = select_minimum_version([vt.version for vt in version_tags], constraint)
    if selected is None:
        available = ", ".join(str(v) for v in sorted(vt.version for vt in version_tags))
        raise VersionResolutionError(
            f"No version satisfying '{version_constraint}' found among: {available}"
        )

    for version_tag in version_tags:
        if version_tag.version == selected:
            return version_tag
    raise VersionResolutionError(f"Internal error: selected version {selected} not found in tag list")


def clone_at_version(
    clone_url: str,
    version_tag: str,
    destination: str,
    timeout: float = Constants.GIT_CLONE_TIMEOUT_SEC,
) -> None:
    """Shallow-clone the repository at a tag into destination.

    Raises:
        VCSFetchError: git is missing, timed out or returned an error.
    """
    logger.info("Cloning %s at %s", safe_url(clone_url), version_tag)
    with Timer() as t:
        _run_git(["clone", "--depth", "1", "--branch", version_tag, clone_url, destination], timeout)
    if is_debug_enabled(logger):
        logger.debug("Cloned repository", extra=extra_context(
            event="vcs", component="vcs", action="clone",
            target=safe_url(clone_url), outcome="success", duration_ms=t.duration_ms(),
        ))

"""Scanning of .mthds bundle files for domain and pipe information.

A bundle is a TOML document with a ``domain`` string, an optional ``main_pipe``
and ``[pipe.<code>]`` tables. The scanner is soft-failing: a bad bundle records
an error string and contributes nothing.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from common import toml_io
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from manifest.models import DomainExports

logger = logging.getLogger(__name__)

# Pipe table fields whose values name other pipes.
_STEP_LIST_FIELDS = ("steps", "parallels")
_PIPE_NAME_FIELDS = ("branch_pipe_code", "default_outcome")
_OUTCOME_MAP_FIELD = "outcomes"
_SPECIAL_OUTCOMES = ("fail", "continue")


@dataclass
class BundleScanResult:
    """Domain -> pipe codes, domain -> main_pipe, and scan error strings."""
    domain_pipes: Dict[str, Set[str]] = field(default_factory=dict)
    domain_main_pipes: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BundleMetadata:
    """What the visibility checker needs to know about one bundle."""
    domain: str
    main_pipe: Optional[str]
    pipe_references: Tuple[Tuple[str, str], ...] = ()  # (pipe_ref, context)


def collect_mthds_files(directory: str) -> List[str]:
    """Return all bundle files under directory, sorted, skipping .git."""
    found: List[str] = []
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if d != ".git")
        for name in files:
            if name.endswith(Constants.BUNDLE_EXTENSION):
                found.append(os.path.join(root, name))
    return sorted(found)


def _load_bundle(file_path: str) -> Dict[str, Any]:
    with open(file_path, "r", encoding="utf-8") as f:
        return toml_io.loads(f.read())


def _pipe_codes(data: Dict[str, Any]) -> Set[str]:
    pipes_section = data.get("pipe")
    if isinstance(pipes_section, dict):
        return set(pipes_section.keys())
    return set()


def scan_bundles_for_domain_info(mthds_files: List[str]) -> BundleScanResult:
    """Collect pipe codes and main pipes per domain across bundle files.

    A conflicting main_pipe for a domain keeps the first one seen and records
    one error string naming both.
    """
    result = BundleScanResult()

    for file_path in mthds_files:
        try:
            data = _load_bundle(file_path)
        except (OSError, UnicodeDecodeError, toml_io.TOMLDecodeError) as e:
            result.errors.append(f"{file_path}: {e}")
            continue

        domain = data.get("domain")
        if not isinstance(domain, str) or not domain:
            result.errors.append(f"{file_path}: missing or invalid 'domain' field")
            continue

        result.domain_pipes.setdefault(domain, set()).update(_pipe_codes(data))

        main_pipe = data.get("main_pipe")
        if isinstance(main_pipe, str) and main_pipe:
            existing = result.domain_main_pipes.get(domain)
            if existing is None or existing == main_pipe:
                result.domain_main_pipes[domain] = main_pipe
            else:
                result.errors.append(
                    f"{file_path}: conflicting main_pipe for domain '{domain}': "
                    f"'{existing}' vs '{main_pipe}' (keeping '{existing}')"
                )

    if is_debug_enabled(logger):
        logger.debug("Scanned bundles", extra=extra_context(
            event="scan", component="bundles", action="scan_bundles_for_domain_info",
            count=len(mthds_files), outcome="errors" if result.errors else "success",
        ))
    return result


def build_domain_exports_from_scan(
    domain_pipes: Dict[str, Set[str]],
    domain_main_pipes: Dict[str, str],
) -> Dict[str, DomainExports]:
    """Build sorted DomainExports per domain; a domain's main_pipe is always included."""
    exports: Dict[str, DomainExports] = {}
    for domain in sorted(domain_pipes):
        pipes = set(domain_pipes[domain])
        main_pipe = domain_main_pipes.get(domain)
        if main_pipe:
            pipes.add(main_pipe)
        exports[domain] = DomainExports(pipes=sorted(pipes))
    return exports


def _pipe_references(pipes_section: Dict[str, Any]) -> List[Tuple[str, str]]:
    references: List[Tuple[str, str]] = []
    for code, table in pipes_section.items():
        if not isinstance(table, dict):
            continue
        for list_field in _STEP_LIST_FIELDS:
            for idx, step in enumerate(table.get(list_field) or []):
                if isinstance(step, dict) and isinstance(step.get("pipe"), str):
                    references.append((step["pipe"], f"pipe.{code}.{list_field}[{idx}]"))
        for name_field in _PIPE_NAME_FIELDS:
            value = table.get(name_field)
            if isinstance(value, str) and value not in _SPECIAL_OUTCOMES:
                references.append((value, f"pipe.{code}.{name_field}"))
        outcomes = table.get(_OUTCOME_MAP_FIELD)
        if isinstance(outcomes, dict):
            for key, value in outcomes.items():
                if isinstance(value, str) and value not in _SPECIAL_OUTCOMES:
                    references.append((value, f"pipe.{code}.{_OUTCOME_MAP_FIELD}.{key}"))
    return references


def extract_bundle_metadata(file_path: str) -> Optional[BundleMetadata]:
    """Read one bundle's domain, main_pipe and pipe references.

    Returns None when the bundle cannot be read or has no valid domain.
    """
    try:
        data = _load_bundle(file_path)
    except (OSError, UnicodeDecodeError, toml_io.TOMLDecodeError) as e:
        logger.warning("Skipping unreadable bundle %s: %s", file_path, e)
        return None

    domain = data.get("domain")
    if not isinstance(domain, str) or not domain:
        return None
    main_pipe = data.get("main_pipe")
    pipes_section = data.get("pipe")
    references = _pipe_references(pipes_section) if isinstance(pipes_section, dict) else []
    return BundleMetadata(
        domain=domain,
        main_pipe=main_pipe if isinstance(main_pipe, str) and main_pipe else None,
        pipe_references=tuple(references),
    )

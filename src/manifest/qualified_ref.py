"""Domain-qualified references to pipes and concepts.

A reference is one or more dot-separated segments: the last segment is the
local code, the preceding ones form the domain path. A cross-package reference
prefixes the reference with ``<alias>->``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from constants import Constants
from exceptions import QualifiedRefError

from .naming import is_pascal_case, is_snake_case


@dataclass(frozen=True)
class QualifiedRef:
    """A parsed reference; domain_path is None for bare references."""
    domain_path: Optional[str]
    local_code: str


@dataclass(frozen=True)
class CrossPackageRef:
    """A reference into a dependency, addressed by its alias."""
    alias: str
    remainder: QualifiedRef


def is_qualified(ref: QualifiedRef) -> bool:
    return ref.domain_path is not None


def full_ref(ref: QualifiedRef) -> str:
    """Reconstruct the canonical dotted reference string."""
    if ref.domain_path is not None:
        return f"{ref.domain_path}.{ref.local_code}"
    return ref.local_code


def parse_ref(raw: str) -> QualifiedRef:
    """Split a reference on its last dot without any casing check."""
    if not raw:
        raise QualifiedRefError("Qualified reference cannot be empty")
    if raw.startswith(".") or raw.endswith("."):
        raise QualifiedRefError(f"Qualified reference '{raw}' must not start or end with a dot")
    if ".." in raw:
        raise QualifiedRefError(f"Qualified reference '{raw}' must not contain consecutive dots")

    if "." not in raw:
        return QualifiedRef(domain_path=None, local_code=raw)
    domain_path, local_code = raw.rsplit(".", 1)
    return QualifiedRef(domain_path=domain_path, local_code=local_code)


def _validate_domain_path(domain_path: str, raw: str) -> None:
    for segment in domain_path.split("."):
        if not is_snake_case(segment):
            raise QualifiedRefError(f"Domain segment '{segment}' in reference '{raw}' must be snake_case")


def parse_concept_ref(raw: str) -> QualifiedRef:
    """Parse a concept reference: PascalCase code, snake_case domain segments."""
    ref = parse_ref(raw)
    if not is_pascal_case(ref.local_code):
        raise QualifiedRefError(f"Concept code '{ref.local_code}' in reference '{raw}' must be PascalCase")
    if ref.domain_path is not None:
        _validate_domain_path(ref.domain_path, raw)
    return ref


def parse_pipe_ref(raw: str) -> QualifiedRef:
    """Parse a pipe reference: snake_case code, snake_case domain segments."""
    ref = parse_ref(raw)
    if not is_snake_case(ref.local_code):
        raise QualifiedRefError(f"Pipe code '{ref.local_code}' in reference '{raw}' must be snake_case")
    if ref.domain_path is not None:
        _validate_domain_path(ref.domain_path, raw)
    return ref


def is_local_to(ref: QualifiedRef, domain: str) -> bool:
    """True if the ref is bare or belongs to exactly this domain."""
    if ref.domain_path is None:
        return True
    return ref.domain_path == domain


def is_external_to(ref: QualifiedRef, domain: str) -> bool:
    return not is_local_to(ref, domain)


def has_cross_package_prefix(raw: str) -> bool:
    """Check for the alias marker without parsing the reference."""
    return Constants.CROSS_PACKAGE_MARKER in raw


def split_cross_package_ref(raw: str) -> Tuple[str, str]:
    """Split ``alias->remainder`` into ``(alias, remainder)``."""
    marker = Constants.CROSS_PACKAGE_MARKER
    if marker not in raw:
        raise QualifiedRefError(f"Reference '{raw}' is not a cross-package reference (no '{marker}' found)")
    alias, remainder = raw.split(marker, 1)
    return alias, remainder


def parse_cross_package_ref(raw: str, *, concept: bool = False) -> CrossPackageRef:
    """Parse ``alias->domain.code`` into a CrossPackageRef.

    The alias must be snake_case; the remainder is parsed as a pipe reference,
    or as a concept reference when ``concept`` is True.
    """
    alias, remainder = split_cross_package_ref(raw)
    if not is_snake_case(alias):
        raise QualifiedRefError(f"Package alias '{alias}' in reference '{raw}' must be snake_case")
    parsed = parse_concept_ref(remainder) if concept else parse_pipe_ref(remainder)
    return CrossPackageRef(alias=alias, remainder=parsed)

"""Semantic version parsing, constraint matching and minimum version selection.

Supported constraint clauses:

- ``*``                   any release version
- ``X.Y.Z`` / ``==X.Y.Z`` exactly that version
- ``^X.Y.Z``              compatible with X.Y.Z (npm caret rules)
- ``~X.Y.Z``              same major.minor
- ``>=X.Y.Z``             that version or any later one

Clauses joined by commas must all hold. Matching is delegated to
``semantic_version.NpmSpec``, so a pre-release version only satisfies a clause
whose own version is a pre-release of the same ``X.Y.Z``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import semantic_version

# Only the small fixed grammar above is accepted; NpmSpec alone would also take
# partial versions, hyphen ranges and '||' unions.
_CLAUSE_RE = re.compile(r"^(==|\^|~|>=)?\s*(\S+)$")


class SemVerError(ValueError):
    """Raised for unparseable versions or constraints."""


@dataclass(frozen=True)
class VersionConstraint:
    """A parsed constraint backed by an npm-style range."""
    raw: str
    spec: semantic_version.NpmSpec = field(compare=False, repr=False)

    def match(self, version: semantic_version.Version) -> bool:
        return self.spec.match(version)

    def __str__(self) -> str:
        return self.raw


def parse_version(version_str: str) -> semantic_version.Version:
    """Parse a strict semver string, stripping one leading 'v' (git tag style).

    Raises:
        SemVerError: The string is not a valid semantic version.
    """
    cleaned = version_str[1:] if version_str.startswith("v") else version_str
    try:
        return semantic_version.Version(cleaned)
    except ValueError as e:
        raise SemVerError(f"Invalid semver version: '{version_str}'") from e


def parse_version_tag(tag: str) -> Optional[semantic_version.Version]:
    """Parse a git tag as a version; None when the tag is not semver."""
    try:
        return parse_version(tag)
    except SemVerError:
        return None


def _to_npm_block(text: str, constraint_str: str) -> str:
    """Check one clause against the grammar and rewrite it as an npm range block."""
    if text == "*":
        return "*"
    m = _CLAUSE_RE.match(text)
    if not m:
        raise SemVerError(f"Invalid semver constraint: '{constraint_str}'")
    try:
        version = semantic_version.Version(m.group(2))
    except ValueError as e:
        raise SemVerError(f"Invalid semver constraint: '{constraint_str}'") from e
    operator = m.group(1)
    if operator in (None, "=="):
        operator = "="
    return f"{operator}{version}"


def parse_constraint(constraint_str: str) -> VersionConstraint:
    """Parse a constraint string into a VersionConstraint.

    Raises:
        SemVerError: Empty input, an unsupported operator, or a bad version.
    """
    raw = constraint_str.strip()
    if not raw:
        raise SemVerError("Invalid semver constraint: ''")
    blocks: List[str] = [_to_npm_block(part.strip(), constraint_str) for part in raw.split(",")]
    try:
        spec = semantic_version.NpmSpec(" ".join(blocks))
    except ValueError as e:
        raise SemVerError(f"Invalid semver constraint: '{constraint_str}'") from e
    return VersionConstraint(raw=raw, spec=spec)


def version_satisfies(version: semantic_version.Version, constraint: VersionConstraint) -> bool:
    return constraint.match(version)


def select_minimum_version(
    available_versions: Iterable[semantic_version.Version],
    constraint: VersionConstraint,
) -> Optional[semantic_version.Version]:
    """Return the lowest version satisfying the constraint (MVS), or None."""
    for version in sorted(available_versions):
        if constraint.match(version):
            return version
    return None


def select_minimum_version_for_multiple_constraints(
    available_versions: Iterable[semantic_version.Version],
    constraints: Sequence[VersionConstraint],
) -> Optional[semantic_version.Version]:
    """Return the lowest version satisfying every constraint at once, or None."""
    for version in sorted(available_versions):
        if all(constraint.match(version) for constraint in constraints):
            return version
    return None

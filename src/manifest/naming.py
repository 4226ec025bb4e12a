"""Naming and syntax rules shared by the parser, the validator and qualified refs."""

from __future__ import annotations

import re

from constants import Constants

SNAKE_CASE_RE = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")
PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")

SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# Lenient syntax check for mthds_version (compatibility against the host toolchain).
_SINGLE_CONSTRAINT = (
    r"(?:\*"
    r"|(?:(?:\^|~|>=?|<=?|==|!=)?(?:0|[1-9]\d*)(?:\.(?:0|[1-9]\d*|\*))?(?:\.(?:0|[1-9]\d*|\*))?)"
    r"(?:-(?:(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?)"
)
VERSION_CONSTRAINT_RE = re.compile(rf"^{_SINGLE_CONSTRAINT}(?:\s*,\s*{_SINGLE_CONSTRAINT})*$")

ADDRESS_RE = re.compile(r"^[a-zA-Z0-9._-]+\.[a-zA-Z0-9._-]+/[a-zA-Z0-9._/-]+$")

# Method name: lowercase alphanumeric + hyphens/underscores, 2-25 chars, starts with a letter
METHOD_NAME_RE = re.compile(r"^[a-z][a-z0-9_-]{1,24}$")

DISPLAY_NAME_MAX_LENGTH = 128


def is_snake_case(word: str) -> bool:
    return bool(SNAKE_CASE_RE.match(word))


def is_pascal_case(word: str) -> bool:
    return bool(PASCAL_CASE_RE.match(word))


def is_valid_semver(version: str) -> bool:
    return bool(SEMVER_RE.match(version))


def is_valid_version_constraint(constraint: str) -> bool:
    return bool(VERSION_CONSTRAINT_RE.match(constraint.strip()))


def is_valid_address(address: str) -> bool:
    return bool(ADDRESS_RE.match(address))


def is_valid_method_name(name: str) -> bool:
    return bool(METHOD_NAME_RE.match(name))


def is_pipe_code_valid(pipe_code: str) -> bool:
    return is_snake_case(pipe_code)


def is_domain_code_valid(code: str) -> bool:
    """Check a domain code: dot-separated snake_case segments.

    Accepts single-segment ("legal") and hierarchical ("legal.contracts")
    paths, as well as cross-package codes ("alias->scoring").
    """
    if not code:
        return False
    marker = Constants.CROSS_PACKAGE_MARKER
    if marker in code:
        return is_domain_code_valid(code.split(marker, 1)[1])
    if code.startswith(".") or code.endswith(".") or ".." in code:
        return False
    return all(is_snake_case(segment) for segment in code.split("."))


def is_reserved_domain_path(domain_path: str) -> bool:
    """True when the first segment of a domain path is reserved."""
    return domain_path.split(".")[0] in Constants.RESERVED_DOMAINS

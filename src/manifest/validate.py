"""Soft validation of raw manifests and method directory names.

Unlike the parser, nothing here raises: every problem is collected into an
error list so discovery can skip one bad method and keep going.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from common import toml_io
from constants import Constants
from exceptions import ManifestError

from .models import Manifest
from .naming import SNAKE_CASE_RE, is_pipe_code_valid, is_valid_semver
from .parser import manifest_from_dict

SLUG_MAX_LENGTH = 64


@dataclass
class ValidationResult:
    """Outcome of validate_manifest: a manifest when valid, errors otherwise."""
    valid: bool
    manifest: Optional[Manifest] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class SlugValidationResult:
    valid: bool
    error: Optional[str] = None


def validate_slug(name: str) -> SlugValidationResult:
    """Validate a method directory name (snake_case, at most 64 characters)."""
    if not name:
        return SlugValidationResult(valid=False, error="Slug cannot be empty.")
    if len(name) > SLUG_MAX_LENGTH:
        return SlugValidationResult(
            valid=False, error=f"Slug must be at most {SLUG_MAX_LENGTH} characters (got {len(name)})."
        )
    if not SNAKE_CASE_RE.match(name):
        return SlugValidationResult(
            valid=False,
            error=f'Slug "{name}" is invalid: must be snake_case (lowercase alphanumeric with underscores, '
                  "starting with a letter).",
        )
    return SlugValidationResult(valid=True)


def _validate_export_node(node: Any, path: str, errors: List[str]) -> None:
    if not isinstance(node, dict):
        errors.append(f"[exports.{path}] must be a table.")
        return

    for key, value in node.items():
        if key == "pipes":
            if not isinstance(value, list):
                errors.append(f"[exports.{path}.pipes] must be an array of strings.")
                continue
            for pipe in value:
                if not isinstance(pipe, str):
                    errors.append(f"[exports.{path}.pipes] must contain only strings.")
                    break
                if not is_pipe_code_valid(pipe):
                    errors.append(f'[exports.{path}.pipes] "{pipe}" must be snake_case.')
        else:
            if not SNAKE_CASE_RE.match(key):
                errors.append(f'[exports.{path}] sub-domain "{key}" must be snake_case.')
            _validate_export_node(value, f"{path}.{key}", errors)


def _validate_package_section(pkg: Dict[str, Any], errors: List[str]) -> None:
    address = pkg.get("address")
    if not isinstance(address, str) or not address:
        errors.append("[package.address] is required and must be a non-empty string.")
    else:
        hostname = address.split("/", 1)[0]
        if "." not in hostname:
            errors.append(
                f'[package.address] hostname must contain a dot (got "{hostname}"). Example: github.com/org/repo'
            )

    version = pkg.get("version")
    if not isinstance(version, str) or not version:
        errors.append("[package.version] is required and must be a non-empty string.")
    elif not is_valid_semver(version):
        errors.append(f'[package.version] must be valid semver (got "{version}").')

    description = pkg.get("description")
    if not isinstance(description, str) or not description.strip():
        errors.append("[package.description] is required and must be a non-empty string.")

    authors = pkg.get("authors")
    if authors is not None:
        if not isinstance(authors, list):
            errors.append("[package.authors] must be an array of strings.")
        elif any(not isinstance(author, str) for author in authors):
            errors.append("[package.authors] must contain only strings.")

    for key in ("license", "mthds_version", "display_name", "name"):
        if key in pkg and not isinstance(pkg[key], str):
            errors.append(f"[package.{key}] must be a string.")

    main_pipe = pkg.get("main_pipe")
    if main_pipe is not None:
        if not isinstance(main_pipe, str):
            errors.append("[package.main_pipe] must be a string.")
        elif not is_pipe_code_valid(main_pipe):
            errors.append(f'[package.main_pipe] "{main_pipe}" must be a valid snake_case pipe code.')


def _validate_dependencies(deps: Any, errors: List[str]) -> None:
    if not isinstance(deps, dict):
        errors.append("[dependencies] must be a table.")
        return
    for alias, dep in deps.items():
        if not SNAKE_CASE_RE.match(alias):
            errors.append(f'[dependencies."{alias}"] alias must be snake_case.')
        if not isinstance(dep, dict):
            errors.append(f'[dependencies."{alias}"] must be a table with address and version.')
            continue
        if not isinstance(dep.get("address"), str) or not dep.get("address"):
            errors.append(f'[dependencies."{alias}".address] is required.')
        if not isinstance(dep.get("version"), str) or not dep.get("version"):
            errors.append(f'[dependencies."{alias}".version] is required.')
        if "path" in dep and not isinstance(dep["path"], str):
            errors.append(f'[dependencies."{alias}".path] must be a string.')


def validate_manifest(raw: str) -> ValidationResult:
    """Validate raw METHODS.toml text without raising.

    All structural and naming problems are collected. When none are found the
    manifest is built with the strict parser; a remaining strict-parser
    failure is reported as a single error entry.
    """
    try:
        parsed = toml_io.loads(raw)
    except toml_io.TOMLDecodeError as e:
        return ValidationResult(valid=False, errors=[f"TOML parse error: {e}"])

    errors: List[str] = []

    pkg = parsed.get("package")
    if not isinstance(pkg, dict):
        return ValidationResult(valid=False, errors=["[package] section is required."])
    _validate_package_section(pkg, errors)

    exports = parsed.get("exports")
    if exports is not None:
        if not isinstance(exports, dict):
            errors.append("[exports] must be a table.")
        else:
            for domain, node in exports.items():
                if not SNAKE_CASE_RE.match(domain):
                    errors.append(f'[exports."{domain}"] domain must be snake_case.')
                elif domain in Constants.RESERVED_DOMAINS:
                    errors.append(f'[exports."{domain}"] domain cannot use reserved name "{domain}".')
                _validate_export_node(node, domain, errors)

    if "dependencies" in parsed:
        _validate_dependencies(parsed["dependencies"], errors)

    if errors:
        return ValidationResult(valid=False, errors=errors)

    try:
        manifest = manifest_from_dict(parsed)
    except ManifestError as e:
        return ValidationResult(valid=False, errors=[str(e)])
    return ValidationResult(valid=True, manifest=manifest)

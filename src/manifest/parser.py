"""METHODS.toml parsing and serialization.

Parsing is all-or-nothing: the first structural or semantic violation raises a
ManifestError subclass and no partial manifest is ever returned.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from common import toml_io
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from exceptions import ManifestParseError, ManifestValidationError

from .models import DomainExports, Manifest, PackageDependency
from .naming import (
    DISPLAY_NAME_MAX_LENGTH,
    is_domain_code_valid,
    is_pipe_code_valid,
    is_reserved_domain_path,
    is_snake_case,
    is_valid_address,
    is_valid_method_name,
    is_valid_semver,
    is_valid_version_constraint,
)

logger = logging.getLogger(__name__)

TOP_LEVEL_SECTIONS = ("package", "exports", "dependencies")
PACKAGE_KEYS = (
    "name",
    "address",
    "display_name",
    "version",
    "description",
    "authors",
    "license",
    "mthds_version",
    "main_pipe",
)
DEPENDENCY_KEYS = ("address", "version", "path")


def _is_table(value: Any) -> bool:
    return isinstance(value, dict)


def _require_string(table: Dict[str, Any], key: str, section: str) -> str:
    value = table.get(key)
    if value is None:
        raise ManifestValidationError(f"[{section}.{key}] is required")
    if not isinstance(value, str):
        raise ManifestValidationError(f"[{section}.{key}]: expected string, got {type(value).__name__}")
    return value


def _optional_string(table: Dict[str, Any], key: str, section: str) -> Optional[str]:
    if key not in table:
        return None
    value = table[key]
    if not isinstance(value, str):
        raise ManifestValidationError(f"[{section}.{key}]: expected string, got {type(value).__name__}")
    return value


def _reject_unknown_keys(table: Dict[str, Any], allowed, section: str) -> None:
    unknown = sorted(key for key in table if key not in allowed)
    if unknown:
        if section:
            raise ManifestValidationError(f"Unknown keys in [{section}]: {', '.join(unknown)}")
        raise ManifestValidationError(f"Unknown sections in {Constants.MANIFEST_FILENAME}: {', '.join(unknown)}")


def walk_exports_table(table: Dict[str, Any], prefix: str = "") -> Dict[str, DomainExports]:
    """Flatten nested export sub-tables into dotted domain paths.

    ``{"legal": {"contracts": {"pipes": ["extract_clause"]}}}`` becomes
    ``{"legal.contracts": DomainExports(pipes=["extract_clause"])}``.
    """
    result: Dict[str, DomainExports] = {}

    for key, value in table.items():
        current_path = f"{prefix}.{key}" if prefix else key
        if not _is_table(value):
            raise ManifestValidationError(
                f"Unknown key '{key}' in [exports{'.' + prefix if prefix else ''}]. "
                "Only 'pipes' and sub-domain tables are allowed."
            )

        if "pipes" in value:
            pipes_value = value["pipes"]
            if not isinstance(pipes_value, list):
                raise ManifestValidationError(
                    f"'pipes' in domain '{current_path}' must be a list, got {type(pipes_value).__name__}"
                )
            if any(not isinstance(pipe, str) for pipe in pipes_value):
                raise ManifestValidationError(f"'pipes' in domain '{current_path}' must contain only strings")
            result[current_path] = DomainExports(pipes=list(pipes_value))

        for sub_key, sub_value in value.items():
            if sub_key == "pipes":
                continue
            if not _is_table(sub_value):
                raise ManifestValidationError(
                    f"Unknown key '{sub_key}' in [exports.{current_path}]. "
                    "Only 'pipes' and sub-domain tables are allowed."
                )
            result.update(walk_exports_table({sub_key: sub_value}, current_path))

    return result


def _validate_exports(exports: Dict[str, DomainExports]) -> None:
    for domain_path, domain_export in exports.items():
        if not is_domain_code_valid(domain_path):
            raise ManifestValidationError(
                f"Invalid domain path '{domain_path}' in [exports]. "
                "Domain paths must be dot-separated snake_case segments."
            )
        if is_reserved_domain_path(domain_path):
            first_segment = domain_path.split(".")[0]
            raise ManifestValidationError(
                f"Domain path '{domain_path}' uses reserved domain '{first_segment}'. "
                f"Reserved domains ({', '.join(sorted(Constants.RESERVED_DOMAINS))}) "
                "cannot be used in package exports."
            )
        for pipe in domain_export.pipes:
            if not is_pipe_code_valid(pipe):
                raise ManifestValidationError(
                    f"Invalid pipe name '{pipe}' in [exports.{domain_path}]. Pipe names must be in snake_case."
                )


def _parse_dependencies(table: Dict[str, Any]) -> Dict[str, PackageDependency]:
    dependencies: Dict[str, PackageDependency] = {}
    for alias, entry in table.items():
        section = f"dependencies.{alias}"
        if not is_snake_case(alias):
            raise ManifestValidationError(f"Invalid dependency alias '{alias}'. Aliases must be snake_case.")
        if not _is_table(entry):
            raise ManifestValidationError(f"[{section}] must be a table with address and version")
        _reject_unknown_keys(entry, DEPENDENCY_KEYS, section)

        address = _require_string(entry, "address", section)
        if not is_valid_address(address):
            raise ManifestValidationError(
                f"Invalid address '{address}' for dependency '{alias}'. "
                "Address must follow hostname/path pattern (e.g. 'github.com/org/repo')."
            )
        version = _require_string(entry, "version", section)
        if not is_valid_version_constraint(version):
            raise ManifestValidationError(
                f"Invalid version constraint '{version}' for dependency '{alias}'."
            )
        path = _optional_string(entry, "path", section)
        if path is not None and not path.strip():
            raise ManifestValidationError(f"[{section}.path] must not be empty when provided")

        dependencies[alias] = PackageDependency(address=address, version=version, path=path)
    return dependencies


def manifest_from_dict(raw: Dict[str, Any]) -> Manifest:
    """Build a Manifest from already-decoded TOML data.

    Raises:
        ManifestValidationError: On the first schema or naming violation.
    """
    _reject_unknown_keys(raw, TOP_LEVEL_SECTIONS, "")

    pkg = raw.get("package")
    if pkg is None:
        raise ManifestValidationError("[package] section is required")
    if not _is_table(pkg):
        raise ManifestValidationError("[package] must be a table")
    _reject_unknown_keys(pkg, PACKAGE_KEYS, "package")

    address = _require_string(pkg, "address", "package")
    if not is_valid_address(address):
        raise ManifestValidationError(
            f"Invalid package address '{address}'. "
            "Address must follow hostname/path pattern (e.g. 'github.com/org/repo')."
        )

    version = _require_string(pkg, "version", "package")
    if not is_valid_semver(version):
        raise ManifestValidationError(
            f"Invalid version '{version}'. Must be valid semver (e.g. '1.0.0', '2.1.3-beta.1')."
        )

    description = _require_string(pkg, "description", "package")
    if not description.strip():
        raise ManifestValidationError("[package.description] is required and must be a non-empty string")

    display_name = _optional_string(pkg, "display_name", "package")
    if display_name is not None:
        display_name = display_name.strip()
        if not display_name:
            raise ManifestValidationError("Display name must not be empty or whitespace when provided")
        if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
            raise ManifestValidationError(
                f"Display name must not exceed {DISPLAY_NAME_MAX_LENGTH} characters (got {len(display_name)})"
            )

    authors: List[str] = []
    raw_authors = pkg.get("authors", [])
    if not isinstance(raw_authors, list):
        raise ManifestValidationError("[package.authors] must be an array of strings")
    for idx, author in enumerate(raw_authors):
        if not isinstance(author, str) or not author.strip():
            raise ManifestValidationError(f"Author at index {idx} must not be empty or whitespace")
        authors.append(author)

    license_ = _optional_string(pkg, "license", "package")
    if license_ is not None and not license_.strip():
        raise ManifestValidationError("License must not be empty or whitespace when provided")

    mthds_version = _optional_string(pkg, "mthds_version", "package")
    if mthds_version is not None and not is_valid_version_constraint(mthds_version):
        raise ManifestValidationError(
            f"Invalid mthds_version constraint '{mthds_version}'. Must be a valid version constraint."
        )

    name = _optional_string(pkg, "name", "package")
    if name is not None and not is_valid_method_name(name):
        raise ManifestValidationError(
            f"Invalid method name '{name}'. Must be 2-25 lowercase chars "
            "(letters, digits, hyphens, underscores), starting with a letter."
        )

    main_pipe = _optional_string(pkg, "main_pipe", "package")
    if main_pipe is not None and not is_pipe_code_valid(main_pipe):
        raise ManifestValidationError(f"Invalid main_pipe '{main_pipe}'. Must be a valid snake_case pipe code.")

    exports: Dict[str, DomainExports] = {}
    raw_exports = raw.get("exports")
    if raw_exports is not None:
        if not _is_table(raw_exports):
            raise ManifestValidationError("[exports] must be a table")
        exports = walk_exports_table(raw_exports)
        _validate_exports(exports)

    dependencies: Dict[str, PackageDependency] = {}
    raw_dependencies = raw.get("dependencies")
    if raw_dependencies is not None:
        if not _is_table(raw_dependencies):
            raise ManifestValidationError("[dependencies] must be a table")
        dependencies = _parse_dependencies(raw_dependencies)

    return Manifest(
        address=address,
        version=version,
        description=description.strip(),
        authors=authors,
        license=license_,
        mthds_version=mthds_version,
        name=name,
        display_name=display_name,
        main_pipe=main_pipe,
        exports=exports,
        dependencies=dependencies,
    )


def parse_methods_toml(content: str) -> Manifest:
    """Parse METHODS.toml content into a Manifest.

    Raises:
        ManifestParseError: The content is not valid TOML.
        ManifestValidationError: The content violates the manifest schema.
    """
    try:
        raw = toml_io.loads(content)
    except toml_io.TOMLDecodeError as e:
        raise ManifestParseError(f"Invalid TOML syntax in {Constants.MANIFEST_FILENAME}: {e}") from e

    manifest = manifest_from_dict(raw)
    if is_debug_enabled(logger):
        logger.debug("Parsed manifest", extra=extra_context(
            event="parse", component="manifest", action="parse_methods_toml",
            target=manifest.address, outcome="success",
            count=len(manifest.dependencies),
        ))
    return manifest


def load_manifest(path: str) -> Manifest:
    """Read and parse a METHODS.toml file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ManifestParseError(f"Cannot read {path}: {e}") from e
    return parse_methods_toml(content)


def nest_exports(exports: Dict[str, DomainExports]) -> Dict[str, Any]:
    """Rebuild the nested [exports] tables from dotted domain paths."""
    root: Dict[str, Any] = {}
    for domain_path, domain_export in exports.items():
        current = root
        for segment in domain_path.split("."):
            current = current.setdefault(segment, {})
        current["pipes"] = list(domain_export.pipes)
    return root


def manifest_to_dict(manifest: Manifest) -> Dict[str, Any]:
    """Convert a Manifest to the TOML document layout, omitting absent fields."""
    package: Dict[str, Any] = {}
    if manifest.name is not None:
        package["name"] = manifest.name
    package["address"] = manifest.address
    if manifest.display_name is not None:
        package["display_name"] = manifest.display_name
    package["version"] = manifest.version
    package["description"] = manifest.description
    if manifest.authors:
        package["authors"] = list(manifest.authors)
    if manifest.license is not None:
        package["license"] = manifest.license
    if manifest.mthds_version is not None:
        package["mthds_version"] = manifest.mthds_version
    if manifest.main_pipe is not None:
        package["main_pipe"] = manifest.main_pipe

    doc: Dict[str, Any] = {"package": package}
    if manifest.exports:
        doc["exports"] = nest_exports(manifest.exports)
    if manifest.dependencies:
        deps: Dict[str, Any] = {}
        for alias, dep in manifest.dependencies.items():
            entry = {"address": dep.address, "version": dep.version}
            if dep.path is not None:
                entry["path"] = dep.path
            deps[alias] = entry
        doc["dependencies"] = deps
    return doc


def serialize_manifest_to_toml(manifest: Manifest) -> str:
    """Serialize a Manifest to METHODS.toml text."""
    return toml_io.dumps(manifest_to_dict(manifest))

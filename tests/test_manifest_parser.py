"""Tests for METHODS.toml parsing and serialization."""

import pytest

from exceptions import ManifestError, ManifestParseError, ManifestValidationError
from manifest.models import DomainExports, PackageDependency
from manifest.parser import (
    load_manifest,
    manifest_to_dict,
    nest_exports,
    parse_methods_toml,
    serialize_manifest_to_toml,
    walk_exports_table,
)

FULL_MANIFEST = """
[package]
name = "contract-tools"
address = "github.com/acme/contracts"
display_name = "Contract Tools"
version = "1.2.0"
description = "Legal contract analysis"
authors = ["Ada <ada@example.com>", "Bob"]
license = "MIT"
mthds_version = "^1.0.0"
main_pipe = "analyze_contract"

[exports.legal]
pipes = ["classify_document"]

[exports.legal.contracts]
pipes = ["extract_clause", "analyze_contract"]

[exports.scoring]
pipes = ["compute_weighted_score"]

[dependencies]
scoring_lib = { address = "github.com/acme/scoring", version = "^0.3.0" }
local_helpers = { address = "github.com/acme/helpers", version = "1.0.0", path = "../helpers" }
"""

MINIMAL_MANIFEST = """
[package]
address = "github.com/acme/minimal"
version = "0.1.0"
description = "Minimal package"
"""


class TestParseMethodsToml:
    """Test strict manifest parsing."""

    def test_parse_full_manifest(self):
        """All package fields, nested exports and dependencies are parsed."""
        manifest = parse_methods_toml(FULL_MANIFEST)

        assert manifest.address == "github.com/acme/contracts"
        assert manifest.version == "1.2.0"
        assert manifest.description == "Legal contract analysis"
        assert manifest.authors == ["Ada <ada@example.com>", "Bob"]
        assert manifest.license == "MIT"
        assert manifest.mthds_version == "^1.0.0"
        assert manifest.name == "contract-tools"
        assert manifest.display_name == "Contract Tools"
        assert manifest.main_pipe == "analyze_contract"

        assert manifest.exports == {
            "legal": DomainExports(pipes=["classify_document"]),
            "legal.contracts": DomainExports(pipes=["extract_clause", "analyze_contract"]),
            "scoring": DomainExports(pipes=["compute_weighted_score"]),
        }
        assert manifest.dependencies["scoring_lib"] == PackageDependency(
            address="github.com/acme/scoring", version="^0.3.0"
        )
        assert manifest.dependencies["local_helpers"].path == "../helpers"

    def test_parse_minimal_manifest(self):
        """Optional sections default to empty values."""
        manifest = parse_methods_toml(MINIMAL_MANIFEST)

        assert manifest.authors == []
        assert manifest.license is None
        assert manifest.exports == {}
        assert manifest.dependencies == {}
        assert manifest.exported_pipe_codes() is None

    def test_invalid_toml_syntax(self):
        with pytest.raises(ManifestParseError, match="Invalid TOML syntax"):
            parse_methods_toml("[package\naddress = ")

    def test_missing_package_section(self):
        with pytest.raises(ManifestValidationError, match=r"\[package\] section is required"):
            parse_methods_toml('[exports.legal]\npipes = ["a"]\n')

    def test_missing_address(self):
        content = '[package]\nversion = "1.0.0"\ndescription = "x"\n'
        with pytest.raises(ManifestValidationError, match="package.address"):
            parse_methods_toml(content)

    def test_invalid_address(self):
        """An address without a dotted hostname is rejected."""
        content = '[package]\naddress = "acme/contracts"\nversion = "1.0.0"\ndescription = "x"\n'
        with pytest.raises(ManifestValidationError, match="Invalid package address"):
            parse_methods_toml(content)

    def test_invalid_semver(self):
        content = '[package]\naddress = "github.com/a/b"\nversion = "1.0"\ndescription = "x"\n'
        with pytest.raises(ManifestValidationError, match="Invalid version '1.0'"):
            parse_methods_toml(content)

    def test_blank_description(self):
        content = '[package]\naddress = "github.com/a/b"\nversion = "1.0.0"\ndescription = "   "\n'
        with pytest.raises(ManifestValidationError, match="description"):
            parse_methods_toml(content)

    def test_unknown_section_rejected(self):
        content = MINIMAL_MANIFEST + '\n[scripts]\nbuild = "make"\n'
        with pytest.raises(ManifestValidationError, match="Unknown sections"):
            parse_methods_toml(content)

    def test_unknown_package_key_rejected(self):
        content = MINIMAL_MANIFEST + 'homepage = "https://example.com"\n'
        with pytest.raises(ManifestValidationError, match=r"Unknown keys in \[package\]: homepage"):
            parse_methods_toml(content)

    def test_reserved_export_domain(self):
        content = MINIMAL_MANIFEST + '\n[exports.native]\npipes = ["do_thing"]\n'
        with pytest.raises(ManifestValidationError, match="reserved domain 'native'"):
            parse_methods_toml(content)

    def test_non_snake_case_pipe_in_exports(self):
        content = MINIMAL_MANIFEST + '\n[exports.legal]\npipes = ["ExtractClause"]\n'
        with pytest.raises(ManifestValidationError, match="Invalid pipe name 'ExtractClause'"):
            parse_methods_toml(content)

    def test_non_snake_case_alias(self):
        content = MINIMAL_MANIFEST + (
            '\n[dependencies]\nScoringLib = { address = "github.com/a/s", version = "1.0.0" }\n'
        )
        with pytest.raises(ManifestValidationError, match="Invalid dependency alias 'ScoringLib'"):
            parse_methods_toml(content)

    def test_invalid_dependency_constraint(self):
        content = MINIMAL_MANIFEST + (
            '\n[dependencies]\nscoring = { address = "github.com/a/s", version = "latest" }\n'
        )
        with pytest.raises(ManifestValidationError, match="Invalid version constraint 'latest'"):
            parse_methods_toml(content)

    def test_errors_share_base_class(self):
        """Callers can catch a single ManifestError for both failure kinds."""
        with pytest.raises(ManifestError):
            parse_methods_toml("not = [valid")
        with pytest.raises(ManifestError):
            parse_methods_toml("")


class TestExportsTable:
    """Test flattening and nesting of [exports]."""

    def test_walk_exports_table_flattens(self):
        table = {"legal": {"pipes": ["a"], "contracts": {"pipes": ["b"]}}}
        assert walk_exports_table(table) == {
            "legal": DomainExports(pipes=["a"]),
            "legal.contracts": DomainExports(pipes=["b"]),
        }

    def test_walk_exports_table_rejects_scalar(self):
        with pytest.raises(ManifestValidationError, match="Only 'pipes' and sub-domain tables"):
            walk_exports_table({"legal": {"pipes": ["a"], "extra": 1}})

    def test_nest_exports_is_inverse_of_walk(self):
        table = {"legal": {"pipes": ["a"], "contracts": {"pipes": ["b"]}}, "scoring": {"pipes": ["c"]}}
        assert nest_exports(walk_exports_table(table)) == table


class TestSerialization:
    """Test manifest serialization and the round-trip law."""

    @pytest.mark.parametrize("content", [FULL_MANIFEST, MINIMAL_MANIFEST])
    def test_round_trip(self, content):
        """Serializing then re-parsing yields an equal manifest."""
        manifest = parse_methods_toml(content)
        assert parse_methods_toml(serialize_manifest_to_toml(manifest)) == manifest

    def test_path_omitted_when_absent(self):
        manifest = parse_methods_toml(FULL_MANIFEST)
        deps = manifest_to_dict(manifest)["dependencies"]

        assert "path" not in deps["scoring_lib"]
        assert deps["local_helpers"]["path"] == "../helpers"

    def test_optional_fields_omitted(self):
        doc = manifest_to_dict(parse_methods_toml(MINIMAL_MANIFEST))

        assert set(doc) == {"package"}
        assert set(doc["package"]) == {"address", "version", "description"}


class TestLoadManifest:
    """Test reading manifests from disk."""

    def test_load_manifest(self, tmp_path):
        path = tmp_path / "METHODS.toml"
        path.write_text(MINIMAL_MANIFEST)

        assert load_manifest(str(path)).address == "github.com/acme/minimal"

    def test_load_missing_manifest(self, tmp_path):
        with pytest.raises(ManifestParseError, match="Cannot read"):
            load_manifest(str(tmp_path / "METHODS.toml"))

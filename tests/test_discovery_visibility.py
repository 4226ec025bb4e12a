"""Tests for manifest discovery from bundle paths and pipe visibility checks."""

import pytest

from exceptions import ManifestError
from manifest.parser import parse_methods_toml
from manifest.qualified_ref import parse_pipe_ref
from resolution.bundles import BundleMetadata
from resolution.discovery import find_package_manifest, find_package_manifest_path
from resolution.visibility import PackageVisibilityChecker, check_visibility

MANIFEST = """
[package]
address = "github.com/acme/legal"
version = "1.0.0"
description = "Legal tools"

[exports.scoring]
pipes = ["compute_score"]

[dependencies]
scoring_lib = { address = "github.com/acme/scoring", version = "^1.0.0" }
"""


class TestFindPackageManifest:
    """Test the upward walk from a bundle to its METHODS.toml."""

    def test_finds_nearest_manifest(self, tmp_path):
        (tmp_path / "METHODS.toml").write_text(MANIFEST)
        bundle = tmp_path / "methods" / "legal" / "contracts.mthds"
        bundle.parent.mkdir(parents=True)
        bundle.write_text('domain = "legal"\n')

        assert find_package_manifest_path(str(bundle)) == str(tmp_path / "METHODS.toml")
        assert find_package_manifest(str(bundle)).address == "github.com/acme/legal"

    def test_stops_at_git_root(self, tmp_path):
        (tmp_path / "METHODS.toml").write_text(MANIFEST)
        repo = tmp_path / "repo"
        (repo / ".git").mkdir(parents=True)
        bundle = repo / "bundle.mthds"
        bundle.write_text('domain = "legal"\n')

        assert find_package_manifest_path(str(bundle)) is None
        assert find_package_manifest(str(bundle)) is None

    def test_manifest_at_git_root_found(self, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / "METHODS.toml").write_text(MANIFEST)
        bundle = tmp_path / "sub" / "bundle.mthds"
        bundle.parent.mkdir()
        bundle.write_text('domain = "legal"\n')

        assert find_package_manifest_path(str(bundle)) == str(tmp_path / "METHODS.toml")

    def test_malformed_manifest_raises(self, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / "METHODS.toml").write_text("[package")
        bundle = tmp_path / "bundle.mthds"
        bundle.write_text('domain = "legal"\n')

        with pytest.raises(ManifestError):
            find_package_manifest(str(bundle))


def _metadata(domain, *refs, main_pipe=None):
    return BundleMetadata(
        domain=domain,
        main_pipe=main_pipe,
        pipe_references=tuple((ref, f"pipe.caller.steps[{i}]") for i, ref in enumerate(refs)),
    )


class TestPackageVisibilityChecker:
    """Test cross-domain pipe visibility."""

    def test_no_manifest_everything_visible(self):
        checker = PackageVisibilityChecker(None, [_metadata("legal", "scoring.private_pipe")])

        assert checker.is_pipe_accessible_from(parse_pipe_ref("scoring.private_pipe"), "legal")
        assert checker.validate_all_pipe_references() == []
        assert checker.validate_cross_package_references() == []

    def test_local_and_exported_refs_allowed(self):
        checker = PackageVisibilityChecker(parse_methods_toml(MANIFEST), [])

        assert checker.is_pipe_accessible_from(parse_pipe_ref("helper"), "legal")
        assert checker.is_pipe_accessible_from(parse_pipe_ref("legal.helper"), "legal")
        assert checker.is_pipe_accessible_from(parse_pipe_ref("scoring.compute_score"), "legal")
        assert not checker.is_pipe_accessible_from(parse_pipe_ref("scoring.private_pipe"), "legal")

    def test_main_pipe_is_accessible(self):
        bundles = [_metadata("reports", main_pipe="build_report")]
        checker = PackageVisibilityChecker(parse_methods_toml(MANIFEST), bundles)

        assert checker.is_pipe_accessible_from(parse_pipe_ref("reports.build_report"), "legal")

    def test_unexported_reference_reported(self):
        bundles = [_metadata("legal", "scoring.compute_score", "scoring.private_pipe", "Bad.Ref")]

        errors = PackageVisibilityChecker(parse_methods_toml(MANIFEST), bundles).validate_all_pipe_references()

        assert len(errors) == 1
        assert errors[0].pipe_ref == "scoring.private_pipe"
        assert errors[0].source_domain == "legal"
        assert errors[0].target_domain == "scoring"
        assert errors[0].context == "pipe.caller.steps[1]"
        assert "[exports.scoring]" in errors[0].message

    def test_unknown_alias_reported(self):
        bundles = [_metadata("legal", "scoring_lib->scoring.compute", "other_lib->x.y")]

        errors = PackageVisibilityChecker(parse_methods_toml(MANIFEST), bundles).validate_cross_package_references()

        assert [e.target_domain for e in errors] == ["other_lib"]
        assert "alias 'other_lib' is not declared" in errors[0].message

    def test_check_visibility_includes_reserved_domains(self):
        bundles = [_metadata("native.tools"), _metadata("legal", "scoring.private_pipe")]

        errors = check_visibility(parse_methods_toml(MANIFEST), bundles)

        assert [e.source_domain for e in errors] == ["native.tools", "legal"]
        assert "reserved domain 'native'" in errors[0].message

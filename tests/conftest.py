"""Shared fixtures: an in-memory package registry standing in for git remotes."""

import os
import threading

import pytest
import semantic_version

from exceptions import VCSFetchError
from resolution.cache import store_in_cache
from versioning.vcs import VersionTag


def manifest_text(address, version="1.0.0", dependencies=None, exports=None):
    """Render a METHODS.toml; dependencies map alias -> (address, constraint[, path])."""
    lines = [
        "[package]",
        f'address = "{address}"',
        f'version = "{version}"',
        f'description = "Package {address}"',
        "",
    ]
    for domain, pipes in (exports or {}).items():
        lines.append(f"[exports.{domain}]")
        lines.append("pipes = [" + ", ".join(f'"{p}"' for p in pipes) + "]")
        lines.append("")
    if dependencies:
        lines.append("[dependencies]")
        for alias, dep in dependencies.items():
            entry = f'address = "{dep[0]}", version = "{dep[1]}"'
            if len(dep) > 2:
                entry += f', path = "{dep[2]}"'
            lines.append(f"{alias} = {{ {entry} }}")
    return "\n".join(lines) + "\n"


class FakeFetcher:
    """Serve published package versions from a temporary directory.

    Records every list_tags and fetch call so tests can assert on duplicates.
    When cache_root is set, fetched packages are stored in the package cache.
    """

    def __init__(self, base_dir, cache_root=None):
        self.base_dir = str(base_dir)
        self.cache_root = cache_root
        self.packages = {}
        self.list_calls = []
        self.fetch_calls = []
        self._lock = threading.Lock()

    def publish(self, address, version, content=None, bundles=None, tag=None):
        """Register a version; content None publishes a package with no manifest."""
        self.packages.setdefault(address, {})[version] = (tag or f"v{version}", content, bundles or {})

    def list_tags(self, address):
        with self._lock:
            self.list_calls.append(address)
        if address not in self.packages:
            raise VCSFetchError(f"git ls-remote failed: repository '{address}' not found")
        return [
            VersionTag(version=semantic_version.Version(version), tag=tag)
            for version, (tag, _, _) in self.packages[address].items()
        ]

    def fetch(self, address, version_tag):
        version = str(version_tag.version)
        with self._lock:
            self.fetch_calls.append((address, version))
        _, content, bundles = self.packages[address][version]

        package_dir = os.path.join(self.base_dir, "remote", address, version)
        os.makedirs(package_dir, exist_ok=True)
        if content is not None:
            with open(os.path.join(package_dir, "METHODS.toml"), "w", encoding="utf-8") as f:
                f.write(content)
        for name, text in bundles.items():
            with open(os.path.join(package_dir, name), "w", encoding="utf-8") as f:
                f.write(text)

        if self.cache_root is not None:
            return store_in_cache(package_dir, address, version, self.cache_root)
        return package_dir


@pytest.fixture
def make_manifest():
    return manifest_text


@pytest.fixture
def fake_fetcher(tmp_path):
    return FakeFetcher(tmp_path / "registry")


@pytest.fixture
def write_package():
    """Write a METHODS.toml (and optional bundles) into a directory."""

    def _write(directory, content, bundles=None):
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "METHODS.toml").write_text(content)
        for name, text in (bundles or {}).items():
            (directory / name).write_text(text)
        return directory

    return _write

"""Locate the package manifest that owns a bundle file."""

from __future__ import annotations

import os
from typing import Optional

from constants import Constants
from manifest.models import Manifest
from manifest.parser import load_manifest


def find_package_manifest_path(bundle_path: str) -> Optional[str]:
    """Walk up from the bundle's directory to the nearest METHODS.toml.

    The walk stops at a directory containing ``.git`` (after checking it for a
    manifest) or at the filesystem root.
    """
    current = os.path.dirname(os.path.abspath(bundle_path))
    while True:
        manifest_path = os.path.join(current, Constants.MANIFEST_FILENAME)
        if os.path.isfile(manifest_path):
            return manifest_path
        if os.path.exists(os.path.join(current, ".git")):
            return None
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def find_package_manifest(bundle_path: str) -> Optional[Manifest]:
    """Return the parsed manifest owning bundle_path, or None.

    Raises:
        ManifestError: A manifest was found but is malformed.
    """
    manifest_path = find_package_manifest_path(bundle_path)
    if manifest_path is None:
        return None
    return load_manifest(manifest_path)

"""Validation shared by local and remote method discovery."""

from __future__ import annotations

from typing import Union

from manifest.models import Manifest
from manifest.validate import validate_manifest, validate_slug

from .models import SkippedMethod


def check_method(slug: str, raw_manifest: str) -> Union[Manifest, SkippedMethod]:
    """Validate a method directory's name and manifest without raising.

    Returns the manifest, or a SkippedMethod carrying every error found.
    """
    errors = []
    slug_result = validate_slug(slug)
    if not slug_result.valid:
        errors.append(slug_result.error)

    result = validate_manifest(raw_manifest)
    errors.extend(result.errors)
    if errors or result.manifest is None:
        return SkippedMethod(slug=slug, errors=errors)
    return result.manifest

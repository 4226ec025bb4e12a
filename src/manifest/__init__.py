"""Manifest package.

- models.py: Manifest, DomainExports, PackageDependency
- parser.py: strict METHODS.toml parsing and serialization
- validate.py: soft (non-raising) manifest and slug validation
- qualified_ref.py: domain-qualified pipe/concept references
- naming.py: shared naming/syntax rules
"""

from .models import DomainExports, Manifest, PackageDependency
from .parser import load_manifest, parse_methods_toml, serialize_manifest_to_toml
from .validate import SlugValidationResult, ValidationResult, validate_manifest, validate_slug

__all__ = [
    "DomainExports",
    "Manifest",
    "PackageDependency",
    "load_manifest",
    "parse_methods_toml",
    "serialize_manifest_to_toml",
    "SlugValidationResult",
    "ValidationResult",
    "validate_manifest",
    "validate_slug",
]

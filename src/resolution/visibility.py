"""Cross-domain pipe visibility rules for a package.

A pipe in another domain is reachable when that domain exports it or when it
is the domain's main_pipe. Packages without a manifest expose everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from constants import Constants
from exceptions import QualifiedRefError
from manifest.models import Manifest
from manifest.naming import is_reserved_domain_path
from manifest.qualified_ref import (
    QualifiedRef,
    has_cross_package_prefix,
    is_local_to,
    parse_pipe_ref,
    split_cross_package_ref,
)

from .bundles import BundleMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisibilityError:
    pipe_ref: str
    source_domain: str
    target_domain: str
    context: str
    message: str


class PackageVisibilityChecker:
    """Check pipe references of a package's bundles against its manifest."""

    def __init__(self, manifest: Optional[Manifest], bundle_metadatas: Sequence[BundleMetadata]):
        self.manifest = manifest
        self.bundle_metadatas = list(bundle_metadatas)

        self._exported_pipes: Dict[str, Set[str]] = {}
        if manifest is not None:
            for domain_path, domain_export in manifest.exports.items():
                self._exported_pipes[domain_path] = set(domain_export.pipes)

        # First main_pipe declared for a domain wins.
        self._main_pipes: Dict[str, str] = {}
        for metadata in self.bundle_metadatas:
            if metadata.main_pipe:
                self._main_pipes.setdefault(metadata.domain, metadata.main_pipe)

    def is_pipe_accessible_from(self, pipe_ref: QualifiedRef, source_domain: str) -> bool:
        if self.manifest is None:
            return True
        if pipe_ref.domain_path is None or is_local_to(pipe_ref, source_domain):
            return True

        target_domain = pipe_ref.domain_path
        if pipe_ref.local_code in self._exported_pipes.get(target_domain, set()):
            return True
        return self._main_pipes.get(target_domain) == pipe_ref.local_code

    def validate_all_pipe_references(self) -> List[VisibilityError]:
        if self.manifest is None:
            return []

        errors: List[VisibilityError] = []
        for metadata in self.bundle_metadatas:
            for pipe_ref_str, context in metadata.pipe_references:
                if has_cross_package_prefix(pipe_ref_str):
                    continue
                try:
                    ref = parse_pipe_ref(pipe_ref_str)
                except QualifiedRefError as e:
                    logger.debug("Skipping unparseable pipe reference %r: %s", pipe_ref_str, e)
                    continue
                if self.is_pipe_accessible_from(ref, metadata.domain):
                    continue
                target_domain = ref.domain_path or ""
                errors.append(VisibilityError(
                    pipe_ref=pipe_ref_str,
                    source_domain=metadata.domain,
                    target_domain=target_domain,
                    context=context,
                    message=(
                        f"Pipe '{pipe_ref_str}' referenced in {context} (domain '{metadata.domain}') "
                        f"is not exported by domain '{target_domain}'. "
                        f"Add it to [exports.{target_domain}] pipes in {Constants.MANIFEST_FILENAME}."
                    ),
                ))
        return errors

    def validate_cross_package_references(self) -> List[VisibilityError]:
        if self.manifest is None:
            return []

        known_aliases = set(self.manifest.dependencies)
        errors: List[VisibilityError] = []
        for metadata in self.bundle_metadatas:
            for pipe_ref_str, context in metadata.pipe_references:
                if not has_cross_package_prefix(pipe_ref_str):
                    continue
                alias, _ = split_cross_package_ref(pipe_ref_str)
                if alias in known_aliases:
                    continue
                errors.append(VisibilityError(
                    pipe_ref=pipe_ref_str,
                    source_domain=metadata.domain,
                    target_domain=alias,
                    context=context,
                    message=(
                        f"Cross-package reference '{pipe_ref_str}' in {context} "
                        f"(domain '{metadata.domain}'): alias '{alias}' is not declared "
                        f"in [dependencies] of {Constants.MANIFEST_FILENAME}."
                    ),
                ))
        return errors

    def validate_reserved_domains(self) -> List[VisibilityError]:
        errors: List[VisibilityError] = []
        for metadata in self.bundle_metadatas:
            if not is_reserved_domain_path(metadata.domain):
                continue
            first_segment = metadata.domain.split(".")[0]
            errors.append(VisibilityError(
                pipe_ref="",
                source_domain=metadata.domain,
                target_domain=first_segment,
                context="bundle domain declaration",
                message=(
                    f"Bundle domain '{metadata.domain}' uses reserved domain '{first_segment}'. "
                    f"Reserved domains ({', '.join(sorted(Constants.RESERVED_DOMAINS))}) "
                    "cannot be used in user packages."
                ),
            ))
        return errors


def check_visibility(
    manifest: Optional[Manifest],
    bundle_metadatas: Sequence[BundleMetadata],
) -> List[VisibilityError]:
    """Run every visibility check: reserved domains, exports, then aliases."""
    checker = PackageVisibilityChecker(manifest, bundle_metadatas)
    errors = checker.validate_reserved_domains()
    errors.extend(checker.validate_all_pipe_references())
    errors.extend(checker.validate_cross_package_references())
    return errors

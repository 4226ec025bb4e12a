"""Method discovery in a local directory tree."""

from __future__ import annotations

import logging
import os
from typing import List

from constants import Constants
from exceptions import DiscoveryError

from .methods import check_method
from .models import SOURCE_LOCAL, MethodsFile, ResolvedMethod, ResolvedRepo, SkippedMethod

logger = logging.getLogger(__name__)


def _collect_methods_files(method_dir: str) -> List[MethodsFile]:
    files: List[MethodsFile] = []
    for root, dirs, names in os.walk(method_dir):
        dirs[:] = sorted(d for d in dirs if d != ".git")
        for name in sorted(names):
            if not name.endswith(Constants.BUNDLE_EXTENSION):
                continue
            full_path = os.path.join(root, name)
            try:
                with open(full_path, "r", encoding="utf-8") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable bundle %s: %s", full_path, e)
                continue
            relative_path = os.path.relpath(full_path, method_dir).replace(os.sep, "/")
            files.append(MethodsFile(relative_path=relative_path, content=content))
    return sorted(files, key=lambda f: f.relative_path)


def resolve_from_local(dir_path: str) -> ResolvedRepo:
    """Enumerate ``methods/<slug>/`` under dir_path.

    Invalid method directories are collected in ``skipped``; they never abort
    the scan.

    Raises:
        DiscoveryError: dir_path or its methods/ folder is missing, or holds no
            method directories.
    """
    abs_path = os.path.abspath(dir_path)
    if not os.path.exists(abs_path):
        raise DiscoveryError(f"Directory not found: {abs_path}")
    if not os.path.isdir(abs_path):
        raise DiscoveryError(f'"{abs_path}" is not a directory.')

    methods_dir = os.path.join(abs_path, Constants.METHODS_DIRNAME)
    if not os.path.isdir(methods_dir):
        raise DiscoveryError(
            f'No {Constants.METHODS_DIRNAME}/ folder found in {abs_path}. '
            f'Expected a "{Constants.METHODS_DIRNAME}/" directory.'
        )

    slugs = sorted(entry for entry in os.listdir(methods_dir) if os.path.isdir(os.path.join(methods_dir, entry)))
    if not slugs:
        raise DiscoveryError(f"No methods found in {Constants.METHODS_DIRNAME}/ of {abs_path}.")

    methods: List[ResolvedMethod] = []
    skipped: List[SkippedMethod] = []
    for slug in slugs:
        method_dir = os.path.join(methods_dir, slug)
        toml_path = os.path.join(method_dir, Constants.MANIFEST_FILENAME)
        try:
            with open(toml_path, "r", encoding="utf-8") as f:
                raw_manifest = f.read()
        except FileNotFoundError:
            skipped.append(SkippedMethod(slug=slug, errors=[f"No {Constants.MANIFEST_FILENAME} found at {toml_path}."]))
            continue
        except (OSError, UnicodeDecodeError) as e:
            skipped.append(SkippedMethod(slug=slug, errors=[f"Cannot read {Constants.MANIFEST_FILENAME}: {e}"]))
            continue

        checked = check_method(slug, raw_manifest)
        if isinstance(checked, SkippedMethod):
            skipped.append(checked)
            continue
        methods.append(ResolvedMethod(
            slug=slug,
            manifest=checked,
            raw_manifest=raw_manifest,
            files=_collect_methods_files(method_dir),
        ))

    for item in skipped:
        logger.warning("Skipped method '%s': %s", item.slug, "; ".join(item.errors))

    return ResolvedRepo(
        methods=methods,
        skipped=skipped,
        source=SOURCE_LOCAL,
        repo_name=os.path.basename(abs_path) or "local",
        is_public=False,
    )

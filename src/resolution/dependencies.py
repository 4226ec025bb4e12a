"""Transitive dependency resolution with minimal version selection.

Resolution state is a flat table keyed by address. Every dependency edge
contributes the lowest tag satisfying its own constraint; an address is
selected at the highest of those minimums. Edges are processed in waves:
tag listings and fetches of one wave run on a thread pool, while the
coordinating thread is the only one that reads or writes the table.

Path overrides (``path = "../lib"``) are honoured in the root manifest and in
packages that are themselves path overrides. They skip version selection and
take precedence over VCS edges to the same address. A fetched remote package
is resolved purely by address and version, so its path overrides are ignored.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from exceptions import DependencyResolveError, TransitiveDependencyError, VersionResolutionError
from manifest.models import Manifest, PackageDependency
from manifest.parser import load_manifest
from versioning.semver import SemVerError, parse_constraint
from versioning.vcs import VersionTag, resolve_version_from_tags

from .bundles import collect_mthds_files
from .fetcher import PackageFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedDependency:
    """One package of the resolved closure.

    ``version`` is None for path overrides. ``exported_pipe_codes`` is None
    when the package has no manifest or no exports (every pipe is public).
    """
    alias: str
    address: str
    manifest: Optional[Manifest]
    package_root: str
    version: Optional[str] = None
    mthds_files: Tuple[str, ...] = ()
    exported_pipe_codes: Optional[FrozenSet[str]] = None


class _Kind(Enum):
    ROOT = "root"
    LOCAL = "local"
    REMOTE = "remote"


class _Status(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass(frozen=True)
class _Edge:
    requirer: Optional[str]
    alias: str
    dependency: PackageDependency
    base_dir: str
    local: bool


@dataclass
class _AddressState:
    address: str
    kind: _Kind
    status: _Status = _Status.PENDING
    selected: Optional[VersionTag] = None
    expanded_version: Optional[str] = None
    # version string -> (package root, manifest); local packages use the key "".
    fetched: Dict[str, Tuple[str, Optional[Manifest]]] = field(default_factory=dict)

    def selected_key(self) -> str:
        return str(self.selected.version) if self.selected is not None else ""

    def current(self) -> Tuple[str, Optional[Manifest]]:
        return self.fetched[self.selected_key()]

    def raise_selection(self, candidate: VersionTag) -> bool:
        """Keep the highest per-edge minimum; True when the selection moved."""
        if self.selected is None or candidate.version > self.selected.version:
            self.selected = candidate
            return True
        return False


def read_package_manifest(package_root: str) -> Optional[Manifest]:
    """Load ``METHODS.toml`` from a package root; None when there is none."""
    manifest_path = os.path.join(package_root, Constants.MANIFEST_FILENAME)
    if not os.path.isfile(manifest_path):
        return None
    return load_manifest(manifest_path)


class DependencyResolver:
    """Resolve the full transitive closure of a root manifest.

    Args:
        fetcher: Supplies tag listings and package directories.
        max_workers: Thread pool size for concurrent listing and fetching.
    """

    def __init__(self, fetcher: PackageFetcher, max_workers: int = Constants.RESOLVER_MAX_WORKERS):
        self.fetcher = fetcher
        self.max_workers = max(1, int(max_workers))
        self._table: Dict[str, _AddressState] = {}
        self._tags: Dict[str, List[VersionTag]] = {}

    # ---------- edges ----------

    @staticmethod
    def _edges_of(
        requirer: Optional[str],
        manifest: Optional[Manifest],
        base_dir: str,
        honour_paths: bool,
    ) -> List[_Edge]:
        if manifest is None:
            return []
        edges = []
        for alias in sorted(manifest.dependencies):
            dep = manifest.dependencies[alias]
            edges.append(_Edge(
                requirer=requirer,
                alias=alias,
                dependency=dep,
                base_dir=base_dir,
                local=honour_paths and dep.path is not None,
            ))
        return edges

    def _state_edges(self, state: _AddressState) -> List[_Edge]:
        package_root, manifest = state.current()
        return self._edges_of(state.address, manifest, package_root, state.kind is not _Kind.REMOTE)

    # ---------- local path overrides ----------

    def _visit_local(self, edge: _Edge) -> List[_Edge]:
        dep = edge.dependency
        dep_dir = os.path.normpath(os.path.join(edge.base_dir, dep.path))
        if not os.path.exists(dep_dir):
            raise DependencyResolveError(
                f"Dependency '{edge.alias}' local path '{dep.path}' resolves to '{dep_dir}' which does not exist"
            )
        if not os.path.isdir(dep_dir):
            raise DependencyResolveError(
                f"Dependency '{edge.alias}' local path '{dep.path}' resolves to '{dep_dir}' which is not a directory"
            )

        state = self._table.get(dep.address)
        if state is not None and state.kind is not _Kind.REMOTE:
            if state.kind is _Kind.LOCAL and state.current()[0] != dep_dir:
                logger.warning(
                    "Dependency '%s' (%s): keeping local path '%s', ignoring '%s'",
                    edge.alias, dep.address, state.current()[0], dep_dir,
                )
            return []

        if state is not None:
            logger.info("Local path override for %s replaces its VCS resolution", dep.address)

        state = _AddressState(address=dep.address, kind=_Kind.LOCAL, status=_Status.IN_PROGRESS)
        state.fetched[""] = (dep_dir, read_package_manifest(dep_dir))
        self._table[dep.address] = state

        edges = self._state_edges(state)
        state.status = _Status.DONE
        return edges

    # ---------- remote (VCS) edges ----------

    def _gather(self, calls: Dict[Any, Callable[[], Any]]) -> Dict[Any, Any]:
        """Run zero-argument calls on the pool; results come back on this thread."""
        if not calls:
            return {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(calls))) as pool:
            futures = {key: pool.submit(call) for key, call in calls.items()}
            return {key: futures[key].result() for key in calls}

    def _fetch_package(self, address: str, version_tag: VersionTag) -> Tuple[str, Optional[Manifest]]:
        package_root = self.fetcher.fetch(address, version_tag)
        return package_root, read_package_manifest(package_root)

    def _select(self, edge: _Edge) -> VersionTag:
        dep = edge.dependency
        try:
            return resolve_version_from_tags(self._tags[dep.address], dep.version)
        except VersionResolutionError as e:
            raise VersionResolutionError(f"Dependency '{edge.alias}' ({dep.address}): {e}") from e

    def _process_remote(self, edges: List[_Edge]) -> List[_Edge]:
        unlisted = sorted({edge.dependency.address for edge in edges} - set(self._tags))
        self._tags.update(self._gather({
            address: partial(self.fetcher.list_tags, address) for address in unlisted
        }))

        touched = set()
        for edge in edges:
            address = edge.dependency.address
            state = self._table.get(address)
            if state is None:
                state = _AddressState(address=address, kind=_Kind.REMOTE)
                self._table[address] = state
            if state.raise_selection(self._select(edge)) and state.status is _Status.DONE:
                logger.info("Raising %s to %s", address, state.selected.version)
            touched.add(address)

        to_fetch = {}
        for address in sorted(touched):
            state = self._table[address]
            if state.selected_key() not in state.fetched:
                state.status = _Status.IN_PROGRESS
                to_fetch[address] = partial(self._fetch_package, address, state.selected)
        for address, fetched in self._gather(to_fetch).items():
            self._table[address].fetched[self._table[address].selected_key()] = fetched

        next_edges: List[_Edge] = []
        for address in sorted(touched):
            state = self._table[address]
            if state.expanded_version == state.selected_key():
                continue
            state.expanded_version = state.selected_key()
            next_edges.extend(self._state_edges(state))
            state.status = _Status.DONE
        return next_edges

    # ---------- driver ----------

    def _run_waves(self, edges: List[_Edge]) -> None:
        wave = 0
        while edges:
            wave += 1
            next_edges: List[_Edge] = []
            remote: List[_Edge] = []
            for edge in edges:
                state = self._table.get(edge.dependency.address)
                if state is not None and state.kind is _Kind.ROOT:
                    continue
                if edge.local:
                    next_edges.extend(self._visit_local(edge))
                else:
                    remote.append(edge)

            remote = [e for e in remote if self._table.get(e.dependency.address) is None
                      or self._table[e.dependency.address].kind is _Kind.REMOTE]
            next_edges.extend(self._process_remote(remote))

            if is_debug_enabled(logger):
                logger.debug("Resolution wave complete", extra=extra_context(
                    event="resolve", component="dependencies", action="wave",
                    count=len(edges), wave=wave, outcome="success",
                ))
            edges = next_edges

    def _collect_live(self, root_edges: List[_Edge]) -> List[ResolvedDependency]:
        """Walk the graph of selected versions and check every constraint on it."""
        constraints: Dict[str, List[str]] = {}
        alias_of: Dict[str, str] = {}
        queue = deque(root_edges)
        while queue:
            edge = queue.popleft()
            address = edge.dependency.address
            state = self._table[address]
            if state.kind is _Kind.ROOT:
                continue
            if state.kind is _Kind.REMOTE:
                constraints.setdefault(address, []).append(edge.dependency.version)
            if address in alias_of:
                continue
            alias_of[address] = edge.alias
            queue.extend(self._state_edges(state))

        for address in sorted(constraints):
            state = self._table[address]
            unsatisfied = []
            for raw in constraints[address]:
                try:
                    ok = parse_constraint(raw).match(state.selected.version)
                except SemVerError:
                    ok = False
                if not ok:
                    unsatisfied.append(raw)
            if unsatisfied:
                raise TransitiveDependencyError(
                    f"No version of '{address}' satisfies all constraints: "
                    f"{', '.join(constraints[address])} (selected {state.selected.version}, "
                    f"unsatisfied: {', '.join(unsatisfied)})"
                )

        resolved = []
        for address, alias in alias_of.items():
            state = self._table[address]
            package_root, manifest = state.current()
            exported = manifest.exported_pipe_codes() if manifest is not None else None
            resolved.append(ResolvedDependency(
                alias=alias,
                address=address,
                manifest=manifest,
                package_root=package_root,
                version=str(state.selected.version) if state.kind is _Kind.REMOTE else None,
                mthds_files=tuple(collect_mthds_files(package_root)),
                exported_pipe_codes=frozenset(exported) if exported is not None else None,
            ))
        resolved.sort(key=lambda dep: (dep.alias, dep.address))
        return resolved

    def resolve(self, manifest: Manifest, package_root: str) -> List[ResolvedDependency]:
        """Resolve every dependency reachable from the root manifest.

        Args:
            manifest: The root package manifest.
            package_root: Directory holding the root manifest; path overrides
                are resolved relative to it.

        Returns:
            The live closure, sorted by (alias, address).

        Raises:
            DependencyResolveError: A path override is missing or not a directory.
            VersionResolutionError: An edge has no satisfying tag.
            TransitiveDependencyError: Constraints on one address conflict.
            VCSFetchError: Listing or cloning failed.
        """
        root_dir = os.path.abspath(package_root)
        self._table = {}
        self._tags = {}
        root_state = _AddressState(address=manifest.address, kind=_Kind.ROOT, status=_Status.DONE)
        root_state.fetched[""] = (root_dir, manifest)
        self._table[manifest.address] = root_state

        root_edges = self._edges_of(None, manifest, root_dir, honour_paths=True)
        with Timer() as t:
            self._run_waves(root_edges)
            resolved = self._collect_live(root_edges)

        logger.info("Resolved %d dependencies for %s", len(resolved), manifest.address)
        if is_debug_enabled(logger):
            logger.debug("Dependency resolution complete", extra=extra_context(
                event="resolve", component="dependencies", action="resolve",
                target=manifest.address, outcome="success",
                count=len(resolved), duration_ms=t.duration_ms(),
            ))
        return resolved


def resolve_all_dependencies(
    manifest: Manifest,
    package_root: str,
    fetcher: PackageFetcher,
    max_workers: int = Constants.RESOLVER_MAX_WORKERS,
) -> List[ResolvedDependency]:
    """Resolve the transitive closure of manifest with a fresh resolver."""
    return DependencyResolver(fetcher, max_workers=max_workers).resolve(manifest, package_root)

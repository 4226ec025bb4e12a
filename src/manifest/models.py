"""Data models for METHODS.toml manifests."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class DomainExports:
    """Pipes exported by one (flattened, dotted) domain path."""
    pipes: List[str]


@dataclass(frozen=True)
class PackageDependency:
    """A declared dependency; a set path bypasses version resolution."""
    address: str
    version: str
    path: Optional[str] = None


@dataclass(frozen=True)
class Manifest:
    """Parsed METHODS.toml.

    Export domains are flattened to dotted paths (e.g. "legal.contracts").
    """
    address: str
    version: str
    description: str
    authors: List[str] = field(default_factory=list)
    license: Optional[str] = None
    mthds_version: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    main_pipe: Optional[str] = None
    exports: Dict[str, DomainExports] = field(default_factory=dict)
    dependencies: Dict[str, PackageDependency] = field(default_factory=dict)

    def exported_pipe_codes(self) -> Optional[set]:
        """Return all exported pipe codes, or None when every pipe is public."""
        if not self.exports:
            return None
        exported = set()
        for domain_export in self.exports.values():
            exported.update(domain_export.pipes)
        return exported

"""Data models for repository discovery results."""

from dataclasses import dataclass, field
from typing import List, Optional

from manifest.models import Manifest

SOURCE_LOCAL = "local"
SOURCE_GITHUB = "github"


@dataclass(frozen=True)
class ParsedAddress:
    """A repository address: ``org/repo[/subpath]``."""
    org: str
    repo: str
    subpath: Optional[str] = None


@dataclass(frozen=True)
class MethodsFile:
    """A bundle file, relative to its method directory."""
    relative_path: str
    content: str


@dataclass
class ResolvedMethod:
    slug: str
    manifest: Manifest
    raw_manifest: str
    files: List[MethodsFile] = field(default_factory=list)


@dataclass
class SkippedMethod:
    """A method directory that failed validation, with every reason found."""
    slug: str
    errors: List[str] = field(default_factory=list)


@dataclass
class ResolvedRepo:
    """Outcome of enumerating a repository's ``methods/`` directory."""
    methods: List[ResolvedMethod]
    skipped: List[SkippedMethod]
    source: str
    repo_name: str
    is_public: bool = False

"""Error taxonomy for the package manager.

Every error raised by the resolution engine derives from MthdsPackageError so
callers can catch one base class and still report the originating kind.
"""


class MthdsPackageError(Exception):
    """Base class for all package manager errors."""

    @property
    def kind(self) -> str:
        """Return the error kind (class name) for user-facing output."""
        return type(self).__name__


class ManifestError(MthdsPackageError):
    """Malformed or incomplete METHODS.toml."""


class ManifestParseError(ManifestError):
    """METHODS.toml is not valid TOML."""


class ManifestValidationError(ManifestError):
    """METHODS.toml parsed but violates the manifest schema."""


class VCSFetchError(MthdsPackageError):
    """A git subprocess (ls-remote / clone) failed or timed out."""

    retryable = False


class VersionResolutionError(MthdsPackageError):
    """No tags, no matching tag, or an unparseable constraint."""


class PackageCacheError(MthdsPackageError):
    """Reading or writing the local package cache failed."""


class LockFileError(MthdsPackageError):
    """methods.lock is malformed or cannot be generated."""


class IntegrityError(MthdsPackageError):
    """A cached package does not match its locked hash."""


class DependencyResolveError(MthdsPackageError):
    """A single dependency edge could not be resolved."""


class TransitiveDependencyError(MthdsPackageError):
    """Constraints on one address cannot be satisfied together."""


class QualifiedRefError(MthdsPackageError):
    """A pipe or concept reference violates the reference grammar."""


class DiscoveryError(MthdsPackageError):
    """A repository cannot be enumerated for method directories."""

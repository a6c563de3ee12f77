"""Exception hierarchy for resolution, installation and candidate builds."""

from __future__ import annotations

from typing import Iterable, List, Sequence


class DepstageError(Exception):
    """Base class for all project errors."""


class ResolutionError(DepstageError):
    """Base class for errors raised by the channel artifact resolver."""


class MissingVersionError(ResolutionError):
    """The coordinate carries neither a version nor a version range."""


class AlreadyResolvedError(ResolutionError):
    """The coordinate was already resolved in this session."""


class ArtifactNotFoundError(ResolutionError):
    """No channel (or no installed module) can satisfy the request."""

    def __init__(self, message: str, group_id: str = "", artifact_id: str = ""):
        super().__init__(message)
        self.group_id = group_id
        self.artifact_id = artifact_id


class RepositoryError(DepstageError):
    """A backing repository could not be queried or read."""


class UnresolvedArtifactsError(DepstageError):
    """Raised by a planner when one or more coordinates could not be resolved."""

    def __init__(self, message: str, unresolved: Sequence = (), attempted_repositories: Sequence[str] = ()):
        super().__init__(message)
        self.unresolved = list(unresolved)
        self.attempted_repositories = list(attempted_repositories)


class ArtifactResolutionException(DepstageError):
    """Aggregate resolution failure surfaced to the user for diagnosis."""

    def __init__(
        self,
        message: str,
        unresolved: Iterable = (),
        attempted_repositories: Iterable[str] = (),
        offline: bool = False,
    ):
        super().__init__(message)
        self.unresolved = list(unresolved)
        self.attempted_repositories = list(attempted_repositories)
        self.offline = offline

    def describe(self) -> str:
        """Multi-line description listing unresolved coordinates and repositories."""
        lines: List[str] = [str(self)]
        if self.unresolved:
            lines.append("Unresolved artifacts:")
            lines.extend(f"  - {c}" for c in self.unresolved)
        if self.attempted_repositories:
            lines.append("Attempted repositories:")
            lines.extend(f"  - {r}" for r in self.attempted_repositories)
        if self.offline:
            lines.append(
                "Offline mode is enabled: only artifacts already present in the "
                "local repository can be resolved."
            )
        return "\n".join(lines)


class InstallationError(DepstageError):
    """Applying content to the installed module tree failed."""


class MetadataError(DepstageError):
    """Installation metadata is missing or malformed."""


class MetadataWriteError(MetadataError):
    """Candidate metadata could not be written; the build is aborted."""


class CacheWriteError(DepstageError):
    """Content could not be recorded in the artifact cache (non-fatal)."""


class ManifestVersionLookupError(DepstageError):
    """Manifest versions used by the channels could not be determined (non-fatal)."""


class CandidateError(DepstageError):
    """A candidate directory is invalid or cannot be managed."""

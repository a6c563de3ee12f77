"""Data models for artifact coordinates and resolution results."""

from dataclasses import dataclass, field, replace
from typing import List, NamedTuple, Optional, Tuple


class ArtifactKey(NamedTuple):
    """Version-less identity of an artifact."""
    group_id: str
    artifact_id: str
    classifier: str
    extension: str

    def __str__(self) -> str:
        base = f"{self.group_id}:{self.artifact_id}:{self.extension}"
        return f"{base}:{self.classifier}" if self.classifier else base


@dataclass(frozen=True)
class ArtifactCoordinate:
    """Identity of a component artifact plus its requested or resolved version.

    An input coordinate carries a ``version`` or a ``version_range``. A resolved
    coordinate carries both a concrete ``version`` and a ``path`` to its content.
    """
    group_id: str
    artifact_id: str
    extension: str = "jar"
    classifier: str = ""
    version: Optional[str] = None
    version_range: Optional[str] = None
    path: Optional[str] = None

    @property
    def key(self) -> ArtifactKey:
        """Return the version-less key used for uniqueness within a session."""
        return ArtifactKey(self.group_id, self.artifact_id, self.classifier or "", self.extension)

    @property
    def is_resolved(self) -> bool:
        """True once the coordinate carries a concrete version and content."""
        return bool(self.version) and self.path is not None

    def resolved(self, version: str, path: str) -> "ArtifactCoordinate":
        """Return a resolved copy of this coordinate; the range is dropped."""
        return replace(self, version=version, version_range=None, path=path)

    def with_version(self, version: str) -> "ArtifactCoordinate":
        """Return an unresolved copy pinned to ``version``."""
        return replace(self, version=version, version_range=None, path=None)

    def file_name(self, version: Optional[str] = None) -> str:
        """Return the conventional repository file name for this artifact."""
        ver = version or self.version or ""
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact_id}-{ver}{suffix}.{self.extension}"

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.extension]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.version_range or self.version or "?")
        return ":".join(parts)

    @classmethod
    def parse(cls, token: str) -> "ArtifactCoordinate":
        """Parse ``g:a[:ext[:classifier]]:version-or-range``.

        A last segment starting with ``[`` or ``(`` is taken as a range.
        Two segments mean ``groupId:artifactId`` with no version.
        """
        parts = [p.strip() for p in token.strip().split(":")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Invalid artifact coordinate: {token!r}")
        group_id, artifact_id = parts[0], parts[1]
        extension, classifier, spec = "jar", "", None
        if len(parts) == 3:
            spec = parts[2]
        elif len(parts) == 4:
            extension, spec = parts[2], parts[3]
        elif len(parts) == 5:
            extension, classifier, spec = parts[2], parts[3], parts[4]
        elif len(parts) > 5:
            raise ValueError(f"Invalid artifact coordinate: {token!r}")

        version = version_range = None
        if spec:
            if spec[0] in "[(":
                version_range = spec
            else:
                version = spec
        return cls(group_id, artifact_id, extension or "jar", classifier, version, version_range)


@dataclass
class VersionRangeResult:
    """Versions the configured channels offer for a coordinate."""
    coordinate: ArtifactCoordinate
    range_spec: Optional[str]
    versions: List[str] = field(default_factory=list)
    # (channel name, version) pairs in channel priority order
    offers: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def highest(self) -> Optional[str]:
        """Return the highest offered version or None."""
        return self.versions[-1] if self.versions else None

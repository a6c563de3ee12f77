"""Record of the manifest versions that satisfied each channel during a build."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from ..channels.models import Channel
from ..channels.session import ChannelSession, RepositoryFactory, read_url
from ..errors import ManifestVersionLookupError, MetadataError, RepositoryError
from ..versioning.models import ArtifactCoordinate

logger = logging.getLogger(__name__)

MAVEN = "maven"
URL = "url"
OPEN = "open"


@dataclass(frozen=True)
class ManifestEntry:
    """Manifest used by one channel.

    ``version`` is the Maven version for maven manifests, a content hash for
    URL manifests and None for channels without a manifest.
    """
    channel: str
    kind: str
    reference: str
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"channel": self.channel, "kind": self.kind, "reference": self.reference}
        if self.version is not None:
            data["version"] = self.version
        return data


@dataclass(frozen=True)
class ManifestVersionRecord:
    """Immutable per-build record of manifest versions and resolved artifacts."""
    entries: Tuple[ManifestEntry, ...] = ()
    artifacts: Tuple[str, ...] = field(default_factory=tuple)

    def versions(self) -> Dict[str, Optional[str]]:
        """Map channel name to the manifest version used."""
        return {entry.channel: entry.version for entry in self.entries}

    def with_artifacts(self, resolved: Iterable[ArtifactCoordinate]) -> "ManifestVersionRecord":
        """Return a copy carrying the resolved artifact versions."""
        return replace(self, artifacts=tuple(sorted(str(c) for c in resolved)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifests": [e.to_dict() for e in self.entries],
            "artifacts": list(self.artifacts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestVersionRecord":
        try:
            entries = tuple(
                ManifestEntry(str(e["channel"]), str(e["kind"]), str(e["reference"]), e.get("version"))
                for e in data.get("manifests") or []
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise MetadataError(f"Malformed manifest version record: {exc}") from exc
        return cls(entries, tuple(str(a) for a in data.get("artifacts") or []))

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> "ManifestVersionRecord":
        try:
            return cls.from_dict(yaml.safe_load(text) or {})
        except yaml.YAMLError as exc:
            raise MetadataError(f"Malformed manifest version record: {exc}") from exc

    def summary(self) -> str:
        parts = [f"{e.channel}={e.reference}:{e.version or '-'}" for e in self.entries]
        return ", ".join(parts) or "<no channels>"


class ManifestVersionResolver:
    """Looks up the current manifest version of every channel."""

    def __init__(self, repository_factory: Optional[RepositoryFactory] = None):
        self._repository_factory = repository_factory

    def current_versions(self, channels: List[Channel]) -> ManifestVersionRecord:
        """Build a record for ``channels``.

        Raises:
            ManifestVersionLookupError: a manifest could not be located or read.
        """
        session = ChannelSession(channels, self._repository_factory)
        entries = []
        try:
            for opened in session.opened_channels:
                ref = opened.channel.manifest
                if ref is None:
                    repos = ",".join(r.id for r in opened.channel.repositories)
                    entries.append(ManifestEntry(opened.name, OPEN, repos))
                elif ref.is_maven:
                    version = ref.version or opened.latest_version(ref.coordinate())
                    if version is None:
                        raise ManifestVersionLookupError(f"No version of manifest {ref} in channel {opened.name}")
                    entries.append(ManifestEntry(opened.name, MAVEN, f"{ref.group_id}:{ref.artifact_id}", version))
                else:
                    content = read_url(str(ref.url))
                    digest = hashlib.sha1(content.encode("utf-8")).hexdigest()
                    entries.append(ManifestEntry(opened.name, URL, str(ref.url), digest))
        except RepositoryError as exc:
            raise ManifestVersionLookupError(f"Unable to retrieve current manifest versions: {exc}") from exc
        finally:
            session.close()
        return ManifestVersionRecord(tuple(entries))

    __call__ = current_versions

"""Channel and manifest models with their YAML representation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..constants import Constants
from ..errors import MetadataError
from ..versioning.models import ArtifactCoordinate


@dataclass(frozen=True)
class RepositoryDef:
    """A backing Maven repository of a channel."""
    id: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "url": self.url}


@dataclass(frozen=True)
class ManifestRef:
    """Where a channel's manifest comes from: Maven coordinates or a URL."""
    group_id: Optional[str] = None
    artifact_id: Optional[str] = None
    version: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_maven(self) -> bool:
        return bool(self.group_id and self.artifact_id)

    def coordinate(self) -> ArtifactCoordinate:
        """Coordinate of the manifest artifact; unversioned when not pinned."""
        return ArtifactCoordinate(
            self.group_id or "",
            self.artifact_id or "",
            extension=Constants.MANIFEST_EXTENSION,
            classifier=Constants.MANIFEST_CLASSIFIER,
            version=self.version,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.is_maven:
            maven: Dict[str, str] = {"groupId": self.group_id or "", "artifactId": self.artifact_id or ""}
            if self.version:
                maven["version"] = self.version
            return {"maven": maven}
        return {"url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestRef":
        maven = data.get("maven")
        if isinstance(maven, dict):
            if not maven.get("groupId") or not maven.get("artifactId"):
                raise MetadataError("Manifest maven reference requires groupId and artifactId")
            return cls(
                group_id=str(maven["groupId"]),
                artifact_id=str(maven["artifactId"]),
                version=str(maven["version"]) if maven.get("version") else None,
            )
        if data.get("url"):
            return cls(url=str(data["url"]))
        raise MetadataError(f"Manifest reference needs 'maven' or 'url': {data!r}")

    def __str__(self) -> str:
        if self.is_maven:
            suffix = f":{self.version}" if self.version else ""
            return f"{self.group_id}:{self.artifact_id}{suffix}"
        return str(self.url)


@dataclass(frozen=True)
class Channel:
    """A prioritized source of artifacts; priority is its position in the list."""
    name: str
    repositories: Tuple[RepositoryDef, ...] = ()
    manifest: Optional[ManifestRef] = None
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "repositories", tuple(self.repositories))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"schemaVersion": "2.0.0", "name": self.name}
        if self.description:
            data["description"] = self.description
        data["repositories"] = [r.to_dict() for r in self.repositories]
        if self.manifest is not None:
            data["manifest"] = self.manifest.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Channel":
        if not isinstance(data, dict) or not data.get("name"):
            raise MetadataError(f"Channel definition requires a name: {data!r}")
        repos = []
        for repo in data.get("repositories") or []:
            if not repo.get("id") or not repo.get("url"):
                raise MetadataError(f"Repository of channel {data['name']} needs id and url")
            repos.append(RepositoryDef(str(repo["id"]), str(repo["url"])))
        manifest = data.get("manifest")
        return cls(
            name=str(data["name"]),
            repositories=tuple(repos),
            manifest=ManifestRef.from_dict(manifest) if manifest else None,
            description=data.get("description"),
        )


@dataclass
class Stream:
    """Allowed version(s) of one artifact within a manifest."""
    group_id: str
    artifact_id: str
    version: Optional[str] = None
    version_pattern: Optional[str] = None

    def allows(self, ver: str) -> bool:
        """Return True if ``ver`` is permitted by this stream."""
        if self.version is not None:
            return ver == self.version
        if self.version_pattern is not None:
            return re.fullmatch(self.version_pattern, ver) is not None
        return False

    def to_dict(self) -> Dict[str, str]:
        data = {"groupId": self.group_id, "artifactId": self.artifact_id}
        if self.version is not None:
            data["version"] = self.version
        if self.version_pattern is not None:
            data["versionPattern"] = self.version_pattern
        return data


@dataclass
class ChannelManifest:
    """The set of streams constraining which versions a channel may provide."""
    name: Optional[str] = None
    id: Optional[str] = None
    description: Optional[str] = None
    streams: List[Stream] = field(default_factory=list)

    def find_stream(self, group_id: str, artifact_id: str) -> Optional[Stream]:
        """Exact match first, then a ``groupId:*`` wildcard stream."""
        wildcard = None
        for stream in self.streams:
            if stream.group_id != group_id:
                continue
            if stream.artifact_id == artifact_id:
                return stream
            if stream.artifact_id == "*":
                wildcard = stream
        return wildcard

    def update_version(self, coordinate: ArtifactCoordinate) -> None:
        """Pin the stream of ``coordinate`` to its version, adding it if missing."""
        for stream in self.streams:
            if stream.group_id == coordinate.group_id and stream.artifact_id == coordinate.artifact_id:
                stream.version = coordinate.version
                stream.version_pattern = None
                return
        self.streams.append(Stream(coordinate.group_id, coordinate.artifact_id, coordinate.version))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"schemaVersion": Constants.MANIFEST_SCHEMA_VERSION}
        for key in ("name", "id", "description"):
            value = getattr(self, key)
            if value:
                data[key] = value
        data["streams"] = [s.to_dict() for s in sorted(self.streams, key=lambda s: (s.group_id, s.artifact_id))]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelManifest":
        if not isinstance(data, dict):
            raise MetadataError("Manifest document must be a mapping")
        streams = []
        for entry in data.get("streams") or []:
            if not entry.get("groupId") or not entry.get("artifactId"):
                raise MetadataError(f"Stream requires groupId and artifactId: {entry!r}")
            streams.append(Stream(
                str(entry["groupId"]),
                str(entry["artifactId"]),
                str(entry["version"]) if entry.get("version") is not None else None,
                entry.get("versionPattern"),
            ))
        return cls(data.get("name"), data.get("id"), data.get("description"), streams)


def manifest_from_yaml(text: str) -> ChannelManifest:
    """Parse a manifest document."""
    try:
        return ChannelManifest.from_dict(yaml.safe_load(text) or {})
    except yaml.YAMLError as exc:
        raise MetadataError(f"Malformed manifest: {exc}") from exc


def manifest_to_yaml(manifest: ChannelManifest) -> str:
    return yaml.safe_dump(manifest.to_dict(), sort_keys=False)


def channels_from_yaml(text: str) -> List[Channel]:
    """Parse a channel list; a single mapping is accepted as a one-element list."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MetadataError(f"Malformed channel configuration: {exc}") from exc
    if data is None:
        return []
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise MetadataError("Channel configuration must be a list of channels")
    return [Channel.from_dict(entry) for entry in data]


def channels_to_yaml(channels: List[Channel]) -> str:
    return yaml.safe_dump([c.to_dict() for c in channels], sort_keys=False)

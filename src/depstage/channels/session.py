"""An ordered set of channels opened for one resolution session."""
from __future__ import annotations

import logging
import urllib.parse
import urllib.request
from typing import Callable, Dict, List, Optional, Tuple

from ..common import http_client
from ..common.logging_utils import extra_context
from ..errors import MetadataError, RepositoryError
from ..versioning.models import ArtifactCoordinate, VersionRangeResult
from ..versioning.ranges import VersionRange, sort_versions
from .models import Channel, ChannelManifest, ManifestRef, RepositoryDef, Stream, manifest_from_yaml
from .repository import ArtifactRepository, make_repository

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[RepositoryDef], ArtifactRepository]


def read_url(url: str) -> str:
    """Read a manifest document from a file path, file: URL or http(s) URL."""
    scheme = urllib.parse.urlsplit(url).scheme.lower()
    if scheme in ("http", "https"):
        status_code, _, text = http_client.robust_get(url)
        if status_code != 200:
            raise RepositoryError(f"Unable to read {url}: {status_code or text}")
        return text
    path = urllib.request.url2pathname(urllib.parse.urlsplit(url).path) if scheme == "file" else url
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise RepositoryError(f"Unable to read {url}: {exc}") from exc


class OpenedChannel:
    """A channel with live repositories and its manifest loaded on first use."""

    def __init__(self, channel: Channel, repositories: List[ArtifactRepository]):
        self.channel = channel
        self.repositories = repositories
        self._manifest: Optional[ChannelManifest] = None
        self._manifest_loaded = False
        self.manifest_version: Optional[str] = None
        self.manifest_artifact: Optional[ArtifactCoordinate] = None

    @property
    def name(self) -> str:
        return self.channel.name

    @property
    def manifest(self) -> Optional[ChannelManifest]:
        """The channel manifest, or None for an open channel."""
        if not self._manifest_loaded:
            self._manifest = self._load_manifest(self.channel.manifest)
            self._manifest_loaded = True
        return self._manifest

    def _load_manifest(self, ref: Optional[ManifestRef]) -> Optional[ChannelManifest]:
        if ref is None:
            return None
        try:
            if ref.is_maven:
                text = self._read_maven_manifest(ref)
            else:
                text = read_url(str(ref.url))
            manifest = manifest_from_yaml(text)
        except MetadataError as exc:
            raise RepositoryError(f"Invalid manifest {ref} for channel {self.name}: {exc}") from exc
        logger.debug(
            "Loaded channel manifest",
            extra=extra_context(event="manifest_load", component="channel_session",
                                channel=self.name, target=str(ref)),
        )
        return manifest

    def _read_maven_manifest(self, ref: ManifestRef) -> str:
        coordinate = ref.coordinate()
        version = ref.version
        if version is None:
            version = self.latest_version(coordinate)
            if version is None:
                raise RepositoryError(f"Manifest {ref} not found in channel {self.name}")
        path, _ = self.fetch(coordinate, version)
        self.manifest_version = version
        self.manifest_artifact = coordinate.resolved(version, path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except OSError as exc:
            raise RepositoryError(f"Unable to read manifest {path}: {exc}") from exc

    def repository_versions(self, coordinate: ArtifactCoordinate) -> List[str]:
        """Union of versions held by the channel's repositories."""
        versions = set()
        for repo in self.repositories:
            versions.update(repo.list_versions(coordinate))
        return sort_versions(versions)

    def latest_version(self, coordinate: ArtifactCoordinate) -> Optional[str]:
        versions = self.repository_versions(coordinate)
        return versions[-1] if versions else None

    def available_versions(self, coordinate: ArtifactCoordinate) -> List[str]:
        """Versions this channel may provide, honouring its manifest."""
        manifest = self.manifest
        if manifest is None:
            return self.repository_versions(coordinate)
        stream = manifest.find_stream(coordinate.group_id, coordinate.artifact_id)
        if stream is None:
            return []
        return [v for v in self.repository_versions(coordinate) if stream.allows(v)]

    def fetch(self, coordinate: ArtifactCoordinate, version: str) -> Tuple[str, ArtifactRepository]:
        """Fetch content from the first repository holding ``version``."""
        for repo in self.repositories:
            path = repo.fetch(coordinate, version)
            if path is not None:
                return path, repo
        raise RepositoryError(f"{coordinate.file_name(version)} not available in channel {self.name}")

    def close(self) -> None:
        for repo in self.repositories:
            repo.close()


class ChannelSession:
    """Ordered, read-only view over the configured channels.

    Not safe for concurrent use; each build opens its own session.
    """

    def __init__(self, channels: List[Channel], repository_factory: Optional[RepositoryFactory] = None):
        factory = repository_factory or make_repository
        self.channels = list(channels)
        self._opened = [
            OpenedChannel(channel, [factory(defn) for defn in channel.repositories])
            for channel in self.channels
        ]
        self._recorded: Dict[Tuple[str, str], str] = {}
        self._closed = False

    @property
    def opened_channels(self) -> List[OpenedChannel]:
        return list(self._opened)

    def find_latest(self, coordinate: ArtifactCoordinate,
                    version_range: VersionRange) -> Optional[Tuple[OpenedChannel, str]]:
        """Return the first channel offering a version in range, with its best version.

        Channels after the first match are not consulted.
        """
        for opened in self._opened:
            matching = version_range.filter(opened.available_versions(coordinate))
            if matching:
                return opened, matching[-1]
        return None

    def version_range(self, coordinate: ArtifactCoordinate,
                      version_range: Optional[VersionRange]) -> VersionRangeResult:
        """Collect versions offered by every channel, optionally restricted to a range."""
        result = VersionRangeResult(coordinate, str(version_range) if version_range else None)
        seen = set()
        for opened in self._opened:
            versions = opened.available_versions(coordinate)
            if version_range is not None:
                versions = version_range.filter(versions)
            for ver in versions:
                result.offers.append((opened.name, ver))
                seen.add(ver)
        result.versions = sort_versions(seen)
        return result

    def record(self, coordinate: ArtifactCoordinate) -> None:
        """Remember the version resolved for ``coordinate``."""
        if coordinate.version:
            self._recorded[(coordinate.group_id, coordinate.artifact_id)] = coordinate.version

    def recorded_manifest(self) -> ChannelManifest:
        """A manifest pinning every artifact resolved so far."""
        streams = [Stream(g, a, v) for (g, a), v in sorted(self._recorded.items())]
        return ChannelManifest(name="Recorded manifest", streams=streams)

    def manifest_artifacts(self) -> List[ArtifactCoordinate]:
        """Maven manifests loaded so far, as resolved coordinates."""
        return [o.manifest_artifact for o in self._opened if o.manifest_artifact is not None]

    def attempted_repositories(self) -> List[str]:
        urls = []
        for channel in self.channels:
            for repo in channel.repositories:
                if repo.url not in urls:
                    urls.append(repo.url)
        return urls

    def close(self) -> None:
        """Close every repository; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for opened in self._opened:
            opened.close()

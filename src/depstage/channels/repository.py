"""Maven-layout artifact repositories backed by the file system or HTTP."""
from __future__ import annotations

import logging
import os
import urllib.parse
import urllib.request
import xml.etree.ElementTree as ET
from typing import List, Optional

import requests

from ..common import http_client
from ..common.logging_utils import extra_context, safe_url
from ..constants import Constants
from ..errors import RepositoryError
from ..versioning.models import ArtifactCoordinate
from .models import RepositoryDef

logger = logging.getLogger(__name__)


def artifact_dir(coordinate: ArtifactCoordinate) -> str:
    """Relative directory holding every version of an artifact."""
    return "/".join(coordinate.group_id.split(".") + [coordinate.artifact_id])


def artifact_path(coordinate: ArtifactCoordinate, version: str) -> str:
    """Relative path of one artifact file in Maven layout."""
    return f"{artifact_dir(coordinate)}/{version}/{coordinate.file_name(version)}"


def parse_maven_metadata(text: str) -> List[str]:
    """Extract versioning/versions/version entries from maven-metadata.xml."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise RepositoryError(f"Malformed maven-metadata.xml: {exc}") from exc
    versions = []
    versioning = root.find("versioning")
    if versioning is not None:
        versions_elem = versioning.find("versions")
        if versions_elem is not None:
            for version_elem in versions_elem.findall("version"):
                if version_elem.text and version_elem.text.strip():
                    versions.append(version_elem.text.strip())
    return versions


class ArtifactRepository:
    """Base class for repositories that list versions and fetch content."""

    def __init__(self, repo_id: str, url: str):
        self.id = repo_id
        self.url = url

    def list_versions(self, coordinate: ArtifactCoordinate) -> List[str]:
        """Return every version of ``coordinate`` held by the repository."""
        raise NotImplementedError

    def fetch(self, coordinate: ArtifactCoordinate, version: str) -> Optional[str]:
        """Return a local path to the artifact content, or None if absent."""
        raise NotImplementedError

    def close(self) -> None:
        """Release transport resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r}, {safe_url(self.url)!r})"


class LocalRepository(ArtifactRepository):
    """Repository laid out on the local file system."""

    def __init__(self, repo_id: str, url: str):
        super().__init__(repo_id, url)
        if url.startswith("file:"):
            self.root = urllib.request.url2pathname(urllib.parse.urlsplit(url).path)
        else:
            self.root = url

    def list_versions(self, coordinate: ArtifactCoordinate) -> List[str]:
        base = os.path.join(self.root, artifact_dir(coordinate))
        if not os.path.isdir(base):
            return []
        try:
            entries = os.listdir(base)
        except OSError as exc:
            raise RepositoryError(f"Unable to list {base}: {exc}") from exc
        return [
            entry for entry in entries
            if os.path.isfile(os.path.join(base, entry, coordinate.file_name(entry)))
        ]

    def fetch(self, coordinate: ArtifactCoordinate, version: str) -> Optional[str]:
        path = os.path.join(self.root, artifact_path(coordinate, version))
        return path if os.path.isfile(path) else None


class HttpRepository(ArtifactRepository):
    """Remote repository; downloads land in a local mirror directory.

    In offline mode only the mirror is consulted.
    """

    def __init__(self, repo_id: str, url: str, mirror_root: Optional[str] = None,
                 offline: Optional[bool] = None):
        super().__init__(repo_id, url.rstrip("/"))
        self.mirror = LocalRepository(repo_id, os.path.join(mirror_root or Constants.LOCAL_REPOSITORY, repo_id))
        self.offline = Constants.OFFLINE if offline is None else offline
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def list_versions(self, coordinate: ArtifactCoordinate) -> List[str]:
        if self.offline:
            return self.mirror.list_versions(coordinate)
        url = f"{self.url}/{artifact_dir(coordinate)}/maven-metadata.xml"
        status_code, _, text = http_client.robust_get(url, session=self.session)
        if status_code == 404:
            return []
        if status_code != 200:
            logger.warning(
                "Repository metadata unavailable",
                extra=extra_context(
                    event="metadata_fetch",
                    component="repository",
                    outcome="failure",
                    status_code=status_code,
                    target=safe_url(url),
                ),
            )
            raise RepositoryError(f"Unable to read metadata from {safe_url(url)}: {status_code or text}")
        return parse_maven_metadata(text)

    def fetch(self, coordinate: ArtifactCoordinate, version: str) -> Optional[str]:
        cached = self.mirror.fetch(coordinate, version)
        if cached is not None or self.offline:
            return cached
        relative = artifact_path(coordinate, version)
        dest = os.path.join(self.mirror.root, relative)
        return http_client.download(f"{self.url}/{relative}", dest, session=self.session)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


def make_repository(definition: RepositoryDef, mirror_root: Optional[str] = None,
                    offline: Optional[bool] = None) -> ArtifactRepository:
    """Build the repository implementation matching the definition's URL scheme."""
    scheme = urllib.parse.urlsplit(definition.url).scheme.lower()
    if scheme in ("http", "https"):
        return HttpRepository(definition.id, definition.url, mirror_root, offline)
    return LocalRepository(definition.id, definition.url)

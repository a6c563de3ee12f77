"""Per-installation cache of artifact content.

Layout under ``<installation>/.installation/.cache``: the cached files in
Maven repository layout plus an ``artifacts.txt`` index with one
``coordinate::sha1::path`` line each.
Concurrent writers to the same installation must be serialized by the caller.
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from ..channels.repository import artifact_path
from ..common.files import atomic_write_text, copy_file
from ..constants import Constants
from ..errors import CacheWriteError
from ..versioning.models import ArtifactCoordinate
from .manifest_record import MAVEN, ManifestVersionRecord

logger = logging.getLogger(__name__)

RECORD_FILE = "manifest-versions.yaml"


def _sha1(path: str) -> str:
    digest = hashlib.sha1()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _cache_key(coordinate: ArtifactCoordinate) -> str:
    return ":".join([
        coordinate.group_id,
        coordinate.artifact_id,
        coordinate.extension,
        coordinate.classifier or "",
        coordinate.version or "",
    ])


class ArtifactCache:
    """Content cache keyed by the installation directory."""

    def __init__(self, installation_dir: str):
        self.installation_dir = installation_dir
        self.cache_dir = os.path.join(installation_dir, Constants.METADATA_DIR, Constants.CACHE_DIR)
        self.index_file = os.path.join(self.cache_dir, Constants.CACHE_INDEX_FILE)
        self._index: Dict[str, Tuple[str, str]] = self._load_index()

    def _load_index(self) -> Dict[str, Tuple[str, str]]:
        index: Dict[str, Tuple[str, str]] = {}
        if not os.path.isfile(self.index_file):
            return index
        with open(self.index_file, "r", encoding="utf-8") as fh:
            for line in fh:
                parts = line.strip().split("::")
                if len(parts) == 3:
                    index[parts[0]] = (parts[1], parts[2])
        return index

    def _save_index(self) -> None:
        lines = [f"{key}::{digest}::{name}" for key, (digest, name) in sorted(self._index.items())]
        atomic_write_text(self.index_file, "\n".join(lines) + "\n")

    def cache(self, artifact: ArtifactCoordinate) -> str:
        """Copy a resolved artifact into the cache and index it.

        Raises:
            CacheWriteError: the artifact is unresolved or the copy failed.
        """
        if not artifact.is_resolved:
            raise CacheWriteError(f"Cannot cache unresolved artifact {artifact}")
        name = artifact_path(artifact, artifact.version)
        dest = os.path.join(self.cache_dir, *name.split("/"))
        try:
            if os.path.abspath(str(artifact.path)) != os.path.abspath(dest):
                copy_file(str(artifact.path), dest)
            self._index[_cache_key(artifact)] = (_sha1(dest), name)
            self._save_index()
        except OSError as exc:
            raise CacheWriteError(f"Unable to cache {artifact}: {exc}") from exc
        logger.debug("Cached %s in %s", artifact, self.cache_dir)
        return dest

    def cache_all(self, artifacts: Iterable[ArtifactCoordinate]) -> List[str]:
        return [self.cache(a) for a in artifacts]

    def cache_manifests(self, record: ManifestVersionRecord,
                        resolved: Iterable[ArtifactCoordinate]) -> List[str]:
        """Store the manifest version record and the manifest artifacts it names.

        Raises:
            CacheWriteError: the record or a manifest could not be written.
        """
        try:
            atomic_write_text(os.path.join(self.cache_dir, RECORD_FILE), record.to_yaml())
        except OSError as exc:
            raise CacheWriteError(f"Unable to record manifests in {self.cache_dir}: {exc}") from exc
        wanted = {
            (entry.reference, entry.version)
            for entry in record.entries if entry.kind == MAVEN
        }
        cached = []
        for artifact in resolved:
            if (f"{artifact.group_id}:{artifact.artifact_id}", artifact.version) in wanted \
                    and artifact.classifier == Constants.MANIFEST_CLASSIFIER:
                cached.append(self.cache(artifact))
        return cached

    def get(self, coordinate: ArtifactCoordinate) -> Optional[str]:
        """Return the cached file for a versioned coordinate if intact."""
        entry = self._index.get(_cache_key(coordinate))
        if entry is None:
            return None
        digest, name = entry
        path = os.path.join(self.cache_dir, *name.split("/"))
        if not os.path.isfile(path) or _sha1(path) != digest:
            logger.warning("Cached file for %s is missing or corrupted", coordinate)
            return None
        return path

    def __len__(self) -> int:
        return len(self._index)

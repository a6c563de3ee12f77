"""Installation metadata: manifest, channel configuration and revision history."""

from __future__ import annotations

import logging
import os
from typing import List, Optional

import yaml

from ..candidate.manifest_record import ManifestVersionRecord
from ..channels.models import Channel, ChannelManifest, channels_from_yaml, channels_to_yaml, manifest_from_yaml, manifest_to_yaml
from ..common.files import atomic_write_text
from ..constants import Constants
from ..errors import MetadataError, MetadataWriteError
from .history import RevisionHistory, SavedState

logger = logging.getLogger(__name__)


def metadata_dir(base_dir: str) -> str:
    return os.path.join(base_dir, Constants.METADATA_DIR)


def provisioning_file(base_dir: str) -> str:
    return os.path.join(base_dir, Constants.GALLEON_DIR, Constants.PROVISIONING_FILE)


def is_installation(base_dir: str) -> bool:
    """True if ``base_dir`` holds installation metadata."""
    return os.path.isfile(os.path.join(metadata_dir(base_dir), Constants.MANIFEST_FILE))


class InstallationMetadata:
    """Metadata files at fixed offsets under an installation base directory."""

    def __init__(
        self,
        base_dir: str,
        manifest: ChannelManifest,
        channels: List[Channel],
        manifest_versions: Optional[ManifestVersionRecord] = None,
    ):
        self.base_dir = base_dir
        self.manifest = manifest
        self.channels = list(channels)
        self.manifest_versions = manifest_versions
        self.history = RevisionHistory(self.history_file)

    @property
    def manifest_file(self) -> str:
        return os.path.join(metadata_dir(self.base_dir), Constants.MANIFEST_FILE)

    @property
    def channels_file(self) -> str:
        return os.path.join(metadata_dir(self.base_dir), Constants.CHANNELS_FILE)

    @property
    def manifest_versions_file(self) -> str:
        return os.path.join(metadata_dir(self.base_dir), Constants.MANIFEST_VERSIONS_FILE)

    @property
    def history_file(self) -> str:
        return os.path.join(metadata_dir(self.base_dir), Constants.HISTORY_FILE)

    @property
    def provisioning_file(self) -> str:
        return provisioning_file(self.base_dir)

    @classmethod
    def load(cls, base_dir: str) -> "InstallationMetadata":
        """Read the metadata of an existing installation.

        Raises:
            MetadataError: a required file is missing or malformed.
        """
        directory = metadata_dir(base_dir)
        manifest = manifest_from_yaml(cls._read(os.path.join(directory, Constants.MANIFEST_FILE)))
        channels = channels_from_yaml(cls._read(os.path.join(directory, Constants.CHANNELS_FILE)))
        record = None
        record_path = os.path.join(directory, Constants.MANIFEST_VERSIONS_FILE)
        if os.path.isfile(record_path):
            record = ManifestVersionRecord.from_yaml(cls._read(record_path))
        return cls(base_dir, manifest, channels, record)

    @staticmethod
    def _read(path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except OSError as exc:
            raise MetadataError(f"Unable to read installation metadata {path}: {exc}") from exc

    @classmethod
    def new_installation(
        cls,
        base_dir: str,
        manifest: ChannelManifest,
        channels: List[Channel],
        manifest_versions: Optional[ManifestVersionRecord] = None,
    ) -> "InstallationMetadata":
        """Create and write a fresh, self-contained metadata set in ``base_dir``."""
        metadata = cls(base_dir, manifest, channels, manifest_versions)
        metadata.write()
        return metadata

    def write(self) -> None:
        """Persist manifest, channels and the optional manifest version record.

        Raises:
            MetadataWriteError: any file could not be written.
        """
        try:
            atomic_write_text(self.manifest_file, manifest_to_yaml(self.manifest))
            atomic_write_text(self.channels_file, channels_to_yaml(self.channels))
            if self.manifest_versions is not None:
                atomic_write_text(self.manifest_versions_file, self.manifest_versions.to_yaml())
        except (OSError, yaml.YAMLError) as exc:
            raise MetadataWriteError(f"Unable to write installation metadata in {self.base_dir}: {exc}") from exc

    def save_manifest(self) -> None:
        """Persist only the manifest."""
        try:
            atomic_write_text(self.manifest_file, manifest_to_yaml(self.manifest))
        except OSError as exc:
            raise MetadataWriteError(f"Unable to write manifest {self.manifest_file}: {exc}") from exc

    def record_provision(self, description: str, kind: str = "install") -> SavedState:
        """Append a revision describing the current state."""
        try:
            state = self.history.append(description, kind)
        except OSError as exc:
            raise MetadataWriteError(f"Unable to record revision in {self.history_file}: {exc}") from exc
        logger.debug("Recorded revision %s (%s) in %s", state.name, kind, self.base_dir)
        return state

    def revisions(self) -> List[SavedState]:
        """Revisions, most recent first."""
        return self.history.revisions()

    def latest_revision(self) -> Optional[SavedState]:
        return self.history.latest()

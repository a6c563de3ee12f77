"""Applying artifact content to an installed module tree."""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Set

from ..common.files import copy_file
from ..common.logging_utils import extra_context
from ..errors import ArtifactNotFoundError, InstallationError
from ..versioning.models import ArtifactCoordinate
from .metadata import InstallationMetadata
from .modules import find_referencing

logger = logging.getLogger(__name__)


class LocalInstallation:
    """An installation on disk: module tree plus metadata.

    Copies into several module directories are not transactional: if the
    copy for one location fails after another succeeded, the installation
    is left mixed and the error is raised.
    """

    def __init__(self, base_dir: str, metadata: Optional[InstallationMetadata] = None):
        self.base_dir = base_dir
        self.metadata = metadata or InstallationMetadata.load(base_dir)

    @property
    def manifest(self):
        return self.metadata.manifest

    @property
    def channels(self):
        return self.metadata.channels

    def find_modules_referencing(self, coordinate: ArtifactCoordinate, match_version: bool = False) -> Set[str]:
        """Return module directories referencing ``coordinate``.

        The version is ignored unless ``match_version`` is set. An empty set
        means the artifact is not part of this installation.
        """
        return {d.directory for d in find_referencing(self.base_dir, coordinate, match_version)}

    def install_artifact(self, coordinate: ArtifactCoordinate, content_file: str) -> List[str]:
        """Copy ``content_file`` into every module referencing ``coordinate``.

        Raises:
            ArtifactNotFoundError: no module references the artifact.
            InstallationError: a copy failed.
        """
        locations = sorted(self.find_modules_referencing(coordinate))
        if not locations:
            raise ArtifactNotFoundError(
                f"Artifact {coordinate.file_name()} not found",
                coordinate.group_id,
                coordinate.artifact_id,
            )
        written = []
        for location in locations:
            dest = os.path.join(location, os.path.basename(content_file))
            try:
                written.append(copy_file(content_file, dest))
            except OSError as exc:
                raise InstallationError(f"Unable to install {coordinate} into {location}: {exc}") from exc
        logger.info(
            "Installed %s into %d module(s)",
            coordinate,
            len(written),
            extra=extra_context(event="install", component="installation", outcome="success"),
        )
        return written

    def update_artifact(self, old: ArtifactCoordinate, new: ArtifactCoordinate, content_file: str) -> List[str]:
        """Replace ``old`` with ``new`` in every module referencing ``old``'s version.

        Per module the new content is copied first, then the descriptor is
        rewritten; a copy failure leaves that descriptor untouched. The
        manifest is persisted once every module is updated.

        Raises:
            ArtifactNotFoundError: no module references ``old``.
            InstallationError: copying or rewriting failed.
        """
        descriptors = find_referencing(self.base_dir, old, match_version=True)
        if not descriptors:
            raise ArtifactNotFoundError(
                f"Artifact {old.file_name()} not found",
                old.group_id,
                old.artifact_id,
            )

        updated = []
        for descriptor in descriptors:
            target = os.path.join(descriptor.directory, new.file_name())
            try:
                copy_file(content_file, target)
            except OSError as exc:
                raise InstallationError(f"Unable to install package {new}: {exc}") from exc

            try:
                descriptor.rewrite_version(old, new)
                descriptor.save()
            except InstallationError as exc:
                raise InstallationError(f"Unable to write changes in module descriptor {descriptor.path}") from exc

            self.metadata.manifest.update_version(new)
            updated.append(descriptor.directory)

        self.metadata.save_manifest()
        logger.info(
            "Updated %s -> %s in %d module(s)",
            old,
            new.version,
            len(updated),
            extra=extra_context(event="update", component="installation", outcome="success"),
        )
        return updated

    def register_updates(self, artifacts: List[ArtifactCoordinate]) -> None:
        """Pin manifest streams to the given versions and persist the manifest."""
        for artifact in artifacts:
            self.metadata.manifest.update_version(artifact)
        self.metadata.save_manifest()

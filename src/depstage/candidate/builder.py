"""Builds update and revert candidates in an isolated staging directory.

A build runs PLANNING -> RESOLVED -> METADATA_WRITTEN -> MARKED, or ends in
FAILED. The live installation is only read. The staging directory belongs
to the caller: a failed build leaves it without a marker and does not clean
it up; use ``discard_candidate`` to remove it. Reusing a directory drops its
previous metadata and marker before planning starts.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from ..channels.models import Channel
from ..channels.session import RepositoryFactory
from ..channels.resolver import ChannelArtifactResolver, Predicate, extension_predicate
from ..common.files import atomic_write_text
from ..common.logging_utils import extra_context, is_debug_enabled, Timer
from ..constants import Constants
from ..errors import (
    ArtifactNotFoundError,
    ArtifactResolutionException,
    CacheWriteError,
    CandidateError,
    DepstageError,
    ManifestVersionLookupError,
    UnresolvedArtifactsError,
)
from ..installation.metadata import InstallationMetadata, is_installation
from ..versioning.models import ArtifactCoordinate
from .cache import ArtifactCache
from .manifest_record import ManifestVersionRecord, ManifestVersionResolver
from .marker import MarkerFile, OperationKind, marker_path, sentinel_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

ManifestVersionSupplier = Callable[[List[Channel]], Optional[ManifestVersionRecord]]
ResolverFactory = Callable[[List[Channel]], ChannelArtifactResolver]


class Planner:
    """Provisioning planner contract.

    ``provision`` lays out the distribution in ``target_dir`` and calls the
    resolver synchronously for every artifact it needs. It raises
    ``UnresolvedArtifactsError`` (or lets ``ArtifactNotFoundError`` escape)
    when artifacts cannot be resolved.
    """

    def provision(self, target_dir: str, options: Dict[str, str], resolver: ChannelArtifactResolver) -> None:
        raise NotImplementedError


class BuildState(Enum):
    """Progress of a candidate build."""

    PLANNING = "PLANNING"
    RESOLVED = "RESOLVED"
    METADATA_WRITTEN = "METADATA_WRITTEN"
    MARKED = "MARKED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a best-effort step: a value, or a warning explaining its absence."""
    value: Optional[T] = None
    warning: Optional[DepstageError] = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass
class CandidateResult:
    """What a build produced."""
    target_dir: str
    operation: OperationKind
    state: BuildState = BuildState.PLANNING
    marker: Optional[MarkerFile] = None
    manifest_versions: Optional[ManifestVersionRecord] = None
    resolved: List[ArtifactCoordinate] = field(default_factory=list)
    warnings: List[DepstageError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when a best-effort step failed but the candidate is usable."""
        return bool(self.warnings)


class CandidateBuildError(DepstageError):
    """A build failed; ``result`` holds the state reached and any warnings."""

    def __init__(self, message: str, result: CandidateResult):
        super().__init__(message)
        self.result = result


class CandidateBuilder:
    """Prepares update/revert candidates for one installation."""

    def __init__(
        self,
        installation_dir: str,
        planner: Planner,
        repository_factory: Optional[RepositoryFactory] = None,
        resolver_factory: Optional[ResolverFactory] = None,
        cache_predicate: Optional[Predicate] = None,
        feature_pack_predicate: Optional[Predicate] = None,
        offline: Optional[bool] = None,
    ):
        self.installation_dir = installation_dir
        self.metadata = InstallationMetadata.load(installation_dir)
        self.planner = planner
        self._repository_factory = repository_factory
        self._cache_predicate = cache_predicate
        self._resolver_factory = resolver_factory or self._default_resolver
        self._feature_pack_predicate = feature_pack_predicate or extension_predicate(
            Constants.FEATURE_PACK_EXTENSIONS
        )
        self.offline = Constants.OFFLINE if offline is None else offline

    def _default_resolver(self, channels: List[Channel]) -> ChannelArtifactResolver:
        return ChannelArtifactResolver(channels, self._repository_factory, self._cache_predicate)

    def build(
        self,
        target_dir: str,
        operation: OperationKind,
        manifest_version_resolver: Optional[ManifestVersionSupplier] = None,
    ) -> CandidateResult:
        """Build a candidate in ``target_dir``.

        Raises:
            ArtifactResolutionException: the planner could not resolve artifacts.
            CandidateBuildError: any other fatal failure; wraps the cause.
        """
        supplier = manifest_version_resolver or ManifestVersionResolver(self._repository_factory)
        result = CandidateResult(target_dir=target_dir, operation=operation)
        base = self.metadata.latest_revision()
        if base is None:
            raise CandidateBuildError(f"Installation {self.installation_dir} has no recorded revision", result)

        try:
            self._prepare_target(target_dir, operation)
        except (CandidateError, OSError) as exc:
            self._transition(result, BuildState.FAILED)
            raise CandidateBuildError(f"Unable to prepare candidate directory {target_dir}: {exc}", result) from exc

        channels = self.metadata.channels
        resolver = self._resolver_factory(channels)
        with Timer() as timer:
            try:
                self._plan(target_dir, resolver)
                self._transition(result, BuildState.RESOLVED)

                manifest_outcome = self._lookup_manifest_versions(supplier, channels)
                self._note(result, manifest_outcome)
                record = None
                if manifest_outcome.value is not None:
                    record = manifest_outcome.value.with_artifacts(resolver.resolved_versions())
                    result.manifest_versions = record
                    manifest_artifacts = resolver.resolved_versions() + resolver.session.manifest_artifacts()
                    self._note(result, self._cache_manifests(target_dir, record, manifest_artifacts))

                self._write_metadata(target_dir, resolver, channels, record)
                self._transition(result, BuildState.METADATA_WRITTEN)

                self._note(result, self._cache_feature_packs(target_dir, resolver))

                marker = MarkerFile(base.name, operation)
                marker.write(target_dir)
                result.marker = marker
                self._transition(result, BuildState.MARKED)
            except ArtifactResolutionException:
                self._transition(result, BuildState.FAILED)
                raise
            except (DepstageError, OSError) as exc:
                self._transition(result, BuildState.FAILED)
                raise CandidateBuildError(f"Unable to build candidate in {target_dir}: {exc}", result) from exc
            finally:
                result.resolved = resolver.resolved_versions()
                resolver.close()

        logger.info(
            "Candidate for %s prepared in %s (base revision %s)",
            operation.value,
            target_dir,
            base.name,
            extra=extra_context(
                event="candidate_build",
                component="candidate_builder",
                outcome="degraded" if result.degraded else "success",
                duration_ms=timer.duration_ms(),
            ),
        )
        return result

    def _transition(self, result: CandidateResult, state: BuildState) -> None:
        logger.debug(
            "Candidate build state %s -> %s",
            result.state.value,
            state.value,
            extra=extra_context(event="state", component="candidate_builder", state=state.value),
        )
        result.state = state

    def _note(self, result: CandidateResult, outcome: Outcome) -> None:
        if outcome.warning is not None:
            logger.warning("%s", outcome.warning)
            result.warnings.append(outcome.warning)

    def _prepare_target(self, target_dir: str, operation: OperationKind) -> None:
        """Reset ``target_dir`` for a new build and write the build sentinel.

        Raises:
            CandidateError: the directory is the live installation or looks like one.
        """
        if os.path.isdir(target_dir) and os.path.samefile(target_dir, self.installation_dir):
            raise CandidateError(f"{target_dir} is the installation itself")
        owned = os.path.isfile(marker_path(target_dir)) or os.path.isfile(sentinel_path(target_dir))
        history = os.path.join(target_dir, Constants.METADATA_DIR, Constants.HISTORY_FILE)
        if not owned and os.path.isfile(history) and is_installation(target_dir):
            raise CandidateError(f"{target_dir} looks like an installation, not a candidate")
        if os.path.isfile(marker_path(target_dir)):
            logger.info("Dropping the marker of a previous candidate in %s", target_dir)
        metadata = os.path.join(target_dir, Constants.METADATA_DIR)
        if os.path.isdir(metadata):
            shutil.rmtree(metadata)
        os.makedirs(target_dir, exist_ok=True)
        atomic_write_text(sentinel_path(target_dir), f"{operation.value}\n")

    def _plan(self, target_dir: str, resolver: ChannelArtifactResolver) -> None:
        options = {Constants.EXPORT_SYSTEM_PATHS: "true"}
        attempted = resolver.session.attempted_repositories()
        try:
            self.planner.provision(target_dir, options, resolver)
        except UnresolvedArtifactsError as exc:
            raise ArtifactResolutionException(
                "Unable to resolve artifacts required by the candidate",
                exc.unresolved,
                exc.attempted_repositories or attempted,
                self.offline,
            ) from exc
        except ArtifactNotFoundError as exc:
            raise ArtifactResolutionException(
                "Unable to resolve artifacts required by the candidate",
                [f"{exc.group_id}:{exc.artifact_id}"],
                attempted,
                self.offline,
            ) from exc
        if is_debug_enabled(logger):
            logger.debug("Planner resolved %d artifact(s)", len(resolver.resolved_versions()))

    def _lookup_manifest_versions(self, supplier: ManifestVersionSupplier,
                                  channels: List[Channel]) -> Outcome[ManifestVersionRecord]:
        try:
            record = supplier(channels)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            warning = exc if isinstance(exc, ManifestVersionLookupError) else ManifestVersionLookupError(
                f"Unable to retrieve current manifest versions: {exc}"
            )
            return Outcome(warning=warning)
        if record is not None and is_debug_enabled(logger):
            logger.debug("Recording manifests: %s", record.summary())
        return Outcome(value=record)

    def _cache_manifests(self, target_dir: str, record: ManifestVersionRecord,
                         resolved: List[ArtifactCoordinate]) -> Outcome[List[str]]:
        try:
            return Outcome(value=ArtifactCache(target_dir).cache_manifests(record, resolved))
        except (CacheWriteError, OSError) as exc:
            return Outcome(warning=CacheWriteError(f"Unable to record manifests in the internal cache: {exc}"))

    def _cache_feature_packs(self, target_dir: str, resolver: ChannelArtifactResolver) -> Outcome[List[str]]:
        packs = [a for a in resolver.resolved_versions() if self._feature_pack_predicate(a)]
        if not packs:
            return Outcome(value=[])
        try:
            return Outcome(value=ArtifactCache(target_dir).cache_all(packs))
        except (CacheWriteError, OSError) as exc:
            return Outcome(warning=CacheWriteError(f"Unable to cache feature packs: {exc}"))

    def _write_metadata(self, target_dir: str, resolver: ChannelArtifactResolver, channels: List[Channel],
                        record: Optional[ManifestVersionRecord]) -> None:
        candidate = InstallationMetadata.new_installation(
            target_dir, resolver.session.recorded_manifest(), channels, record
        )
        candidate.record_provision("Candidate provisioning", kind="install")


@dataclass(frozen=True)
class CandidateStatus:
    """Result of inspecting a staging directory."""
    path: str
    complete: bool
    marker: Optional[MarkerFile] = None
    reason: Optional[str] = None


def inspect_candidate(candidate_dir: str, installation_dir: Optional[str] = None) -> CandidateStatus:
    """Report whether ``candidate_dir`` holds a complete, labelled candidate.

    With ``installation_dir`` the marker's revision must also exist in that
    installation's history.
    """
    if not os.path.isdir(candidate_dir):
        return CandidateStatus(candidate_dir, False, reason="directory does not exist")
    try:
        marker = MarkerFile.read(candidate_dir)
    except CandidateError as exc:
        return CandidateStatus(candidate_dir, False, reason=str(exc))
    if marker is None:
        return CandidateStatus(candidate_dir, False, reason="marker file missing")
    if not is_installation(candidate_dir):
        return CandidateStatus(candidate_dir, False, marker, "candidate metadata missing")
    if installation_dir is not None:
        history = InstallationMetadata.load(installation_dir).history
        if not history.contains(marker.revision):
            return CandidateStatus(
                candidate_dir, False, marker,
                f"revision {marker.revision} is not in the history of {installation_dir}",
            )
    return CandidateStatus(candidate_dir, True, marker)


def discard_candidate(candidate_dir: str, force: bool = False) -> bool:
    """Remove a caller-owned staging directory; return False if it did not exist.

    A directory with installation history but neither a marker nor a build
    sentinel is refused unless ``force`` is set, since it may be a live
    installation.

    Raises:
        CandidateError: the directory is a live installation rather than a candidate.
    """
    if not os.path.exists(candidate_dir):
        return False
    owned = os.path.isfile(marker_path(candidate_dir)) or os.path.isfile(sentinel_path(candidate_dir))
    history_present = os.path.isfile(os.path.join(candidate_dir, Constants.METADATA_DIR, Constants.HISTORY_FILE))
    if not force and history_present and not owned and is_installation(candidate_dir):
        raise CandidateError(f"{candidate_dir} looks like an installation, not a candidate")
    shutil.rmtree(candidate_dir)
    logger.info("Discarded candidate %s", candidate_dir)
    return True

"""Channel-backed artifact resolution.

Resolution is a two-tier lookup: channels are consulted strictly in list
order and the first channel able to satisfy the requested range wins; only
inside that channel is the highest permitted version chosen. A lower
version from an earlier channel therefore beats a higher version from a
later one.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Optional

from ..common.logging_utils import extra_context, is_debug_enabled, Timer
from ..constants import Constants
from ..errors import AlreadyResolvedError, ArtifactNotFoundError, MissingVersionError, RepositoryError
from ..versioning.models import ArtifactCoordinate, ArtifactKey, VersionRangeResult
from ..versioning.ranges import VersionRange
from .models import Channel
from .session import ChannelSession, RepositoryFactory

logger = logging.getLogger(__name__)

Predicate = Callable[[ArtifactCoordinate], bool]


def extension_predicate(extensions: List[str]) -> Predicate:
    """Build a predicate accepting coordinates whose extension is listed."""
    allowed = frozenset(extensions)
    return lambda coordinate: coordinate.extension in allowed


class ResolvedArtifactSet:
    """Resolved coordinates unique by key, filtered by an eligibility predicate."""

    def __init__(self, eligible: Optional[Predicate] = None):
        self._eligible = eligible or extension_predicate(Constants.CACHEABLE_EXTENSIONS)
        self._items: Dict[ArtifactKey, ArtifactCoordinate] = {}

    def add(self, coordinate: ArtifactCoordinate) -> bool:
        """Add ``coordinate`` if eligible and not present; return True if added."""
        if not self._eligible(coordinate) or coordinate.key in self._items:
            return False
        self._items[coordinate.key] = coordinate
        return True

    def snapshot(self) -> "ResolvedArtifactSet":
        copy = ResolvedArtifactSet(self._eligible)
        copy._items = dict(self._items)
        return copy

    def __contains__(self, item: object) -> bool:
        if isinstance(item, ArtifactCoordinate):
            return item.key in self._items
        return item in self._items

    def __iter__(self) -> Iterator[ArtifactCoordinate]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ResolvedArtifactSet({sorted(str(k) for k in self._items)})"


class ChannelArtifactResolver:
    """Resolves artifact coordinates against an ordered list of channels.

    Each call returns a new, resolved coordinate; inputs are never mutated.
    A coordinate key may be resolved only once per resolver instance.
    """

    def __init__(
        self,
        channels: List[Channel],
        repository_factory: Optional[RepositoryFactory] = None,
        cache_predicate: Optional[Predicate] = None,
        session: Optional[ChannelSession] = None,
    ):
        self.session = session or ChannelSession(channels, repository_factory)
        self._resolved = ResolvedArtifactSet(cache_predicate)
        self._history: Dict[ArtifactKey, ArtifactCoordinate] = {}
        self._closed = False

    @property
    def channels(self) -> List[Channel]:
        return self.session.channels

    def _check_not_resolved(self, coordinate: ArtifactCoordinate) -> None:
        if coordinate.is_resolved or coordinate.key in self._history:
            raise AlreadyResolvedError(f"Artifact is already resolved: {coordinate}")

    def resolve(self, coordinate: ArtifactCoordinate) -> ArtifactCoordinate:
        """Resolve a coordinate carrying an explicit version.

        The version still goes through the range lookup so channel priority
        and manifest constraints apply uniformly.

        Raises:
            AlreadyResolvedError: coordinate already resolved in this session.
            MissingVersionError: no version set.
            ArtifactNotFoundError: no channel offers a matching version.
        """
        self._check_not_resolved(coordinate)
        if not coordinate.version:
            raise MissingVersionError(f"Version is not set for {coordinate}")
        return self.resolve_latest_version(coordinate)

    def _query_range(self, coordinate: ArtifactCoordinate) -> VersionRange:
        if coordinate.version_range:
            if coordinate.version:
                logger.warning(
                    "Version %s is set for %s although a range %s is provided. Using provided range.",
                    coordinate.version,
                    coordinate.key,
                    coordinate.version_range,
                )
            spec = coordinate.version_range
        elif coordinate.version:
            spec = f"[{coordinate.version},)"
        else:
            raise MissingVersionError(f"Can't compute range, version is not set for {coordinate}")
        try:
            return VersionRange.parse(spec)
        except ValueError as exc:
            raise MissingVersionError(f"Invalid version range {spec!r} for {coordinate.key}: {exc}") from exc

    def resolve_latest_version(self, coordinate: ArtifactCoordinate) -> ArtifactCoordinate:
        """Resolve the highest version in range from the first channel that has one.

        Raises:
            AlreadyResolvedError: coordinate already resolved in this session.
            MissingVersionError: neither version nor range set.
            ArtifactNotFoundError: no channel satisfies the range.
        """
        self._check_not_resolved(coordinate)
        version_range = self._query_range(coordinate)

        with Timer() as timer:
            try:
                found = self.session.find_latest(coordinate, version_range)
                if found is None:
                    raise ArtifactNotFoundError(
                        f"Artifact is not found {coordinate.group_id}:{coordinate.artifact_id}",
                        coordinate.group_id,
                        coordinate.artifact_id,
                    )
                channel, version = found
                path, repo = channel.fetch(coordinate, version)
            except RepositoryError as exc:
                raise ArtifactNotFoundError(
                    f"Unable to resolve {coordinate.group_id}:{coordinate.artifact_id}: {exc}",
                    coordinate.group_id,
                    coordinate.artifact_id,
                ) from exc

        resolved = coordinate.resolved(version, path)
        self._history[resolved.key] = resolved
        self._resolved.add(resolved)
        self.session.record(resolved)

        logger.info(
            "RESOLVED: %s",
            resolved,
            extra=extra_context(
                event="resolve",
                component="resolver",
                outcome="success",
                channel=channel.name,
                target=repo.id,
                duration_ms=timer.duration_ms(),
            ),
        )
        if is_debug_enabled(logger):
            logger.debug("LATEST: Found version %s for range %s", version, version_range)
        return resolved

    def get_version_range(self, coordinate: ArtifactCoordinate) -> VersionRangeResult:
        """Return versions the configured channels offer for ``coordinate``.

        Uses the coordinate's range when present, otherwise every version.

        Raises:
            ArtifactNotFoundError: a channel or repository could not be queried.
        """
        version_range = None
        if coordinate.version_range:
            try:
                version_range = VersionRange.parse(coordinate.version_range)
            except ValueError as exc:
                raise MissingVersionError(f"Invalid version range for {coordinate.key}: {exc}") from exc
        try:
            return self.session.version_range(coordinate, version_range)
        except RepositoryError as exc:
            raise ArtifactNotFoundError(
                f"Unable to list versions of {coordinate.group_id}:{coordinate.artifact_id}: {exc}",
                coordinate.group_id,
                coordinate.artifact_id,
            ) from exc

    def resolved_artifacts(self) -> ResolvedArtifactSet:
        """Read-only snapshot of the cache-eligible resolved artifacts."""
        return self._resolved.snapshot()

    def resolved_versions(self) -> List[ArtifactCoordinate]:
        """Every coordinate resolved in this session, eligible or not."""
        return list(self._history.values())

    def close(self) -> None:
        """Release repository sessions; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.session.close()

    def __enter__(self) -> "ChannelArtifactResolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

"""Tests for building, inspecting and discarding update candidates."""

import os
import shutil
from unittest.mock import patch

import pytest

from depstage.candidate.builder import (
    BuildState,
    CandidateBuilder,
    CandidateBuildError,
    Planner,
    discard_candidate,
    inspect_candidate,
)
from depstage.candidate.cache import ArtifactCache
from depstage.candidate.marker import MarkerFile, OperationKind, marker_path, sentinel_path
from depstage.channels.models import Channel, ChannelManifest, ManifestRef, RepositoryDef
from depstage.channels.resolver import ChannelArtifactResolver
from depstage.constants import Constants
from depstage.errors import (
    ArtifactResolutionException,
    CacheWriteError,
    CandidateError,
    ManifestVersionLookupError,
    MetadataWriteError,
    UnresolvedArtifactsError,
)
from depstage.installation.metadata import InstallationMetadata
from depstage.versioning.models import ArtifactCoordinate

LIB = ArtifactCoordinate("org.test", "lib", version_range="[1.0,)")
PACK = ArtifactCoordinate("org.test", "feature-pack", extension="zip", version="1.0")


class CopyingPlanner(Planner):
    """Resolves each coordinate and copies its content into the target."""

    def __init__(self, *coordinates):
        self.coordinates = coordinates
        self.options = None

    def provision(self, target_dir, options, resolver):
        self.options = dict(options)
        for coordinate in self.coordinates:
            resolved = resolver.resolve_latest_version(coordinate)
            shutil.copyfile(resolved.path, os.path.join(target_dir, os.path.basename(resolved.path)))


class FailingPlanner(Planner):
    def provision(self, target_dir, options, resolver):
        raise UnresolvedArtifactsError("Planner could not resolve", ["org.test:gone:jar:1.0"])


def failing_manifest_lookup(channels):
    raise OSError("network unreachable")


@pytest.fixture
def server(tmp_path, publish, make_channel, repo_a):
    """A live installation with one open channel and one recorded revision."""
    publish(repo_a, "org.test", "lib", "1.0")
    publish(repo_a, "org.test", "lib", "1.2")
    publish(repo_a, "org.test", "feature-pack", "1.0", extension="zip")
    base = str(tmp_path / "server")
    metadata = InstallationMetadata.new_installation(base, ChannelManifest(name="installed"),
                                                     [make_channel("a", repo_a)])
    metadata.record_provision("Initial installation")
    return base


@pytest.fixture
def target(tmp_path):
    return str(tmp_path / "candidate")


def live_revision(server):
    return InstallationMetadata.load(server).latest_revision().name


class TestSuccessfulBuild:
    """A complete build reaches MARKED and is self-describing."""

    def test_marked_with_base_revision(self, server, target):
        planner = CopyingPlanner(LIB)
        result = CandidateBuilder(server, planner).build(target, OperationKind.UPDATE)

        assert result.state == BuildState.MARKED
        assert result.marker == MarkerFile(live_revision(server), OperationKind.UPDATE)
        assert MarkerFile.read(target) == result.marker
        assert not result.degraded
        assert planner.options == {Constants.EXPORT_SYSTEM_PATHS: "true"}
        assert os.path.isfile(os.path.join(target, "lib-1.2.jar"))

    def test_candidate_metadata_records_resolution(self, server, target):
        result = CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)

        candidate = InstallationMetadata.load(target)
        assert candidate.manifest.find_stream("org.test", "lib").version == "1.2"
        assert [c.name for c in candidate.channels] == ["a"]
        assert [s.description for s in candidate.revisions()] == ["Candidate provisioning"]
        assert candidate.manifest_versions == result.manifest_versions
        assert result.manifest_versions.artifacts == ("org.test:lib:jar:1.2",)
        assert [c.version for c in result.resolved] == ["1.2"]

    def test_live_installation_untouched(self, server, target):
        before = InstallationMetadata.load(server)
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        after = InstallationMetadata.load(server)
        assert [s.name for s in after.revisions()] == [s.name for s in before.revisions()]
        assert after.manifest.streams == []
        assert not os.path.exists(marker_path(server))

    def test_revert_operation(self, server, target):
        result = CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.REVERT)
        assert MarkerFile.read(target).operation == OperationKind.REVERT
        assert result.state == BuildState.MARKED

    def test_inspect_reports_complete(self, server, target):
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        status = inspect_candidate(target, server)
        assert status.complete
        assert status.marker.revision == live_revision(server)

    def test_feature_packs_cached(self, server, target):
        CandidateBuilder(server, CopyingPlanner(LIB, PACK)).build(target, OperationKind.UPDATE)
        assert ArtifactCache(target).get(PACK) is not None

    def test_resolver_closed_after_build(self, server, target):
        created = []

        def factory(channels):
            resolver = ChannelArtifactResolver(channels)
            created.append(resolver)
            return resolver

        CandidateBuilder(server, CopyingPlanner(LIB), resolver_factory=factory).build(target, OperationKind.UPDATE)
        assert created[0]._closed


class TestMavenManifestChannel:
    def test_manifest_artifact_cached(self, tmp_path, publish, repo_a, target):
        publish(repo_a, "org.test", "lib", "1.0")
        publish(repo_a, "org.test", "lib", "1.2")
        publish(repo_a, "org.test", "test-manifest", "1.0.0", extension="yaml", classifier="manifest",
                content="streams:\n  - groupId: org.test\n    artifactId: lib\n    version: '1.0'\n")
        channel = Channel("a", [RepositoryDef("a-repo", str(repo_a))],
                          ManifestRef(group_id="org.test", artifact_id="test-manifest"))
        base = str(tmp_path / "server")
        InstallationMetadata.new_installation(base, ChannelManifest(), [channel]).record_provision("Initial")

        result = CandidateBuilder(base, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)

        assert result.manifest_versions.versions() == {"a": "1.0.0"}
        assert [c.version for c in result.resolved] == ["1.0"]
        manifest = ArtifactCoordinate("org.test", "test-manifest", "yaml", "manifest", "1.0.0")
        assert ArtifactCache(target).get(manifest) is not None


class TestPlanningFailure:
    """Resolution failures abort before any metadata or marker is written."""

    def test_unresolved_artifacts(self, server, target, repo_a):
        builder = CandidateBuilder(server, FailingPlanner())
        with pytest.raises(ArtifactResolutionException) as excinfo:
            builder.build(target, OperationKind.UPDATE)

        assert excinfo.value.unresolved == ["org.test:gone:jar:1.0"]
        assert excinfo.value.attempted_repositories == [str(repo_a)]
        assert "org.test:gone:jar:1.0" in excinfo.value.describe()
        assert MarkerFile.read(target) is None
        assert not inspect_candidate(target, server).complete

    def test_artifact_not_found(self, server, target):
        planner = CopyingPlanner(ArtifactCoordinate("org.test", "gone", version="1.0"))
        with pytest.raises(ArtifactResolutionException) as excinfo:
            CandidateBuilder(server, planner).build(target, OperationKind.UPDATE)
        assert excinfo.value.unresolved == ["org.test:gone"]
        assert inspect_candidate(target).reason == "marker file missing"

    def test_offline_hint(self, server, target):
        builder = CandidateBuilder(server, FailingPlanner(), offline=True)
        with pytest.raises(ArtifactResolutionException) as excinfo:
            builder.build(target, OperationKind.UPDATE)
        assert "Offline mode" in excinfo.value.describe()

    def test_live_history_unchanged(self, server, target):
        with pytest.raises(ArtifactResolutionException):
            CandidateBuilder(server, FailingPlanner()).build(target, OperationKind.UPDATE)
        assert len(InstallationMetadata.load(server).revisions()) == 1


class TestBestEffortSteps:
    """Manifest recording and cache writes degrade the build without failing it."""

    def test_manifest_lookup_failure(self, server, target):
        result = CandidateBuilder(server, CopyingPlanner(LIB)).build(
            target, OperationKind.UPDATE, manifest_version_resolver=failing_manifest_lookup
        )
        assert result.state == BuildState.MARKED
        assert result.manifest_versions is None
        assert result.degraded
        assert isinstance(result.warnings[0], ManifestVersionLookupError)
        assert "network unreachable" in str(result.warnings[0])
        assert not os.path.exists(os.path.join(target, Constants.METADATA_DIR, Constants.MANIFEST_VERSIONS_FILE))

    def test_manifest_lookup_error_kept_as_is(self, server, target):
        error = ManifestVersionLookupError("no manifest")

        def lookup(channels):
            raise error

        result = CandidateBuilder(server, CopyingPlanner(LIB)).build(
            target, OperationKind.UPDATE, manifest_version_resolver=lookup
        )
        assert result.warnings == [error]

    def test_manifest_cache_failure(self, server, target):
        with patch.object(ArtifactCache, "cache_manifests", side_effect=CacheWriteError("disk full")):
            result = CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        assert result.state == BuildState.MARKED
        assert result.manifest_versions is not None
        assert [type(w) for w in result.warnings] == [CacheWriteError]

    def test_feature_pack_cache_failure(self, server, target):
        with patch.object(ArtifactCache, "cache_all", side_effect=CacheWriteError("disk full")):
            result = CandidateBuilder(server, CopyingPlanner(LIB, PACK)).build(target, OperationKind.UPDATE)
        assert result.state == BuildState.MARKED
        assert [type(w) for w in result.warnings] == [CacheWriteError]
        assert inspect_candidate(target, server).complete


class TestFatalFailures:
    def test_metadata_write_failure(self, server, target):
        with patch("depstage.candidate.builder.InstallationMetadata.new_installation",
                   side_effect=MetadataWriteError("read-only file system")):
            builder = CandidateBuilder(server, CopyingPlanner(LIB))
            with pytest.raises(CandidateBuildError) as excinfo:
                builder.build(target, OperationKind.UPDATE)
        assert excinfo.value.result.state == BuildState.FAILED
        assert isinstance(excinfo.value.__cause__, MetadataWriteError)
        assert MarkerFile.read(target) is None

    def test_installation_without_revision(self, tmp_path, make_channel, repo_a, target):
        base = str(tmp_path / "fresh")
        InstallationMetadata.new_installation(base, ChannelManifest(), [make_channel("a", repo_a)])
        with pytest.raises(CandidateBuildError):
            CandidateBuilder(base, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)


class TestInspectCandidate:
    def test_missing_directory(self, tmp_path):
        status = inspect_candidate(str(tmp_path / "nowhere"))
        assert not status.complete
        assert status.reason == "directory does not exist"

    def test_malformed_marker(self, server, target):
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        with open(marker_path(target), "w", encoding="utf-8") as fh:
            fh.write("garbage\n")
        assert not inspect_candidate(target).complete

    def test_marker_without_metadata(self, tmp_path):
        MarkerFile("abc", OperationKind.UPDATE).write(str(tmp_path))
        status = inspect_candidate(str(tmp_path))
        assert not status.complete
        assert status.reason == "candidate metadata missing"

    def test_revision_from_another_installation(self, tmp_path, server, target, make_channel, repo_a):
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        other = str(tmp_path / "other")
        InstallationMetadata.new_installation(other, ChannelManifest(), [make_channel("a", repo_a)]) \
            .record_provision("Unrelated installation")
        status = inspect_candidate(target, other)
        assert not status.complete
        assert "not in the history" in status.reason


class TestDiscardCandidate:
    def test_removes_candidate(self, server, target):
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        assert discard_candidate(target)
        assert not os.path.exists(target)

    def test_removes_failed_build(self, server, target):
        with pytest.raises(ArtifactResolutionException):
            CandidateBuilder(server, FailingPlanner()).build(target, OperationKind.UPDATE)
        assert discard_candidate(target)
        assert not os.path.exists(target)

    def test_missing_directory(self, tmp_path):
        assert discard_candidate(str(tmp_path / "nowhere")) is False

    def test_refuses_live_installation(self, server):
        with pytest.raises(CandidateError):
            discard_candidate(server)
        assert os.path.isdir(server)
        assert discard_candidate(server, force=True)

    def test_removes_build_that_failed_writing_marker(self, server, target):
        """The build sentinel marks the directory as a candidate before the marker exists."""
        with patch.object(MarkerFile, "write", side_effect=OSError("disk full")):
            with pytest.raises(CandidateBuildError) as excinfo:
                CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        assert excinfo.value.result.state == BuildState.FAILED
        assert os.path.isfile(sentinel_path(target))
        assert discard_candidate(target)
        assert not os.path.exists(target)


class TestReusedTarget:
    """Building into a directory that already holds a candidate starts from scratch."""

    def test_failed_rebuild_drops_previous_marker(self, server, target):
        CandidateBuilder(server, CopyingPlanner(LIB)).build(target, OperationKind.UPDATE)
        assert inspect_candidate(target, server).complete

        with pytest.raises(ArtifactResolutionException):
            CandidateBuilder(server, FailingPlanner()).build(target, OperationKind.REVERT)

        assert MarkerFile.read(target) is None
        assert inspect_candidate(target, server).complete is False

    def test_rebuild_records_single_revision(self, server, target):
        builder = CandidateBuilder(server, CopyingPlanner(LIB))
        builder.build(target, OperationKind.UPDATE)
        builder.build(target, OperationKind.REVERT)

        candidate = InstallationMetadata.load(target)
        assert len(candidate.revisions()) == 1
        assert MarkerFile.read(target).operation == OperationKind.REVERT

    def test_refuses_live_installation_as_target(self, server):
        before = [s.name for s in InstallationMetadata.load(server).revisions()]
        with pytest.raises(CandidateBuildError) as excinfo:
            CandidateBuilder(server, CopyingPlanner(LIB)).build(server, OperationKind.UPDATE)
        assert excinfo.value.result.state == BuildState.FAILED
        assert isinstance(excinfo.value.__cause__, CandidateError)
        assert [s.name for s in InstallationMetadata.load(server).revisions()] == before
        assert not os.path.exists(sentinel_path(server))

    def test_refuses_other_installation_as_target(self, tmp_path, server, make_channel, repo_a):
        other = str(tmp_path / "other")
        InstallationMetadata.new_installation(other, ChannelManifest(), [make_channel("a", repo_a)]) \
            .record_provision("Unrelated installation")
        with pytest.raises(CandidateBuildError):
            CandidateBuilder(server, CopyingPlanner(LIB)).build(other, OperationKind.UPDATE)
        assert len(InstallationMetadata.load(other).revisions()) == 1

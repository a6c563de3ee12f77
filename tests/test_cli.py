"""Tests for the command-line interface."""

import pytest

from depstage.candidate.builder import CandidateBuilder, Planner
from depstage.candidate.marker import OperationKind
from depstage.channels.models import ChannelManifest
from depstage.cli import main, parse_args
from depstage.constants import Constants, ExitCodes
from depstage.installation.metadata import InstallationMetadata
from depstage.versioning.models import ArtifactCoordinate


class NoopPlanner(Planner):
    def provision(self, target_dir, options, resolver):
        resolver.resolve(ArtifactCoordinate("org.test", "lib", version="1.0"))


@pytest.fixture
def server(tmp_path, publish, make_channel, repo_a):
    publish(repo_a, "org.test", "lib", "1.0")
    publish(repo_a, "org.test", "lib", "1.2")
    base = str(tmp_path / "server")
    metadata = InstallationMetadata.new_installation(base, ChannelManifest(), [make_channel("a", repo_a)])
    metadata.record_provision("Initial installation")
    return base


class TestParseArgs:
    def test_global_options(self):
        args = parse_args(["--loglevel", "debug", "--offline", "--timeout", "5", "history", "/srv"])
        assert args.LOG_LEVEL == "DEBUG"
        assert args.OFFLINE is True
        assert args.TIMEOUT == 5
        assert args.COMMAND == "history"
        assert args.INSTALLATION == "/srv"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestResolveCommand:
    """Resolving a coordinate against an installation's channels."""

    def test_resolve_range(self, server, capsys):
        assert main(["resolve", server, "org.test:lib:[1.0,)"]) == ExitCodes.SUCCESS.value
        line = capsys.readouterr().out.strip()
        assert line.startswith("org.test:lib:jar:1.2\t")
        assert line.endswith("lib-1.2.jar")

    def test_resolve_version(self, server, capsys):
        assert main(["resolve", server, "org.test:lib:1.0"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.startswith("org.test:lib:jar:1.2")

    def test_list_versions(self, server, capsys):
        assert main(["resolve", server, "org.test:lib", "--list-versions"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.splitlines() == ["a\t1.0", "a\t1.2"]

    def test_not_found(self, server):
        assert main(["resolve", server, "org.test:lib:[5.0,)"]) == ExitCodes.RESOLUTION_ERROR.value

    def test_invalid_coordinate(self, server):
        assert main(["resolve", server, "lib"]) == ExitCodes.FILE_ERROR.value

    def test_not_an_installation(self, tmp_path):
        assert main(["resolve", str(tmp_path), "org.test:lib:1.0"]) == ExitCodes.FILE_ERROR.value


class TestHistoryCommand:
    def test_lists_revisions(self, server, capsys):
        assert main(["history", server]) == ExitCodes.SUCCESS.value
        out = capsys.readouterr().out
        assert "Initial installation" in out
        assert InstallationMetadata.load(server).latest_revision().name in out


class TestCandidateCommands:
    """status and discard on candidate directories."""

    def test_status_complete(self, server, tmp_path, capsys):
        target = str(tmp_path / "candidate")
        CandidateBuilder(server, NoopPlanner()).build(target, OperationKind.UPDATE)
        assert main(["status", target, "--installation", server]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.startswith("complete: UPDATE based on revision ")

    def test_status_incomplete(self, tmp_path, capsys):
        assert main(["status", str(tmp_path / "nowhere")]) == ExitCodes.INCOMPLETE_CANDIDATE.value
        assert "incomplete: directory does not exist" in capsys.readouterr().out

    def test_discard(self, server, tmp_path, capsys):
        target = str(tmp_path / "candidate")
        CandidateBuilder(server, NoopPlanner()).build(target, OperationKind.REVERT)
        assert main(["discard", target]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.startswith("removed ")

    def test_discard_refuses_installation(self, server):
        assert main(["discard", server]) == ExitCodes.FILE_ERROR.value


class TestConfiguration:
    def test_config_file_and_overrides(self, server, tmp_path):
        config = tmp_path / "depstage.yml"
        config.write_text("http:\n  timeout: 7\nresolution:\n  cacheable_extensions: [jar, zip]\n", encoding="utf-8")
        mirror = str(tmp_path / "m2")
        assert main(["--config", str(config), "--offline", "--local-repository", mirror,
                     "history", server]) == ExitCodes.SUCCESS.value
        assert Constants.REQUEST_TIMEOUT == 7
        assert Constants.CACHEABLE_EXTENSIONS == ["jar", "zip"]
        assert Constants.OFFLINE is True
        assert Constants.LOCAL_REPOSITORY == mirror

    def test_cli_timeout_beats_config(self, server, tmp_path):
        config = tmp_path / "depstage.yml"
        config.write_text("http:\n  timeout: 7\n", encoding="utf-8")
        main(["--config", str(config), "--timeout", "3", "history", server])
        assert Constants.REQUEST_TIMEOUT == 3

"""Shared fixtures: throwaway Maven repositories, channels and installations."""

import logging
import os

import pytest

from depstage.channels.models import Channel, ManifestRef, RepositoryDef
from depstage.channels.repository import artifact_path
from depstage.common import http_client
from depstage.constants import Constants
from depstage.versioning.models import ArtifactCoordinate


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch, tmp_path):
    """Keep Constants, the HTTP cache and root handlers from leaking between tests."""
    saved = {k: v for k, v in vars(Constants).items() if k.isupper()}
    monkeypatch.setattr(Constants, "DEFAULT_CONFIG_PATHS", [])
    monkeypatch.setattr(Constants, "LOCAL_REPOSITORY", str(tmp_path / "mirror"))
    monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
    monkeypatch.delenv(Constants.ENV_LOG_LEVEL, raising=False)
    http_client.clear_cache()
    root_level = logging.getLogger().level
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_depstage", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(root_level)
    http_client.clear_cache()


@pytest.fixture
def publish():
    """Return a function placing an artifact file into a Maven-layout directory."""

    def _publish(root, group_id, artifact_id, version, extension="jar", classifier="", content=None):
        coordinate = ArtifactCoordinate(group_id, artifact_id, extension, classifier)
        path = os.path.join(str(root), artifact_path(coordinate, version))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        data = content if content is not None else f"{artifact_id}-{version}".encode("utf-8")
        if isinstance(data, str):
            data = data.encode("utf-8")
        with open(path, "wb") as fh:
            fh.write(data)
        return path

    return _publish


@pytest.fixture
def make_channel():
    """Return a function building a channel over one local repository."""

    def _make_channel(name, repo_dir, manifest=None):
        if isinstance(manifest, str):
            manifest = ManifestRef(url=manifest)
        return Channel(name, [RepositoryDef(f"{name}-repo", str(repo_dir))], manifest)

    return _make_channel


@pytest.fixture
def repo_a(tmp_path):
    path = tmp_path / "repo-a"
    path.mkdir()
    return path


@pytest.fixture
def repo_b(tmp_path):
    path = tmp_path / "repo-b"
    path.mkdir()
    return path

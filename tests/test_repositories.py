"""Tests for local and HTTP artifact repositories."""

import os
from unittest.mock import patch

import pytest

from depstage.channels.models import RepositoryDef
from depstage.channels.repository import (
    HttpRepository,
    LocalRepository,
    artifact_path,
    make_repository,
    parse_maven_metadata,
)
from depstage.errors import RepositoryError
from depstage.versioning.models import ArtifactCoordinate

LIB = ArtifactCoordinate("org.test", "lib")

METADATA_XML = """<?xml version="1.0" encoding="UTF-8"?>
<metadata>
  <groupId>org.test</groupId>
  <artifactId>lib</artifactId>
  <versioning>
    <latest>1.2</latest>
    <versions>
      <version>1.0</version>
      <version>1.2</version>
    </versions>
  </versioning>
</metadata>
"""


class TestLayout:
    def test_artifact_path(self):
        coord = ArtifactCoordinate("org.test.deep", "lib", "yaml", "manifest")
        assert artifact_path(coord, "1.0") == "org/test/deep/lib/1.0/lib-1.0-manifest.yaml"

    def test_parse_maven_metadata(self):
        assert parse_maven_metadata(METADATA_XML) == ["1.0", "1.2"]

    def test_parse_maven_metadata_malformed(self):
        with pytest.raises(RepositoryError):
            parse_maven_metadata("<metadata>")


class TestLocalRepository:
    def test_lists_only_versions_with_content(self, publish, repo_a):
        publish(repo_a, "org.test", "lib", "1.0")
        os.makedirs(os.path.join(str(repo_a), "org", "test", "lib", "1.1"))
        repo = LocalRepository("a", str(repo_a))
        assert repo.list_versions(LIB) == ["1.0"]

    def test_missing_artifact_lists_nothing(self, repo_a):
        assert LocalRepository("a", str(repo_a)).list_versions(LIB) == []

    def test_fetch(self, publish, repo_a):
        path = publish(repo_a, "org.test", "lib", "1.0")
        repo = LocalRepository("a", str(repo_a))
        assert repo.fetch(LIB, "1.0") == path
        assert repo.fetch(LIB, "2.0") is None

    def test_file_url(self, publish, repo_a):
        publish(repo_a, "org.test", "lib", "1.0")
        repo = LocalRepository("a", f"file://{repo_a}")
        assert repo.list_versions(LIB) == ["1.0"]


class TestHttpRepository:
    """Remote repository behavior with the HTTP layer mocked."""

    @patch("depstage.channels.repository.http_client.robust_get")
    def test_lists_versions_from_metadata(self, mock_get, tmp_path):
        mock_get.return_value = (200, {}, METADATA_XML)
        repo = HttpRepository("central", "https://repo.example.com/maven2/", str(tmp_path))
        assert repo.list_versions(LIB) == ["1.0", "1.2"]
        url = mock_get.call_args[0][0]
        assert url == "https://repo.example.com/maven2/org/test/lib/maven-metadata.xml"

    @patch("depstage.channels.repository.http_client.robust_get")
    def test_missing_metadata_means_no_versions(self, mock_get, tmp_path):
        mock_get.return_value = (404, {}, "")
        repo = HttpRepository("central", "https://repo.example.com/maven2", str(tmp_path))
        assert repo.list_versions(LIB) == []

    @patch("depstage.channels.repository.http_client.robust_get")
    def test_server_failure_raises(self, mock_get, tmp_path):
        mock_get.return_value = (0, {}, "Request failed after 3 attempts: timeout")
        repo = HttpRepository("central", "https://repo.example.com/maven2", str(tmp_path))
        with pytest.raises(RepositoryError):
            repo.list_versions(LIB)

    @patch("depstage.channels.repository.http_client.robust_get")
    def test_offline_uses_mirror_only(self, mock_get, tmp_path, publish):
        publish(tmp_path / "central", "org.test", "lib", "1.0")
        repo = HttpRepository("central", "https://repo.example.com/maven2", str(tmp_path), offline=True)
        assert repo.list_versions(LIB) == ["1.0"]
        assert repo.fetch(LIB, "2.0") is None
        mock_get.assert_not_called()

    @patch("depstage.channels.repository.http_client.download")
    def test_fetch_prefers_mirror(self, mock_download, tmp_path, publish):
        path = publish(tmp_path / "central", "org.test", "lib", "1.0")
        repo = HttpRepository("central", "https://repo.example.com/maven2", str(tmp_path))
        assert repo.fetch(LIB, "1.0") == path
        mock_download.assert_not_called()

    @patch("depstage.channels.repository.http_client.download")
    def test_fetch_downloads_into_mirror(self, mock_download, tmp_path):
        mock_download.side_effect = lambda url, dest, session=None: dest
        repo = HttpRepository("central", "https://repo.example.com/maven2", str(tmp_path))
        dest = repo.fetch(LIB, "1.2")
        assert dest == os.path.join(str(tmp_path), "central", "org/test/lib/1.2/lib-1.2.jar")
        assert mock_download.call_args[0][0] == "https://repo.example.com/maven2/org/test/lib/1.2/lib-1.2.jar"
        repo.close()


class TestMakeRepository:
    def test_http_url(self, tmp_path):
        repo = make_repository(RepositoryDef("central", "https://repo.example.com/maven2"), str(tmp_path))
        assert isinstance(repo, HttpRepository)

    def test_path(self, repo_a):
        repo = make_repository(RepositoryDef("local", str(repo_a)))
        assert isinstance(repo, LocalRepository)
        assert repo.root == str(repo_a)

"""Tests for staging directory creation and artifact classification."""

import os
from unittest.mock import patch

import pytest

from oci_publisher.errors import StagingError
from oci_publisher.image import (
    BLOB,
    MANIFEST,
    classify_artifact,
    prepare_staging_dirs,
    stage_artifacts,
)
from tests.conftest import sha256_digest


def _read_tree(directory):
    contents = {}
    for name in os.listdir(directory):
        with open(os.path.join(directory, name), "rb") as f:
            contents[name] = f.read()
    return contents


@pytest.fixture
def staging(tmp_path):
    return prepare_staging_dirs(str(tmp_path), "myapp")


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path


class TestPrepareStagingDirs:
    def test_creates_directories(self, tmp_path):
        manifests_dir, blobs_dir = prepare_staging_dirs(str(tmp_path), "myapp")

        assert manifests_dir == os.path.join(str(tmp_path), "v2", "myapp", "manifests")
        assert blobs_dir == os.path.join(str(tmp_path), "v2", "myapp", "blobs")
        assert os.path.isdir(manifests_dir)
        assert os.path.isdir(blobs_dir)

    def test_nested_image_name(self, tmp_path):
        manifests_dir, _ = prepare_staging_dirs(str(tmp_path), "team/myapp")

        assert manifests_dir.endswith(os.path.join("v2", "team", "myapp", "manifests"))
        assert os.path.isdir(manifests_dir)

    def test_idempotent(self, tmp_path):
        first = prepare_staging_dirs(str(tmp_path), "myapp")
        second = prepare_staging_dirs(str(tmp_path), "myapp")

        assert first == second

    def test_filesystem_error(self, tmp_path):
        blocker = tmp_path / "v2"
        blocker.write_text("not a directory")

        with pytest.raises(StagingError):
            prepare_staging_dirs(str(tmp_path), "myapp")


class TestClassifyArtifact:
    def test_version_marker(self):
        assert classify_artifact("version") is None

    def test_manifest(self):
        assert classify_artifact("sha-layer.manifest.json") == MANIFEST
        assert classify_artifact("manifest.json") == BLOB

    def test_blob(self):
        assert classify_artifact("3f1a9c") == BLOB
        assert classify_artifact("version.txt") == BLOB


class TestStageArtifacts:
    def test_stages_by_digest(self, workspace, staging, manifest_bytes):
        manifests_dir, blobs_dir = staging
        blob_bytes = b"layer.tar.gz content"
        (workspace / "version").write_text("Directory Transport Version: 1.1\n")
        (workspace / "a.manifest.json").write_bytes(manifest_bytes)
        (workspace / "blob1").write_bytes(blob_bytes)

        staged = stage_artifacts(str(workspace), manifests_dir, blobs_dir)

        manifest_path = os.path.join(manifests_dir, sha256_digest(manifest_bytes))
        blob_path = os.path.join(blobs_dir, sha256_digest(blob_bytes))
        with open(manifest_path, "rb") as f:
            assert f.read() == manifest_bytes
        with open(blob_path, "rb") as f:
            assert f.read() == blob_bytes
        assert os.listdir(workspace) == []
        assert os.listdir(manifests_dir) == [sha256_digest(manifest_bytes)]
        assert os.listdir(blobs_dir) == [sha256_digest(blob_bytes)]
        assert [(a["name"], a["kind"]) for a in staged] == [("a.manifest.json", MANIFEST), ("blob1", BLOB)]

    def test_empty_workspace(self, workspace, staging):
        assert stage_artifacts(str(workspace), *staging) == []

    def test_restaging_is_idempotent(self, workspace, staging):
        (workspace / "blob1").write_bytes(b"one")
        stage_artifacts(str(workspace), *staging)
        before = _read_tree(staging[1])

        stage_artifacts(str(workspace), *staging)

        assert _read_tree(staging[1]) == before

    def test_duplicate_content_deduplicated(self, workspace, staging):
        (workspace / "first").write_bytes(b"same")
        (workspace / "second").write_bytes(b"same")

        staged = stage_artifacts(str(workspace), *staging)

        assert os.listdir(staging[1]) == [sha256_digest(b"same")]
        assert staged[0]["path"] == staged[1]["path"]
        assert os.listdir(workspace) == []

    def test_corrupted_staged_file_replaced(self, workspace, staging):
        digest = sha256_digest(b"good")
        with open(os.path.join(staging[1], digest), "wb") as f:
            f.write(b"bad")
        (workspace / "layer").write_bytes(b"good")

        stage_artifacts(str(workspace), *staging)

        with open(os.path.join(staging[1], digest), "rb") as f:
            assert f.read() == b"good"

    def test_rename_failure_aborts(self, workspace, staging):
        (workspace / "blob1").write_bytes(b"data")
        error = OSError(18, "Invalid cross-device link")

        with patch("oci_publisher.image.os.rename", side_effect=error):
            with pytest.raises(StagingError, match="blob1") as excinfo:
                stage_artifacts(str(workspace), *staging)

        assert excinfo.value.__cause__ is error

    def test_subdirectory_rejected(self, workspace, staging):
        (workspace / "nested").mkdir()

        with pytest.raises(StagingError, match="nested"):
            stage_artifacts(str(workspace), *staging)

    def test_missing_workspace(self, tmp_path, staging):
        with pytest.raises(StagingError):
            stage_artifacts(str(tmp_path / "missing"), *staging)

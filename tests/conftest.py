"""Shared fixtures for publisher tests."""

import io
import json

import pytest

from oci_publisher.config import Config
from oci_publisher.errors import UploadError
from oci_publisher.validation import compute_digest

MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"

BASE_ENV = {
    "CLOUDFLARE_ACCOUNT_ID": "acct123",
    "R2_BUCKET": "images",
    "R2_ACCESS_KEY_ID": "key-id",
    "R2_SECRET_ACCESS_KEY": "secret",
}


def sha256_digest(data):
    """Digest of in-memory bytes, as the staging step computes it for files."""
    return compute_digest(io.BytesIO(data))


class FakeStore:
    """In-memory object store recording every put_object call."""

    def __init__(self, bucket="images", fail_on_call=None):
        self.bucket = bucket
        self.objects = {}
        self.calls = []
        self.fail_on_call = fail_on_call

    def put_object(self, key, body, content_type, artifact=None):
        self.calls.append(key)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise UploadError(f"Failed to upload {artifact}", artifact=artifact or key, key=key)
        self.objects[key] = (bytes(body), content_type)


@pytest.fixture
def env():
    return dict(BASE_ENV)


@pytest.fixture
def config(tmp_path, env):
    env["WORK_DIR"] = str(tmp_path / "work")
    return Config(env)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def manifest_bytes():
    return json.dumps({"schemaVersion": 2, "mediaType": MANIFEST_MEDIA_TYPE}).encode()


def make_converter(files, calls=None):
    """Build a converter that writes files (name -> bytes) into the destination."""

    def convert(image, tag, destination):
        if calls is not None:
            calls.append((image, tag, destination))
        for name, data in files.items():
            with open(f"{destination}/{name}", "wb") as f:
                f.write(data)

    return convert

"""
Publishing module for the image publisher.

Uploads a finished staging tree to the object store: blobs as opaque
octet streams, manifests with the content type named by their own
mediaType field.
"""

import json
import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from .errors import MalformedManifestError, StagingError
from .image import BLOB, BLOB_CONTENT_TYPE, MANIFEST
from .storage import object_key
from .validation import is_digest

logger = logging.getLogger(__name__)


def _staged_files(directory: str) -> list[str]:
    """Sorted names of the regular files in a staging directory."""
    try:
        names = sorted(
            entry.name for entry in os.scandir(directory) if entry.is_file(follow_symlinks=False)
        )
    except OSError as e:
        raise StagingError(f"Cannot list staging directory {directory}: {e}", path=directory) from e

    for name in names:
        if not is_digest(name):
            logger.warning(f"Staged file {name} in {directory} is not named by digest")
    return names


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise StagingError(f"Cannot read staged file {path}: {e}", path=path) from e


def read_manifest_media_type(data: bytes, artifact: str) -> str:
    """
    Extract the top-level mediaType of a manifest document.

    Args:
        data: Raw manifest bytes
        artifact: Manifest name, used in error messages

    Returns:
        The mediaType string, e.g. "application/vnd.oci.image.manifest.v1+json"

    Raises:
        MalformedManifestError: If data is not UTF-8 JSON, is not a JSON
            object, or has no string mediaType
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedManifestError(f"Manifest {artifact} is not valid JSON: {e}", artifact=artifact) from e

    if not isinstance(document, dict):
        raise MalformedManifestError(f"Manifest {artifact} is not a JSON object", artifact=artifact)

    media_type = document.get("mediaType")
    if not isinstance(media_type, str) or not media_type:
        raise MalformedManifestError(f"Manifest {artifact} has no string mediaType field", artifact=artifact)
    return media_type


def _upload_all(jobs: list, workers: int) -> None:
    """
    Run upload jobs, stopping at the first failure.

    With more than one worker, uploads already in flight are allowed to
    finish, queued ones are cancelled and the earliest failed job's error
    is raised.
    """
    if workers <= 1 or len(jobs) <= 1:
        for job in jobs:
            job()
        return

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload")
    try:
        futures = [executor.submit(job) for job in jobs]
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
        failed = [future for future in futures if future in done and future.exception() is not None]
        if failed:
            for future in not_done:
                future.cancel()
            logger.debug(f"Cancelled queued uploads after failure ({len(not_done)} not finished)")
            raise failed[0].exception()
    finally:
        executor.shutdown(wait=True, cancel_futures=True)


def publish_blobs(image_name: str, blobs_dir: str, store, workers: int = 1) -> list[str]:
    """
    Upload every staged blob.

    Args:
        image_name: Image name, the v2/<image_name>/ key prefix
        blobs_dir: Staging directory holding digest-named blobs
        store: ObjectStore (or compatible) to upload into
        workers: Concurrent uploads

    Returns:
        List of uploaded object keys

    Raises:
        UploadError: On the first failed upload; earlier uploads stay in place
        StagingError: If a staged blob cannot be read
    """
    names = _staged_files(blobs_dir)
    keys = [object_key(image_name, BLOB, name) for name in names]

    def make_job(name, key):
        def job():
            body = _read_bytes(os.path.join(blobs_dir, name))
            store.put_object(key, body, BLOB_CONTENT_TYPE, artifact=name)
            logger.info(f"Uploaded blob {name} ({len(body)} bytes)")
        return job

    logger.info(f"Publishing {len(names)} blobs for {image_name}")
    _upload_all([make_job(name, key) for name, key in zip(names, keys)], workers)
    return keys


def publish_manifests(image_name: str, manifests_dir: str, store, workers: int = 1) -> list[str]:
    """
    Upload every staged manifest with its own mediaType as content type.

    All manifests are read and checked before the first upload, so a
    malformed manifest never reaches the store.

    Args:
        image_name: Image name, the v2/<image_name>/ key prefix
        manifests_dir: Staging directory holding digest-named manifests
        store: ObjectStore (or compatible) to upload into
        workers: Concurrent uploads

    Returns:
        List of uploaded object keys

    Raises:
        MalformedManifestError: If any manifest lacks a usable mediaType
        UploadError: On the first failed upload
        StagingError: If a staged manifest cannot be read
    """
    prepared = []
    for name in _staged_files(manifests_dir):
        body = _read_bytes(os.path.join(manifests_dir, name))
        content_type = read_manifest_media_type(body, name)
        logger.debug(f"Manifest {name} has media type {content_type}")
        prepared.append((name, object_key(image_name, MANIFEST, name), body, content_type))

    def make_job(name, key, body, content_type):
        def job():
            store.put_object(key, body, content_type, artifact=name)
            logger.info(f"Uploaded manifest {name} ({content_type})")
        return job

    logger.info(f"Publishing {len(prepared)} manifests for {image_name}")
    _upload_all([make_job(*item) for item in prepared], workers)
    return [item[1] for item in prepared]

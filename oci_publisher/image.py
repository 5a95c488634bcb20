"""
Staging module for the image publisher.

Builds the local v2/<image>/{manifests,blobs} tree and moves exported
artifacts into it under their content digest.
"""

import logging
import os

from .errors import StagingError
from .validation import compute_digest

logger = logging.getLogger(__name__)

MANIFEST = "manifest"
BLOB = "blob"

MANIFEST_SUFFIX = ".manifest.json"
VERSION_MARKER = "version"
BLOB_CONTENT_TYPE = "application/octet-stream"


def staging_root(base_dir: str, image_name: str) -> str:
    """Return the per-image staging directory, base_dir/v2/<image_name>."""
    return os.path.join(base_dir, "v2", image_name)


def prepare_staging_dirs(base_dir: str, image_name: str) -> tuple[str, str]:
    """
    Create the manifests and blobs staging directories for an image.

    Safe to call when the directories already exist.

    Args:
        base_dir: Working base directory
        image_name: Validated image name (may contain slashes)

    Returns:
        Tuple of (manifests_dir, blobs_dir)

    Raises:
        StagingError: If a directory cannot be created
    """
    root = staging_root(base_dir, image_name)
    manifests_dir = os.path.join(root, "manifests")
    blobs_dir = os.path.join(root, "blobs")

    for path in (manifests_dir, blobs_dir):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create staging directory {path}: {e}")
            raise StagingError(f"Cannot create staging directory {path}: {e}", path=path) from e

    logger.debug(f"Staging directories ready under {root}")
    return manifests_dir, blobs_dir


def classify_artifact(filename: str) -> str | None:
    """
    Classify an exported file by name.

    Returns:
        MANIFEST for "*.manifest.json", None for the converter's "version"
        marker, BLOB for everything else.

    Examples:
        >>> classify_artifact("version") is None
        True
        >>> classify_artifact("sha-layer.manifest.json")
        'manifest'
        >>> classify_artifact("3f1a...")
        'blob'
    """
    if filename == VERSION_MARKER:
        return None
    if filename.endswith(MANIFEST_SUFFIX):
        return MANIFEST
    return BLOB


def _place(src: str, dst: str, digest: str, name: str) -> None:
    """Move src to dst. An existing dst with the same digest is kept."""
    if os.path.exists(dst):
        if compute_digest(dst) == digest:
            logger.debug(f"{name} duplicates already staged {digest}")
            os.remove(src)
            return
        logger.warning(f"Staged file {dst} does not match its digest, replacing it with {name}")
    os.rename(src, dst)


def stage_artifacts(workspace: str, manifests_dir: str, blobs_dir: str) -> list[dict]:
    """
    Hash every exported file and move it into the staging tree.

    The "version" marker is deleted. Manifests go to manifests_dir, all other
    files to blobs_dir, each renamed to exactly its digest. Renames never
    cross filesystems, so the workspace must live on the staging filesystem.

    Args:
        workspace: Directory populated by the converter
        manifests_dir: Destination for manifests
        blobs_dir: Destination for blobs

    Returns:
        List of staged artifacts:
        [
            {
                "name": str,    # Original filename in the workspace
                "kind": str,    # "manifest" or "blob"
                "digest": str,  # sha256:...
                "path": str,    # Staged path
            },
            ...
        ]

    Raises:
        StagingError: If a file cannot be read, hashed, removed or renamed,
            or the workspace holds something other than regular files
    """
    try:
        entries = sorted(os.scandir(workspace), key=lambda entry: entry.name)
    except OSError as e:
        raise StagingError(f"Cannot list workspace {workspace}: {e}", path=workspace) from e

    staged = []
    for entry in entries:
        name = entry.name
        kind = classify_artifact(name)

        try:
            if kind is None:
                os.remove(entry.path)
                logger.debug(f"Removed converter marker {name}")
                continue

            if not entry.is_file(follow_symlinks=False):
                raise StagingError(f"Unexpected non-file entry in workspace: {name}", path=entry.path)

            digest = compute_digest(entry.path)
            dst_dir = manifests_dir if kind == MANIFEST else blobs_dir
            dst = os.path.join(dst_dir, digest)
            _place(entry.path, dst, digest, name)
        except OSError as e:
            logger.error(f"Cannot stage {name}: {e}")
            raise StagingError(f"Cannot stage {name}: {e}", path=entry.path) from e

        logger.debug(f"Staged {kind} {name} as {digest}")
        staged.append({"name": name, "kind": kind, "digest": digest, "path": dst})

    manifests = sum(1 for artifact in staged if artifact["kind"] == MANIFEST)
    logger.info(f"Staged {manifests} manifests and {len(staged) - manifests} blobs")
    return staged

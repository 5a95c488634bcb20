"""
Publish locally built container images to an S3-compatible bucket.

An image is exported from the local Docker daemon with skopeo, every
exported file is renamed to its content digest in a local staging tree,
and the tree is uploaded under a registry-style key namespace:

    v2/<image>/blobs/<digest>        application/octet-stream
    v2/<image>/manifests/<digest>    the manifest's own mediaType

Features:
    - Streaming sha256 content addressing
    - Manifest media-type fidelity
    - Fail-fast uploads, optionally concurrent
    - Workspace and staging tree always removed at the end of a run
    - Configurable via environment variables

See README.md for full documentation.
"""

__version__ = "0.1.0"

from .config import Config
from .errors import (
    PublishError,
    ConfigError,
    InvalidReferenceError,
    ToolMissingError,
    ConversionError,
    StagingError,
    MalformedManifestError,
    UploadError,
)
from .validation import compute_digest, validate_image_name, validate_tag
from .builder import check_converter, run_conversion
from .image import prepare_staging_dirs, classify_artifact, stage_artifacts
from .storage import ObjectStore, object_key
from .publisher import publish_blobs, publish_manifests
from .pipeline import PublishRun, RunState, publish_image

__all__ = [
    "Config",
    "PublishError",
    "ConfigError",
    "InvalidReferenceError",
    "ToolMissingError",
    "ConversionError",
    "StagingError",
    "MalformedManifestError",
    "UploadError",
    "compute_digest",
    "validate_image_name",
    "validate_tag",
    "check_converter",
    "run_conversion",
    "prepare_staging_dirs",
    "classify_artifact",
    "stage_artifacts",
    "ObjectStore",
    "object_key",
    "publish_blobs",
    "publish_manifests",
    "PublishRun",
    "RunState",
    "publish_image",
]

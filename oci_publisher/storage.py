"""
S3-compatible object store access for the image publisher.

Wraps a boto3 S3 client behind a single put_object capability bound to one
bucket. Works with Cloudflare R2, AWS S3, MinIO and other S3-compatible
services.
"""

import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigError, UploadError

logger = logging.getLogger(__name__)


def object_key(image_name: str, kind: str, digest: str) -> str:
    """
    Build the registry-style object key for an artifact.

    Example:
        >>> object_key("myapp", "blob", "sha256:abc")
        'v2/myapp/blobs/sha256:abc'
    """
    return f"v2/{image_name}/{kind}s/{digest}"


class ObjectStore:
    """
    Bucket-bound object store.

    Attributes:
        bucket: Name of the destination bucket
        client: boto3 S3 client (or anything with the same put_object signature)
    """

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config) -> "ObjectStore":
        """
        Create a store for the configured R2 bucket.

        Retries are left to botocore's standard retry mode, bounded by
        UPLOAD_MAX_ATTEMPTS.
        """
        logger.debug(f"Creating S3 client for {config.R2_ENDPOINT_URL}")
        try:
            client = boto3.client(
                "s3",
                endpoint_url=config.R2_ENDPOINT_URL,
                aws_access_key_id=config.R2_ACCESS_KEY_ID,
                aws_secret_access_key=config.R2_SECRET_ACCESS_KEY,
                region_name="auto",
                config=BotoConfig(
                    signature_version="s3v4",
                    retries={"mode": "standard", "max_attempts": config.UPLOAD_MAX_ATTEMPTS},
                    max_pool_connections=max(10, config.UPLOAD_WORKERS),
                ),
            )
        except ValueError as e:
            raise ConfigError(f"Cannot create S3 client for {config.R2_ENDPOINT_URL}: {e}") from e
        return cls(client, config.R2_BUCKET)

    def put_object(self, key: str, body: bytes, content_type: str, artifact: str | None = None) -> None:
        """
        Upload one object, overwriting any object at the same key.

        Args:
            key: Object key
            body: Object content
            content_type: Content-Type stored with the object
            artifact: Name used in error messages. Default: key

        Raises:
            UploadError: On any transport or store-side failure
        """
        artifact = artifact or key
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            logger.error(f"Upload of {artifact} rejected by store: {error_code}")
            raise UploadError(f"Failed to upload {artifact} to {key}: {e}", artifact=artifact, key=key) from e
        except BotoCoreError as e:
            logger.error(f"Upload of {artifact} failed: {e}")
            raise UploadError(f"Failed to upload {artifact} to {key}: {e}", artifact=artifact, key=key) from e

"""
Publish a locally built container image to a Cloudflare R2 (S3) bucket.

The image is exported from the local Docker daemon with skopeo, staged
under its content digests, and uploaded as:

    v2/<image>/blobs/<digest>
    v2/<image>/manifests/<digest>

Environment Variables:
    CLOUDFLARE_ACCOUNT_ID, R2_BUCKET, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY (required)
    R2_ENDPOINT_URL, LOG_LEVEL, WORK_DIR, CONVERTER, CONVERTER_TIMEOUT,
    UPLOAD_WORKERS, UPLOAD_MAX_ATTEMPTS, MAX_IMAGE_NAME_LENGTH, MAX_TAG_LENGTH

Example:
    $ docker build -t myapp:latest .
    $ LOG_LEVEL=DEBUG python app.py myapp latest
    $ oci-publish myapp:1.2.0 --workers 4
"""

import logging
import sys

import click

from oci_publisher.config import Config
from oci_publisher.errors import ConfigError, PublishError
from oci_publisher.pipeline import PublishRun
from oci_publisher.storage import ObjectStore
from oci_publisher.validation import parse_image_reference

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _describe_failure(run, error: PublishError) -> str:
    step = run.failed_state.value if run is not None and run.failed_state else "startup"
    artifact = getattr(error, "artifact", None)
    where = f"{step} ({artifact})" if artifact else step
    return f"Publish failed while {where}: {error}"


@click.command()
@click.argument("image")
@click.argument("tag", required=False)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Concurrent uploads per phase (overrides UPLOAD_WORKERS).")
@click.option("--work-dir", type=click.Path(file_okay=False), default=None, help="Base directory for workspace and staging tree (overrides WORK_DIR).")
def main(image, tag, workers, work_dir):
    """Publish IMAGE[:TAG] from the local Docker daemon to the configured bucket.

    TAG may be given as a second argument or as IMAGE:TAG. Default: latest.
    """
    try:
        config = Config()
    except ConfigError as e:
        configure_logging()
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    configure_logging(config.LOG_LEVEL)
    if workers is not None:
        config.UPLOAD_WORKERS = workers
    if work_dir is not None:
        config.WORK_DIR = work_dir

    if tag is None:
        image, tag = parse_image_reference(image)

    logger.info(f"Configuration: {config}")

    run = None
    try:
        run = PublishRun(image, tag, config, ObjectStore.from_config(config))
        keys = run.run()
    except PublishError as e:
        logger.error(_describe_failure(run, e))
        sys.exit(1)

    for key in keys:
        click.echo(key)


if __name__ == "__main__":
    main()

"""
Run lifecycle for the image publisher.

Sequences conversion, staging, publishing and cleanup for one image, and
removes the workspace and staging tree whatever the outcome.
"""

import enum
import logging
import os
import shutil
import tempfile

from . import builder
from .errors import StagingError
from .image import prepare_staging_dirs, stage_artifacts, staging_root
from .publisher import publish_blobs, publish_manifests
from .storage import ObjectStore
from .validation import validate_image_name, validate_tag

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    INIT = "init"
    CONVERTING = "converting"
    STAGING = "staging"
    CLASSIFYING = "classifying"
    PUBLISHING = "publishing"
    CLEANING_UP = "cleaning up"
    DONE = "done"
    FAILED = "failed"


class PublishRun:
    """
    One publish of image:tag.

    Steps run strictly in order:
        INIT -> CONVERTING -> STAGING -> CLASSIFYING -> PUBLISHING -> CLEANING_UP -> DONE
    Any failure moves the run to FAILED after a best-effort cleanup, and the
    original exception propagates unchanged. ``failed_state`` records the
    step that failed.

    Args:
        image: Image name in the local Docker daemon
        tag: Image tag
        config: Config instance
        store: ObjectStore (or compatible) to publish into
        converter: Callable(image, tag, destination) populating destination.
            Default: skopeo via builder.run_conversion
    """

    def __init__(self, image: str, tag: str, config, store, converter=None):
        validate_image_name(image, config.MAX_IMAGE_NAME_LENGTH)
        validate_tag(tag, config.MAX_TAG_LENGTH)

        self.image = image
        self.tag = tag
        self.config = config
        self.store = store
        self.converter = converter
        self.state = RunState.INIT
        self.failed_state = None
        self.workspace = None
        self.staging_dir = None
        self.staged = []
        self.uploaded = []

    def _enter(self, state: RunState) -> None:
        logger.debug(f"{self.image}:{self.tag}: {self.state.value} -> {state.value}")
        self.state = state

    def _make_workspace(self) -> str:
        # Same filesystem as the staging tree so artifacts can be renamed into it
        try:
            os.makedirs(self.config.WORK_DIR, exist_ok=True)
            return tempfile.mkdtemp(prefix=".workspace-", dir=self.config.WORK_DIR)
        except OSError as e:
            raise StagingError(f"Cannot create workspace in {self.config.WORK_DIR}: {e}", path=self.config.WORK_DIR) from e

    def _convert(self, destination: str) -> None:
        if self.converter is not None:
            self.converter(self.image, self.tag, destination)
            return
        builder.run_conversion(
            self.image,
            self.tag,
            destination,
            command=self.config.CONVERTER,
            timeout=self.config.CONVERTER_TIMEOUT,
        )

    def run(self) -> list[str]:
        """
        Execute the run.

        Returns:
            Object keys uploaded, blobs first

        Raises:
            PublishError: Whichever step failed first
        """
        if self.state is not RunState.INIT:
            raise RuntimeError(f"Run already executed (state: {self.state.value})")

        logger.info(f"Publishing {self.image}:{self.tag} to bucket {self.store.bucket}")
        try:
            if self.converter is None:
                builder.check_converter(self.config.CONVERTER)

            self._enter(RunState.CONVERTING)
            self.workspace = self._make_workspace()
            self._convert(self.workspace)

            self._enter(RunState.STAGING)
            self.staging_dir = staging_root(self.config.WORK_DIR, self.image)
            manifests_dir, blobs_dir = prepare_staging_dirs(self.config.WORK_DIR, self.image)

            self._enter(RunState.CLASSIFYING)
            self.staged = stage_artifacts(self.workspace, manifests_dir, blobs_dir)
            for artifact in self.staged:
                logger.debug(f"{artifact['kind']} {artifact['name']} -> {artifact['digest']}")

            self._enter(RunState.PUBLISHING)
            workers = self.config.UPLOAD_WORKERS
            self.uploaded.extend(publish_blobs(self.image, blobs_dir, self.store, workers))
            self.uploaded.extend(publish_manifests(self.image, manifests_dir, self.store, workers))
        except BaseException as e:
            self._fail(e)
            raise

        self._enter(RunState.CLEANING_UP)
        try:
            self._cleanup(strict=True)
        except StagingError as e:
            self._fail(e)
            raise

        self._enter(RunState.DONE)
        logger.info(f"Published {self.image}:{self.tag}: {len(self.uploaded)} objects")
        return self.uploaded

    def _fail(self, error: BaseException) -> None:
        self.failed_state = self.state
        logger.error(f"Run failed while {self.state.value}: {error}")
        if self.state is not RunState.CLEANING_UP:
            self._enter(RunState.CLEANING_UP)
            self._cleanup(strict=False)
        self._enter(RunState.FAILED)

    def _cleanup(self, strict: bool) -> None:
        """
        Remove the workspace and, if it was created, the staging tree.

        When strict, the first removal failure is raised as StagingError;
        otherwise failures are only logged.
        """
        for path in (self.workspace, self.staging_dir):
            if path is None or not os.path.exists(path):
                continue
            try:
                shutil.rmtree(path)
                logger.debug(f"Removed {path}")
            except OSError as e:
                if strict:
                    raise StagingError(f"Cannot remove {path}: {e}", path=path) from e
                logger.error(f"Cleanup of {path} failed: {e}")

        # Drop the v2/ parent directories left empty by this run
        if self.staging_dir is not None:
            parent = os.path.dirname(self.staging_dir)
            v2_dir = os.path.join(self.config.WORK_DIR, "v2")
            while parent.startswith(v2_dir):
                try:
                    os.rmdir(parent)
                except OSError:
                    break
                parent = os.path.dirname(parent)


def publish_image(image: str, tag: str, config, store=None, converter=None) -> list[str]:
    """
    Publish image:tag with a store built from config unless one is given.

    Returns:
        Object keys uploaded
    """
    if store is None:
        store = ObjectStore.from_config(config)
    return PublishRun(image, tag, config, store, converter=converter).run()

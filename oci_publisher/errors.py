"""
Exception types for the image publisher.

Every failure that aborts a run derives from PublishError so the CLI can
report it uniformly. The underlying cause is always chained.
"""


class PublishError(Exception):
    """Base class for all fatal publisher errors."""


class ConfigError(PublishError):
    """Missing or invalid configuration. Raised before any work starts."""


class InvalidReferenceError(ConfigError):
    """Image name or tag is not acceptable."""


class ToolMissingError(PublishError):
    """The external image conversion tool is not installed."""


class ConversionError(PublishError):
    """The external image conversion tool failed."""


class StagingError(PublishError):
    """Filesystem failure while building, filling or removing local trees."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class MalformedManifestError(PublishError):
    """A manifest is not valid JSON or has no string ``mediaType``."""

    def __init__(self, message: str, artifact: str):
        super().__init__(message)
        self.artifact = artifact


class UploadError(PublishError):
    """The object store rejected an upload or could not be reached."""

    def __init__(self, message: str, artifact: str, key: str):
        super().__init__(message)
        self.artifact = artifact
        self.key = key

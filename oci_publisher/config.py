"""
Configuration module for the image publisher.

Loads all configuration from environment variables with sensible defaults.
A Config is built once at process start and passed to whatever needs it.
"""

import logging
import os
from urllib.parse import urlparse

from .errors import ConfigError

REQUIRED_VARIABLES = (
    "CLOUDFLARE_ACCOUNT_ID",
    "R2_BUCKET",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
)


def _positive_int(env, name: str, default: str) -> int:
    raw = env.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be greater than 0, got {value}")
    return value


def _check_endpoint(url: str) -> None:
    try:
        endpoint = urlparse(url)
        valid = endpoint.scheme in ("http", "https") and bool(endpoint.hostname)
    except ValueError:
        valid = False
    if not valid:
        raise ConfigError(f"R2_ENDPOINT_URL must be an http(s) URL, got {url!r}")


class Config:
    """
    Publisher configuration from environment variables.

    Object store credentials are required; everything else has a default and
    can be overridden by setting the corresponding environment variable.
    """

    def __init__(self, environ=None):
        """
        Initialize configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigError: If a required variable is missing or a value is invalid

        Environment Variables:
            CLOUDFLARE_ACCOUNT_ID: Account owning the R2 bucket. Required.
            R2_BUCKET: Destination bucket. Required.
            R2_ACCESS_KEY_ID: Access key id. Required.
            R2_SECRET_ACCESS_KEY: Secret access key. Required.
            R2_ENDPOINT_URL: Override for the S3 endpoint. Default: derived from account id
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            WORK_DIR: Base directory for workspace and staging tree. Default: cwd
            CONVERTER: Image conversion executable. Default: skopeo
            CONVERTER_TIMEOUT: Conversion timeout in seconds. Default: 600
            UPLOAD_WORKERS: Concurrent uploads per phase. Default: 1
            UPLOAD_MAX_ATTEMPTS: Attempts per request made by the S3 client. Default: 3
            MAX_IMAGE_NAME_LENGTH: Maximum image name length. Default: 255
            MAX_TAG_LENGTH: Maximum tag length. Default: 128
        """
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_VARIABLES if not env.get(name)]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        # Object store
        self.CLOUDFLARE_ACCOUNT_ID = env["CLOUDFLARE_ACCOUNT_ID"]
        self.R2_BUCKET = env["R2_BUCKET"]
        self.R2_ACCESS_KEY_ID = env["R2_ACCESS_KEY_ID"]
        self.R2_SECRET_ACCESS_KEY = env["R2_SECRET_ACCESS_KEY"]
        self.R2_ENDPOINT_URL = env.get(
            "R2_ENDPOINT_URL",
            f"https://{self.CLOUDFLARE_ACCOUNT_ID}.r2.cloudflarestorage.com",
        )
        _check_endpoint(self.R2_ENDPOINT_URL)

        # Logging
        self.LOG_LEVEL = env.get("LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(self.LOG_LEVEL), int):
            raise ConfigError(f"LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got {self.LOG_LEVEL!r}")

        # Local filesystem
        self.WORK_DIR = env.get("WORK_DIR") or os.getcwd()

        # Conversion
        self.CONVERTER = env.get("CONVERTER", "skopeo")
        self.CONVERTER_TIMEOUT = _positive_int(env, "CONVERTER_TIMEOUT", "600")  # seconds

        # Upload
        self.UPLOAD_WORKERS = _positive_int(env, "UPLOAD_WORKERS", "1")
        self.UPLOAD_MAX_ATTEMPTS = _positive_int(env, "UPLOAD_MAX_ATTEMPTS", "3")

        # Validation limits
        self.MAX_IMAGE_NAME_LENGTH = _positive_int(env, "MAX_IMAGE_NAME_LENGTH", "255")
        self.MAX_TAG_LENGTH = _positive_int(env, "MAX_TAG_LENGTH", "128")

    def __repr__(self):
        """String representation for logging. Credentials are never included."""
        return (
            f"Config(R2_BUCKET={self.R2_BUCKET}, "
            f"R2_ENDPOINT_URL={self.R2_ENDPOINT_URL}, "
            f"LOG_LEVEL={self.LOG_LEVEL}, "
            f"WORK_DIR={self.WORK_DIR}, "
            f"CONVERTER={self.CONVERTER}, "
            f"UPLOAD_WORKERS={self.UPLOAD_WORKERS})"
        )

"""
Digest and input validation module for the image publisher.

Provides content hashing plus validation of image names, tags and digests.
"""

import hashlib
import logging
import re

from .errors import InvalidReferenceError

logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = "sha256"
CHUNK_SIZE = 64 * 1024

_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


def compute_digest(source, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Compute the digest of a file or binary stream without reading it whole.

    Args:
        source: Filesystem path, or a binary file object positioned at the start
        chunk_size: Bytes read per iteration

    Returns:
        String in format "sha256:<64 hex chars>"

    Raises:
        OSError: If the file cannot be opened or a read fails
    """
    h = hashlib.sha256()
    if hasattr(source, "read"):
        for chunk in iter(lambda: source.read(chunk_size), b""):
            h.update(chunk)
    else:
        with open(source, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                h.update(chunk)
    return f"{DIGEST_ALGORITHM}:{h.hexdigest()}"


def validate_image_name(name: str, max_length: int = 255) -> None:
    """
    Validate image name before it reaches a subprocess, a path or an object key.

    Args:
        name: Image name to validate (e.g., "myapp" or "team/myapp")
        max_length: Maximum accepted length

    Raises:
        InvalidReferenceError: If name is invalid

    Validation Rules:
        - Must be 1-max_length characters
        - Only alphanumeric characters, dots (.), hyphens (-), underscores (_), and slashes (/)
        - No leading or trailing slash, no empty, "." or ".." path segments

    Examples:
        >>> validate_image_name("team/myapp")  # OK
        >>> validate_image_name("../etc")  # Raises (path traversal)
    """
    if not name or len(name) > max_length:
        logger.warning(f"Invalid image name length: {len(name or '')}")
        raise InvalidReferenceError(f"Invalid image name: must be 1-{max_length} characters")

    if not re.match(r"^[a-zA-Z0-9._/-]+$", name):
        logger.warning(f"Invalid image name format: {name}")
        raise InvalidReferenceError(
            "Invalid image name: only alphanumeric, dots, hyphens, underscores, and slashes allowed"
        )

    if any(part in ("", ".", "..") for part in name.split("/")):
        logger.warning(f"Invalid image name path: {name}")
        raise InvalidReferenceError(f"Invalid image name: {name!r} has an empty or relative path segment")

    logger.debug(f"Image name validated: {name}")


def validate_tag(tag: str, max_length: int = 128) -> None:
    """
    Validate container image tag.

    Raises:
        InvalidReferenceError: If tag is empty, too long, or has other characters
            than alphanumerics, dots, hyphens and underscores
    """
    if not tag or len(tag) > max_length:
        logger.warning(f"Invalid tag length: {len(tag or '')}")
        raise InvalidReferenceError(f"Invalid tag: must be 1-{max_length} characters")

    if not re.match(r"^[a-zA-Z0-9._-]+$", tag):
        logger.warning(f"Invalid tag format: {tag}")
        raise InvalidReferenceError("Invalid tag: only alphanumeric, dots, hyphens, and underscores allowed")

    logger.debug(f"Tag validated: {tag}")


def is_digest(value: str) -> bool:
    """Return True if value is a canonical "sha256:<64 lowercase hex>" digest."""
    return bool(_DIGEST_RE.match(value))


def parse_image_reference(reference: str, default_tag: str = "latest") -> tuple[str, str]:
    """
    Split "name[:tag]" into its name and tag.

    The tag separator is the last colon after the last slash, so
    "team/myapp:1.0" gives ("team/myapp", "1.0") and "team/myapp" gives
    ("team/myapp", default_tag).
    """
    name, sep, tag = reference.rpartition(":")
    if not sep or "/" in tag:
        return reference, default_tag
    return name, tag

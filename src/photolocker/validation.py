"""Input validation helpers for PhotoLocker.

These functions check store names, object keys, endpoints and presign
parameters independently of any signer or client so they can be
unit-tested in isolation.

Each function raises an appropriate ``PhotoLockerError`` subclass on
invalid input.
"""

import re
import urllib.parse

from photolocker.errors import ConfigurationError, SigningError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# S3 bucket naming rules:
#   - 3-63 characters
#   - lowercase letters, digits, hyphens, and periods
#   - must start and end with a letter or digit
#   - must not be formatted as an IP address
#   - must not start with "xn--" (internationalized domain prefix)
#   - must not end with "-s3alias" or "--ol-s3"
#   - no consecutive periods ("..") allowed

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")
_IP_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")

# Relaxed rule accepted by configuration (S3-compatible stores vary)
_LOOSE_BUCKET_RE = re.compile(r"^[a-z0-9.\-]{3,63}$", re.IGNORECASE)

_MAX_KEY_BYTES = 1024
_DOT_SEGMENTS = frozenset({".", ".."})
MAX_PRESIGNED_EXPIRES = 604800  # 7 days in seconds
DEFAULT_PRESIGNED_EXPIRES = 3600


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_bucket_name(name: str) -> None:
    """Validate a bucket name against the strict AWS naming rules.

    Args:
        name: The candidate bucket name.

    Raises:
        ConfigurationError: If the name violates any S3 bucket naming rule.
    """
    if len(name) < 3 or len(name) > 63:
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")

    if not _BUCKET_RE.match(name):
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")

    if _IP_RE.match(name):
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")

    if name.startswith("xn--"):
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")

    if name.endswith("-s3alias") or name.endswith("--ol-s3"):
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")

    if ".." in name:
        raise ConfigurationError(f"Invalid bucket name: {name!r}", field="bucket")


def is_loose_bucket_name(name: str) -> bool:
    """Return True if ``name`` passes the relaxed S3-compatible bucket rule."""
    return bool(_LOOSE_BUCKET_RE.match(name))


def validate_object_key(key: str) -> None:
    """Validate an object key.

    Args:
        key: The object key string.

    Raises:
        SigningError: If the key is empty, exceeds 1024 bytes when UTF-8
            encoded, or has a ``.`` or ``..`` path segment.
    """
    if not key:
        raise SigningError("Object key must not be empty")
    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise SigningError(f"Object key exceeds {_MAX_KEY_BYTES} bytes")
    # HTTP clients collapse dot segments, so the sent path would differ
    # from the signed one
    if any(segment in _DOT_SEGMENTS for segment in key.split("/")):
        raise SigningError(f"Object key must not contain '.' or '..' segments: {key!r}")


def validate_expires(value: int) -> int:
    """Validate a presigned URL lifetime in seconds.

    Args:
        value: Requested lifetime.

    Returns:
        The value, as an int in the range [1, 604800].

    Raises:
        SigningError: If the value is not an integer or is out of range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise SigningError(
            f"X-Amz-Expires must be an integer between 1 and {MAX_PRESIGNED_EXPIRES}"
        )
    if value < 1 or value > MAX_PRESIGNED_EXPIRES:
        raise SigningError(
            f"X-Amz-Expires must be between 1 and {MAX_PRESIGNED_EXPIRES} seconds."
        )
    return value


def validate_endpoint(endpoint: str) -> urllib.parse.SplitResult:
    """Validate an object store endpoint URL.

    Args:
        endpoint: e.g. "https://s3.amazonaws.com" or "http://localhost:9000".

    Returns:
        The parsed URL.

    Raises:
        ConfigurationError: If the URL is not absolute http(s) with a host.
    """
    try:
        parsed = urllib.parse.urlsplit(endpoint)
        # Accessing .port validates the port number
        parsed.port
    except ValueError:
        raise ConfigurationError("Invalid S3 endpoint URL", field="endpoint")

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigurationError("Invalid S3 endpoint URL", field="endpoint")
    return parsed

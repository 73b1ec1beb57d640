"""AWS Signature Version 4 request signing for PhotoLocker.

Implements the SigV4 signing algorithm for both header-based auth
(Authorization header) and query-string auth (presigned URLs) against an
S3-compatible object store. The store recomputes the signature
independently, so every string built here must match byte-for-byte.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-authenticating-requests.html
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sigv4-query-string-auth.html
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import urllib.parse
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from photolocker import metrics
from photolocker.config import Configuration
from photolocker.errors import SigningError
from photolocker.hashing import hmac_sha256, sha256_hex
from photolocker.sse import CustomerKeyMaterial
from photolocker.validation import validate_expires, validate_object_key

logger = logging.getLogger(__name__)

# Constants
ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
SERVICE_NAME = "s3"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
CONTENT_SHA256_HEADER = "x-amz-content-sha256"

_DEFAULT_PORTS = {"http": 80, "https": 443}
_METHOD_RE = re.compile(r"^[A-Z]+$")

# Query parameters owned by the presigner; callers may not override them
_PRESIGN_PARAMS = frozenset(
    {
        "X-Amz-Algorithm",
        "X-Amz-Credential",
        "X-Amz-Date",
        "X-Amz-Expires",
        "X-Amz-SignedHeaders",
        "X-Amz-Signature",
    }
)

Clock = Callable[[], datetime]
QueryParams = Mapping[str, str] | Iterable[tuple[str, str]] | str


@dataclass(frozen=True)
class SigningContext:
    """Everything computed while signing one request.

    Attributes:
        timestamp: ISO 8601 basic timestamp (YYYYMMDDTHHMMSSZ).
        date_stamp: The first 8 characters of ``timestamp``.
        credential_scope: ``date_stamp/region/s3/aws4_request``.
        canonical_request: The canonical request string.
        string_to_sign: The string to sign.
        signed_headers: ``;``-joined sorted signed header names.
        signature: 64-character lowercase hex signature.
    """

    timestamp: str
    date_stamp: str
    credential_scope: str
    canonical_request: str
    string_to_sign: str
    signed_headers: str
    signature: str


@dataclass(frozen=True)
class SignedHeaders:
    """Header-based auth artifact.

    Attributes:
        headers: Headers to send: ``Authorization``, ``X-Amz-Date``,
            ``Host``, ``x-amz-content-sha256`` and any extra headers
            that were signed.
        url: The request URL the headers were computed for.
        context: The signing context.
    """

    headers: dict[str, str]
    url: str
    context: SigningContext = field(repr=False)


@dataclass(frozen=True)
class PresignedUrl:
    """Query-string auth artifact.

    The store enforces ``expires``; nothing here does.

    Attributes:
        url: The full presigned URL including ``X-Amz-Signature``.
        method: The HTTP method bound into the signature.
        expires: Lifetime in seconds.
        context: The signing context.
    """

    url: str
    method: str
    expires: int
    context: SigningContext = field(repr=False)


# ---------------------------------------------------------------------------
# Module-level utility functions
# ---------------------------------------------------------------------------


def format_amz_date(when: datetime) -> tuple[str, str]:
    """Format a datetime as a SigV4 (timestamp, date_stamp) pair.

    Naive datetimes are taken to be UTC.
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    timestamp = when.astimezone(timezone.utc).strftime(AMZ_DATE_FORMAT)
    return timestamp, timestamp[:8]


def derive_signing_key(
    secret_key: str, date: str, region: str, service: str = SERVICE_NAME
) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Args:
        secret_key: The secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        The 32-byte signing key.
    """
    k_date = hmac_sha256(KEY_PREFIX + secret_key, date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, SCOPE_TERMINATOR)


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the final HMAC-SHA256 hex signature.

    Args:
        signing_key: The derived signing key bytes.
        string_to_sign: The assembled string to sign.

    Returns:
        64-character lowercase hex string.
    """
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def uri_encode(s: str, encode_slash: bool = True) -> str:
    """S3-compatible URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded.
    All other characters are percent-encoded with uppercase hex.
    Spaces become %20 (not +).

    Args:
        s: The string to encode.
        encode_slash: If True (default), '/' is encoded as %2F.
                     If False, '/' is left as-is.

    Returns:
        The URI-encoded string.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(s, safe=safe)


def uri_encode_path(path: str) -> str:
    """URI-encode a path, preserving forward slashes.

    Each path segment is individually URI-encoded. Forward slashes
    are preserved (not encoded), so object keys containing '/' keep
    their hierarchy.

    Args:
        path: The raw (unencoded) URI path.

    Returns:
        The URI-encoded path.
    """
    if not path:
        return "/"
    segments = path.split("/")
    encoded_segments = [uri_encode(seg, encode_slash=True) for seg in segments]
    result = "/".join(encoded_segments)
    if not result.startswith("/"):
        result = "/" + result
    return result


def _query_pairs(query: QueryParams | None) -> list[tuple[str, str]]:
    """Normalise query input into decoded (name, value) pairs."""
    if query is None:
        return []
    if isinstance(query, str):
        pairs = []
        for pair in query.lstrip("?").split("&"):
            if not pair:
                continue
            if "=" in pair:
                name, value = pair.split("=", 1)
            else:
                name, value = pair, ""
            # URL-decode first (query params may already be encoded)
            pairs.append((urllib.parse.unquote_plus(name), urllib.parse.unquote_plus(value)))
        return pairs
    if isinstance(query, Mapping):
        return [(str(k), str(v)) for k, v in query.items()]
    return [(str(k), str(v)) for k, v in query]


def canonical_query_string(query: QueryParams | None) -> str:
    """Build the canonical query string.

    Parameters are URI-encoded, then sorted by name (byte-order), then by
    value. Parameters with no value use an empty value (e.g. 'acl=').

    Args:
        query: A mapping, a sequence of pairs, or a raw query string
            (which is decoded before re-encoding).

    Returns:
        The canonical query string.
    """
    encoded = sorted(
        (uri_encode(name, encode_slash=True), uri_encode(value, encode_slash=True))
        for name, value in _query_pairs(query)
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def trim_header_value(value: str) -> str:
    """Trim and normalize a header value for canonical headers.

    Strips leading/trailing whitespace and collapses sequential spaces
    to a single space.

    Args:
        value: The raw header value.

    Returns:
        The trimmed and normalized value.
    """
    value = value.strip()
    return re.sub(r" +", " ", value)


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Build the canonical headers block and the signed headers list.

    Args:
        headers: Headers to sign (names may be mixed case).

    Returns:
        A (canonical_headers, signed_headers) pair. ``canonical_headers``
        has one ``name:value\\n`` line per header, sorted by name.
    """
    lower_headers: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.strip().lower()
        if lower_name in lower_headers:
            # Multiple same headers: join with comma
            lower_headers[lower_name] += "," + trim_header_value(value)
        else:
            lower_headers[lower_name] = trim_header_value(value)

    sorted_names = sorted(lower_headers)
    block = "".join(f"{name}:{lower_headers[name]}\n" for name in sorted_names)
    return block, ";".join(sorted_names)


def build_canonical_request(
    method: str,
    canonical_uri: str,
    canonical_query: str,
    canonical_headers_block: str,
    signed_headers: str,
    payload_hash: str,
) -> str:
    """Assemble the canonical request string.

    Args:
        method: HTTP method (uppercase).
        canonical_uri: The already-encoded URI path.
        canonical_query: The canonical query string.
        canonical_headers_block: Output of ``canonical_headers``.
        signed_headers: ``;``-joined sorted header names.
        payload_hash: SHA-256 hex digest or UNSIGNED-PAYLOAD.

    Returns:
        The canonical request string.
    """
    return "\n".join(
        [
            method,
            canonical_uri,
            canonical_query,
            canonical_headers_block,
            signed_headers,
            payload_hash,
        ]
    )


def build_string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
    """Build the string to sign.

    Args:
        timestamp: ISO 8601 timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (YYYYMMDD/region/s3/aws4_request).
        canonical_request: The assembled canonical request string.

    Returns:
        The string to sign.
    """
    return f"{ALGORITHM}\n{timestamp}\n{scope}\n{sha256_hex(canonical_request)}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class RequestSigner:
    """Signs object store requests with the configured credentials.

    The clock is read once per signing call, so every artifact carries the
    time at which it was produced. Signing keys are derived per call and
    never cached.

    When the configuration enables customer-supplied keys, the signer owns
    the derived CustomerKeyMaterial; ``close()`` (or leaving a ``with``
    block) zeroes it.

    Attributes:
        config: The immutable store configuration.
        region: The configured region; never auto-corrected.
    """

    def __init__(self, config: Configuration, clock: Clock | None = None) -> None:
        self.config = config
        self.region = config.region
        self._clock = clock or _utc_now
        self._customer_key: CustomerKeyMaterial | None = None

        parsed = urllib.parse.urlsplit(config.endpoint)
        if not parsed.hostname:
            raise SigningError(f"Endpoint has no host: {config.endpoint!r}")
        self._scheme = parsed.scheme
        self._base_path = parsed.path.rstrip("/")

        hostname = parsed.hostname
        if ":" in hostname:
            hostname = f"[{hostname}]"
        try:
            port = parsed.port
        except ValueError:
            raise SigningError(f"Invalid endpoint port: {config.endpoint!r}")
        if port is not None and port != _DEFAULT_PORTS.get(parsed.scheme):
            hostname = f"{hostname}:{port}"

        if config.addressing_style == "virtual":
            hostname = f"{config.bucket}.{hostname}"
        self._host = hostname

    # -- Addressing ------------------------------------------------------------

    @property
    def host(self) -> str:
        """The value of the signed ``host`` header."""
        return self._host

    @property
    def base_url(self) -> str:
        """Scheme and host, without a trailing slash."""
        return f"{self._scheme}://{self._host}"

    def bucket_path(self) -> str:
        """Raw path of the bucket root under the configured addressing style."""
        if self.config.addressing_style == "virtual":
            return f"{self._base_path}/"
        return f"{self._base_path}/{self.config.bucket}"

    def object_path(self, key: str) -> str:
        """Raw (unencoded) path of an object under the configured addressing style.

        Raises:
            SigningError: If the key is empty or too long.
        """
        validate_object_key(key)
        if self.config.addressing_style == "virtual":
            return f"{self._base_path}/{key}"
        return f"{self._base_path}/{self.config.bucket}/{key}"

    def object_url(self, key: str) -> str:
        """Unsigned URL of an object (not directly fetchable when SSE-C is in use)."""
        return self.base_url + uri_encode_path(self.object_path(key))

    # -- Customer key ----------------------------------------------------------

    def customer_key_headers(self) -> dict[str, str]:
        """Return the SSE-C headers, or an empty dict when disabled.

        The key material is derived on first use and kept until ``close()``.
        """
        if not self.config.use_customer_key:
            return {}
        if self._customer_key is None or self._customer_key.wiped:
            self._customer_key = CustomerKeyMaterial.derive(self.config.encryption_passphrase)
        return self._customer_key.build_headers()

    def close(self) -> None:
        """Zero any customer key material held by the signer."""
        if self._customer_key is not None:
            self._customer_key.wipe()
            self._customer_key = None

    def __enter__(self) -> "RequestSigner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Signing ---------------------------------------------------------------

    def _normalize_method(self, method: str) -> str:
        method = method.strip().upper()
        if not _METHOD_RE.match(method):
            raise SigningError(f"Invalid HTTP method: {method!r}")
        return method

    def _sign(
        self,
        method: str,
        canonical_uri: str,
        canonical_query: str,
        headers: Mapping[str, str],
        payload_hash: str,
        timestamp: str,
        date_stamp: str,
    ) -> SigningContext:
        """Run steps 2-5 of SigV4 and return the resulting context."""
        headers_block, signed_headers = canonical_headers(headers)
        canonical_request = build_canonical_request(
            method,
            canonical_uri,
            canonical_query,
            headers_block,
            signed_headers,
            payload_hash,
        )
        scope = f"{date_stamp}/{self.region}/{SERVICE_NAME}/{SCOPE_TERMINATOR}"
        string_to_sign = build_string_to_sign(timestamp, scope, canonical_request)

        signing_key = derive_signing_key(
            self.config.secret_access_key, date_stamp, self.region, SERVICE_NAME
        )
        signature = compute_signature(signing_key, string_to_sign)

        logger.debug(
            "Signed %s %s (scope=%s, signed_headers=%s)",
            method,
            canonical_uri,
            scope,
            signed_headers,
        )
        logger.debug("Canonical request:\n%s", canonical_request)
        logger.debug("String to sign:\n%s", string_to_sign)
        return SigningContext(
            timestamp=timestamp,
            date_stamp=date_stamp,
            credential_scope=scope,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
            signed_headers=signed_headers,
            signature=signature,
        )

    def sign_headers(
        self,
        method: str,
        path: str,
        query: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        payload_hash: str = UNSIGNED_PAYLOAD,
    ) -> SignedHeaders:
        """Sign a request with an ``Authorization`` header.

        ``host``, ``x-amz-date`` and ``x-amz-content-sha256`` are always
        signed and sent, so the store learns which payload hash was
        signed. Any extra headers given are signed too and returned so
        the caller sends them unchanged.

        Args:
            method: HTTP method.
            path: Raw (unencoded) request path, e.g. ``bucket_path()``.
            query: Query parameters.
            headers: Extra headers to sign.
            payload_hash: Hex SHA-256 of the body, or UNSIGNED-PAYLOAD.

        Returns:
            The SignedHeaders artifact.

        Raises:
            SigningError: On an invalid method, a header the signer sets, or
                an ``x-amz-content-sha256`` header that differs from
                ``payload_hash``.
        """
        method = self._normalize_method(method)
        timestamp, date_stamp = format_amz_date(self._clock())

        extra = dict(headers or {})
        for name, value in extra.items():
            lowered = name.strip().lower()
            if lowered in ("host", "x-amz-date", "authorization"):
                raise SigningError(f"Header {name!r} is set by the signer")
            if lowered == CONTENT_SHA256_HEADER and value.strip() != payload_hash:
                raise SigningError(f"Header {name!r} does not match the payload hash")
        if not any(name.strip().lower() == CONTENT_SHA256_HEADER for name in extra):
            extra[CONTENT_SHA256_HEADER] = payload_hash

        to_sign = {"host": self._host, "x-amz-date": timestamp, **extra}
        canonical_uri = uri_encode_path(path)
        canonical_query = canonical_query_string(query)

        context = self._sign(
            method, canonical_uri, canonical_query, to_sign, payload_hash, timestamp, date_stamp
        )

        authorization = (
            f"{ALGORITHM} Credential={self.config.access_key_id}/{context.credential_scope}, "
            f"SignedHeaders={context.signed_headers}, Signature={context.signature}"
        )
        result = {
            "Authorization": authorization,
            "X-Amz-Date": timestamp,
            "Host": self._host,
            **extra,
        }

        url = self.base_url + canonical_uri
        if canonical_query:
            url = f"{url}?{canonical_query}"

        metrics.record_signature("headers")
        return SignedHeaders(headers=result, url=url, context=context)

    def presign(
        self,
        method: str,
        key: str,
        expires: int | None = None,
        query: QueryParams | None = None,
    ) -> PresignedUrl:
        """Produce a presigned URL for an object.

        Only ``host`` is signed and the payload is UNSIGNED-PAYLOAD, so
        the body can be streamed by whoever uses the URL.

        Args:
            method: HTTP method (GET, PUT, DELETE, HEAD, ...).
            key: Object key, already including any path prefix.
            expires: Lifetime in seconds (1..604800); defaults to the
                configured ``presign_expires``.
            query: Extra query parameters to sign.

        Returns:
            The PresignedUrl artifact.

        Raises:
            SigningError: On an invalid method, key, lifetime or query.
        """
        method = self._normalize_method(method)
        if expires is None:
            expires = self.config.presign_expires
        expires = validate_expires(expires)
        canonical_uri = uri_encode_path(self.object_path(key))
        timestamp, date_stamp = format_amz_date(self._clock())

        extra = _query_pairs(query)
        for name, _ in extra:
            if name in _PRESIGN_PARAMS:
                raise SigningError(f"Query parameter {name!r} is set by the signer")

        scope = f"{date_stamp}/{self.region}/{SERVICE_NAME}/{SCOPE_TERMINATOR}"
        params = [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", f"{self.config.access_key_id}/{scope}"),
            ("X-Amz-Date", timestamp),
            ("X-Amz-Expires", str(expires)),
            ("X-Amz-SignedHeaders", "host"),
            *extra,
        ]
        canonical_query = canonical_query_string(params)

        context = self._sign(
            method,
            canonical_uri,
            canonical_query,
            {"host": self._host},
            UNSIGNED_PAYLOAD,
            timestamp,
            date_stamp,
        )

        url = (
            f"{self.base_url}{canonical_uri}?{canonical_query}"
            f"&X-Amz-Signature={context.signature}"
        )
        metrics.record_signature("presigned")
        return PresignedUrl(url=url, method=method, expires=expires, context=context)

    def presign_url(
        self,
        method: str,
        key: str,
        expires: int | None = None,
        query: QueryParams | None = None,
    ) -> str:
        """Shortcut for ``presign(...).url``."""
        return self.presign(method, key, expires, query).url

"""Async object store client for PhotoLocker.

Uploads, downloads and deletes go through presigned URLs with the
customer-key headers attached; listings are header-signed ListObjectsV2
requests. Payloads are opaque bytes: encrypt them with ``AEADCipher``
before handing them to ``upload``.

Non-2xx responses and network failures surface as ``TransportError``.
Nothing is retried.
"""

import logging
import secrets
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime
from xml.etree import ElementTree

import httpx

from photolocker import metrics
from photolocker.config import Configuration
from photolocker.errors import TransportError
from photolocker.signing import RequestSigner

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class ObjectSummary:
    """One entry of a bucket listing.

    Attributes:
        key: Object key with the configured path prefix removed.
        full_key: Object key as stored.
        last_modified: Modification time, if reported.
        etag: Entity tag without surrounding quotes, if reported.
        size: Object size in bytes.
    """

    key: str
    full_key: str
    last_modified: datetime | None
    etag: str | None
    size: int


def generate_object_key(filename: str, when: datetime | None = None) -> str:
    """Build a unique date-partitioned key for ``filename``.

    The result looks like ``2024/03/15/1710460800000_k3x9ab.jpg``.
    """
    when = when or datetime.now()
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    dot = filename.rfind(".")
    extension = filename[dot:] if dot > 0 else ""
    return f"{when:%Y/%m/%d}/{int(time.time() * 1000)}_{suffix}{extension}"


def _local_name(element: ElementTree.Element) -> str:
    return element.tag.rsplit("}", 1)[-1]


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    for child in element:
        if _local_name(child) == name:
            return child.text
    return None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_list_objects(xml_text: str | bytes, path_prefix: str = "") -> list[ObjectSummary]:
    """Parse a ListObjectsV2 response body.

    Args:
        xml_text: The ``ListBucketResult`` document.
        path_prefix: Prefix stripped from each key for ``ObjectSummary.key``.

    Returns:
        One ObjectSummary per ``<Contents>`` element that carries a key.

    Raises:
        TransportError: If the body is not well-formed XML.
    """
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as exc:
        raise TransportError(f"Malformed listing response: {exc}") from None

    objects = []
    for content in root.iter():
        if _local_name(content) != "Contents":
            continue
        full_key = _child_text(content, "Key")
        if not full_key:
            continue
        key = full_key[len(path_prefix):] if path_prefix and full_key.startswith(path_prefix) else full_key
        etag = _child_text(content, "ETag")
        size = _child_text(content, "Size")
        objects.append(
            ObjectSummary(
                key=key,
                full_key=full_key,
                last_modified=_parse_timestamp(_child_text(content, "LastModified")),
                etag=etag.replace('"', "") if etag else None,
                size=int(size) if size and size.isdigit() else 0,
            )
        )
    return objects


def _error_code(body: bytes) -> str:
    """Extract ``<Code>`` from an S3 error document, or return ''."""
    if not body:
        return ""
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError:
        return ""
    return _child_text(root, "Code") or ""


class ObjectStoreClient:
    """Talks to an S3-compatible store on behalf of one Configuration.

    Use as an async context manager. An injected ``httpx.AsyncClient`` or
    ``RequestSigner`` is left open on exit; ones created here are closed.

    Attributes:
        config: The store configuration.
        signer: The RequestSigner producing every URL and header.
    """

    def __init__(
        self,
        config: Configuration,
        signer: RequestSigner | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ) -> None:
        self.config = config
        self._owns_signer = signer is None
        self.signer = signer or RequestSigner(config)
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ObjectStoreClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close owned resources and wipe owned key material."""
        if self._owns_http:
            await self._http.aclose()
        if self._owns_signer:
            self.signer.close()

    def full_key(self, key: str) -> str:
        """Return ``key`` under the configured path prefix."""
        return self.config.path_prefix + key

    async def _check(self, response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return
        body = await response.aread()
        code = _error_code(body)
        message = f"{operation} failed with status {response.status_code}"
        if code:
            message = f"{message}: {code}"
        logger.warning(message, extra={"operation": operation, "status": response.status_code})
        raise TransportError(message, status=response.status_code, s3_code=code)

    async def _send(
        self,
        operation: str,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        content: AsyncIterator[bytes] | bytes | None = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            raise TransportError(f"{operation} failed: {exc}") from exc
        await self._check(response, operation)
        return response

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        progress: ProgressCallback | None = None,
    ) -> str:
        """Store ``data`` under ``key`` (relative to the path prefix).

        Args:
            key: Object key without the path prefix.
            data: Object body, typically an encrypted envelope.
            content_type: Value of the Content-Type header.
            progress: Called as ``progress(sent, total)`` after each chunk.

        Returns:
            The object's URL.

        Raises:
            TransportError: On a non-2xx response or a network failure.
            SigningError: If the key is invalid.
        """
        full_key = self.full_key(key)
        url = self.signer.presign_url("PUT", full_key)
        headers = {
            **self.signer.customer_key_headers(),
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
        }
        total = len(data)

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, _CHUNK_SIZE):
                chunk = data[offset:offset + _CHUNK_SIZE]
                sent += len(chunk)
                yield chunk
                if progress is not None:
                    progress(sent, total)

        start = time.monotonic()
        await self._send("Upload", "PUT", url, headers=headers, content=body())
        metrics.record_transfer("upload", total)
        logger.info(
            "Uploaded %s (%d bytes)",
            full_key,
            total,
            extra={
                "operation": "upload",
                "key": full_key,
                "size": total,
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        return self.signer.object_url(full_key)

    async def download(self, key: str, progress: ProgressCallback | None = None) -> bytes:
        """Fetch the object stored under ``key`` (relative to the path prefix).

        ``progress(received, total)`` is called per chunk; ``total`` is 0
        when the response has no Content-Length.

        Raises:
            TransportError: On a non-2xx response or a network failure.
        """
        full_key = self.full_key(key)
        url = self.signer.presign_url("GET", full_key)
        headers = self.signer.customer_key_headers()

        chunks = []
        received = 0
        try:
            async with self._http.stream("GET", url, headers=headers) as response:
                await self._check(response, "Download")
                total = int(response.headers.get("content-length", 0) or 0)
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    chunks.append(chunk)
                    received += len(chunk)
                    if progress is not None:
                        progress(received, total)
        except httpx.HTTPError as exc:
            raise TransportError(f"Download failed: {exc}") from exc

        metrics.record_transfer("download", received)
        logger.info(
            "Downloaded %s (%d bytes)",
            full_key,
            received,
            extra={"operation": "download", "key": full_key, "size": received},
        )
        return b"".join(chunks)

    async def delete(self, key: str) -> None:
        """Delete the object stored under ``key`` (relative to the path prefix)."""
        full_key = self.full_key(key)
        url = self.signer.presign_url("DELETE", full_key)
        await self._send("Delete", "DELETE", url)
        logger.info("Deleted %s", full_key, extra={"operation": "delete", "key": full_key})

    async def list_objects(self, prefix: str = "", max_keys: int = 1000) -> list[ObjectSummary]:
        """List objects whose keys start with the path prefix plus ``prefix``.

        Args:
            prefix: Additional prefix below the configured path prefix.
            max_keys: Upper bound on the number of entries returned.

        Returns:
            The listed objects, at most ``max_keys`` of them.

        Raises:
            TransportError: On a non-2xx response, a network failure or a
                malformed listing.
        """
        query = {
            "list-type": "2",
            "prefix": self.config.path_prefix + prefix,
            "max-keys": str(max_keys),
        }
        signed = self.signer.sign_headers("GET", self.signer.bucket_path(), query=query)
        response = await self._send("List objects", "GET", signed.url, headers=signed.headers)
        objects = parse_list_objects(response.content, self.config.path_prefix)
        logger.debug("Listed %d objects under %r", len(objects), query["prefix"])
        return objects[:max_keys]

    async def test_connection(self) -> bool:
        """Return True if a one-key listing succeeds.

        Raises:
            TransportError: If the store rejects the request or is unreachable.
        """
        await self.list_objects("", 1)
        return True

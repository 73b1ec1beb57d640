"""Customer-supplied server-side encryption (SSE-C) key headers.

The store receives the raw 32-byte key with every upload, download and
listing request and validates the MD5 header against its own MD5 of
those bytes, so the fingerprint must be a plain MD5 of the raw key.
"""

import base64

from photolocker.hashing import md5
from photolocker.kdf import KEY_LENGTH, derive_customer_key, wipe

SSE_ALGORITHM = "AES256"

HEADER_ALGORITHM = "x-amz-server-side-encryption-customer-algorithm"
HEADER_KEY = "x-amz-server-side-encryption-customer-key"
HEADER_KEY_MD5 = "x-amz-server-side-encryption-customer-key-MD5"


class CustomerKeyMaterial:
    """The 32-byte customer key and its MD5 fingerprint.

    Holds the key in a mutable buffer so that ``wipe()`` (or leaving a
    ``with`` block) zeroes it.

    Attributes:
        raw_key: The 32 raw key bytes.
    """

    def __init__(self, raw_key: bytes | bytearray) -> None:
        if len(raw_key) != KEY_LENGTH:
            raise ValueError(f"customer key must be {KEY_LENGTH} bytes")
        self.raw_key = bytearray(raw_key)
        self._wiped = False

    @classmethod
    def derive(cls, passphrase: str) -> "CustomerKeyMaterial":
        """Derive the key material from a passphrase (single SHA-256 pass)."""
        key = derive_customer_key(passphrase)
        try:
            return cls(key)
        finally:
            wipe(key)

    @property
    def wiped(self) -> bool:
        return self._wiped

    @property
    def md5_fingerprint(self) -> bytes:
        """The 16-byte MD5 of the raw key."""
        self._check_live()
        return md5(self.raw_key)

    def build_headers(self) -> dict[str, str]:
        """Return the three SSE-C request headers for this key."""
        return build_headers(self)

    def wipe(self) -> None:
        """Zero the key buffer; further use raises ValueError."""
        wipe(self.raw_key)
        self._wiped = True

    def _check_live(self) -> None:
        if self._wiped:
            raise ValueError("customer key material has been wiped")

    def __enter__(self) -> "CustomerKeyMaterial":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "live"
        return f"<CustomerKeyMaterial {state}>"


def build_headers(material: CustomerKeyMaterial) -> dict[str, str]:
    """Build the customer-key transport headers.

    Args:
        material: Live key material.

    Returns:
        A dict with the algorithm, base64 key and base64 key-MD5 headers.
    """
    fingerprint = material.md5_fingerprint
    return {
        HEADER_ALGORITHM: SSE_ALGORITHM,
        HEADER_KEY: base64.b64encode(bytes(material.raw_key)).decode("ascii"),
        HEADER_KEY_MD5: base64.b64encode(fingerprint).decode("ascii"),
    }

"""Hash primitives for PhotoLocker.

SHA-256 and HMAC-SHA-256 come from the standard library. MD5 is a
self-contained RFC 1321 implementation: the customer-key fingerprint
header requires it, and some FIPS-restricted builds refuse
``hashlib.md5``.

References:
    - https://www.rfc-editor.org/rfc/rfc1321
"""

import base64
import hashlib
import hmac
import math
import struct

from photolocker.errors import UnsupportedPrimitiveError

# Per-round left-rotate amounts
_SHIFTS = (
    [7, 12, 17, 22] * 4
    + [5, 9, 14, 20] * 4
    + [4, 11, 16, 23] * 4
    + [6, 10, 15, 21] * 4
)

# K[i] = floor(abs(sin(i + 1)) * 2**32)
_CONSTANTS = [int(abs(math.sin(i + 1)) * 2**32) & 0xFFFFFFFF for i in range(64)]

_INITIAL_STATE = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)

_MASK = 0xFFFFFFFF


def _to_bytes(data: object) -> bytes:
    """Coerce a supported input to bytes (``str`` is UTF-8 encoded).

    Raises:
        UnsupportedPrimitiveError: For any other input type.
    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise UnsupportedPrimitiveError(type(data).__name__)


def _rotl(value: int, amount: int) -> int:
    value &= _MASK
    return ((value << amount) | (value >> (32 - amount))) & _MASK


def _compress(state: tuple[int, int, int, int], block: bytes) -> tuple[int, int, int, int]:
    """Run the 64 MD5 rounds over one 64-byte block."""
    words = struct.unpack("<16I", block)
    a, b, c, d = state

    for i in range(64):
        if i < 16:
            f = (b & c) | (~b & d)
            g = i
        elif i < 32:
            f = (d & b) | (~d & c)
            g = (5 * i + 1) % 16
        elif i < 48:
            f = b ^ c ^ d
            g = (3 * i + 5) % 16
        else:
            f = c ^ (b | (~d & _MASK))
            g = (7 * i) % 16

        f = (f + a + _CONSTANTS[i] + words[g]) & _MASK
        a, d, c = d, c, b
        b = (b + _rotl(f, _SHIFTS[i])) & _MASK

    return (
        (state[0] + a) & _MASK,
        (state[1] + b) & _MASK,
        (state[2] + c) & _MASK,
        (state[3] + d) & _MASK,
    )


class MD5:
    """Incremental MD5 with a ``hashlib``-style interface.

    ``digest()`` pads a copy of the pending state, so ``update()`` may be
    called again afterwards.
    """

    name = "md5"
    digest_size = 16
    block_size = 64

    def __init__(self, data: object = b"") -> None:
        self._state = _INITIAL_STATE
        self._buffer = b""
        self._length = 0
        self.update(data)

    def update(self, data: object) -> "MD5":
        """Feed more input into the hash.

        Args:
            data: ``bytes``, ``bytearray``, ``memoryview`` or ``str``.

        Returns:
            ``self``, so calls may be chained.

        Raises:
            UnsupportedPrimitiveError: If ``data`` is of another type.
        """
        chunk = _to_bytes(data)
        self._length += len(chunk)
        buffer = self._buffer + chunk

        offset = 0
        while len(buffer) - offset >= 64:
            self._state = _compress(self._state, buffer[offset : offset + 64])
            offset += 64
        self._buffer = buffer[offset:]
        return self

    def digest(self) -> bytes:
        """Return the 16-byte digest of everything fed so far."""
        bit_length = (self._length * 8) & 0xFFFFFFFFFFFFFFFF
        # 0x80, zero-pad to 56 mod 64, then the 64-bit little-endian bit length
        padding = b"\x80" + b"\x00" * ((55 - self._length) % 64)
        tail = self._buffer + padding + struct.pack("<Q", bit_length)

        state = self._state
        for offset in range(0, len(tail), 64):
            state = _compress(state, tail[offset : offset + 64])
        return struct.pack("<4I", *state)

    def hexdigest(self) -> str:
        """Return the digest as 32 lowercase hex characters."""
        return self.digest().hex()

    def copy(self) -> "MD5":
        """Return an independent copy of the current hash state."""
        clone = MD5()
        clone._state = self._state
        clone._buffer = self._buffer
        clone._length = self._length
        return clone


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def md5(data: object) -> bytes:
    """Return the 16-byte MD5 digest of ``data``."""
    return MD5(_to_bytes(data)).digest()


def md5_hex(data: object) -> str:
    """Return the MD5 digest of ``data`` as lowercase hex."""
    return md5(data).hex()


def md5_base64(data: object) -> str:
    """Return the MD5 digest of ``data`` as standard base64."""
    return base64.b64encode(md5(data)).decode("ascii")


def sha256(data: object) -> bytes:
    """Return the 32-byte SHA-256 digest of ``data``."""
    return hashlib.sha256(_to_bytes(data)).digest()


def sha256_hex(data: object) -> str:
    """Return the SHA-256 digest of ``data`` as lowercase hex."""
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def hmac_sha256(key: object, data: object) -> bytes:
    """Return HMAC-SHA-256(key, data) as 32 raw bytes."""
    return hmac.new(_to_bytes(key), _to_bytes(data), hashlib.sha256).digest()

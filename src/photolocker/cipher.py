"""AES-256-GCM authenticated encryption for PhotoLocker.

Every seal draws a fresh 16-byte salt and 12-byte IV from the OS CSPRNG
and derives a new content key with PBKDF2, so sealing the same plaintext
twice never yields the same envelope. The 16-byte GCM tag is appended to
the ciphertext and is never stored separately; the plaintext length is
not stored at all.

Envelopes are self-describing: opening needs only the envelope and the
passphrase. Any failure to open (wrong passphrase, tampered or truncated
ciphertext, malformed envelope) surfaces as the same AuthenticationError.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from photolocker import metrics
from photolocker.errors import AuthenticationError, ConfigurationError, InvalidPassphrase
from photolocker.hashing import sha256_hex
from photolocker.kdf import PBKDF2_ITERATIONS, SALT_LENGTH, derive_content_key, wipe

if TYPE_CHECKING:
    from photolocker.config import Configuration

logger = logging.getLogger(__name__)

ALGORITHM = "AES-256-GCM"
IV_LENGTH = 12
TAG_LENGTH = 16

_SELF_TEST_MESSAGE = "Hello, World! This is a test message for encryption."
_SELF_TEST_PASSPHRASE = "test-passphrase-for-crypto-validation-123"


def _b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64d(value: Any) -> bytes:
    if not isinstance(value, str):
        raise AuthenticationError()
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationError() from None


@dataclass(frozen=True)
class EncryptionEnvelope:
    """A sealed payload plus everything needed to open it.

    Attributes:
        ciphertext: Encrypted bytes with the 16-byte GCM tag appended.
        iv: 12-byte GCM nonce.
        salt: 16-byte PBKDF2 salt.
        algorithm: Algorithm identifier, always "AES-256-GCM".
        iterations: PBKDF2 iteration count used for the key.
    """

    ciphertext: bytes
    iv: bytes
    salt: bytes
    algorithm: str = ALGORITHM
    iterations: int = PBKDF2_ITERATIONS

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted, base64-encoded form of the envelope."""
        data: dict[str, Any] = {
            "algorithm": self.algorithm,
            "ciphertext": _b64e(self.ciphertext),
            "iv": _b64e(self.iv),
            "salt": _b64e(self.salt),
        }
        if self.iterations != PBKDF2_ITERATIONS:
            data["iterations"] = self.iterations
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptionEnvelope":
        """Rebuild an envelope from its persisted form.

        Raises:
            AuthenticationError: If any field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise AuthenticationError()
        if data.get("algorithm", ALGORITHM) != ALGORITHM:
            raise AuthenticationError()

        iterations = data.get("iterations", PBKDF2_ITERATIONS)
        if not isinstance(iterations, int) or iterations < PBKDF2_ITERATIONS:
            raise AuthenticationError()

        ciphertext = _b64d(data.get("ciphertext"))
        iv = _b64d(data.get("iv"))
        salt = _b64d(data.get("salt"))
        if len(iv) != IV_LENGTH or len(salt) != SALT_LENGTH or len(ciphertext) < TAG_LENGTH:
            raise AuthenticationError()

        return cls(ciphertext=ciphertext, iv=iv, salt=salt, iterations=iterations)

    def to_json(self) -> str:
        """Serialize the persisted form as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "EncryptionEnvelope":
        """Parse an envelope produced by ``to_json``.

        Raises:
            AuthenticationError: If the text is not a valid envelope.
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            raise AuthenticationError() from None
        return cls.from_dict(data)


class AEADCipher:
    """Seals and opens payloads with passphrase-derived AES-256-GCM keys.

    The cipher holds no key material between calls. A Configuration may
    be supplied so that callers can omit the passphrase; its encryption
    passphrase is then used.

    Attributes:
        config: Optional configuration supplying the default passphrase.
        iterations: PBKDF2 iteration count for new envelopes.
    """

    def __init__(
        self,
        config: Configuration | None = None,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> None:
        if iterations < PBKDF2_ITERATIONS:
            raise ValueError(f"iterations must be at least {PBKDF2_ITERATIONS}")
        self.config = config
        self.iterations = iterations

    def _passphrase(self, passphrase: str | None) -> str:
        if passphrase is not None:
            return passphrase
        if self.config is None:
            raise ConfigurationError(
                "No passphrase given and no configuration attached",
                field="encryption_passphrase",
            )
        return self.config.encryption_passphrase

    def seal(self, plaintext: bytes, passphrase: str | None = None) -> EncryptionEnvelope:
        """Encrypt ``plaintext`` under a fresh salt, IV and derived key.

        Args:
            plaintext: Bytes to encrypt (may be empty).
            passphrase: Passphrase to derive the key from; defaults to the
                configured encryption passphrase.

        Returns:
            A new EncryptionEnvelope.

        Raises:
            InvalidPassphrase: If the passphrase is too short.
            ConfigurationError: If no passphrase is available.
        """
        secret = self._passphrase(passphrase)
        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)

        key = derive_content_key(secret, salt, self.iterations)
        try:
            ciphertext = AESGCM(bytes(key)).encrypt(iv, bytes(plaintext), None)
        except Exception:
            metrics.record_crypto("seal", "error")
            raise
        finally:
            wipe(key)

        metrics.record_crypto("seal", "ok")
        logger.debug("Sealed %d bytes into %d bytes", len(plaintext), len(ciphertext))
        return EncryptionEnvelope(
            ciphertext=ciphertext, iv=iv, salt=salt, iterations=self.iterations
        )

    def open(self, envelope: EncryptionEnvelope, passphrase: str | None = None) -> bytes:
        """Re-derive the key from ``envelope.salt`` and decrypt.

        Tag verification and decryption happen in one step.

        Raises:
            AuthenticationError: On any tag mismatch, whatever its cause.
                A passphrase too short to have sealed anything fails the
                same way.
        """
        secret = self._passphrase(passphrase)
        try:
            key = derive_content_key(secret, envelope.salt, envelope.iterations)
        except (InvalidPassphrase, ValueError):
            metrics.record_crypto("open", "auth_failed")
            raise AuthenticationError() from None
        try:
            plaintext = AESGCM(bytes(key)).decrypt(envelope.iv, envelope.ciphertext, None)
        except (InvalidTag, ValueError):
            metrics.record_crypto("open", "auth_failed")
            logger.debug("Envelope failed authentication")
            raise AuthenticationError() from None
        finally:
            wipe(key)

        metrics.record_crypto("open", "ok")
        logger.debug("Opened %d bytes", len(plaintext))
        return plaintext

    def seal_text(self, text: str, passphrase: str | None = None) -> dict[str, Any]:
        """Encrypt a UTF-8 string into a text-safe (base64) envelope dict."""
        return self.seal(text.encode("utf-8"), passphrase).to_dict()

    def open_text(self, envelope: dict[str, Any], passphrase: str | None = None) -> str:
        """Decrypt an envelope dict produced by ``seal_text``.

        Raises:
            AuthenticationError: On malformed envelopes, tag mismatch, or
                plaintext that is not valid UTF-8.
        """
        plaintext = self.open(EncryptionEnvelope.from_dict(envelope), passphrase)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise AuthenticationError() from None


def obfuscated_name(filename: str, passphrase: str) -> str:
    """Derive a stable storage name that hides the original filename.

    The name is the first 32 hex characters of SHA-256(filename +
    passphrase), followed by the original extension and ``.enc``.

    Args:
        filename: Original filename, e.g. "IMG_0001.jpg".
        passphrase: The encryption passphrase.

    Returns:
        A name such as "3f5a...e1.jpg.enc".
    """
    digest = sha256_hex(filename + passphrase)[:32]
    last_dot = filename.rfind(".")
    extension = filename[last_dot:] if last_dot > 0 else ""
    return f"{digest}{extension}.enc"


def self_test(cipher: AEADCipher | None = None) -> bool:
    """Round-trip a fixed message through the bytes and text paths.

    Returns:
        True if both round trips succeed, False otherwise.
    """
    cipher = cipher or AEADCipher()
    try:
        sealed_text = cipher.seal_text(_SELF_TEST_MESSAGE, _SELF_TEST_PASSPHRASE)
        if cipher.open_text(sealed_text, _SELF_TEST_PASSPHRASE) != _SELF_TEST_MESSAGE:
            logger.error("Crypto self-test failed: text round trip mismatch")
            return False

        payload = _SELF_TEST_MESSAGE.encode("utf-8")
        envelope = cipher.seal(payload, _SELF_TEST_PASSPHRASE)
        if cipher.open(envelope, _SELF_TEST_PASSPHRASE) != payload:
            logger.error("Crypto self-test failed: bytes round trip mismatch")
            return False
    except Exception:
        logger.exception("Crypto self-test failed")
        return False
    return True

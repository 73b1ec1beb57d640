"""Passphrase handling and key derivation for PhotoLocker.

Two derivations coexist:

- Content keys (payload and stored-configuration encryption) use
  PBKDF2-HMAC-SHA-256 with a fresh 16-byte salt and 100,000 iterations.
- The customer-supplied server-side encryption key is a single unsalted
  SHA-256 of the passphrase. The store expects exactly 32 raw key bytes
  with no salt field, so this path is deliberately weaker than the
  content-key path and is only as strong as the passphrase itself.

The iteration count, hash, salt length and key length are part of the
persisted envelope format; changing them breaks existing envelopes.
"""

import hashlib
import re
import secrets
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from photolocker.errors import InvalidPassphrase

PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 16
MIN_PASSPHRASE_LENGTH = 12
RECOMMENDED_PASSPHRASE_LENGTH = 32

PASSPHRASE_CHARSET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "!@#$%^&*()_+-=[]{}|;:,.<>?"
)

_REPEAT_RE = re.compile(r"(.)\1{2,}")
_COMMON_PATTERN_RE = re.compile(r"123|abc|qwe", re.IGNORECASE)


@dataclass
class PassphraseAssessment:
    """Result of scoring a passphrase.

    Attributes:
        score: Non-negative strength score.
        strength: "weak", "medium" or "strong".
        is_valid: Whether the passphrase may be used for encryption.
        feedback: Reasons the score was reduced.
    """

    score: int
    strength: str
    is_valid: bool
    feedback: list[str] = field(default_factory=list)


def assess_passphrase(passphrase: str) -> PassphraseAssessment:
    """Score a passphrase by length, character classes and common patterns.

    Args:
        passphrase: The candidate passphrase.

    Returns:
        A PassphraseAssessment. ``is_valid`` requires at least
        MIN_PASSPHRASE_LENGTH characters and a score of 3 or more.
    """
    score = 0
    feedback: list[str] = []

    if len(passphrase) < MIN_PASSPHRASE_LENGTH:
        feedback.append(
            f"Passphrase should be at least {MIN_PASSPHRASE_LENGTH} characters long"
        )
    elif len(passphrase) >= RECOMMENDED_PASSPHRASE_LENGTH:
        score += 2
    else:
        score += 1

    if re.search(r"[a-z]", passphrase):
        score += 1
    if re.search(r"[A-Z]", passphrase):
        score += 1
    if re.search(r"[0-9]", passphrase):
        score += 1
    if re.search(r"[^a-zA-Z0-9]", passphrase):
        score += 1

    if _REPEAT_RE.search(passphrase):
        feedback.append("Avoid repeating characters")
        score -= 1

    if _COMMON_PATTERN_RE.search(passphrase):
        feedback.append("Avoid common patterns")
        score -= 1

    if score >= 5:
        strength = "strong"
    elif score >= 3:
        strength = "medium"
    else:
        strength = "weak"

    return PassphraseAssessment(
        score=max(0, score),
        strength=strength,
        is_valid=len(passphrase) >= MIN_PASSPHRASE_LENGTH and score >= 3,
        feedback=feedback,
    )


def require_strong_passphrase(passphrase: str) -> None:
    """Raise InvalidPassphrase unless ``assess_passphrase`` accepts it."""
    assessment = assess_passphrase(passphrase)
    if not assessment.is_valid:
        feedback = assessment.feedback or ["Passphrase is too weak"]
        raise InvalidPassphrase(feedback)


def _check_length(passphrase: str, min_length: int) -> None:
    if not isinstance(passphrase, str) or len(passphrase) < min_length:
        raise InvalidPassphrase(
            [f"Passphrase should be at least {min_length} characters long"]
        )


def derive_content_key(
    passphrase: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
    min_length: int = MIN_PASSPHRASE_LENGTH,
) -> bytearray:
    """Derive a 32-byte AES key from a passphrase via PBKDF2-HMAC-SHA-256.

    Deterministic: identical (passphrase, salt, iterations) always yields
    the same key. The caller owns the returned buffer and should ``wipe``
    it once the cipher operation is done.

    Args:
        passphrase: The user's encryption passphrase.
        salt: 16 random bytes.
        iterations: PBKDF2 iteration count, never below PBKDF2_ITERATIONS.
        min_length: Minimum accepted passphrase length.

    Returns:
        A 32-byte mutable key buffer.

    Raises:
        InvalidPassphrase: If the passphrase is shorter than ``min_length``.
        ValueError: On a wrong salt length or an iteration count below
            the floor.
    """
    _check_length(passphrase, min_length)
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"salt must be {SALT_LENGTH} bytes")
    if iterations < PBKDF2_ITERATIONS:
        raise ValueError(f"iterations must be at least {PBKDF2_ITERATIONS}")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return bytearray(kdf.derive(passphrase.encode("utf-8")))


def derive_customer_key(
    passphrase: str, min_length: int = MIN_PASSPHRASE_LENGTH
) -> bytearray:
    """Derive the fixed 32-byte customer-supplied key: SHA-256(passphrase).

    Unsalted and single-pass; see the module docstring.

    Raises:
        InvalidPassphrase: If the passphrase is shorter than ``min_length``.
    """
    _check_length(passphrase, min_length)
    return bytearray(hashlib.sha256(passphrase.encode("utf-8")).digest())


def generate_salt() -> bytes:
    """Return SALT_LENGTH bytes from the OS CSPRNG."""
    return secrets.token_bytes(SALT_LENGTH)


def generate_passphrase(length: int = RECOMMENDED_PASSPHRASE_LENGTH) -> str:
    """Generate a random passphrase from PASSPHRASE_CHARSET.

    Args:
        length: Number of characters (must be positive).

    Returns:
        The generated passphrase.
    """
    if length < 1:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(PASSPHRASE_CHARSET) for _ in range(length))


def wipe(buffer: bytearray | memoryview) -> None:
    """Zero-fill a mutable buffer in place.

    Immutable ``bytes`` copies made by underlying libraries cannot be
    reached from here; only buffers owned by PhotoLocker are cleared.
    """
    view = memoryview(buffer).cast("B")
    view[:] = bytes(len(view))

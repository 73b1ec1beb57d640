"""Tests for customer-supplied key (SSE-C) headers."""

import base64
import hashlib

import pytest

from photolocker.errors import InvalidPassphrase
from photolocker.sse import (
    HEADER_ALGORITHM,
    HEADER_KEY,
    HEADER_KEY_MD5,
    SSE_ALGORITHM,
    CustomerKeyMaterial,
    build_headers,
)

PASSPHRASE = "Correct-Horse-Battery-Staple-42!"


class TestCustomerKeyMaterial:
    """Tests for CustomerKeyMaterial."""

    def test_derive(self):
        """The raw key is SHA-256 of the passphrase."""
        material = CustomerKeyMaterial.derive(PASSPHRASE)
        assert bytes(material.raw_key) == hashlib.sha256(PASSPHRASE.encode()).digest()

    def test_fingerprint_is_md5_of_raw_key(self):
        """The fingerprint is the plain MD5 of the 32 key bytes."""
        raw = bytes(range(32))
        material = CustomerKeyMaterial(raw)
        assert material.md5_fingerprint == hashlib.md5(raw).digest()

    def test_wrong_length(self):
        """Keys must be exactly 32 bytes."""
        with pytest.raises(ValueError):
            CustomerKeyMaterial(b"\x00" * 16)

    def test_short_passphrase(self):
        """Derivation refuses passphrases under the minimum length."""
        with pytest.raises(InvalidPassphrase):
            CustomerKeyMaterial.derive("short")

    def test_wipe(self):
        """wipe() zeroes the key and blocks further use."""
        material = CustomerKeyMaterial(bytes(range(32)))
        material.wipe()
        assert material.wiped
        assert material.raw_key == bytearray(32)
        with pytest.raises(ValueError):
            material.build_headers()

    def test_context_manager_wipes(self):
        """Leaving a with block wipes the key."""
        with CustomerKeyMaterial.derive(PASSPHRASE) as material:
            assert not material.wiped
        assert material.wiped

    def test_repr_hides_key(self):
        """repr() never shows key bytes."""
        material = CustomerKeyMaterial(bytes(range(32)))
        assert repr(material) == "<CustomerKeyMaterial live>"


class TestBuildHeaders:
    """Tests for build_headers()."""

    def test_three_headers(self):
        """Exactly the algorithm, key and key-MD5 headers are produced."""
        headers = build_headers(CustomerKeyMaterial.derive(PASSPHRASE))
        assert set(headers) == {HEADER_ALGORITHM, HEADER_KEY, HEADER_KEY_MD5}
        assert headers[HEADER_ALGORITHM] == SSE_ALGORITHM == "AES256"

    def test_values(self):
        """Key and MD5 headers are standard base64 of the raw bytes."""
        raw = hashlib.sha256(PASSPHRASE.encode()).digest()
        headers = CustomerKeyMaterial.derive(PASSPHRASE).build_headers()
        assert base64.b64decode(headers[HEADER_KEY]) == raw
        assert headers[HEADER_KEY_MD5] == base64.b64encode(hashlib.md5(raw).digest()).decode()
        assert len(base64.b64decode(headers[HEADER_KEY_MD5])) == 16

    def test_stable_across_derivations(self):
        """The same passphrase always yields the same headers."""
        a = CustomerKeyMaterial.derive(PASSPHRASE).build_headers()
        b = CustomerKeyMaterial.derive(PASSPHRASE).build_headers()
        assert a == b

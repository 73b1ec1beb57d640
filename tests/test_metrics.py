"""Tests for the Prometheus counters."""

import pytest
from prometheus_client import REGISTRY

from photolocker import metrics
from photolocker.cipher import AEADCipher
from photolocker.errors import AuthenticationError

PASSPHRASE = "Correct-Horse-Battery-Staple-42!"


def _value(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture(autouse=True)
def enabled_metrics():
    metrics.init_metrics()


class TestInitMetrics:
    """Tests for init_metrics()."""

    def test_idempotent(self):
        """Calling init_metrics twice does not re-register collectors."""
        counter = metrics.crypto_operations_total
        metrics.init_metrics()
        assert metrics.crypto_operations_total is counter

    def test_counters_created(self):
        """All three counters exist after initialisation."""
        assert metrics.crypto_operations_total is not None
        assert metrics.signatures_total is not None
        assert metrics.transfer_bytes_total is not None


class TestRecording:
    """Tests for the record_* helpers."""

    def test_seal_and_open_counted(self):
        """Successful seal and open each increment their counter."""
        labels_seal = {"operation": "seal", "status": "ok"}
        labels_open = {"operation": "open", "status": "ok"}
        before_seal = _value("photolocker_crypto_operations_total", labels_seal)
        before_open = _value("photolocker_crypto_operations_total", labels_open)

        cipher = AEADCipher()
        cipher.open(cipher.seal(b"x", PASSPHRASE), PASSPHRASE)

        assert _value("photolocker_crypto_operations_total", labels_seal) == before_seal + 1
        assert _value("photolocker_crypto_operations_total", labels_open) == before_open + 1

    def test_auth_failure_counted(self):
        """A failed open is counted as auth_failed."""
        labels = {"operation": "open", "status": "auth_failed"}
        before = _value("photolocker_crypto_operations_total", labels)
        cipher = AEADCipher()
        envelope = cipher.seal(b"x", PASSPHRASE)
        with pytest.raises(AuthenticationError):
            cipher.open(envelope, "Wrong-Passphrase-123!")
        assert _value("photolocker_crypto_operations_total", labels) == before + 1

    def test_signatures_counted(self, signer):
        """Presigned and header signatures are counted by kind."""
        before_url = _value("photolocker_signatures_total", {"kind": "presigned"})
        before_hdr = _value("photolocker_signatures_total", {"kind": "headers"})
        signer.presign("GET", "photos/a.jpg")
        signer.sign_headers("GET", signer.bucket_path())
        assert _value("photolocker_signatures_total", {"kind": "presigned"}) == before_url + 1
        assert _value("photolocker_signatures_total", {"kind": "headers"}) == before_hdr + 1

    def test_transfer_bytes(self):
        """record_transfer adds the byte count; zero is ignored."""
        before = _value("photolocker_transfer_bytes_total", {"direction": "upload"})
        metrics.record_transfer("upload", 2048)
        metrics.record_transfer("upload", 0)
        assert _value("photolocker_transfer_bytes_total", {"direction": "upload"}) == before + 2048

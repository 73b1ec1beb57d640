"""Prometheus metrics definitions for PhotoLocker.

All PhotoLocker metrics use the ``photolocker_`` prefix. They count
operations performed by this process only; exposition (an HTTP endpoint
or a pushgateway) is left to the embedding application.

The module-level references stay ``None`` until ``init_metrics()`` is
called, so importing PhotoLocker registers nothing in the global
registry. The ``photolocker`` CLI calls it at startup; other callers
call it themselves.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Crypto operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
crypto_operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Signature counter  (labels: kind)
# ---------------------------------------------------------------------------
signatures_total: Counter | None = None

# ---------------------------------------------------------------------------
# Transfer byte counter  (labels: direction)
# ---------------------------------------------------------------------------
transfer_bytes_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; only the first call registers collectors.
    """
    global _initialized
    global crypto_operations_total, signatures_total, transfer_bytes_total

    if _initialized:
        return

    crypto_operations_total = Counter(
        "photolocker_crypto_operations_total",
        "Total seal/open operations by type and outcome",
        ["operation", "status"],
    )

    signatures_total = Counter(
        "photolocker_signatures_total",
        "Total SigV4 signatures produced by artifact kind",
        ["kind"],
    )

    transfer_bytes_total = Counter(
        "photolocker_transfer_bytes_total",
        "Total object bytes moved through the transport boundary",
        ["direction"],
    )

    _initialized = True


def record_crypto(operation: str, status: str) -> None:
    """Count one seal/open outcome if metrics are enabled."""
    if crypto_operations_total is not None:
        crypto_operations_total.labels(operation=operation, status=status).inc()


def record_signature(kind: str) -> None:
    """Count one produced signature if metrics are enabled."""
    if signatures_total is not None:
        signatures_total.labels(kind=kind).inc()


def record_transfer(direction: str, size: int) -> None:
    """Count transferred bytes if metrics are enabled."""
    if transfer_bytes_total is not None and size > 0:
        transfer_bytes_total.labels(direction=direction).inc(size)

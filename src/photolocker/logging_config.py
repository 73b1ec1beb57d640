"""Structured logging configuration for PhotoLocker.

Every handler installed here carries a ``RedactingFilter`` so that
signatures, customer keys and configured secrets never reach a log sink,
even if a caller logs a URL or header map verbatim.
"""

import json
import logging
import re
import sys
from collections.abc import Iterable
from datetime import datetime, timezone

REDACTED = "[REDACTED]"

# Values that are secret wherever they appear in a rendered message
_SECRET_PATTERNS = [
    re.compile(r"(X-Amz-Signature=)[0-9a-fA-F]+"),
    re.compile(r"(Signature=)[0-9a-fA-F]{64}"),
    re.compile(
        r"(x-amz-server-side-encryption-customer-key['\"]?\s*[:=]\s*['\"]?)[A-Za-z0-9+/=]+",
        re.IGNORECASE,
    ),
]

# Extra record attributes copied into JSON output
_EXTRA_FIELDS = ("operation", "method", "key", "status", "size", "duration_ms")


class RedactingFilter(logging.Filter):
    """Rewrites a record's message with secrets replaced by ``[REDACTED]``.

    Args:
        secrets: Literal values (secret access key, passphrase) to mask
            in addition to the built-in signature and key patterns.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._literals = sorted({s for s in secrets if s}, key=len, reverse=True)

    def redact(self, text: str) -> str:
        for literal in self._literals:
            text = text.replace(literal, REDACTED)
        for pattern in _SECRET_PATTERNS:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus any of the known extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    secrets: Iterable[str] = (),
) -> logging.Handler:
    """Configure root logging with the specified level, format and redaction.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Format type: 'text' for human-readable, 'json' for structured.
        secrets: Literal secret values to mask in every message.

    Returns:
        The installed stderr handler.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.addFilter(RedactingFilter(secrets))

    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root.addHandler(handler)
    return handler

"""Error definitions for PhotoLocker.

Every failure raised by the signing and encryption core is a
``PhotoLockerError`` subclass scoped to the single operation that produced
it. Nothing here is retried internally.
"""


class PhotoLockerError(Exception):
    """A typed PhotoLocker failure with a stable code and a message.

    Attributes:
        code: Stable error code string (e.g. "ConfigurationError").
        message: Human-readable error description.
        extra_fields: Additional key-value context safe to log.
    """

    def __init__(
        self,
        code: str,
        message: str,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            extra_fields: Optional extra context (never secrets).
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.extra_fields = extra_fields or {}


class ConfigurationError(PhotoLockerError):
    """Missing or malformed credential, endpoint or store field."""

    def __init__(self, message: str = "Invalid configuration", field: str = "") -> None:
        super().__init__(
            code="ConfigurationError",
            message=message,
            extra_fields={"Field": field} if field else {},
        )
        self.field = field


class AuthenticationError(PhotoLockerError):
    """AEAD tag verification failed.

    The message never says whether the passphrase or the ciphertext was
    at fault.
    """

    MESSAGE = "Incorrect passphrase or corrupted data"

    def __init__(self) -> None:
        super().__init__(code="AuthenticationError", message=self.MESSAGE)


class SigningError(PhotoLockerError):
    """A canonical request could not be built (bad URL, host or parameter)."""

    def __init__(self, message: str = "Unable to sign request") -> None:
        super().__init__(code="SigningError", message=message)


class UnsupportedPrimitiveError(PhotoLockerError):
    """A hash primitive was invoked on an unsupported input type."""

    def __init__(self, type_name: str = "") -> None:
        message = "Unsupported input type for hash primitive"
        if type_name:
            message = f"{message}: {type_name}"
        super().__init__(code="UnsupportedPrimitiveError", message=message)


class InvalidPassphrase(PhotoLockerError):
    """The passphrase is too short or too weak for key derivation.

    Attributes:
        feedback: Human-readable reasons the passphrase was rejected.
    """

    def __init__(self, feedback: list[str] | None = None) -> None:
        self.feedback = list(feedback or [])
        message = "Passphrase rejected"
        if self.feedback:
            message = f"{message}: {', '.join(self.feedback)}"
        super().__init__(code="InvalidPassphrase", message=message)


class TransportError(PhotoLockerError):
    """The object store rejected a request or could not be reached.

    Attributes:
        status: HTTP status code, or 0 for network-level failures.
        s3_code: The S3 ``<Code>`` from the error body, if any.
    """

    def __init__(self, message: str, status: int = 0, s3_code: str = "") -> None:
        extra: dict[str, str] = {}
        if status:
            extra["Status"] = str(status)
        if s3_code:
            extra["S3Code"] = s3_code
        super().__init__(code="TransportError", message=message, extra_fields=extra)
        self.status = status
        self.s3_code = s3_code

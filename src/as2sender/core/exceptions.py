"""Error taxonomy for AS2 transactions.

Every failure of a send attempt maps to exactly one category:
- ValidationError: bad caller input, detected before any collaborator call
- ParseError: malformed content type or MIME structure from a peer
- CryptoError: signing / enveloping / decryption failed
- TransportError: the HTTP round trip failed or returned a non-2xx status

None of these are retried by the library.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class AS2ErrorCode(str, Enum):
    """Error codes for failure categorization."""

    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"
    PARSE_ERROR = "parse_error"
    CRYPTO_ERROR = "crypto_error"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT_ERROR = "timeout_error"
    HTTP_STATUS_ERROR = "http_status_error"
    TRANSPORT_ERROR = "transport_error"


class AS2Error(Exception):
    """Base exception for AS2 operations."""

    error_code: AS2ErrorCode = AS2ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        """Initialize with error details.

        Args:
            message: Human-readable error description.
            context: Diagnostic values (content type, search position, ...).
        """
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationError(AS2Error):
    """Raised when transaction input is rejected before any work starts."""

    error_code = AS2ErrorCode.VALIDATION_ERROR


class InvalidArgumentError(ValidationError, ValueError):
    """Raised for empty filename/content/identifiers or an unknown cipher."""


class ConfigurationError(ValidationError):
    """Raised when an identity is given without a certificate reference."""

    error_code = AS2ErrorCode.CONFIGURATION_ERROR


class ParseError(AS2Error, ValueError):
    """Raised when a content type or MIME body cannot be parsed."""

    error_code = AS2ErrorCode.PARSE_ERROR


class CryptoError(AS2Error):
    """Raised when the signing or enveloping collaborator fails."""

    error_code = AS2ErrorCode.CRYPTO_ERROR


class TransportError(AS2Error):
    """Raised when the HTTP round trip fails.

    Attributes:
        status_code: HTTP status when a response was received, else None.
    """

    error_code = AS2ErrorCode.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: AS2ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code

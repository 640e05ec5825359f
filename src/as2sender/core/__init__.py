"""Shared components: configuration, protocol constants and errors."""

from as2sender.core.config import (
    ConfigValidationError,
    ProxySettings,
    Settings,
    SigningSettings,
)
from as2sender.core.constants import EncryptionAlgorithm
from as2sender.core.exceptions import (
    AS2Error,
    AS2ErrorCode,
    ConfigurationError,
    CryptoError,
    InvalidArgumentError,
    ParseError,
    TransportError,
    ValidationError,
)
from as2sender.core.settings import (
    clear_settings_cache,
    configure_logging,
    get_settings,
    get_settings_safe,
)

__all__ = [
    "AS2Error",
    "AS2ErrorCode",
    "ConfigValidationError",
    "ConfigurationError",
    "CryptoError",
    "EncryptionAlgorithm",
    "InvalidArgumentError",
    "ParseError",
    "ProxySettings",
    "Settings",
    "SigningSettings",
    "TransportError",
    "ValidationError",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
    "get_settings_safe",
]

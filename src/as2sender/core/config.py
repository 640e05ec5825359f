"""Configuration management for the AS2 sender.

This module provides centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with the AS2_ prefix.
Nested settings use double underscore as delimiter (e.g., AS2_PROXY__NAME).

Example:
    export AS2_AS2_FROM=MYCOMPANY
    export AS2_TIMEOUT_MS=30000
    export AS2_SIGNING__CERTIFICATE_PATH=/etc/as2/signing.p12
    export AS2_SIGNING__PASSWORD=secret
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from as2sender import __version__
from as2sender.core.constants import EncryptionAlgorithm

logger = logging.getLogger(__name__)


class ProxySettings(BaseSettings):
    """Outbound HTTP proxy settings.

    All fields empty means a direct connection.
    """

    model_config = SettingsConfigDict(
        env_prefix="AS2_PROXY__",
        extra="ignore",
    )

    name: str = Field(
        default="",
        description="Proxy URL or host:port (empty for direct connection)",
    )
    username: str = Field(
        default="",
        description="Proxy authentication username",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy authentication password",
    )
    domain: str = Field(
        default="",
        description="Windows domain for proxy authentication (sent as DOMAIN\\username)",
    )


class SigningSettings(BaseSettings):
    """Signing identity of this sender.

    The certificate is a PKCS#12 bundle holding the private key and the
    matching certificate.
    """

    model_config = SettingsConfigDict(
        env_prefix="AS2_SIGNING__",
        extra="ignore",
    )

    certificate_path: str = Field(
        default="",
        description="Path to the PKCS#12 signing bundle (empty disables signing)",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Password unlocking the PKCS#12 bundle",
    )


class Settings(BaseSettings):
    """Main AS2 sender configuration container.

    Example environment variables:
        AS2_AS2_FROM=MYCOMPANY
        AS2_ENCRYPTION_ALGORITHM=3DES
        AS2_PROXY__NAME=http://proxy.internal:3128
    """

    model_config = SettingsConfigDict(
        env_prefix="AS2_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    as2_from: str = Field(
        default="",
        description="Default AS2-From identifier of this sender",
    )
    user_agent: str = Field(
        default=f"as2sender/{__version__}",
        description="User-Agent header sent with every transmission",
    )
    timeout_ms: Annotated[int, Field(ge=1, le=3_600_000)] = Field(
        default=100_000,
        description="HTTP request timeout in milliseconds",
    )
    encryption_algorithm: EncryptionAlgorithm = Field(
        default=EncryptionAlgorithm.DES3,
        description="Content encryption cipher (3DES or RC2)",
    )

    proxy: ProxySettings = Field(default_factory=ProxySettings)
    signing: SigningSettings = Field(default_factory=SigningSettings)

    @field_validator("encryption_algorithm", mode="before")
    @classmethod
    def normalize_encryption_algorithm(cls, v: Any) -> EncryptionAlgorithm:
        """Accept cipher aliases such as 'des3' or 'triple-des'."""
        return EncryptionAlgorithm.parse(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the log level is one the logging module knows."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            msg = f"Log level must be one of: {', '.join(sorted(allowed))}"
            raise ValueError(msg)
        return v.upper()


class ConfigValidationError(Exception):
    """Settings that parse individually but contradict each other.

    Attributes:
        message: What is inconsistent and which variable fixes it.
        field: Dotted settings path at fault, e.g. "proxy.name".
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


def validate_settings(settings: Settings) -> None:
    """Check the combinations of settings that field validators cannot see.

    Raises:
        ConfigValidationError: On proxy credentials without a proxy, or a
            signing password without a signing bundle.
    """
    proxy = settings.proxy
    if (proxy.username or proxy.domain) and not proxy.name:
        raise ConfigValidationError(
            "Proxy credentials are set but no proxy name. Set AS2_PROXY__NAME.",
            field="proxy.name",
        )

    if settings.signing.password.get_secret_value() and not settings.signing.certificate_path:
        raise ConfigValidationError(
            "Signing password is set but no certificate. Set AS2_SIGNING__CERTIFICATE_PATH.",
            field="signing.certificate_path",
        )

    logger.debug(
        "Configuration validated: cipher=%s, timeout_ms=%d, proxy=%s, signing=%s",
        settings.encryption_algorithm.value,
        settings.timeout_ms,
        "yes" if proxy.name else "no",
        "yes" if settings.signing.certificate_path else "no",
    )

"""Tests for configuration management.

Tests cover:
- Loading configuration from environment variables
- Cipher name normalisation
- Cross-field validation
- Settings singleton behavior
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from as2sender import __version__
from as2sender.core.config import (
    ConfigValidationError,
    ProxySettings,
    Settings,
    SigningSettings,
    validate_settings,
)
from as2sender.core.constants import EncryptionAlgorithm
from as2sender.core.settings import (
    clear_settings_cache,
    get_settings,
    get_settings_safe,
)


class TestEncryptionAlgorithm:
    """Tests for the EncryptionAlgorithm enum."""

    def test_values(self):
        """Test that both ciphers exist with their wire names."""
        assert EncryptionAlgorithm.DES3.value == "3DES"
        assert EncryptionAlgorithm.RC2.value == "RC2"

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("3DES", EncryptionAlgorithm.DES3),
            ("des3", EncryptionAlgorithm.DES3),
            ("TripleDES", EncryptionAlgorithm.DES3),
            ("triple_des", EncryptionAlgorithm.DES3),
            (" rc2 ", EncryptionAlgorithm.RC2),
            (EncryptionAlgorithm.RC2, EncryptionAlgorithm.RC2),
        ],
    )
    def test_parse_aliases(self, name, expected):
        """Test that aliases resolve case-insensitively."""
        assert EncryptionAlgorithm.parse(name) == expected

    @pytest.mark.parametrize("name", ["AES128", "", "DES"])
    def test_parse_unknown(self, name):
        """Test that unknown ciphers are rejected."""
        with pytest.raises(ValueError, match="3DES or RC2"):
            EncryptionAlgorithm.parse(name)


class TestMainSettings:
    """Tests for the main Settings class."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings()
        assert settings.log_level == "INFO"
        assert settings.timeout_ms == 100_000
        assert settings.encryption_algorithm == EncryptionAlgorithm.DES3
        assert settings.user_agent == f"as2sender/{__version__}"
        assert settings.proxy.name == ""
        assert settings.signing.certificate_path == ""

    def test_from_env(self):
        """Test loading settings from environment."""
        with patch.dict(
            os.environ,
            {
                "AS2_AS2_FROM": "MYCOMPANY",
                "AS2_TIMEOUT_MS": "30000",
                "AS2_ENCRYPTION_ALGORITHM": "rc2",
                "AS2_LOG_LEVEL": "debug",
            },
            clear=False,
        ):
            settings = Settings()
            assert settings.as2_from == "MYCOMPANY"
            assert settings.timeout_ms == 30_000
            assert settings.encryption_algorithm == EncryptionAlgorithm.RC2
            assert settings.log_level == "DEBUG"

    def test_nested_from_env(self):
        """Test loading nested proxy and signing settings."""
        with patch.dict(
            os.environ,
            {
                "AS2_PROXY__NAME": "proxy.internal:3128",
                "AS2_PROXY__USERNAME": "bob",
                "AS2_PROXY__PASSWORD": "pw",
                "AS2_PROXY__DOMAIN": "CORP",
                "AS2_SIGNING__CERTIFICATE_PATH": "/etc/as2/me.p12",
                "AS2_SIGNING__PASSWORD": "secret",
            },
            clear=False,
        ):
            settings = Settings()
            assert settings.proxy.name == "proxy.internal:3128"
            assert settings.proxy.username == "bob"
            assert settings.proxy.password.get_secret_value() == "pw"
            assert settings.proxy.domain == "CORP"
            assert settings.signing.certificate_path == "/etc/as2/me.p12"
            assert settings.signing.password.get_secret_value() == "secret"

    def test_secrets_not_in_repr(self):
        """Test that passwords are masked."""
        settings = SigningSettings(certificate_path="me.p12", password="secret")
        assert "secret" not in repr(settings)

    def test_invalid_cipher(self):
        """Test that an unknown cipher fails validation."""
        with (
            patch.dict(os.environ, {"AS2_ENCRYPTION_ALGORITHM": "AES"}, clear=False),
            pytest.raises(ValidationError),
        ):
            Settings()

    @pytest.mark.parametrize("timeout", ["0", "-5", "3600001"])
    def test_invalid_timeout(self, timeout):
        """Test that out-of-range timeouts fail validation."""
        with (
            patch.dict(os.environ, {"AS2_TIMEOUT_MS": timeout}, clear=False),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_invalid_log_level(self):
        """Test that unknown log levels fail validation."""
        with (
            patch.dict(os.environ, {"AS2_LOG_LEVEL": "VERBOSE"}, clear=False),
            pytest.raises(ValidationError),
        ):
            Settings()


class TestValidateSettings:
    """Tests for cross-field validation."""

    def test_valid_defaults(self):
        """Test that defaults pass validation."""
        validate_settings(Settings())

    def test_proxy_credentials_without_name(self):
        """Test that proxy credentials need a proxy name."""
        settings = Settings(proxy=ProxySettings(username="bob"))
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)
        assert exc_info.value.field == "proxy.name"

    def test_signing_password_without_certificate(self):
        """Test that a signing password needs a certificate path."""
        settings = Settings(signing=SigningSettings(password="secret"))
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)
        assert exc_info.value.field == "signing.certificate_path"


class TestSettingsSingleton:
    """Tests for the cached settings accessor."""

    def test_cached(self):
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_cache_cleared(self):
        """Test that clearing the cache reloads settings."""
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

    def test_invalid_config_exits(self):
        """Test fail-fast behavior on invalid configuration."""
        with (
            patch.dict(os.environ, {"AS2_TIMEOUT_MS": "0"}, clear=False),
            pytest.raises(SystemExit) as exc_info,
        ):
            get_settings()
        assert exc_info.value.code == 1

    def test_cross_field_error_exits(self):
        """Test that cross-field failures also exit."""
        with (
            patch.dict(os.environ, {"AS2_PROXY__USERNAME": "bob"}, clear=False),
            pytest.raises(SystemExit),
        ):
            get_settings()

    def test_safe_returns_none(self):
        """Test that get_settings_safe does not exit."""
        with patch.dict(os.environ, {"AS2_TIMEOUT_MS": "0"}, clear=False):
            assert get_settings_safe() is None

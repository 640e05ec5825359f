"""Pytest configuration and shared fixtures.

Certificates are generated once per session (RSA key generation is slow)
and written to a temporary directory as:
    partner.p12  - PKCS#12 bundle (key + certificate), password protected
    partner.pem  - certificate only, PEM
    partner.der  - certificate only, DER
    other.p12    - an unrelated identity, for "not addressed to us" cases
"""

from collections.abc import Generator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from as2sender.core.settings import clear_settings_cache
from as2sender.services.cms import DecryptionIdentity, RecipientIdentity, SigningIdentity

TEST_P12_PASSWORD = "test-password"  # noqa: S105 - test credential


@dataclass(frozen=True)
class CertificateFiles:
    """Paths and objects of a generated test identity."""

    private_key: RSAPrivateKey
    certificate: x509.Certificate
    p12_path: Path
    pem_path: Path
    der_path: Path


def _generate_identity(directory: Path, name: str) -> CertificateFiles:
    """Create a self-signed RSA identity and write it in every format we load."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "FR"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "AS2 Test"),
            x509.NameAttribute(NameOID.COMMON_NAME, name),
        ]
    )
    now = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(private_key, hashes.SHA256())
    )

    p12_path = directory / f"{name}.p12"
    p12_path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            name.encode("utf-8"),
            private_key,
            certificate,
            None,
            serialization.BestAvailableEncryption(TEST_P12_PASSWORD.encode("utf-8")),
        )
    )
    pem_path = directory / f"{name}.pem"
    pem_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    der_path = directory / f"{name}.der"
    der_path.write_bytes(certificate.public_bytes(serialization.Encoding.DER))

    return CertificateFiles(private_key, certificate, p12_path, pem_path, der_path)


# ---------------------------------------------------------------------------
# Certificate fixtures
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def cert_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Directory holding the generated certificate files."""
    return tmp_path_factory.mktemp("certs")


@pytest.fixture(scope="session")
def partner_cert(cert_dir: Path) -> CertificateFiles:
    """Self-signed identity used both to sign and as the encryption recipient."""
    return _generate_identity(cert_dir, "partner")


@pytest.fixture(scope="session")
def other_cert(cert_dir: Path) -> CertificateFiles:
    """A second, unrelated identity."""
    return _generate_identity(cert_dir, "other")


@pytest.fixture
def p12_password() -> str:
    """Password of the generated PKCS#12 bundles."""
    return TEST_P12_PASSWORD


@pytest.fixture
def signing_identity(partner_cert: CertificateFiles) -> SigningIdentity:
    """Signing identity backed by the partner PKCS#12 bundle."""
    return SigningIdentity(partner_cert.p12_path, TEST_P12_PASSWORD)


@pytest.fixture
def recipient_identity(partner_cert: CertificateFiles) -> RecipientIdentity:
    """Recipient identity backed by the partner PEM certificate."""
    return RecipientIdentity(partner_cert.pem_path)


@pytest.fixture
def decryption_identity(partner_cert: CertificateFiles) -> DecryptionIdentity:
    """Decryption identity matching recipient_identity."""
    return DecryptionIdentity(partner_cert.p12_path, TEST_P12_PASSWORD)


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()

"""CMS signing and enveloping for AS2 payloads.

This module is the crypto collaborator of the S/MIME orchestrator:
- MessageSigner: detached CMS signature over a byte buffer
- MessageEncryptor: CMS EnvelopedData for one recipient, and the inverse

The default implementations use the `cryptography` library (pyca) for keys,
certificates, RSA and block ciphers, and `asn1crypto` for the SignedData and
EnvelopedData structures: AS2 partners expect SHA-1 signatures (micalg=sha1)
and 3DES or RC2 content ciphers, which cryptography's PKCS#7 builders refuse.

Key material is never loaded from an ambient store: every operation takes
the identity it needs as an explicit argument.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from asn1crypto import algos, cms, core
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.decrepit.ciphers import algorithms as decrepit_algorithms
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from cryptography.hazmat.primitives.serialization import pkcs12

from as2sender.core.constants import EncryptionAlgorithm
from as2sender.core.exceptions import CryptoError

logger = logging.getLogger(__name__)

# Block size of both 3DES and RC2, in bytes
CBC_BLOCK_SIZE_BYTES = 8
DES3_KEY_SIZE_BYTES = 24
RC2_KEY_SIZE_BYTES = 16
# RFC 8018 encoding of a 128-bit effective RC2 key length
RC2_128_PARAMETER_VERSION = 58

_ASN1_ALGORITHM_NAMES = {
    EncryptionAlgorithm.DES3: "tripledes_3key",
    EncryptionAlgorithm.RC2: "rc2",
}


# =============================================================================
# Identities
# =============================================================================


@dataclass(frozen=True, slots=True)
class SigningIdentity:
    """Reference to a PKCS#12 bundle holding a private key and certificate.

    Attributes:
        certificate_path: Path to the .p12/.pfx file.
        password: Secret unlocking the bundle (None for an unprotected one).
    """

    certificate_path: str | Path
    password: str | None = None

    def load(self) -> tuple[RSAPrivateKey, x509.Certificate]:
        """Load the private key and certificate.

        Raises:
            CryptoError: If the bundle cannot be read or holds no RSA key.
        """
        try:
            data = Path(self.certificate_path).read_bytes()
            password = self.password.encode("utf-8") if self.password else None
            private_key, certificate, _ = pkcs12.load_key_and_certificates(data, password)
        except (OSError, ValueError) as e:
            raise CryptoError(
                f"Failed to load key bundle: {e}",
                context={"certificate_path": str(self.certificate_path)},
            ) from e

        if certificate is None or not isinstance(private_key, RSAPrivateKey):
            raise CryptoError(
                "Key bundle must contain an RSA private key and its certificate",
                context={"certificate_path": str(self.certificate_path)},
            )
        return private_key, certificate


class DecryptionIdentity(SigningIdentity):
    """PKCS#12 bundle whose private key opens messages enveloped for us."""

    __slots__ = ()


@dataclass(frozen=True, slots=True)
class RecipientIdentity:
    """Reference to a partner's public certificate (PEM or DER).

    Attributes:
        certificate_path: Path to the certificate file.
    """

    certificate_path: str | Path

    def load(self) -> x509.Certificate:
        """Load the certificate.

        Raises:
            CryptoError: If the file cannot be read or parsed.
        """
        try:
            data = Path(self.certificate_path).read_bytes()
            if b"-----BEGIN" in data:
                return x509.load_pem_x509_certificate(data)
            return x509.load_der_x509_certificate(data)
        except (OSError, ValueError) as e:
            raise CryptoError(
                f"Failed to load recipient certificate: {e}",
                context={"certificate_path": str(self.certificate_path)},
            ) from e


# =============================================================================
# Collaborator interfaces
# =============================================================================


class MessageSigner(Protocol):
    """Computes detached signatures."""

    def sign(self, data: bytes, identity: SigningIdentity) -> bytes:
        """Return a DER-encoded detached CMS signature over data."""
        ...


class MessageEncryptor(Protocol):
    """Envelopes content for a recipient and opens enveloped content."""

    def envelope(
        self,
        data: bytes,
        recipient: RecipientIdentity,
        algorithm: EncryptionAlgorithm,
    ) -> bytes:
        """Return DER-encoded CMS EnvelopedData holding data."""
        ...

    def unenvelope(
        self,
        data: bytes,
        identity: DecryptionIdentity,
    ) -> tuple[bytes, EncryptionAlgorithm]:
        """Return the plaintext and the cipher it was encrypted with."""
        ...


# =============================================================================
# cryptography / asn1crypto implementations
# =============================================================================


class CMSSigner:
    """Detached CMS SignedData with SHA-1, matching micalg="sha1"."""

    def sign(self, data: bytes, identity: SigningIdentity) -> bytes:
        """Sign data with the identity's key.

        The signature is computed over the exact bytes (binary mode, no
        line-ending conversion) and embeds the signer certificate.

        Raises:
            CryptoError: If the key cannot be loaded or signing fails.
        """
        private_key, certificate = identity.load()

        digest = hashes.Hash(hashes.SHA1())  # noqa: S303 - AS2 micalg
        digest.update(data)

        signed_attributes = cms.CMSAttributes(
            [
                cms.CMSAttribute(
                    {
                        "type": cms.CMSAttributeType("content_type"),
                        "values": (cms.ContentType("data"),),
                    }
                ),
                cms.CMSAttribute(
                    {
                        "type": cms.CMSAttributeType("signing_time"),
                        "values": (cms.Time({"utc_time": core.UTCTime(datetime.now(UTC))}),),
                    }
                ),
                cms.CMSAttribute(
                    {
                        "type": cms.CMSAttributeType("message_digest"),
                        "values": (core.OctetString(digest.finalize()),),
                    }
                ),
            ]
        )

        try:
            # The signature covers the DER SET OF encoding of the attributes
            signature = private_key.sign(
                signed_attributes.dump(),
                asym_padding.PKCS1v15(),
                hashes.SHA1(),  # noqa: S303
            )
        except (TypeError, ValueError) as e:
            raise CryptoError(f"Signing failed: {e}") from e

        asn1_cert = asn1_x509.Certificate.load(certificate.public_bytes(serialization.Encoding.DER))
        digest_algorithm = algos.DigestAlgorithm({"algorithm": algos.DigestAlgorithmId("sha1")})

        signer_info = cms.SignerInfo(
            {
                "version": "v1",
                "sid": cms.SignerIdentifier(
                    name="issuer_and_serial_number",
                    value=cms.IssuerAndSerialNumber(
                        {
                            "issuer": asn1_cert.issuer,
                            "serial_number": asn1_cert.serial_number,
                        }
                    ),
                ),
                "digest_algorithm": digest_algorithm,
                "signed_attrs": signed_attributes,
                "signature_algorithm": algos.SignedDigestAlgorithm(
                    {"algorithm": algos.SignedDigestAlgorithmId("rsassa_pkcs1v15")}
                ),
                "signature": signature,
            }
        )

        # No encapsulated content: the signature is detached
        content_info = cms.ContentInfo(
            {
                "content_type": cms.ContentType("signed_data"),
                "content": cms.SignedData(
                    {
                        "version": "v1",
                        "digest_algorithms": [digest_algorithm],
                        "encap_content_info": {"content_type": "data"},
                        "certificates": [asn1_cert],
                        "signer_infos": [signer_info],
                    }
                ),
            }
        )

        encoded = content_info.dump()
        logger.debug(
            "Computed detached signature: data_size=%d, signature_size=%d",
            len(data),
            len(encoded),
        )
        return encoded


class CMSEncryptor:
    """CMS EnvelopedData with RSA PKCS#1 v1.5 key transport."""

    def envelope(
        self,
        data: bytes,
        recipient: RecipientIdentity,
        algorithm: EncryptionAlgorithm,
    ) -> bytes:
        """Encrypt data for the recipient certificate.

        Raises:
            CryptoError: If the certificate is unusable or encryption fails.
        """
        certificate = recipient.load()
        public_key = certificate.public_key()
        if not isinstance(public_key, RSAPublicKey):
            raise CryptoError(
                "Recipient certificate must carry an RSA public key",
                context={"certificate_path": str(recipient.certificate_path)},
            )

        key_size = DES3_KEY_SIZE_BYTES if algorithm == EncryptionAlgorithm.DES3 else RC2_KEY_SIZE_BYTES
        key = os.urandom(key_size)
        iv = os.urandom(CBC_BLOCK_SIZE_BYTES)

        try:
            padder = padding.PKCS7(CBC_BLOCK_SIZE_BYTES * 8).padder()
            padded = padder.update(data) + padder.finalize()
            encryptor = Cipher(_block_cipher(algorithm, key), modes.CBC(iv)).encryptor()
            encrypted_content = encryptor.update(padded) + encryptor.finalize()
            encrypted_key = public_key.encrypt(key, asym_padding.PKCS1v15())
        except (TypeError, ValueError) as e:
            raise CryptoError(f"Encryption failed: {e}") from e

        asn1_cert = asn1_x509.Certificate.load(certificate.public_bytes(serialization.Encoding.DER))

        recipient_info = cms.RecipientInfo(
            name="ktri",
            value=cms.KeyTransRecipientInfo(
                {
                    "version": "v0",
                    "rid": cms.RecipientIdentifier(
                        name="issuer_and_serial_number",
                        value=cms.IssuerAndSerialNumber(
                            {
                                "issuer": asn1_cert.issuer,
                                "serial_number": asn1_cert.serial_number,
                            }
                        ),
                    ),
                    "key_encryption_algorithm": cms.KeyEncryptionAlgorithm(
                        {"algorithm": cms.KeyEncryptionAlgorithmId("rsaes_pkcs1v15")}
                    ),
                    "encrypted_key": encrypted_key,
                }
            ),
        )

        content_info = cms.ContentInfo(
            {
                "content_type": cms.ContentType("enveloped_data"),
                "content": cms.EnvelopedData(
                    {
                        "version": "v0",
                        "recipient_infos": [recipient_info],
                        "encrypted_content_info": cms.EncryptedContentInfo(
                            {
                                "content_type": cms.ContentType("data"),
                                "content_encryption_algorithm": _algorithm_identifier(
                                    algorithm, iv
                                ),
                                "encrypted_content": encrypted_content,
                            }
                        ),
                    }
                ),
            }
        )

        logger.debug(
            "Enveloped content: algorithm=%s, data_size=%d",
            algorithm.value,
            len(data),
        )
        return content_info.dump()

    def unenvelope(
        self,
        data: bytes,
        identity: DecryptionIdentity,
    ) -> tuple[bytes, EncryptionAlgorithm]:
        """Decrypt EnvelopedData addressed to the identity's certificate.

        Raises:
            CryptoError: If the structure is invalid, not addressed to us,
                uses an unsupported cipher, or fails to decrypt.
        """
        private_key, certificate = identity.load()

        try:
            content_info = cms.ContentInfo.load(data)
            if content_info["content_type"].native != "enveloped_data":
                raise CryptoError(
                    "Content is not CMS EnvelopedData",
                    context={"content_type": content_info["content_type"].native},
                )
            enveloped = content_info["content"]

            encrypted_key = _find_encrypted_key(enveloped, certificate)
            key = private_key.decrypt(encrypted_key, asym_padding.PKCS1v15())

            content_info_enc = enveloped["encrypted_content_info"]
            algorithm, iv = _parse_algorithm_identifier(
                content_info_enc["content_encryption_algorithm"]
            )
            encrypted_content = content_info_enc["encrypted_content"].native or b""

            decryptor = Cipher(_block_cipher(algorithm, key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(encrypted_content) + decryptor.finalize()
            unpadder = padding.PKCS7(CBC_BLOCK_SIZE_BYTES * 8).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()

        except CryptoError:
            raise
        except (TypeError, ValueError, KeyError) as e:
            raise CryptoError(f"Decryption failed: {e}") from e

        logger.debug(
            "Opened enveloped content: algorithm=%s, plaintext_size=%d",
            algorithm.value,
            len(plaintext),
        )
        return plaintext, algorithm


def _block_cipher(algorithm: EncryptionAlgorithm, key: bytes):
    """Return the cryptography cipher algorithm object for a content cipher."""
    if algorithm == EncryptionAlgorithm.DES3:
        return decrepit_algorithms.TripleDES(key)

    return decrepit_algorithms.RC2(key)


def _algorithm_identifier(algorithm: EncryptionAlgorithm, iv: bytes) -> algos.EncryptionAlgorithm:
    """Build the content-encryption AlgorithmIdentifier with its IV."""
    if algorithm == EncryptionAlgorithm.RC2:
        parameters = algos.Rc2Params(
            {"rc2_parameter_version": RC2_128_PARAMETER_VERSION, "iv": iv}
        )
    else:
        parameters = core.OctetString(iv)

    return algos.EncryptionAlgorithm(
        {
            "algorithm": algos.EncryptionAlgorithmId(_ASN1_ALGORITHM_NAMES[algorithm]),
            "parameters": parameters,
        }
    )


def _parse_algorithm_identifier(
    identifier: algos.EncryptionAlgorithm,
) -> tuple[EncryptionAlgorithm, bytes]:
    """Map a content-encryption AlgorithmIdentifier back to (cipher, IV)."""
    name = identifier["algorithm"].native
    parameters = identifier["parameters"]

    if name == "tripledes_3key":
        return EncryptionAlgorithm.DES3, parameters.native
    if name == "rc2":
        return EncryptionAlgorithm.RC2, parameters["iv"].native

    raise CryptoError(
        "Unsupported content encryption algorithm",
        context={"algorithm": name},
    )


def _find_encrypted_key(enveloped: cms.EnvelopedData, certificate: x509.Certificate) -> bytes:
    """Return the encrypted content key of the recipient matching certificate."""
    asn1_cert = asn1_x509.Certificate.load(certificate.public_bytes(serialization.Encoding.DER))

    for recipient_info in enveloped["recipient_infos"]:
        if recipient_info.name != "ktri":
            continue
        ktri = recipient_info.chosen
        rid = ktri["rid"]
        if rid.name == "issuer_and_serial_number":
            issuer_serial = rid.chosen
            if (
                issuer_serial["serial_number"].native == asn1_cert.serial_number
                and issuer_serial["issuer"] == asn1_cert.issuer
            ):
                return ktri["encrypted_key"].native
        elif rid.chosen.native == asn1_cert.key_identifier:
            return ktri["encrypted_key"].native

    raise CryptoError(
        "No recipient info matches the decryption certificate",
        context={"serial_number": certificate.serial_number},
    )

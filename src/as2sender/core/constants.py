"""Protocol constants shared by the envelope, crypto and transport layers."""

from __future__ import annotations

from enum import Enum

CRLF = "\r\n"
# Blank line between a MIME header block and its body
MESSAGE_SEPARATOR = CRLF + CRLF

MIME_VERSION = "1.0"
AS2_VERSION = "1.2"
EDIINT_FEATURES = "multiple-attachments"

XML_CONTENT_TYPE = "application/xml"
EDI_CONTENT_TYPE = "application/EDIFACT"

SIGNED_CONTENT_TYPE = (
    'multipart/signed; protocol="application/pkcs7-signature"; micalg="sha1"'
)
SIGNATURE_CONTENT_TYPE = 'application/pkcs7-signature; name="smime.p7s"'
SIGNATURE_DISPOSITION = 'attachment; filename="smime.p7s"'
ENVELOPED_CONTENT_TYPE = 'application/pkcs7-mime; smime-type=enveloped-data; name="smime.p7m"'

BINARY_TRANSFER_ENCODING = "binary"
BASE64_TRANSFER_ENCODING = "base64"

# RFC 2045 line length limit for base64 bodies
BASE64_LINE_LENGTH = 76


class EncryptionAlgorithm(str, Enum):
    """Content encryption ciphers accepted for enveloping.

    Values:
        DES3: Triple-DES (EDE3) in CBC mode, 192-bit key (default)
        RC2: RC2 in CBC mode, 128-bit effective key
    """

    DES3 = "3DES"
    RC2 = "RC2"

    @classmethod
    def parse(cls, name: str | EncryptionAlgorithm) -> EncryptionAlgorithm:
        """Resolve a cipher name or alias to an EncryptionAlgorithm.

        Raises:
            ValueError: If the name is not one of the accepted ciphers.
        """
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().upper().replace("_", "-")
        try:
            return _ALGORITHM_ALIASES[normalized]
        except KeyError:
            msg = f"encryption algorithm must be 3DES or RC2 - value specified was: {name!r}"
            raise ValueError(msg) from None


_ALGORITHM_ALIASES = {
    "3DES": EncryptionAlgorithm.DES3,
    "DES3": EncryptionAlgorithm.DES3,
    "TRIPLEDES": EncryptionAlgorithm.DES3,
    "TRIPLE-DES": EncryptionAlgorithm.DES3,
    "DES-EDE3": EncryptionAlgorithm.DES3,
    "RC2": EncryptionAlgorithm.RC2,
}

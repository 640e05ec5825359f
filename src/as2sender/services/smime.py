"""S/MIME sign and encrypt orchestration for outbound AS2 content.

The orchestrator decides from the identities it is given what happens to a
payload, and in which order:

    signing  recipient  result
    -------  ---------  ----------------------------------------------------
    no       no         content unchanged, base content type
    yes      no         multipart/signed (wrapped content + detached signature)
    no       yes        application/pkcs7-mime enveloped data
    yes      yes        sign first, then envelope the signed message

Encryption always wraps the signature, never the reverse. All argument
checks happen before any call to the crypto collaborator.

The inverse direction (open_message) decrypts an enveloped body and
extracts the payload of a signed body. It does not verify signatures.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from as2sender.core.constants import (
    BASE64_LINE_LENGTH,
    BASE64_TRANSFER_ENCODING,
    BINARY_TRANSFER_ENCODING,
    CRLF,
    ENVELOPED_CONTENT_TYPE,
    MESSAGE_SEPARATOR,
    SIGNATURE_CONTENT_TYPE,
    SIGNATURE_DISPOSITION,
    SIGNED_CONTENT_TYPE,
    EncryptionAlgorithm,
)
from as2sender.core.exceptions import (
    ConfigurationError,
    InvalidArgumentError,
    ParseError,
)
from as2sender.services.cms import (
    CMSEncryptor,
    CMSSigner,
    DecryptionIdentity,
    MessageEncryptor,
    MessageSigner,
    RecipientIdentity,
    SigningIdentity,
)
from as2sender.services.mime import (
    build_mime_message,
    build_multipart_body,
    concat_bytes,
    extract_payload,
    format_mime_header,
    generate_boundary,
    get_boundary,
    parse_content_type,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SignedMessage:
    """A multipart/signed body.

    Attributes:
        body: Delimited parts (signed content, then signature).
        content_type: multipart/signed content type including the boundary.
        boundary: Boundary token delimiting the two parts.
    """

    body: bytes
    content_type: str
    boundary: str


@dataclass(frozen=True, slots=True)
class ProtectedContent:
    """Outcome of the sign/encrypt pipeline.

    Attributes:
        body: Bytes to transmit.
        content_type: Content type matching what was actually done to body.
        signed: Whether a detached signature was attached.
        encrypted: Whether body is CMS enveloped data.
    """

    body: bytes
    content_type: str
    signed: bool
    encrypted: bool


@dataclass(frozen=True, slots=True)
class OpenedMessage:
    """Outcome of the decrypt/extract pipeline.

    Attributes:
        payload: Extracted content bytes.
        content_type: Content type of the innermost entity that was opened.
        encrypted: Whether the body had to be decrypted.
        signed: Whether a multipart/signed layer was stripped (unverified).
        algorithm: Cipher used by the sender, if encrypted.
    """

    payload: bytes
    content_type: str
    encrypted: bool
    signed: bool
    algorithm: EncryptionAlgorithm | None = None


def encode_signature(signature: bytes) -> bytes:
    """Base64 encode a signature as CRLF-terminated 76-character lines."""
    encoded = base64.b64encode(signature)
    lines = [
        encoded[i : i + BASE64_LINE_LENGTH] for i in range(0, len(encoded), BASE64_LINE_LENGTH)
    ]
    return b"".join(line + CRLF.encode("ascii") for line in lines)


def sign_message(
    content: bytes,
    identity: SigningIdentity,
    signer: MessageSigner,
) -> SignedMessage:
    """Attach a detached signature to already MIME-wrapped content.

    Args:
        content: MIME entity to sign (header block + body).
        identity: Signing identity passed through to the signer.
        signer: Crypto collaborator computing the signature.

    Returns:
        SignedMessage whose body starts with the first boundary delimiter.
    """
    boundary = generate_boundary()
    content_type = f'{SIGNED_CONTENT_TYPE}; boundary="{boundary}"'

    signature = signer.sign(content, identity)

    signature_part = concat_bytes(
        format_mime_header(
            SIGNATURE_CONTENT_TYPE,
            BASE64_TRANSFER_ENCODING,
            SIGNATURE_DISPOSITION,
        ).encode("ascii"),
        encode_signature(signature),
    )

    logger.debug(
        "Signed message",
        extra={"boundary": boundary, "signature_size": len(signature)},
    )

    return SignedMessage(
        body=build_multipart_body(boundary, [content, signature_part]),
        content_type=content_type,
        boundary=boundary,
    )


def encrypt_message(
    content: bytes,
    content_type: str,
    recipient: RecipientIdentity,
    algorithm: EncryptionAlgorithm,
    encryptor: MessageEncryptor,
) -> bytes:
    """Envelope content, prefixed by its Content-Type header line.

    A multipart body already opens with the CRLF before its first delimiter,
    which ends the header block. Any other content gets an explicit blank
    line after the header.
    """
    header = f"Content-Type: {content_type}{CRLF}"
    media_type, _ = parse_content_type(content_type)
    if not media_type.startswith("multipart/"):
        header += CRLF

    return encryptor.envelope(concat_bytes(header.encode("ascii"), content), recipient, algorithm)


class SignEncryptOrchestrator:
    """Runs the sign and encrypt steps an outbound transaction asks for.

    Usage:
        orchestrator = SignEncryptOrchestrator()
        protected = orchestrator.protect(
            content,
            "application/xml",
            signing=SigningIdentity("/etc/as2/me.p12", "secret"),
            recipient=RecipientIdentity("/etc/as2/partner.pem"),
        )
    """

    def __init__(
        self,
        signer: MessageSigner | None = None,
        encryptor: MessageEncryptor | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            signer: Signature collaborator (CMSSigner by default).
            encryptor: Enveloping collaborator (CMSEncryptor by default).
        """
        self._signer = signer or CMSSigner()
        self._encryptor = encryptor or CMSEncryptor()

    def protect(
        self,
        content: bytes,
        content_type: str,
        *,
        signing: SigningIdentity | None = None,
        recipient: RecipientIdentity | None = None,
        algorithm: EncryptionAlgorithm | str = EncryptionAlgorithm.DES3,
    ) -> ProtectedContent:
        """Sign and/or encrypt content.

        Args:
            content: Raw document bytes.
            content_type: Base content type of the document.
            signing: Signing identity, None to skip signing.
            recipient: Recipient identity, None to skip encryption.
            algorithm: Content cipher for encryption (3DES or RC2).

        Returns:
            ProtectedContent with the bytes and final content type.

        Raises:
            InvalidArgumentError: If the cipher name is not recognized.
            ConfigurationError: If an identity has no certificate reference.
            CryptoError: If the collaborator fails.
        """
        try:
            cipher = EncryptionAlgorithm.parse(algorithm)
        except ValueError as e:
            raise InvalidArgumentError(str(e), context={"algorithm": str(algorithm)}) from e

        if signing is not None and not str(signing.certificate_path or ""):
            raise ConfigurationError("signing identity has no certificate reference")
        if recipient is not None and not str(recipient.certificate_path or ""):
            raise ConfigurationError(
                "recipient identity has no certificate reference; "
                "encryption requires the partner certificate"
            )

        body = content
        signed = encrypted = False

        if signing is not None:
            wrapped = build_mime_message(content_type, BINARY_TRANSFER_ENCODING, None, content)
            signed_message = sign_message(wrapped.body, signing, self._signer)
            body = signed_message.body
            content_type = signed_message.content_type
            signed = True

        if recipient is not None:
            body = encrypt_message(body, content_type, recipient, cipher, self._encryptor)
            content_type = ENVELOPED_CONTENT_TYPE
            encrypted = True

        logger.info(
            "Prepared AS2 content: signed=%s, encrypted=%s, size=%d",
            signed,
            encrypted,
            len(body),
        )

        return ProtectedContent(
            body=body,
            content_type=content_type,
            signed=signed,
            encrypted=encrypted,
        )

    def open_message(
        self,
        body: bytes,
        content_type: str,
        *,
        identity: DecryptionIdentity | None = None,
    ) -> OpenedMessage:
        """Decrypt and/or unwrap a protected body.

        The signature of a multipart/signed body is skipped, not verified.

        Args:
            body: Received bytes.
            content_type: Content type declared for body.
            identity: Our key pair, required for enveloped bodies.

        Returns:
            OpenedMessage with the extracted payload.

        Raises:
            ConfigurationError: If the body is enveloped and no identity is given.
            ParseError: If the MIME structure is malformed.
            CryptoError: If decryption fails.
        """
        media_type, _ = parse_content_type(content_type)
        algorithm: EncryptionAlgorithm | None = None
        encrypted = signed = False

        if media_type in ("application/pkcs7-mime", "application/x-pkcs7-mime"):
            if identity is None:
                raise ConfigurationError("a decryption identity is required for enveloped data")
            plaintext, algorithm = self._encryptor.unenvelope(body, identity)
            content_type, body = _split_entity(plaintext)
            media_type, _ = parse_content_type(content_type)
            encrypted = True

        if media_type == "multipart/signed":
            inner_type = _first_part_content_type(body, get_boundary(content_type))
            body = extract_payload(body, content_type)
            content_type = inner_type or content_type
            signed = True

        return OpenedMessage(
            payload=body,
            content_type=content_type,
            encrypted=encrypted,
            signed=signed,
            algorithm=algorithm,
        )


def _split_entity(entity: bytes) -> tuple[str, bytes]:
    """Split a MIME entity into its Content-Type value and its body."""
    separator = MESSAGE_SEPARATOR.encode("ascii")
    end = entity.find(separator)
    if end == -1:
        raise ParseError(
            "Blank line after entity headers not found",
            context={"position": 0},
        )

    content_type = None
    for line in entity[:end].decode("ascii", errors="replace").split(CRLF):
        name, _, value = line.partition(":")
        if name.strip().lower() == "content-type":
            content_type = value.strip()

    if not content_type:
        raise ParseError("Entity has no Content-Type header", context={"position": 0})
    return content_type, entity[end + len(separator) :]


def _first_part_content_type(body: bytes, boundary: str) -> str | None:
    """Return the Content-Type declared by the first part of a multipart body."""
    marker = f"--{boundary}{CRLF}".encode("ascii")
    start = body.find(marker)
    if start == -1:
        return None
    part = body[start + len(marker) :]
    if not part.lower().startswith(b"content-"):
        return None
    try:
        content_type, _ = _split_entity(part)
    except ParseError:
        return None
    return content_type

"""AS2 sender service layer.

This package contains the building blocks of an outbound AS2 transmission:
- mime: byte assembly, MIME header blocks, envelopes and payload extraction
- cms: CMS signing and enveloping (cryptography + asn1crypto)
- SignEncryptOrchestrator: sign/encrypt decision table and its inverse
- TransactionHeaderBuilder: AS2 HTTP header set
- AS2SenderService: validation, protection, headers and HTTP POST
"""

from as2sender.services.as2_sender import (
    AS2HttpClient,
    AS2SenderService,
    AS2SendResult,
    AS2Transaction,
    PreparedTransaction,
    ProxyConfig,
    create_as2_sender_service,
)
from as2sender.services.cms import (
    CMSEncryptor,
    CMSSigner,
    DecryptionIdentity,
    RecipientIdentity,
    SigningIdentity,
)
from as2sender.services.headers import TransactionHeaderBuilder, content_type_for
from as2sender.services.mime import (
    MimeMessage,
    build_mime_message,
    concat_bytes,
    extract_payload,
    format_mime_header,
)
from as2sender.services.smime import (
    OpenedMessage,
    ProtectedContent,
    SignEncryptOrchestrator,
)

__all__ = [
    "AS2HttpClient",
    "AS2SendResult",
    "AS2SenderService",
    "AS2Transaction",
    "CMSEncryptor",
    "CMSSigner",
    "DecryptionIdentity",
    "MimeMessage",
    "OpenedMessage",
    "PreparedTransaction",
    "ProtectedContent",
    "ProxyConfig",
    "RecipientIdentity",
    "SignEncryptOrchestrator",
    "SigningIdentity",
    "TransactionHeaderBuilder",
    "build_mime_message",
    "concat_bytes",
    "content_type_for",
    "create_as2_sender_service",
    "extract_payload",
    "format_mime_header",
]

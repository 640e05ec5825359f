"""AS2 transaction header construction.

Produces the HTTP headers that accompany an AS2 body (RFC 4130):
Mime-Version, AS2-Version, AS2-From, AS2-To, Subject, Message-Id,
EDIINT-Features when signed, transfer encoding and disposition when the
content travels in the clear, and the final Content-Type/Content-Length.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import PurePath
from uuid import uuid4

from as2sender.core.constants import (
    AS2_VERSION,
    BINARY_TRANSFER_ENCODING,
    EDI_CONTENT_TYPE,
    EDIINT_FEATURES,
    MIME_VERSION,
    XML_CONTENT_TYPE,
)
from as2sender.core.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

# Characters kept from AS2-From when forming the Message-Id domain part
_MESSAGE_ID_UNSAFE_RE = re.compile(r"[^A-Za-z0-9.\-_]")


def content_type_for(filename: str) -> str:
    """Map a filename to the base content type of its document.

    An .xml extension (any case) yields application/xml; anything else is
    sent as EDI.
    """
    if PurePath(filename).suffix.lower() == ".xml":
        return XML_CONTENT_TYPE
    return EDI_CONTENT_TYPE


def generate_message_id(as2_from: str) -> str:
    """Return a fresh angle-bracketed Message-Id.

    Format: <AS2_<UTC timestamp>_<random hex>@<sanitised AS2-From>>
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S%f")
    domain = _MESSAGE_ID_UNSAFE_RE.sub("_", as2_from) or "as2"
    return f"<AS2_{timestamp}_{uuid4().hex}@{domain}>"


def quote_header_value(value: str) -> str:
    """Quote a header parameter value, escaping backslashes and quotes."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class TransactionHeaderBuilder:
    """Builds the AS2 header set for one transaction.

    Usage:
        builder = TransactionHeaderBuilder(user_agent="as2sender/0.1.0")
        headers = builder.build(
            filename="invoice.xml",
            as2_from="ME",
            as2_to="PARTNER",
            content_type="application/xml",
            content_length=1024,
            signed=False,
            encrypted=False,
        )
    """

    def __init__(self, user_agent: str | None = None) -> None:
        self._user_agent = user_agent

    def build(
        self,
        *,
        filename: str,
        as2_from: str,
        as2_to: str,
        content_type: str,
        content_length: int,
        signed: bool,
        encrypted: bool,
        message_id: str | None = None,
    ) -> dict[str, str]:
        """Build the ordered header mapping.

        Args:
            filename: Document filename, used for Subject and disposition.
            as2_from: Sender AS2 identifier.
            as2_to: Receiver AS2 identifier.
            content_type: Final content type of the body.
            content_length: Byte length of the final body.
            signed: Whether the body carries a detached signature.
            encrypted: Whether the body is enveloped.
            message_id: Message-Id to use; generated when None.

        Returns:
            Header name to value, in wire order.

        Raises:
            InvalidArgumentError: If filename or an AS2 identifier is empty.
        """
        if not filename:
            raise InvalidArgumentError("filename must not be empty")
        if not as2_from or not as2_to:
            raise InvalidArgumentError(
                "AS2-From and AS2-To must not be empty",
                context={"as2_from": as2_from, "as2_to": as2_to},
            )

        name = PurePath(filename).name or filename

        headers: dict[str, str] = {
            "Mime-Version": MIME_VERSION,
            "AS2-Version": AS2_VERSION,
            "AS2-From": _quote_identifier(as2_from),
            "AS2-To": _quote_identifier(as2_to),
            "Subject": f"{name} transmission.",
            "Message-Id": message_id or generate_message_id(as2_from),
        }

        if signed:
            headers["EDIINT-Features"] = EDIINT_FEATURES

        if not signed and not encrypted:
            headers["Content-Transfer-Encoding"] = BINARY_TRANSFER_ENCODING
            headers["Content-Disposition"] = f"inline; filename={quote_header_value(name)}"

        headers["Content-Type"] = content_type
        headers["Content-Length"] = str(content_length)

        if self._user_agent:
            headers["User-Agent"] = self._user_agent

        logger.debug(
            "Built AS2 headers",
            extra={"message_id": headers["Message-Id"], "header_count": len(headers)},
        )
        return headers


def _quote_identifier(identifier: str) -> str:
    # AS2 identifiers containing spaces or quotes must be quoted (RFC 4130 6.2)
    if re.fullmatch(r"[!#-\[\]-~]+", identifier):
        return identifier
    return quote_header_value(identifier)

"""MIME envelope assembly and payload extraction for AS2 messages.

This module builds the byte-exact MIME structures carried in an AS2 body:
- concat_bytes: contiguous byte buffer assembly
- format_mime_header: Content-Type / Content-Transfer-Encoding /
  Content-Disposition header block terminated by a blank line
- build_mime_message: single-part or boundary-delimited multi-part body
- extract_payload: structural extraction of the first part of a
  multipart body, located through the boundary in its Content-Type

All line endings are CRLF. Header text is ASCII.

Note: extract_payload does NOT validate any signature carried alongside the
payload. It is a structural extraction only; authenticity has to be checked
separately through the crypto collaborator.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import AnyStr
from uuid import uuid4

from as2sender.core.constants import CRLF
from as2sender.core.exceptions import InvalidArgumentError, ParseError

logger = logging.getLogger(__name__)

# RFC 2045 token characters (tspecials and controls excluded)
_TOKEN_RE = re.compile(r"[!#$%&'*+\-.0-9A-Z^_`a-z{|}~]+")
# A header field line "name: value" and its folded continuation lines
_HEADER_LINE_RE = re.compile(rb"[!-9;-~]+:[ \t][^\r\n]*")
_CONTINUATION_LINE_RE = re.compile(rb"[ \t][^\r\n]*")
_HEADER_LINE_TEXT_RE = re.compile(r"[!-9;-~]+:[ \t][^\r\n]*")
_CONTINUATION_LINE_TEXT_RE = re.compile(r"[ \t][^\r\n]*")


@dataclass(frozen=True, slots=True)
class MimeMessage:
    """Result of building a MIME message.

    Attributes:
        body: Complete message bytes (header block followed by content).
        header_length: Byte length of the header block alone.
        content_type: Content type written in the header, including the
            boundary parameter for multi-part messages.
        boundary: Boundary token for multi-part messages, None otherwise.
    """

    body: bytes
    header_length: int
    content_type: str
    boundary: str | None = None


def concat_bytes(*buffers: bytes | bytearray | memoryview) -> bytes:
    """Return a single buffer holding all supplied buffers in order.

    The result length is the sum of the input lengths. Inputs are not
    modified; an empty call yields b"".
    """
    return b"".join(buffers)


def format_mime_header(
    content_type: str,
    transfer_encoding: str | None = None,
    disposition: str | None = None,
) -> str:
    """Render a MIME header block.

    Args:
        content_type: Value of the Content-Type header.
        transfer_encoding: Content-Transfer-Encoding value, omitted when empty.
        disposition: Content-Disposition value, omitted when empty.

    Returns:
        The header lines followed by the blank separator line.
    """
    header = f"Content-Type: {content_type}{CRLF}"
    if transfer_encoding:
        header += f"Content-Transfer-Encoding: {transfer_encoding}{CRLF}"
    if disposition:
        header += f"Content-Disposition: {disposition}{CRLF}"
    return header + CRLF


def generate_boundary() -> str:
    """Return a fresh MIME boundary token.

    The token is a random UUID in hex wrapped in underscores, so it never
    starts with "--" and will not plausibly occur inside the content.
    """
    return f"_{uuid4().hex}_"


def build_multipart_body(boundary: str, parts: tuple[bytes, ...] | list[bytes]) -> bytes:
    """Join parts with boundary delimiters, without any header block.

    Each part is preceded by CRLF--boundary CRLF and the last part is
    followed by CRLF--boundary--CRLF.
    """
    delimiter = f"{CRLF}--{boundary}{CRLF}".encode("ascii")
    close_delimiter = f"{CRLF}--{boundary}--{CRLF}".encode("ascii")

    chunks: list[bytes] = []
    for part in parts:
        chunks.append(delimiter)
        chunks.append(part)
    chunks.append(close_delimiter)
    return concat_bytes(*chunks)


def build_mime_message(
    content_type: str,
    transfer_encoding: str | None,
    disposition: str | None,
    *parts: bytes,
) -> MimeMessage:
    """Build a MIME message from one or more content parts.

    A single part is written as header + content. Two or more parts get a
    fresh boundary, declared in the Content-Type and written before each
    part, with a closing delimiter after the last one.

    Args:
        content_type: Content type of the message (e.g. "multipart/report").
        transfer_encoding: Optional Content-Transfer-Encoding.
        disposition: Optional Content-Disposition.
        *parts: Content parts, in order.

    Returns:
        MimeMessage with the body and the length of its header block.

    Raises:
        InvalidArgumentError: If no part is supplied.
    """
    if not parts:
        raise InvalidArgumentError("at least one message part is required")

    if len(parts) == 1:
        header = format_mime_header(content_type, transfer_encoding, disposition).encode("ascii")
        return MimeMessage(
            body=concat_bytes(header, parts[0]),
            header_length=len(header),
            content_type=content_type,
        )

    boundary = generate_boundary()
    full_content_type = f'{content_type}; boundary="{boundary}"'
    header = format_mime_header(full_content_type, transfer_encoding, disposition).encode("ascii")

    logger.debug(
        "Built multipart MIME message",
        extra={"boundary": boundary, "part_count": len(parts)},
    )

    return MimeMessage(
        body=concat_bytes(header, build_multipart_body(boundary, parts)),
        header_length=len(header),
        content_type=full_content_type,
        boundary=boundary,
    )


# =============================================================================
# Content-Type parsing
# =============================================================================


def parse_content_type(content_type: str) -> tuple[str, dict[str, str]]:
    """Split a Content-Type value into its media type and parameters.

    Parameters are key=value pairs separated by ";". Values may be tokens
    or quoted strings (with backslash escapes); a ";" inside quotes does not
    end the parameter. Keys are lower-cased.

    Args:
        content_type: e.g. 'multipart/signed; protocol="application/pkcs7-signature";
            micalg="sha1"; boundary="_956100ef6a82431fb98f65ee70c00cb9_"'

    Returns:
        (media type in lower case, parameter dict)

    Raises:
        ParseError: If a parameter is not of the form key=value.
    """
    media_type, sep, rest = content_type.partition(";")
    params: dict[str, str] = {}
    pos = 0

    while sep and pos < len(rest):
        # Skip whitespace and empty segments
        while pos < len(rest) and rest[pos] in " \t;":
            pos += 1
        if pos >= len(rest):
            break

        key_match = _TOKEN_RE.match(rest, pos)
        if not key_match or rest[key_match.end() : key_match.end() + 1] != "=":
            raise ParseError(
                "Malformed Content-Type parameter",
                context={"content_type": content_type, "position": pos},
            )
        key = key_match.group().lower()
        pos = key_match.end() + 1

        if rest[pos : pos + 1] == '"':
            value, pos = _read_quoted(rest, pos, content_type)
        else:
            end = rest.find(";", pos)
            end = len(rest) if end == -1 else end
            value = rest[pos:end].strip()
            pos = end

        params[key] = value

    return media_type.strip().lower(), params


def _read_quoted(text: str, pos: int, content_type: str) -> tuple[str, int]:
    """Read a quoted-string starting at text[pos] == '"'."""
    chars: list[str] = []
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            chars.append(text[i + 1])
            i += 2
            continue
        if ch == '"':
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise ParseError(
        "Unterminated quoted string in Content-Type",
        context={"content_type": content_type, "position": pos},
    )


def get_boundary(content_type: str) -> str:
    """Return the boundary parameter of a Content-Type value.

    Raises:
        ParseError: If the boundary parameter is absent or empty.
    """
    _, params = parse_content_type(content_type)
    boundary = params.get("boundary")
    if not boundary:
        raise ParseError(
            "Content-Type has no boundary parameter",
            context={"content_type": content_type},
        )
    return boundary


# =============================================================================
# Payload extraction
# =============================================================================


def extract_payload(message: AnyStr, content_type: str) -> AnyStr:
    """Extract the first part's payload from a multipart message.

    The boundary is taken from content_type. The first part starts after the
    first boundary line; if it carries its own header block, the payload
    starts after the blank line ending those headers. The payload ends right
    before the CRLF that precedes the next boundary delimiter.

    The signature part of a multipart/signed message is skipped, NOT
    verified.

    Args:
        message: Message body (str or bytes).
        content_type: Content-Type declared for the message.

    Returns:
        The payload, of the same type as message.

    Raises:
        ParseError: If the boundary parameter is missing or the message
            does not contain the expected delimiters.
    """
    boundary = get_boundary(content_type)
    if not boundary.startswith("--"):
        boundary = "--" + boundary

    if isinstance(message, (bytes, bytearray)):
        data = bytes(message)
        marker: AnyStr = boundary.encode("ascii")
        crlf: AnyStr = CRLF.encode("ascii")
        header_res = (_HEADER_LINE_RE, _CONTINUATION_LINE_RE)
    else:
        data = message
        marker = boundary
        crlf = CRLF
        header_res = (_HEADER_LINE_TEXT_RE, _CONTINUATION_LINE_TEXT_RE)

    first_boundary = data.find(marker)
    if first_boundary == -1:
        raise ParseError(
            "Boundary delimiter not found in message",
            context={"content_type": content_type, "position": 0},
        )

    line_end = data.find(crlf, first_boundary + len(marker))
    if line_end == -1:
        raise ParseError(
            "Boundary line is not terminated",
            context={"content_type": content_type, "position": first_boundary},
        )
    part_start = line_end + len(crlf)

    part_end = data.find(crlf + marker, part_start)
    if part_end == -1:
        raise ParseError(
            "Closing boundary delimiter not found in message",
            context={"content_type": content_type, "position": part_start},
        )

    payload_start = _skip_part_headers(data, part_start, part_end, crlf, *header_res)
    return data[payload_start:part_end]


def _skip_part_headers(
    data: AnyStr,
    start: int,
    end: int,
    crlf: AnyStr,
    header_line_re: re.Pattern[AnyStr],
    continuation_re: re.Pattern[AnyStr],
) -> int:
    """Return where the body of the part spanning data[start:end] begins.

    The part has a header block only when every line before its first blank
    line is a "name: value" field or a folded continuation of one; the body
    then follows that blank line. Anything else (EDIFACT segments, "key:value"
    text, a leading CRLF) is a bare body and is returned untouched.
    """
    blank_line = data.find(crlf + crlf, start, end)
    if blank_line != -1:
        header_end, body_start = blank_line, blank_line + 2 * len(crlf)
    elif data.endswith(crlf, start, end):
        # Headers run up to the delimiter, leaving an empty body
        header_end, body_start = end - len(crlf), end
    else:
        return start

    if header_end <= start:
        return start

    lines = data[start:header_end].split(crlf)
    if not header_line_re.fullmatch(lines[0]):
        return start
    for line in lines[1:]:
        if not (header_line_re.fullmatch(line) or continuation_re.fullmatch(line)):
            return start
    return body_start

"""Tests for AS2 transaction header construction."""

from __future__ import annotations

import re

import pytest

from as2sender.core.exceptions import InvalidArgumentError
from as2sender.services.headers import (
    TransactionHeaderBuilder,
    content_type_for,
    generate_message_id,
)


def _build(builder: TransactionHeaderBuilder | None = None, **overrides) -> dict[str, str]:
    kwargs = {
        "filename": "invoice.xml",
        "as2_from": "SENDER",
        "as2_to": "RECEIVER",
        "content_type": "application/xml",
        "content_length": 123,
        "signed": False,
        "encrypted": False,
    }
    kwargs.update(overrides)
    return (builder or TransactionHeaderBuilder()).build(**kwargs)


class TestContentTypeFor:
    """Tests for filename to content type mapping."""

    @pytest.mark.parametrize("filename", ["invoice.xml", "INVOICE.XML", "dir/order.Xml"])
    def test_xml(self, filename):
        """An .xml extension maps to application/xml whatever its case."""
        assert content_type_for(filename) == "application/xml"

    @pytest.mark.parametrize("filename", ["order.edi", "order.txt", "noextension", "xml"])
    def test_everything_else_is_edi(self, filename):
        """Other names map to the EDI content type."""
        assert content_type_for(filename) == "application/EDIFACT"


class TestMessageId:
    """Tests for Message-Id generation."""

    def test_format(self):
        """Message-Ids are angle-bracketed and carry the sender."""
        message_id = generate_message_id("SENDER")
        assert re.fullmatch(r"<AS2_\d{20}_[0-9a-f]{32}@SENDER>", message_id)

    def test_unique(self):
        """Consecutive Message-Ids differ."""
        ids = {generate_message_id("SENDER") for _ in range(100)}
        assert len(ids) == 100

    def test_sender_sanitized(self):
        """Characters unsafe in a msg-id are replaced."""
        message_id = generate_message_id("My Company <x>")
        assert message_id.endswith("@My_Company__x_>")
        assert message_id.count("<") == 1
        assert message_id.count(">") == 1


class TestTransactionHeaderBuilder:
    """Tests for the AS2 header set."""

    def test_plain_transaction(self):
        """Unsigned, unencrypted content gets transfer encoding and disposition."""
        headers = _build()

        assert headers["Mime-Version"] == "1.0"
        assert headers["AS2-Version"] == "1.2"
        assert headers["AS2-From"] == "SENDER"
        assert headers["AS2-To"] == "RECEIVER"
        assert headers["Subject"] == "invoice.xml transmission."
        assert headers["Content-Transfer-Encoding"] == "binary"
        assert headers["Content-Disposition"] == 'inline; filename="invoice.xml"'
        assert headers["Content-Type"] == "application/xml"
        assert headers["Content-Length"] == "123"
        assert "EDIINT-Features" not in headers

    def test_signed_transaction(self):
        """Signed content advertises EDIINT features and no disposition."""
        headers = _build(signed=True)

        assert headers["EDIINT-Features"] == "multiple-attachments"
        assert "Content-Transfer-Encoding" not in headers
        assert "Content-Disposition" not in headers

    def test_encrypted_transaction(self):
        """Encrypted-only content has neither EDIINT features nor disposition."""
        headers = _build(encrypted=True)

        assert "EDIINT-Features" not in headers
        assert "Content-Transfer-Encoding" not in headers
        assert "Content-Disposition" not in headers

    def test_header_order(self):
        """AS2 identification headers come first, content headers last."""
        headers = _build(builder=TransactionHeaderBuilder(user_agent="as2sender/test"))
        assert list(headers) == [
            "Mime-Version",
            "AS2-Version",
            "AS2-From",
            "AS2-To",
            "Subject",
            "Message-Id",
            "Content-Transfer-Encoding",
            "Content-Disposition",
            "Content-Type",
            "Content-Length",
            "User-Agent",
        ]
        assert headers["User-Agent"] == "as2sender/test"

    def test_message_id_passed_through(self):
        """A given Message-Id is used as-is."""
        assert _build(message_id="<fixed@id>")["Message-Id"] == "<fixed@id>"

    def test_message_id_generated(self):
        """Without a given Message-Id a fresh one is generated."""
        assert _build()["Message-Id"] != _build()["Message-Id"]

    def test_subject_uses_base_name(self):
        """Directories are stripped from Subject and disposition."""
        headers = _build(filename="/data/out/order.edi")
        assert headers["Subject"] == "order.edi transmission."
        assert headers["Content-Disposition"] == 'inline; filename="order.edi"'

    def test_identifiers_with_spaces_are_quoted(self):
        """AS2 identifiers with spaces are sent as quoted strings."""
        headers = _build(as2_from="My Company", as2_to='Say "hi"')
        assert headers["AS2-From"] == '"My Company"'
        assert headers["AS2-To"] == '"Say \\"hi\\""'

    def test_empty_filename(self):
        """An empty filename is rejected."""
        with pytest.raises(InvalidArgumentError):
            _build(filename="")

    @pytest.mark.parametrize("field", ["as2_from", "as2_to"])
    def test_empty_identifier(self, field):
        """Empty AS2 identifiers are rejected."""
        with pytest.raises(InvalidArgumentError):
            _build(**{field: ""})

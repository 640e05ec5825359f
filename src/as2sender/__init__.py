"""as2sender - sending side of the AS2 EDI message-exchange protocol.

Documents are optionally signed (detached CMS signature, multipart/signed)
and optionally encrypted (CMS EnvelopedData, application/pkcs7-mime),
wrapped in the AS2 header set and POSTed to a trading partner.

Note: Receiving inbound AS2 messages and MDN generation are not covered.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

"""Command line entry point: send one file to an AS2 partner.

Usage:
    as2-send https://partner.example/as2 invoice.xml --from ME --to PARTNER \\
        --sign-cert me.p12 --sign-password secret --encrypt-cert partner.pem

Options not given on the command line fall back to AS2_* environment
settings (see as2sender.core.config). Exit code is 0 when the partner
answers with a 2xx status, 1 otherwise.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from as2sender.core.settings import configure_logging, get_settings
from as2sender.services.as2_sender import (
    AS2Transaction,
    ProxyConfig,
    create_as2_sender_service,
)
from as2sender.services.cms import RecipientIdentity, SigningIdentity

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for as2-send."""
    parser = argparse.ArgumentParser(
        prog="as2-send",
        description="Send a document to an AS2 partner over HTTP(S)",
    )
    parser.add_argument("uri", help="Partner AS2 endpoint URL")
    parser.add_argument("file", type=Path, help="Document to send")
    parser.add_argument(
        "--from",
        dest="as2_from",
        default=None,
        help="AS2-From identifier (default: AS2_AS2_FROM)",
    )
    parser.add_argument("--to", dest="as2_to", required=True, help="AS2-To identifier")
    parser.add_argument(
        "--sign-cert",
        type=Path,
        default=None,
        help="PKCS#12 signing bundle (default: AS2_SIGNING__CERTIFICATE_PATH)",
    )
    parser.add_argument("--sign-password", default=None, help="PKCS#12 password")
    parser.add_argument(
        "--encrypt-cert",
        type=Path,
        default=None,
        help="Partner certificate (PEM or DER); enables encryption",
    )
    parser.add_argument("--cipher", default=None, help="Encryption cipher: 3DES or RC2")
    parser.add_argument("--timeout-ms", type=int, default=None, help="HTTP timeout in ms")
    parser.add_argument("--proxy", default=None, help="Proxy URL or host:port")
    parser.add_argument("--proxy-user", default="", help="Proxy username")
    parser.add_argument("--proxy-password", default="", help="Proxy password")
    parser.add_argument("--proxy-domain", default="", help="Proxy Windows domain")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run as2-send.

    Returns:
        Exit code (0 on a 2xx answer, 1 otherwise).
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()

    configure_logging(settings)

    try:
        content = args.file.read_bytes()
    except OSError as e:
        print(f"ERROR: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    signing = None
    sign_cert = args.sign_cert or settings.signing.certificate_path
    if sign_cert:
        password = args.sign_password
        if password is None:
            password = settings.signing.password.get_secret_value()
        signing = SigningIdentity(sign_cert, password or None)

    recipient = RecipientIdentity(args.encrypt_cert) if args.encrypt_cert else None

    if args.proxy:
        proxy = ProxyConfig(
            name=args.proxy,
            username=args.proxy_user,
            password=args.proxy_password,
            domain=args.proxy_domain,
        )
    else:
        proxy = ProxyConfig.from_settings(settings)

    transaction = AS2Transaction(
        uri=args.uri,
        filename=args.file.name,
        content=content,
        as2_from=args.as2_from or settings.as2_from,
        as2_to=args.as2_to,
        signing=signing,
        recipient=recipient,
        algorithm=args.cipher or settings.encryption_algorithm,
        timeout_ms=args.timeout_ms if args.timeout_ms is not None else settings.timeout_ms,
        proxy=proxy,
    )

    logger.debug(
        "Sending %s to %s (%d bytes)", transaction.filename, transaction.uri, len(content)
    )
    result = create_as2_sender_service(settings).send(transaction)

    if result.success:
        print(f"{result.status_code} {result.message_id}")
        return 0

    status = result.status_code if result.status_code is not None else "-"
    print(
        f"FAILED ({result.error_code.value if result.error_code else 'unknown'}, "
        f"status {status}): {result.error_message}",
        file=sys.stderr,
    )
    return 1


if __name__ == "__main__":
    sys.exit(main())

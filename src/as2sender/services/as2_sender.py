"""AS2 message sending service.

This module turns a document into an AS2 transmission and posts it:
- Validates the transaction before any crypto or network work
- Signs and/or encrypts the content (SignEncryptOrchestrator)
- Builds the AS2 header set (TransactionHeaderBuilder)
- POSTs the body over HTTP(S), optionally through a proxy

Architecture:
    caller -> AS2SenderService -> SignEncryptOrchestrator -> CMS collaborator
                               -> AS2HttpClient -> partner AS2 endpoint

Each transaction is independent: boundaries, Message-Ids and buffers are
local to one call. There is no retry; a failed round trip is reported to
the caller immediately. MDN receipts are not requested or processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from as2sender.core.constants import EncryptionAlgorithm
from as2sender.core.exceptions import (
    AS2Error,
    AS2ErrorCode,
    InvalidArgumentError,
    TransportError,
)
from as2sender.services.cms import RecipientIdentity, SigningIdentity
from as2sender.services.headers import (
    TransactionHeaderBuilder,
    content_type_for,
    generate_message_id,
)
from as2sender.services.smime import SignEncryptOrchestrator

if TYPE_CHECKING:
    from as2sender.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 100_000


# =============================================================================
# Configuration and Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProxyConfig:
    """Outbound proxy for one transaction.

    Attributes:
        name: Proxy URL or host:port (scheme defaults to http).
        username: Proxy user, empty for an anonymous proxy.
        password: Proxy password.
        domain: Windows domain; the user is sent as DOMAIN\\username.
    """

    name: str = ""
    username: str = ""
    password: str = ""
    domain: str = ""

    @property
    def url(self) -> str:
        """Proxy URL with an explicit scheme."""
        if "://" in self.name:
            return self.name
        return f"http://{self.name}"

    @property
    def proxy_user(self) -> str:
        """User name as presented to the proxy."""
        if self.domain and self.username:
            return f"{self.domain}\\{self.username}"
        return self.username

    def to_httpx(self) -> httpx.Proxy | None:
        """Build the httpx proxy, or None for a direct connection."""
        if not self.name:
            return None
        auth = (self.proxy_user, self.password) if self.username else None
        return httpx.Proxy(self.url, auth=auth)

    @classmethod
    def from_settings(cls, settings: Settings) -> ProxyConfig | None:
        """Build from the proxy section of settings, None when unset."""
        proxy = settings.proxy
        if not proxy.name:
            return None
        return cls(
            name=proxy.name,
            username=proxy.username,
            password=proxy.password.get_secret_value(),
            domain=proxy.domain,
        )


@dataclass(frozen=True, slots=True)
class AS2Transaction:
    """One document to transmit.

    Attributes:
        uri: Partner AS2 endpoint.
        filename: Document name (drives Subject, disposition and content type).
        content: Raw document bytes.
        as2_from: Sender AS2 identifier.
        as2_to: Receiver AS2 identifier.
        signing: Our signing identity, None to send unsigned.
        recipient: Partner certificate, None to send unencrypted.
        algorithm: Content cipher used when encrypting.
        timeout_ms: HTTP timeout in milliseconds.
        proxy: Proxy to go through, None for a direct connection.
    """

    uri: str
    filename: str
    content: bytes
    as2_from: str
    as2_to: str
    signing: SigningIdentity | None = None
    recipient: RecipientIdentity | None = None
    algorithm: EncryptionAlgorithm | str = EncryptionAlgorithm.DES3
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    proxy: ProxyConfig | None = None


@dataclass(frozen=True, slots=True)
class PreparedTransaction:
    """A transaction ready to be posted.

    Attributes:
        uri: Partner AS2 endpoint.
        headers: HTTP headers in wire order.
        body: Final body bytes.
        message_id: Message-Id header value.
        content_type: Content-Type header value.
        signed: Whether a signature was attached.
        encrypted: Whether the body is enveloped.
    """

    uri: str
    headers: dict[str, str]
    body: bytes
    message_id: str
    content_type: str
    signed: bool
    encrypted: bool


@dataclass(frozen=True, slots=True)
class AS2SendResult:
    """Result of an AS2 send attempt.

    Attributes:
        success: Whether the partner answered with a 2xx status.
        status_code: HTTP status if a response was received.
        message_id: Message-Id of the transmission (None if never built).
        content_type: Content-Type that was sent (None if never built).
        error_code: Failure category if the send failed.
        error_message: Human-readable error description.
        error: The underlying AS2Error, for callers that want to re-raise.
    """

    success: bool
    status_code: int | None
    message_id: str | None
    content_type: str | None
    error_code: AS2ErrorCode | None
    error_message: str | None
    error: AS2Error | None = None


# =============================================================================
# HTTP Client
# =============================================================================


class AS2HttpClient:
    """Blocking and async HTTP POST for AS2 bodies.

    Redirects are followed. A non-2xx answer, a connection failure and a
    timeout all raise TransportError; nothing is retried. Proxies come only
    from the transaction, never from the environment.
    """

    def __init__(
        self, transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the client.

        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport,
                which serves both the blocking and the async path).
        """
        self._transport = transport

    def _client_options(self, proxy: ProxyConfig | None, timeout_ms: int) -> dict:
        options: dict = {
            "timeout": httpx.Timeout(timeout_ms / 1000),
            "follow_redirects": True,
            "trust_env": False,
        }
        httpx_proxy = proxy.to_httpx() if proxy else None
        if httpx_proxy is not None:
            options["proxy"] = httpx_proxy
        if self._transport is not None:
            options["transport"] = self._transport
        return options

    def post(
        self,
        uri: str,
        headers: dict[str, str],
        body: bytes,
        *,
        proxy: ProxyConfig | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> int:
        """POST body to uri and return the HTTP status.

        Raises:
            TransportError: On connection failure, timeout or non-2xx status.
            InvalidArgumentError: If httpx cannot parse uri.
        """
        try:
            with httpx.Client(**self._client_options(proxy, timeout_ms)) as client:
                response = client.post(uri, headers=headers, content=body)
        except httpx.InvalidURL as e:
            raise _invalid_uri(e, uri) from e
        except httpx.HTTPError as e:
            raise _map_http_error(e, uri) from e
        return _check_status(response, uri)

    async def apost(
        self,
        uri: str,
        headers: dict[str, str],
        body: bytes,
        *,
        proxy: ProxyConfig | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> int:
        """Async variant of post()."""
        try:
            async with httpx.AsyncClient(**self._client_options(proxy, timeout_ms)) as client:
                response = await client.post(uri, headers=headers, content=body)
        except httpx.InvalidURL as e:
            raise _invalid_uri(e, uri) from e
        except httpx.HTTPError as e:
            raise _map_http_error(e, uri) from e
        return _check_status(response, uri)


def _invalid_uri(error: httpx.InvalidURL, uri: str) -> InvalidArgumentError:
    logger.error("Rejected AS2 partner URI", extra={"uri": uri, "error": str(error)})
    return InvalidArgumentError(f"Invalid URI: {error}", context={"uri": uri})


def _map_http_error(error: httpx.HTTPError, uri: str) -> TransportError:
    if isinstance(error, httpx.TimeoutException):
        logger.error("AS2 request timed out", extra={"uri": uri, "error": str(error)})
        return TransportError(
            f"Timeout: {error}",
            error_code=AS2ErrorCode.TIMEOUT_ERROR,
            context={"uri": uri},
        )
    if isinstance(error, (httpx.ConnectError, httpx.ProxyError)):
        logger.error("Failed to connect to AS2 partner", extra={"uri": uri, "error": str(error)})
        return TransportError(
            f"Connection error: {error}",
            error_code=AS2ErrorCode.CONNECTION_ERROR,
            context={"uri": uri},
        )
    logger.error("AS2 request failed", extra={"uri": uri, "error": str(error)})
    return TransportError(f"Transport error: {error}", context={"uri": uri})


def _check_status(response: httpx.Response, uri: str) -> int:
    if response.is_success:
        return response.status_code

    logger.error(
        "AS2 partner rejected transmission",
        extra={"uri": uri, "status_code": response.status_code},
    )
    raise TransportError(
        f"HTTP {response.status_code}: {response.reason_phrase}",
        status_code=response.status_code,
        error_code=AS2ErrorCode.HTTP_STATUS_ERROR,
        context={"uri": uri, "response": response.text[:500]},
    )


# =============================================================================
# AS2 Sender Service
# =============================================================================


class AS2SenderService:
    """High-level service for sending documents over AS2.

    Usage:
        service = AS2SenderService()
        result = service.send(
            AS2Transaction(
                uri="https://partner.example/as2",
                filename="invoice.xml",
                content=document,
                as2_from="ME",
                as2_to="PARTNER",
                signing=SigningIdentity("/etc/as2/me.p12", "secret"),
                recipient=RecipientIdentity("/etc/as2/partner.pem"),
            )
        )
        if not result.success:
            ...
    """

    def __init__(
        self,
        *,
        orchestrator: SignEncryptOrchestrator | None = None,
        http_client: AS2HttpClient | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Initialize the sender service.

        Args:
            orchestrator: Sign/encrypt pipeline (real CMS collaborator by default).
            http_client: HTTP client (a fresh AS2HttpClient by default).
            user_agent: User-Agent header value, omitted when None.
        """
        self._orchestrator = orchestrator or SignEncryptOrchestrator()
        self._http_client = http_client or AS2HttpClient()
        self._header_builder = TransactionHeaderBuilder(user_agent=user_agent)

    def prepare(self, transaction: AS2Transaction) -> PreparedTransaction:
        """Validate, protect and add headers to a transaction.

        Args:
            transaction: Document and partner details.

        Returns:
            PreparedTransaction with the final headers and body.

        Raises:
            InvalidArgumentError: On empty filename, content, identifiers or
                URI, non-ASCII header text, a non-positive timeout, or an
                unknown cipher.
            ConfigurationError: If an identity lacks a certificate reference.
            CryptoError: If signing or encryption fails.
        """
        _validate(transaction)

        base_content_type = content_type_for(transaction.filename)
        message_id = generate_message_id(transaction.as2_from)

        protected = self._orchestrator.protect(
            transaction.content,
            base_content_type,
            signing=transaction.signing,
            recipient=transaction.recipient,
            algorithm=transaction.algorithm,
        )

        headers = self._header_builder.build(
            filename=transaction.filename,
            as2_from=transaction.as2_from,
            as2_to=transaction.as2_to,
            content_type=protected.content_type,
            content_length=len(protected.body),
            signed=protected.signed,
            encrypted=protected.encrypted,
            message_id=message_id,
        )

        return PreparedTransaction(
            uri=transaction.uri,
            headers=headers,
            body=protected.body,
            message_id=message_id,
            content_type=protected.content_type,
            signed=protected.signed,
            encrypted=protected.encrypted,
        )

    def send(self, transaction: AS2Transaction) -> AS2SendResult:
        """Prepare and POST a transaction.

        Args:
            transaction: Document and partner details.

        Returns:
            AS2SendResult describing the outcome. Failures are reported
            through the result, never raised.
        """
        prepared: PreparedTransaction | None = None
        try:
            prepared = self.prepare(transaction)
            _log_sending(prepared)
            status_code = self._http_client.post(
                prepared.uri,
                prepared.headers,
                prepared.body,
                proxy=transaction.proxy,
                timeout_ms=transaction.timeout_ms,
            )
        except AS2Error as e:
            return _failure(e, prepared)

        return _success(status_code, prepared)

    async def send_async(self, transaction: AS2Transaction) -> AS2SendResult:
        """Async variant of send(); signing and encryption run inline."""
        prepared: PreparedTransaction | None = None
        try:
            prepared = self.prepare(transaction)
            _log_sending(prepared)
            status_code = await self._http_client.apost(
                prepared.uri,
                prepared.headers,
                prepared.body,
                proxy=transaction.proxy,
                timeout_ms=transaction.timeout_ms,
            )
        except AS2Error as e:
            return _failure(e, prepared)

        return _success(status_code, prepared)


def _validate(transaction: AS2Transaction) -> None:
    if not transaction.filename:
        raise InvalidArgumentError("filename must not be empty")
    if not transaction.content:
        raise InvalidArgumentError(
            "content must not be empty",
            context={"filename": transaction.filename},
        )
    if not transaction.uri:
        raise InvalidArgumentError("uri must not be empty")
    if not transaction.as2_from or not transaction.as2_to:
        raise InvalidArgumentError(
            "AS2-From and AS2-To must not be empty",
            context={"as2_from": transaction.as2_from, "as2_to": transaction.as2_to},
        )
    # Filename and identifiers travel in HTTP headers, which are ASCII only
    for field in ("filename", "as2_from", "as2_to"):
        value = getattr(transaction, field)
        if not value.isascii() or not value.isprintable():
            raise InvalidArgumentError(
                f"{field} must be printable ASCII",
                context={field: value},
            )
    if transaction.timeout_ms <= 0:
        raise InvalidArgumentError(
            "timeout_ms must be positive",
            context={"timeout_ms": transaction.timeout_ms},
        )


def _log_sending(prepared: PreparedTransaction) -> None:
    logger.info(
        "Sending AS2 message",
        extra={
            "message_id": prepared.message_id,
            "uri": prepared.uri,
            "size": len(prepared.body),
            "signed": prepared.signed,
            "encrypted": prepared.encrypted,
        },
    )


def _success(status_code: int, prepared: PreparedTransaction) -> AS2SendResult:
    logger.info(
        "AS2 message delivered",
        extra={"message_id": prepared.message_id, "status_code": status_code},
    )
    return AS2SendResult(
        success=True,
        status_code=status_code,
        message_id=prepared.message_id,
        content_type=prepared.content_type,
        error_code=None,
        error_message=None,
    )


def _failure(error: AS2Error, prepared: PreparedTransaction | None) -> AS2SendResult:
    logger.warning(
        "AS2 send failed",
        extra={
            "message_id": prepared.message_id if prepared else None,
            "error_code": error.error_code.value,
            "error": error.message,
        },
    )
    return AS2SendResult(
        success=False,
        status_code=getattr(error, "status_code", None),
        message_id=prepared.message_id if prepared else None,
        content_type=prepared.content_type if prepared else None,
        error_code=error.error_code,
        error_message=error.message,
        error=error,
    )


# =============================================================================
# Factory
# =============================================================================


def create_as2_sender_service(settings: Settings | None = None) -> AS2SenderService:
    """Create an AS2SenderService from settings.

    Args:
        settings: Settings to use; the cached application settings when None.

    Returns:
        Configured AS2SenderService.
    """
    if settings is None:
        from as2sender.core.settings import get_settings

        settings = get_settings()

    return AS2SenderService(user_agent=settings.user_agent)

"""
Reusable HTTP(S) connection to a single hub.

`TransportConnection` owns the session state for one hub address: the
cookie jar, an optional bearer token, the resolved scheme, and the cached
client-key passphrase. Requests are confined to the connection's origin,
so session credentials can never leak to another host.

Redirects are followed by hand (same-origin 301 only), cookies are kept
in our own `CookieJar`, and every httpx failure is converted into a
`TransportError` carrying a locale-neutral error code.
"""

import asyncio
import errno
import logging
import socket
import ssl
import tempfile
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from http.cookiejar import CookieJar as StdlibCookieJar
from http.cookiejar import DefaultCookiePolicy
from pathlib import Path

import httpx

from .address import HTTP_SCHEME, HTTPS_SCHEME, HubAddress, HubScheme
from .config import ConnectionOptions
from .cookies import CookieJar
from .core.cancellation import CancellationToken, run_cancellable
from .core.exceptions import (
    CERT_HAS_EXPIRED,
    CERT_VERIFY_FAILED,
    DEPTH_ZERO_SELF_SIGNED_CERT,
    ECONNREFUSED,
    ECONNRESET,
    ENOTFOUND,
    EPROTO,
    SELF_SIGNED_CERT_IN_CHAIN,
    UNABLE_TO_GET_ISSUER_CERT_LOCALLY,
    HubTimeoutError,
    InvalidConfigError,
    MissingCredentialError,
    OriginMismatchError,
    RequestError,
    TransportError,
)
from .pem import parse_pem_sections

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_MOVED_PERMANENTLY = 301
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404

MAX_REDIRECTS = 10

# OpenSSL X509_V_ERR_* codes
_VERIFY_CODES = {
    10: CERT_HAS_EXPIRED,
    18: DEPTH_ZERO_SELF_SIGNED_CERT,
    19: SELF_SIGNED_CERT_IN_CHAIN,
    20: UNABLE_TO_GET_ISSUER_CERT_LOCALLY,
}

# Checked in order; the first matching fragment wins.
_MESSAGE_CODES = (
    ("self signed certificate in certificate chain", SELF_SIGNED_CERT_IN_CHAIN),
    ("self-signed certificate in certificate chain", SELF_SIGNED_CERT_IN_CHAIN),
    ("self signed certificate", DEPTH_ZERO_SELF_SIGNED_CERT),
    ("self-signed certificate", DEPTH_ZERO_SELF_SIGNED_CERT),
    ("certificate verify failed", CERT_VERIFY_FAILED),
    ("wrong version number", EPROTO),
    ("connection refused", ECONNREFUSED),
    ("connection reset", ECONNRESET),
    ("server disconnected", ECONNRESET),
    ("name or service not known", ENOTFOUND),
    ("nodename nor servname", ENOTFOUND),
)


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    pending: list[BaseException] = [exc]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        chain.append(current)
        if isinstance(current, BaseExceptionGroup):
            pending.extend(current.exceptions)
        if current.__cause__ is not None:
            pending.append(current.__cause__)
        if current.__context__ is not None:
            pending.append(current.__context__)
    return chain


def classify_error_code(exc: BaseException) -> str | None:
    """Find a locale-neutral error code for a connection failure."""
    chain = _iter_exception_chain(exc)
    for err in chain:
        if isinstance(err, ssl.SSLCertVerificationError):
            return _VERIFY_CODES.get(getattr(err, "verify_code", None), CERT_VERIFY_FAILED)
        if isinstance(err, (ssl.SSLEOFError, ssl.SSLZeroReturnError)):
            return ECONNRESET
        if isinstance(err, ssl.SSLError):
            return EPROTO
        if isinstance(err, socket.gaierror):
            return ENOTFOUND
        if isinstance(err, ConnectionRefusedError):
            return ECONNREFUSED
        if isinstance(err, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
            return ECONNRESET
        if isinstance(err, OSError) and err.errno in errno.errorcode:
            return errno.errorcode[err.errno]

    text = " ".join(str(err) for err in chain).lower()
    for fragment, code in _MESSAGE_CODES:
        if fragment in text:
            return code
    return None


def translate_transport_error(exc: httpx.TransportError) -> TransportError:
    if isinstance(exc, httpx.TimeoutException):
        return HubTimeoutError()
    message = str(exc) or type(exc).__name__
    return TransportError(message, code=classify_error_code(exc))


def url_origin(url: httpx.URL) -> str:
    """`scheme://host[:port]`, with default ports omitted."""
    host = f"[{url.host}]" if ":" in url.host else url.host
    origin = f"{url.scheme}://{host}"
    if url.port is not None:
        origin += f":{url.port}"
    return origin


@dataclass
class RequestOptions:
    """Per-request options."""

    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    cancellation: CancellationToken | None = None


@dataclass
class SessionState:
    """Mutable session state private to one `TransportConnection`."""

    cookies: CookieJar
    bearer_token: str | None = None
    scheme: HubScheme | None = None
    _passphrase: str | None = field(default=None, repr=False)
    _passphrase_written: bool = field(default=False, repr=False)

    @property
    def has_passphrase(self) -> bool:
        return self._passphrase_written

    @property
    def passphrase(self) -> str | None:
        return self._passphrase

    def remember_passphrase(self, passphrase: str) -> None:
        """Cache the client-key passphrase; only the first value is kept."""
        if self._passphrase_written:
            return
        self._passphrase = passphrase
        self._passphrase_written = True

    def clear_credentials(self) -> None:
        self.cookies.clear()
        self.bearer_token = None


class HubResponse:
    """A response whose body has not been read yet.

    The body is a live stream: read it with `aiter_bytes`, `aread`, or
    `aread_text`, or release it with `aclose`. Reads honour the request's
    cancellation token.
    """

    def __init__(
        self,
        url: httpx.URL,
        response: httpx.Response,
        cancellation: CancellationToken | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self._response = response
        self._cancellation = cancellation
        self._logger = log or logger

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def reason_phrase(self) -> str:
        return self._response.reason_phrase or "Unspecified HTTP Error"

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def content_length(self) -> int | None:
        value = self._response.headers.get("content-length")
        if value is None or not value.isdigit():
            return None
        return int(value)

    @property
    def is_closed(self) -> bool:
        return self._response.is_closed

    def status_error(self) -> RequestError:
        return RequestError(self.reason_phrase, self.status_code)

    async def aiter_bytes(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """Stream the body. The response is closed when iteration ends."""
        iterator = self._response.aiter_bytes(chunk_size)

        async def next_chunk() -> bytes | None:
            try:
                return await iterator.__anext__()
            except StopAsyncIteration:
                return None

        try:
            while True:
                try:
                    chunk = await run_cancellable(next_chunk(), self._cancellation)
                except httpx.TransportError as e:
                    if self._cancellation is not None and self._cancellation.is_cancellation_requested:
                        raise self._cancellation.create_cancellation_error() from e
                    raise translate_transport_error(e) from e
                if chunk is None:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def aread(self, max_length: int | None = None) -> bytes:
        """Read the body, keeping at most `max_length` bytes."""
        chunks: list[bytes] = []
        length = 0
        async with aclosing(self.aiter_bytes()) as body:
            async for chunk in body:
                if max_length is not None:
                    chunk = chunk[: max_length - length]
                chunks.append(chunk)
                length += len(chunk)
                if max_length is not None and length >= max_length:
                    break
        return b"".join(chunks)

    async def aread_text(self, max_length: int | None = None) -> str:
        data = await self.aread(max_length)
        return data.decode(self._response.charset_encoding or "utf-8", errors="replace")

    async def ignore(self) -> None:
        """Read the body to its end and discard it."""
        async for _ in self.aiter_bytes():
            pass

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> "HubResponse":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.aclose()


async def _aclose_response(response: httpx.Response) -> None:
    await response.aclose()


class TransportConnection:
    """Manages a connection to a single hub."""

    def __init__(
        self,
        address: HubAddress,
        options: ConnectionOptions | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.address = address
        self.options = options or ConnectionOptions()
        self.logger = logger or logging.getLogger(__name__)
        self.session = SessionState(cookies=CookieJar(clock=clock))
        scheme = address.scheme
        if scheme is None and self.options.requires_tls:
            # Certificates only make sense over TLS; skip the probe.
            scheme = HTTPS_SCHEME
        self.session.scheme = scheme
        self._key_is_protected = bool(self.options.client_key) and any(
            s.is_protected for s in parse_pem_sections(self.options.client_key or "")
        )
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._scheme_lock = asyncio.Lock()

    @property
    def scheme(self) -> HubScheme | None:
        return self.session.scheme

    @property
    def bearer_token(self) -> str | None:
        return self.session.bearer_token

    @bearer_token.setter
    def bearer_token(self, token: str | None) -> None:
        self.session.bearer_token = token

    @property
    def origin(self) -> str:
        return url_origin(self._base_url())

    def clear_cookies(self) -> None:
        """Remove all cookies from the connection's cookie storage."""
        self.session.cookies.clear()

    def _base_url(self, scheme: HubScheme | None = None) -> httpx.URL:
        scheme = scheme or self.session.scheme
        if scheme is None:
            raise RuntimeError("Hub scheme has not been resolved yet")
        return httpx.URL(f"{scheme}://{self.address.host_and_port}/")

    def resource_url(self, resource: str | httpx.URL) -> httpx.URL:
        """Transform a resource relative to the hub into an absolute URL."""
        return self._base_url().join(resource)

    async def _get_passphrase(self) -> str | None:
        if self.session.has_passphrase:
            return self.session.passphrase
        if not self._key_is_protected:
            return None
        if self.options.passphrase_provider is None:
            raise MissingCredentialError(
                "Client certificate key is protected, but no passphrase was provided."
            )
        self.logger.info("Requesting passphrase for client certificate key...")
        passphrase = await self.options.passphrase_provider()
        self.session.remember_passphrase(passphrase)
        return passphrase

    def _create_ssl_context(self, passphrase: str | None) -> ssl.SSLContext:
        ca_data = self.options.ca_certificate
        if isinstance(ca_data, bytes) and ca_data.lstrip().startswith(b"-----BEGIN"):
            ca_data = ca_data.decode("ascii")
        if ca_data:
            # A configured CA replaces the default trust store.
            context = ssl.create_default_context(cadata=ca_data)
        else:
            context = ssl.create_default_context()

        if self.options.client_certificate and self.options.client_key:
            # load_cert_chain only accepts file paths.
            with tempfile.TemporaryDirectory(prefix="sarifhub-") as tmp_dir:
                cert_path = Path(tmp_dir) / "client.cert"
                key_path = Path(tmp_dir) / "client.key"
                cert_path.write_text(self.options.client_certificate, encoding="utf-8")
                key_path.write_text(self.options.client_key, encoding="utf-8")
                key_path.chmod(0o600)
                try:
                    context.load_cert_chain(cert_path, key_path, password=passphrase)
                except ssl.SSLError as e:
                    raise InvalidConfigError(
                        "Could not load client certificate key; the passphrase may be wrong."
                    ) from e
        return context

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                passphrase = await self._get_passphrase()
                self._client = httpx.AsyncClient(
                    verify=self._create_ssl_context(passphrase),
                    timeout=httpx.Timeout(self.options.timeout),
                    follow_redirects=False,
                    # Session cookies live in self.session.cookies only.
                    cookies=StdlibCookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
                )
            return self._client

    async def _send(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        cancellation: CancellationToken | None,
    ) -> httpx.Response:
        try:
            return await run_cancellable(
                client.send(request, stream=True), cancellation, discard=_aclose_response
            )
        except httpx.TransportError as e:
            if cancellation is not None and cancellation.is_cancellation_requested:
                raise cancellation.create_cancellation_error() from e
            error = translate_transport_error(e)
            self.logger.info(
                f"Request to {request.url} failed: {error}",
                extra={"event": "hub_transport_error", "url": str(request.url), "error_code": error.code},
            )
            raise error from e

    async def resolve_scheme(self, cancellation: CancellationToken | None = None) -> HubScheme:
        """Determine whether the hub speaks HTTPS or HTTP; probes at most once."""
        if self.session.scheme is not None:
            return self.session.scheme
        async with self._scheme_lock:
            if self.session.scheme is None:
                self.session.scheme = await self._probe_scheme(cancellation)
                self.logger.info(
                    f"Hub at {self.address} uses {self.session.scheme}",
                    extra={"event": "hub_scheme", "hub": str(self.address), "scheme": self.session.scheme},
                )
        return self.session.scheme

    async def _probe_scheme(self, cancellation: CancellationToken | None) -> HubScheme:
        self.logger.info("Testing if hub uses HTTPS...")
        client = await self._get_client()
        request = client.build_request("HEAD", self._base_url(HTTPS_SCHEME))
        try:
            response = await self._send(client, request, cancellation)
        except TransportError as e:
            # EPROTO: speaking TLS to a plain HTTP port.
            # ECONNREFUSED: default HTTPS port is closed.
            # Anything else (such as an untrusted certificate) must not
            # silently downgrade the connection.
            if e.code in (EPROTO, ECONNREFUSED):
                return HTTP_SCHEME
            raise
        try:
            if response.status_code == HTTP_MOVED_PERMANENTLY:
                # Hub is asking us to redirect, so try HTTP.
                return HTTP_SCHEME
            return HTTPS_SCHEME
        finally:
            await response.aclose()

    async def request(
        self,
        resource: str | httpx.URL,
        options: RequestOptions | None = None,
        body: str | bytes | None = None,
    ) -> HubResponse:
        """Make a request to the hub.

        Returns the response with its body still unread; the caller must
        consume or close it.

        Raises:
            OriginMismatchError: if `resource` is an absolute URL on another origin
            TransportError: on connection-level failures
            OperationCancelledError: if the request's cancellation token fires
        """
        return await self._request(resource, options or RequestOptions(), body, MAX_REDIRECTS)

    async def _request(
        self,
        resource: str | httpx.URL,
        options: RequestOptions,
        body: str | bytes | None,
        redirects_left: int,
    ) -> HubResponse:
        cancellation = options.cancellation
        await self.resolve_scheme(cancellation)
        target_url = self.resource_url(resource)
        if url_origin(target_url) != self.origin:
            raise OriginMismatchError(
                f"Requested URL origin '{url_origin(target_url)}' does not match "
                f"the HTTP connection to '{self.origin}'"
            )

        headers: dict[str, str] = {}
        if self.session.bearer_token:
            headers["Authorization"] = f"Bearer {self.session.bearer_token}"
        headers.update(options.headers)
        cookie_header = self.session.cookies.get_cookie_header(target_url)
        if cookie_header:
            headers["Cookie"] = cookie_header
        content: bytes | None = None
        if body is not None:
            content = body.encode("utf-8") if isinstance(body, str) else bytes(body)
            # The hub rejects Transfer-Encoding: chunked with HTTP 501.
            headers["Content-Length"] = str(len(content))

        client = await self._get_client()
        request = client.build_request(
            options.method,
            target_url,
            headers=headers,
            content=content,
            timeout=options.timeout if options.timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        self.logger.debug(
            f"{options.method} {target_url}",
            extra={"event": "hub_request", "method": options.method, "url": str(target_url)},
        )
        response = await self._send(client, request, cancellation)
        self.session.cookies.store_response_cookies(response.headers.get_list("set-cookie"))
        self.logger.debug(
            f"HTTP Status: {response.status_code} {response.reason_phrase}",
            extra={"event": "hub_response", "url": str(target_url), "status": response.status_code},
        )

        if response.status_code == HTTP_MOVED_PERMANENTLY:
            location = response.headers.get("location")
            if not location:
                await response.aclose()
                raise RequestError(
                    f"Missing Redirect Location from server at {target_url}", HTTP_MOVED_PERMANENTLY
                )
            redirect_url = self.resource_url(location)
            if url_origin(redirect_url) != self.origin:
                # The 301 response is returned to the caller unresolved.
                self.logger.info(
                    f"Cannot redirect to '{redirect_url}' since it is not from origin '{self.origin}'."
                )
            elif redirects_left <= 0:
                await response.aclose()
                raise RequestError(f"Too many redirects from {target_url}", HTTP_MOVED_PERMANENTLY)
            else:
                await response.aclose()
                self.logger.info(f"HTTP Redirect to: {location}")
                return await self._request(redirect_url, options, body, redirects_left - 1)

        return HubResponse(target_url, response, cancellation, self.logger)

    async def aclose(self) -> None:
        """Drop session credentials and close the underlying HTTP client."""
        self.session.clear_credentials()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TransportConnection":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.aclose()

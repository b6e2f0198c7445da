"""Transport - Sends assembled requests and hands back responses.

Wraps one httpx.Client built from a ClientConfig. The client is thread-safe,
so a single Transport serves concurrent calls of a protocol client.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Callable, TypeVar

import httpx

from protocol_client.errors import ConfigurationError, TransportError
from protocol_client.models import ClientConfig, OutgoingRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transport:
    """Executes OutgoingRequests over HTTP.

    Usage:
        with Transport(ClientConfig(base_url="https://api.example.com")) as transport:
            response = transport.execute(request)
            try:
                ...
            finally:
                response.close()

    Or, letting the transport consume and close the response:
        widget = transport.execute(request, decoder)
    """

    def __init__(self, config: ClientConfig | None = None, client: httpx.Client | None = None) -> None:
        """Initialize the transport.

        Args:
            config: Connection settings. Defaults to ClientConfig().
            client: Pre-built httpx.Client to use instead of one built from
                config (e.g. one with an httpx.MockTransport). A supplied
                client is not closed by close().
        """
        self._config = config or ClientConfig()
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(**self._build_client_kwargs(self._config))

    @property
    def config(self) -> ClientConfig:
        return self._config

    def __enter__(self) -> "Transport":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _build_client_kwargs(config: ClientConfig) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration.

        The base URL is not passed to httpx: it is applied by the request
        assembler so that dry-built requests carry the full URL too.
        """
        kwargs: dict[str, Any] = {
            "headers": config.headers,
            "timeout": config.timeout,
            "follow_redirects": config.follow_redirects,
        }

        # Client certificate (mTLS)
        if config.cert and config.key:
            if config.key_password:
                kwargs["cert"] = (config.cert, config.key, config.key_password)
            else:
                kwargs["cert"] = (config.cert, config.key)

        # Ciphers require a custom SSL context
        if config.ciphers:
            ssl_context = ssl.create_default_context()
            try:
                ssl_context.set_ciphers(config.ciphers)
            except ssl.SSLError as e:
                raise ConfigurationError(f"Invalid cipher string '{config.ciphers}': {e}") from e

            if config.ca_bundle:
                ssl_context.load_verify_locations(config.ca_bundle)
            elif not config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            kwargs["verify"] = ssl_context
        elif config.ca_bundle:
            kwargs["verify"] = config.ca_bundle
        elif not config.verify_ssl:
            kwargs["verify"] = False

        return kwargs

    def execute(
        self,
        request: OutgoingRequest,
        decoder: Callable[[httpx.Response], T] | None = None,
    ) -> httpx.Response | T:
        """Send a request.

        Args:
            request: The assembled request.
            decoder: If given, the body is read, passed to decoder and the
                response closed; the decoder's result is returned. Otherwise
                the streamed response is returned unread and the caller must
                close it.

        Raises:
            TransportError: If the request could not be exchanged.
        """
        logger.debug("Sending %s %s", request.method.value, request.url)
        try:
            # build_request merges the configured headers and timeout.
            http_request = self._client.build_request(
                request.method.value,
                request.url,
                headers=list(request.headers),
                content=request.content,
            )
            response = self._client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            raise TransportError(f"{request.method.value} {request.url} timed out: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"{request.method.value} {request.url} connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{request.method.value} {request.url} request error: {e}") from e
        except UnicodeEncodeError as e:
            # Non-ASCII in a header name or value.
            raise TransportError(
                f"{request.method.value} {request.url} encoding error: "
                f"character {e.object[e.start:e.end]!r} cannot be sent in a header"
            ) from e
        logger.debug("Received %d for %s %s", response.status_code, request.method.value, request.url)

        if decoder is None:
            return response
        try:
            try:
                response.read()
            except httpx.HTTPError as e:
                raise TransportError(f"{request.method.value} {request.url} failed reading body: {e}") from e
            return decoder(response)
        finally:
            response.close()

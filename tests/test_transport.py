"""Tests for protocol_client.transport.

Tests cover:
- httpx.Client construction from ClientConfig (headers, timeout, TLS)
- execute() without a decoder: streamed response handed back
- execute() with a decoder: body read, decoder applied, response closed
- Translation of httpx failures into TransportError
"""

import ssl
from unittest.mock import MagicMock, patch

import httpx
import pytest

from protocol_client.errors import ConfigurationError, TransportError
from protocol_client.models import ClientConfig, HttpMethod, OutgoingRequest
from protocol_client.transport import Transport
from tests.conftest import RecordingHandler, make_response, make_transport


def get_request(url: str = "http://api.test/ping") -> OutgoingRequest:
    return OutgoingRequest(method=HttpMethod.GET, url=url, headers=(("Accept", "text/plain"),))


class TestBuildClientKwargs:
    """Tests for Transport._build_client_kwargs."""

    def test_basic_kwargs(self) -> None:
        """Headers, timeout and redirects come straight from the config."""
        config = ClientConfig(
            base_url="http://localhost:8000",
            headers={"Authorization": "Bearer token"},
            timeout=12.5,
        )
        kwargs = Transport._build_client_kwargs(config)

        assert kwargs["headers"] == {"Authorization": "Bearer token"}
        assert kwargs["timeout"] == 12.5
        assert kwargs["follow_redirects"] is False
        assert "base_url" not in kwargs
        assert "cert" not in kwargs
        assert "verify" not in kwargs

    def test_with_cert_and_key(self) -> None:
        config = ClientConfig(cert="/path/to/client.crt", key="/path/to/client.key")
        kwargs = Transport._build_client_kwargs(config)
        assert kwargs["cert"] == ("/path/to/client.crt", "/path/to/client.key")

    def test_with_key_password(self) -> None:
        config = ClientConfig(
            cert="/path/to/client.crt",
            key="/path/to/client.key",
            key_password="secret123",
        )
        kwargs = Transport._build_client_kwargs(config)
        assert kwargs["cert"] == ("/path/to/client.crt", "/path/to/client.key", "secret123")

    def test_with_ca_bundle(self) -> None:
        kwargs = Transport._build_client_kwargs(ClientConfig(ca_bundle="/path/to/ca-bundle.crt"))
        assert kwargs["verify"] == "/path/to/ca-bundle.crt"

    def test_with_verify_ssl_false(self) -> None:
        kwargs = Transport._build_client_kwargs(ClientConfig(verify_ssl=False))
        assert kwargs["verify"] is False

    def test_ca_bundle_takes_precedence_over_verify_ssl(self) -> None:
        config = ClientConfig(ca_bundle="/path/to/ca-bundle.crt", verify_ssl=False)
        assert Transport._build_client_kwargs(config)["verify"] == "/path/to/ca-bundle.crt"

    def test_ciphers_build_ssl_context(self) -> None:
        config = ClientConfig(ciphers="ECDHE+AESGCM", verify_ssl=False)
        kwargs = Transport._build_client_kwargs(config)
        context = kwargs["verify"]
        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_invalid_cipher_string(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid cipher string"):
            Transport._build_client_kwargs(ClientConfig(ciphers="NOT-A-CIPHER"))

    def test_client_receives_kwargs(self) -> None:
        """httpx.Client is constructed with the built kwargs."""
        config = ClientConfig(headers={"X-Custom": "value"}, timeout=45.0, follow_redirects=True)
        with patch("protocol_client.transport.httpx.Client") as mock_client_cls:
            transport = Transport(config)
            transport.close()

        call = mock_client_cls.call_args
        assert call.kwargs["headers"] == {"X-Custom": "value"}
        assert call.kwargs["timeout"] == 45.0
        assert call.kwargs["follow_redirects"] is True
        mock_client_cls.return_value.close.assert_called_once()


class TestExecute:
    def test_without_decoder_returns_response(self) -> None:
        handler = RecordingHandler(make_response(200, b"pong", "text/plain"))
        with make_transport(handler) as transport:
            response = transport.execute(get_request())
            try:
                assert isinstance(response, httpx.Response)
                assert response.read() == b"pong"
            finally:
                response.close()
        assert handler.last.headers["Accept"] == "text/plain"

    def test_with_decoder_reads_and_closes(self) -> None:
        handler = RecordingHandler(make_response(200, b"pong", "text/plain"))
        seen: list[httpx.Response] = []

        def decoder(response: httpx.Response) -> str:
            seen.append(response)
            return response.text.upper()

        with make_transport(handler) as transport:
            assert transport.execute(get_request(), decoder) == "PONG"
        assert seen[0].is_closed

    def test_response_closed_when_decoder_fails(self) -> None:
        handler = RecordingHandler(make_response(500))
        seen: list[httpx.Response] = []

        def decoder(response: httpx.Response) -> None:
            seen.append(response)
            raise ValueError("bad body")

        with make_transport(handler) as transport:
            with pytest.raises(ValueError, match="bad body"):
                transport.execute(get_request(), decoder)
        assert seen[0].is_closed

    def test_body_is_sent(self) -> None:
        handler = RecordingHandler()
        request = OutgoingRequest(
            method=HttpMethod.PUT,
            url="http://api.test/doc",
            headers=(("Content-Type", "text/plain"),),
            content=b"hello",
        )
        with make_transport(handler) as transport:
            transport.execute(request, lambda response: None)
        assert handler.last.method == "PUT"
        assert handler.last.content == b"hello"

    def test_configured_headers_merge_with_request_headers(self) -> None:
        handler = RecordingHandler()
        config = ClientConfig(headers={"X-Api-Key": "k", "Accept": "*/*"})
        with make_transport(handler, config) as transport:
            transport.execute(get_request(), lambda response: None)
        assert handler.last.headers["X-Api-Key"] == "k"
        assert handler.last.headers["Accept"] == "text/plain"


class TestErrorTranslation:
    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (httpx.ConnectTimeout("slow"), "timed out"),
            (httpx.ConnectError("refused"), "connection error"),
            (httpx.RemoteProtocolError("garbage"), "request error"),
        ],
    )
    def test_httpx_errors(self, error: httpx.RequestError, message: str) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise error

        with make_transport(fail) as transport:
            with pytest.raises(TransportError, match=message):
                transport.execute(get_request())

    def test_non_ascii_header_is_encoding_error(self) -> None:
        request = OutgoingRequest(method=HttpMethod.GET, url="http://api.test/", headers=(("X-Name", "café☃"),))
        with make_transport(RecordingHandler()) as transport:
            with pytest.raises(TransportError, match="encoding error"):
                transport.execute(request)

    def test_supplied_client_not_closed(self) -> None:
        client = MagicMock(spec=httpx.Client)
        Transport(client=client).close()
        client.close.assert_not_called()

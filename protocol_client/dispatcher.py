"""Dispatcher - Routes protocol method calls through assembly, transport and decoding.

Protocol classes subclass ProtocolClient. Methods decorated with a verb (or
any other protocol annotation) become operations; their bodies are never run.
Plain methods are default implementations and behave like ordinary methods.

For each operation call, the declared return type picks the outcome:

    OutgoingRequest / httpx.Request  -> the built request, not sent (dry build)
    httpx.Response                   -> the streamed response; caller closes it
    anything else                    -> the response body decoded to that type
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from protocol_client.binder import BindingRegistry
from protocol_client.codecs import CodecRegistry, default_codecs
from protocol_client.decoder import ResponseDecoder
from protocol_client.descriptors import ProtocolDescriptor, describe_protocol
from protocol_client.errors import ConfigurationError
from protocol_client.models import ClientConfig, OutgoingRequest
from protocol_client.request_builder import RequestAssembler
from protocol_client.transport import Transport

logger = logging.getLogger(__name__)

# Delegated to object so that protocol instances keep plain identity semantics.
IDENTITY_METHODS = frozenset({"__eq__", "__ne__", "__hash__", "__repr__", "__str__"})


class Dispatcher:
    """Invokes the operations of one protocol.

    Holds only read-only state (descriptors, one decoder per operation), so a
    single dispatcher serves concurrent calls.
    """

    def __init__(
        self,
        protocol: ProtocolDescriptor,
        assembler: RequestAssembler,
        transport: Transport,
        codecs: CodecRegistry | None = None,
        charset: str = "utf-8",
    ) -> None:
        self._protocol = protocol
        self._assembler = assembler
        self._transport = transport
        codecs = codecs or default_codecs()
        self._decoders = {
            name: ResponseDecoder(operation, codecs, charset)
            for name, operation in protocol.operations.items()
        }

    @property
    def protocol(self) -> ProtocolDescriptor:
        return self._protocol

    def invoke(
        self,
        instance: Any,
        name: str,
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run one call of the named method on instance.

        Raises:
            ConfigurationError: If the protocol definition is invalid.
            TransportError: If the request could not be sent.
            ClientProtocolError: If the response could not be decoded.
            ResponseCastError: If the result does not fit the return type.
        """
        kwargs = kwargs or {}
        operation = self._protocol.operations.get(name)
        if operation is None:
            return self._invoke_local(instance, name, args, kwargs)

        request = self._assembler.build(self._protocol, operation, args, kwargs)
        target = operation.return_type

        if target.can_hold(OutgoingRequest):
            logger.debug("%s: returning built request", name)
            return request
        if target.can_hold(httpx.Request):
            logger.debug("%s: returning built httpx request", name)
            return request.to_httpx()
        if target.can_hold(httpx.Response):
            logger.debug("%s: returning raw response", name)
            return self._transport.execute(request)
        return self._transport.execute(request, self._decoders[name])

    def _invoke_local(self, instance: Any, name: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> Any:
        if name in IDENTITY_METHODS:
            return getattr(object, name)(instance, *args, **kwargs)
        method = getattr(instance, name, None)
        if not callable(method):
            raise ConfigurationError(f"{self._protocol.name}: '{name}' is not an operation")
        logger.debug("%s: running default implementation", name)
        return method(*args, **kwargs)


class ProtocolClient:
    """Base class of protocol definitions.

    Usage:
        @protocol(path="/widgets", produces="application/json")
        class WidgetApi(ProtocolClient):
            @get("/{id}")
            def get_widget(self, id: Annotated[int, PathParam()]) -> Widget: ...

        with WidgetApi(ClientConfig(base_url="https://api.example.com")) as api:
            widget = api.get_widget(42)
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        codecs: CodecRegistry | None = None,
        bindings: BindingRegistry | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Base URL, default headers, charset and connection settings.
            transport: Transport to send requests with. Built from config when
                omitted; a supplied transport is not closed by close().
            codecs: Body codecs; defaults to JSON and XML.
            bindings: Annotation binding rules; defaults to the built-in ones.
        """
        self._config = config or (transport.config if transport is not None else ClientConfig())
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else Transport(self._config)
        codecs = codecs or default_codecs()
        assembler = RequestAssembler(
            base_url=self._config.base_url,
            charset=self._config.charset,
            codecs=codecs,
            bindings=bindings,
        )
        self._dispatcher = Dispatcher(
            describe_protocol(type(self)), assembler, self._transport, codecs, self._config.charset
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

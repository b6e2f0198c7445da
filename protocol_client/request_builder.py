"""Request assembler: turns one operation call into an OutgoingRequest.

Assembly runs in a fixed order on a fresh RequestDraft per call:

1. type-level annotations (base URL, path, default headers)
2. method-level annotations (exactly one verb, path extension, defaults)
3. parameters, in declaration order: each annotation in declared order,
   or the type-based rule when a parameter has none
4. default headers fill gaps left by parameter headers
5. the URI template is resolved against the path parameter values
6. the body is finalized: entity as-is, form URL-encoded, anything else
   serialized by the codec for the request media type (JSON by default)

Drafts are never shared, so one assembler serves concurrent calls.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from protocol_client.binder import DEFAULT_BINDINGS, BindingRegistry, Site
from protocol_client.codecs import CodecRegistry, default_codecs
from protocol_client.descriptors import OperationDescriptor, ProtocolDescriptor
from protocol_client.errors import ConfigurationError, UnsupportedParameterError
from protocol_client.models import Entity, HttpMethod, OutgoingRequest
from protocol_client.uri_template import UriTemplateBuilder, stringify

logger = logging.getLogger(__name__)

FORM_URLENCODED = "application/x-www-form-urlencoded"
DEFAULT_MEDIA_TYPE = "application/json"


def _raw_items(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Header pairs with their names in the case they were set with."""
    return [
        (name.decode(headers.encoding), value.decode(headers.encoding))
        for name, value in headers.raw
    ]


class Form(list[tuple[str, str]]):
    """Ordered form fields; repeated names are kept."""

    def add(self, name: str, value: str) -> None:
        self.append((name, value))


class RequestDraft:
    """Mutable state of one request while it is being assembled."""

    def __init__(self, operation: str, base_url: str | None = None, charset: str = "utf-8") -> None:
        self.operation = operation
        self.charset = charset
        self.uri = UriTemplateBuilder(base_url)
        self.method: HttpMethod | None = None
        self.headers = httpx.Headers()
        self.default_headers = httpx.Headers()
        self.body: Any = None
        self.body_content_type: str | None = None
        self.template_values: dict[str, str] = {}
        self.omitted_templates: set[str] = set()
        self._explicit_headers: set[str] = set()
        self._entity_locked = False

    def set_verb(self, method: HttpMethod) -> None:
        if self.method is not None:
            raise ConfigurationError(
                f"{self.operation}: conflicting HTTP verbs {self.method.value} and {method.value}"
            )
        self.method = method

    def set_header(self, name: str, value: str) -> None:
        """Set a header from a parameter; these always win over defaults."""
        self.headers[name] = value
        self._explicit_headers.add(name.lower())

    def set_default_header(self, name: str, value: str) -> None:
        """Set a default header; later (method-level) defaults replace earlier ones."""
        self.default_headers[name] = value

    def is_explicit_header(self, name: str) -> bool:
        return name.lower() in self._explicit_headers

    def set_template_value(self, name: str, value: Any) -> None:
        if value is None:
            self.template_values.pop(name, None)
            self.omitted_templates.add(name)
        else:
            self.template_values[name] = stringify(value)
            self.omitted_templates.discard(name)

    def set_entity(self, entity: Entity) -> None:
        """Set a ready-made body; it takes precedence over form and object bodies."""
        self.body = entity
        self.body_content_type = entity.content_type
        self._entity_locked = True

    def set_body(self, body: Any, content_type: str | None = None) -> None:
        """Set an object body, serialized when the request is finalized."""
        if body is None:
            return
        if self._entity_locked:
            logger.debug("%s: entity body already set, ignoring object body", self.operation)
            return
        self.body = body
        self.body_content_type = content_type

    def add_form_field(self, name: str, value: str) -> None:
        if self._entity_locked:
            logger.debug("%s: entity body already set, ignoring form field %s", self.operation, name)
            return
        if not isinstance(self.body, Form):
            self.body = Form()
            self.body_content_type = FORM_URLENCODED
        self.body.add(name, value)

    def replace_request(self, request: OutgoingRequest) -> None:
        """Take method, URI, headers and body from a pre-built request."""
        self.method = request.method
        self.uri.with_base(request.url)
        self.headers = httpx.Headers(list(request.headers))
        self._explicit_headers = {name.lower() for name, _ in request.headers}
        if request.content is not None:
            self.set_entity(Entity(content=request.content, content_type=request.content_type))


class RequestAssembler:
    """Builds OutgoingRequests from protocol descriptors and call arguments."""

    def __init__(
        self,
        base_url: str | None = None,
        charset: str = "utf-8",
        codecs: CodecRegistry | None = None,
        bindings: BindingRegistry | None = None,
    ) -> None:
        self._base_url = base_url
        self._charset = charset
        self._codecs = codecs or default_codecs()
        self._bindings = bindings or DEFAULT_BINDINGS

    def build(
        self,
        protocol: ProtocolDescriptor,
        operation: OperationDescriptor,
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> OutgoingRequest:
        """Build the request for one call.

        Raises:
            ConfigurationError: If the protocol definition cannot produce a
                request (verbs, unsupported annotations, URI template).
            TypeError: If the arguments do not match the operation signature.
        """
        draft = RequestDraft(f"{protocol.name}.{operation.name}", self._base_url, self._charset)

        for annotation in protocol.annotations:
            self._bindings.apply(annotation, Site.TYPE, draft)

        for annotation in operation.annotations:
            self._bindings.apply(annotation, Site.METHOD, draft)
        if draft.method is None:
            raise ConfigurationError(f"{draft.operation}: no HTTP verb declared")

        for parameter, value in operation.bind(args, kwargs or {}):
            if parameter.annotations:
                for annotation in parameter.annotations:
                    self._bindings.bind(annotation, parameter, value, draft)
            else:
                self._bindings.bind(None, parameter, value, draft)

        for name, value in _raw_items(draft.default_headers):
            if name not in draft.headers:
                draft.headers[name] = value

        url = draft.uri.resolve(draft.template_values, omit=draft.omitted_templates)
        content = self._finalize_body(draft)

        request = OutgoingRequest(
            method=draft.method,
            url=str(url),
            headers=tuple(_raw_items(draft.headers)),
            content=content,
        )
        logger.debug("Built %s %s for %s", request.method.value, request.url, draft.operation)
        return request

    def _finalize_body(self, draft: RequestDraft) -> bytes | None:
        body = draft.body
        if body is None:
            return None
        assert draft.method is not None
        if not draft.method.encloses_entity:
            raise ConfigurationError(
                f"{draft.operation}: {draft.method.value} requests cannot carry a body"
            )

        if isinstance(body, Entity):
            content, content_type = body.content, body.content_type
        elif isinstance(body, Form):
            content = urlencode(body, encoding=draft.charset).encode("ascii")
            content_type = FORM_URLENCODED
        else:
            content_type = (
                draft.body_content_type
                or draft.headers.get("Content-Type")
                or DEFAULT_MEDIA_TYPE
            )
            codec = self._codecs.for_media_type(content_type)
            if codec is None:
                raise ConfigurationError(
                    f"{draft.operation}: no codec for request media type '{content_type}'"
                )
            try:
                content = codec.encode(body, draft.charset)
            except (TypeError, ValueError) as e:
                raise UnsupportedParameterError(
                    draft.operation, "body", f"cannot be encoded as {content_type}: {e}"
                ) from e

        if content_type and not draft.is_explicit_header("Content-Type"):
            draft.headers["Content-Type"] = content_type
        return content

"""Parameter binder: what each annotation (or un-annotated argument) does to a draft.

Handlers are registered explicitly, keyed by (annotation kind, site), where
the site is the protocol class, the operation method or one of its
parameters. Un-annotated parameters are bound by type instead, using the
declared type of the parameter (or the runtime type of the argument when
nothing usable was declared) and the first registered type in its MRO.

The registry is filled once at import time and only read afterwards.

Annotation kinds without a handler for a site are ignored at type and method
level; at parameter level they are an error, since exactly one rule must
bind every parameter.
"""

from __future__ import annotations

import logging
import pathlib
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import httpx

from protocol_client.annotations import (
    BaseUrl,
    BeanParam,
    Body,
    Consumes,
    CookieParam,
    FormParam,
    Header,
    HeaderParam,
    HostParam,
    MatrixParam,
    NamedParam,
    Path,
    PathParam,
    Produces,
    ProtocolAnnotation,
    QueryParam,
    Verb,
)
from protocol_client.descriptors import ParameterDescriptor
from protocol_client.errors import UnsupportedAnnotationError, UnsupportedParameterError
from protocol_client.models import Entity, OutgoingRequest
from protocol_client.uri_template import stringify

if TYPE_CHECKING:
    from protocol_client.request_builder import RequestDraft

logger = logging.getLogger(__name__)


class Site(str, Enum):
    TYPE = "type"
    METHOD = "method"
    PARAMETER = "parameter"


SiteHandler = Callable[[Any, "RequestDraft"], None]
ParameterHandler = Callable[[Any, ParameterDescriptor, Any, "RequestDraft"], None]
TypeHandler = Callable[[ParameterDescriptor, Any, "RequestDraft"], None]

H = TypeVar("H", bound=Callable[..., None])


class BindingRegistry:
    """Maps (annotation kind, site) and parameter types to binding handlers."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[type, Site], Callable[..., None]] = {}
        self._type_handlers: dict[type, TypeHandler] = {}

    def register(self, kind: type[ProtocolAnnotation], *sites: Site) -> Callable[[H], H]:
        def decorator(handler: H) -> H:
            for site in sites:
                self._handlers[(kind, site)] = handler
            return handler

        return decorator

    def register_type(self, cls: type) -> Callable[[H], H]:
        def decorator(handler: H) -> H:
            self._type_handlers[cls] = handler
            return handler

        return decorator

    def copy(self) -> BindingRegistry:
        clone = BindingRegistry()
        clone._handlers = dict(self._handlers)
        clone._type_handlers = dict(self._type_handlers)
        return clone

    def handler_for(self, annotation: ProtocolAnnotation, site: Site) -> Callable[..., None] | None:
        for kind in type(annotation).__mro__:
            handler = self._handlers.get((kind, site))
            if handler is not None:
                return handler
        return None

    def apply(self, annotation: ProtocolAnnotation, site: Site, draft: RequestDraft) -> bool:
        """Apply a type- or method-level annotation. Returns False if ignored."""
        handler = self.handler_for(annotation, site)
        if handler is None:
            logger.debug("Ignoring %r on %s %s", annotation, site.value, draft.operation)
            return False
        handler(annotation, draft)
        return True

    def bind(
        self,
        annotation: ProtocolAnnotation | None,
        parameter: ParameterDescriptor,
        value: Any,
        draft: RequestDraft,
    ) -> None:
        """Apply one parameter binding to the draft.

        Raises:
            UnsupportedParameterError: If no rule matches the annotation, or
                the argument does not fit the type-based rule.
        """
        if annotation is not None:
            handler = self.handler_for(annotation, Site.PARAMETER)
            if handler is None:
                raise UnsupportedParameterError(
                    draft.operation, parameter.name, f"has unsupported annotation {annotation!r}"
                )
            handler(annotation, parameter, value, draft)
            return

        cls = parameter.declared_type if parameter.declared_type is not None else type(value)
        if value is None and parameter.declared_type is None:
            return
        for klass in cls.__mro__:
            type_handler = self._type_handlers.get(klass)
            if type_handler is None:
                continue
            if value is not None and klass is not object and not isinstance(value, klass):
                raise UnsupportedParameterError(
                    draft.operation, parameter.name,
                    f"expects {klass.__name__}, got {type(value).__name__}",
                )
            type_handler(parameter, value, draft)
            return
        raise UnsupportedParameterError(
            draft.operation, parameter.name, f"of type {cls.__name__} has no binding rule"
        )


DEFAULT_BINDINGS = BindingRegistry()
register = DEFAULT_BINDINGS.register
register_type = DEFAULT_BINDINGS.register_type


# =============================================================================
# Type and method level
# =============================================================================


@register(BaseUrl, Site.TYPE, Site.METHOD)
def _base_url(annotation: BaseUrl, draft: RequestDraft) -> None:
    draft.uri.with_base(annotation.value)


@register(Path, Site.TYPE, Site.METHOD)
def _path(annotation: Path, draft: RequestDraft) -> None:
    draft.uri.with_path_segment(annotation.value)


@register(Header, Site.TYPE, Site.METHOD)
def _default_header(annotation: Header, draft: RequestDraft) -> None:
    draft.set_default_header(annotation.name, annotation.value)


@register(Consumes, Site.TYPE, Site.METHOD)
def _consumes(annotation: Consumes, draft: RequestDraft) -> None:
    draft.set_default_header("Content-Type", annotation.media_type)


@register(Produces, Site.TYPE, Site.METHOD)
def _produces(annotation: Produces, draft: RequestDraft) -> None:
    draft.set_default_header("Accept", annotation.media_type)


@register(Verb, Site.METHOD)
def _verb(annotation: Verb, draft: RequestDraft) -> None:
    draft.set_verb(annotation.method)


@register(NamedParam, Site.TYPE, Site.METHOD)
@register(BeanParam, Site.TYPE, Site.METHOD)
@register(HostParam, Site.TYPE, Site.METHOD)
@register(Body, Site.TYPE, Site.METHOD)
def _reject_outside_parameter(annotation: ProtocolAnnotation, draft: RequestDraft) -> None:
    raise UnsupportedAnnotationError(annotation, "protocol class or method")


# =============================================================================
# Parameter level
# =============================================================================


@register(PathParam, Site.PARAMETER)
def _path_param(annotation: PathParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    draft.set_template_value(annotation.resolve_name(parameter.name), value)


@register(QueryParam, Site.PARAMETER)
def _query_param(annotation: QueryParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    if value is not None:
        draft.uri.with_query_param(annotation.resolve_name(parameter.name), value)


@register(MatrixParam, Site.PARAMETER)
def _matrix_param(annotation: MatrixParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    draft.uri.with_matrix_param(annotation.resolve_name(parameter.name), value)


@register(HeaderParam, Site.PARAMETER)
def _header_param(annotation: HeaderParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    if value is None:
        return
    text = stringify(value)
    if not text.isascii():
        raise UnsupportedParameterError(draft.operation, parameter.name, "has a non-ASCII header value")
    draft.set_header(annotation.resolve_name(parameter.name), text)


@register(FormParam, Site.PARAMETER)
def _form_param(annotation: FormParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    if value is not None:
        draft.add_form_field(annotation.resolve_name(parameter.name), stringify(value))


@register(HostParam, Site.PARAMETER)
def _host_param(annotation: HostParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    if value is not None:
        draft.uri.with_host(stringify(value))


@register(BeanParam, Site.PARAMETER)
def _bean_param(annotation: BeanParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    if value is not None:
        raise UnsupportedAnnotationError(annotation, "parameter with a value")


@register(CookieParam, Site.PARAMETER)
def _cookie_param(annotation: CookieParam, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    raise UnsupportedAnnotationError(annotation, "parameter")


@register(Body, Site.PARAMETER)
def _body(annotation: Body, parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    content_type = annotation.content_type
    if value is None:
        return
    if isinstance(value, Entity):
        draft.set_entity(value.with_content_type(content_type))
    elif isinstance(value, (bytes, bytearray)):
        draft.set_entity(Entity(content=bytes(value), content_type=content_type or "application/octet-stream"))
    elif isinstance(value, str) and (content_type is None or content_type.startswith("text/")):
        draft.set_entity(Entity.from_text(value, content_type or "text/plain", draft.charset))
    elif isinstance(value, pathlib.PurePath):
        draft.set_entity(Entity.from_file(value, content_type))
    else:
        draft.set_body(value, content_type=content_type)


# =============================================================================
# Un-annotated parameters, by type
# =============================================================================


@register_type(OutgoingRequest)
def _prebuilt_request(parameter: ParameterDescriptor, value: OutgoingRequest | None, draft: RequestDraft) -> None:
    if value is not None:
        draft.replace_request(value)


@register_type(httpx.Request)
def _prebuilt_httpx_request(parameter: ParameterDescriptor, value: httpx.Request | None, draft: RequestDraft) -> None:
    if value is not None:
        draft.replace_request(OutgoingRequest.from_httpx(value))


@register_type(Entity)
def _entity(parameter: ParameterDescriptor, value: Entity | None, draft: RequestDraft) -> None:
    if value is not None:
        draft.set_entity(value)


@register_type(httpx.URL)
def _uri(parameter: ParameterDescriptor, value: httpx.URL | None, draft: RequestDraft) -> None:
    if value is not None:
        draft.uri.with_base(value)


@register_type(object)
def _object_body(parameter: ParameterDescriptor, value: Any, draft: RequestDraft) -> None:
    draft.set_body(value)

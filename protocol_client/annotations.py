"""Annotations and decorators that describe a protocol.

A protocol is a class whose methods are declared, not implemented:

    @protocol(path="/api", produces="application/json")
    class WidgetApi(ProtocolClient):
        @get("/widgets/{id}")
        def get_widget(self, id: Annotated[int, PathParam()]) -> Widget: ...

Annotation values are plain frozen dataclasses. Decorators record them on the
decorated class or function in declaration order (top to bottom); parameter
annotations ride along in typing.Annotated metadata. Nothing here interprets
them: the binder registry does that when a request is assembled.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from protocol_client.models import HttpMethod

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")

ANNOTATIONS_ATTR = "__protocol_annotations__"
OPERATION_ATTR = "__protocol_operation__"


class ProtocolAnnotation:
    """Marker base for every annotation understood by the request binder."""


# =============================================================================
# Type and method level
# =============================================================================


@dataclass(frozen=True)
class BaseUrl(ProtocolAnnotation):
    """Replace the URI base (scheme, host, port and path)."""

    value: str


@dataclass(frozen=True)
class Path(ProtocolAnnotation):
    """Append a path segment; type-level paths come before method-level ones."""

    value: str


@dataclass(frozen=True)
class Header(ProtocolAnnotation):
    """Default header; never overrides a header set by a parameter."""

    name: str
    value: str


@dataclass(frozen=True)
class Consumes(ProtocolAnnotation):
    """Media type of request bodies (default Content-Type)."""

    media_type: str


@dataclass(frozen=True)
class Produces(ProtocolAnnotation):
    """Media type expected in responses (default Accept)."""

    media_type: str


@dataclass(frozen=True)
class Verb(ProtocolAnnotation):
    """The HTTP method of an operation."""

    method: HttpMethod


# =============================================================================
# Parameter level
# =============================================================================


@dataclass(frozen=True)
class NamedParam(ProtocolAnnotation):
    """Parameter binding with an optional explicit name."""

    name: str | None = None

    def resolve_name(self, parameter_name: str) -> str:
        return self.name or parameter_name


@dataclass(frozen=True)
class PathParam(NamedParam):
    """Substitute the value for the {name} placeholder in the URI template."""


@dataclass(frozen=True)
class QueryParam(NamedParam):
    """Replace the named query parameter."""


@dataclass(frozen=True)
class MatrixParam(NamedParam):
    """Replace the named matrix parameter on the last path segment."""


@dataclass(frozen=True)
class HeaderParam(NamedParam):
    """Set the named header when the value is not None."""


@dataclass(frozen=True)
class FormParam(NamedParam):
    """Append a field to a URL-encoded form body."""


@dataclass(frozen=True)
class CookieParam(NamedParam):
    """Not supported; rejected wherever it appears."""


@dataclass(frozen=True)
class BeanParam(ProtocolAnnotation):
    """Reserved; rejected when a value is supplied."""


@dataclass(frozen=True)
class HostParam(ProtocolAnnotation):
    """Replace the URI host with the value."""


@dataclass(frozen=True)
class Body(ProtocolAnnotation):
    """Use the value as the request body, optionally with an explicit media type."""

    content_type: str | None = None


# =============================================================================
# Decorators
# =============================================================================


def annotations_of(target: Any) -> tuple[ProtocolAnnotation, ...]:
    """Return the annotations recorded directly on a class or function."""
    if isinstance(target, type):
        return tuple(target.__dict__.get(ANNOTATIONS_ATTR, ()))
    return tuple(getattr(target, ANNOTATIONS_ATTR, ()))


def is_operation(target: Any) -> bool:
    return bool(getattr(target, OPERATION_ATTR, False))


def _operation_stub(func: Callable[..., Any]) -> Callable[..., Any]:
    """Replace a declared method with a stub that hands the call to the dispatcher."""
    if is_operation(func):
        return func

    @functools.wraps(func)
    def stub(self: Any, *args: Any, **kwargs: Any) -> Any:
        return self._dispatcher.invoke(self, func.__name__, args, kwargs)

    setattr(stub, OPERATION_ATTR, True)
    # functools.wraps shares the wrapped function's list; give the stub its own.
    setattr(stub, ANNOTATIONS_ATTR, list(getattr(func, ANNOTATIONS_ATTR, [])))
    return stub


def annotate(*annotations: ProtocolAnnotation) -> Callable[[T], T]:
    """Record annotations on a class or method.

    Decorators run bottom-up, so each application is prepended to keep the
    recorded order equal to the order the decorators are written in.
    """

    def decorator(target: T) -> T:
        if isinstance(target, type):
            existing = list(target.__dict__.get(ANNOTATIONS_ATTR, ()))
            setattr(target, ANNOTATIONS_ATTR, [*annotations, *existing])
            return target
        stub = _operation_stub(target)  # type: ignore[arg-type]
        recorded = getattr(stub, ANNOTATIONS_ATTR)
        recorded[:0] = annotations
        return stub  # type: ignore[return-value]

    return decorator


def protocol(
    base_url: str | None = None,
    *,
    path: str | None = None,
    consumes: str | None = None,
    produces: str | None = None,
    headers: dict[str, str] | None = None,
) -> Callable[[type[T]], type[T]]:
    """Class-level shorthand for the common type annotations."""
    collected: list[ProtocolAnnotation] = []
    if base_url:
        collected.append(BaseUrl(base_url))
    if path:
        collected.append(Path(path))
    if consumes:
        collected.append(Consumes(consumes))
    if produces:
        collected.append(Produces(produces))
    for name, value in (headers or {}).items():
        collected.append(Header(name, value))
    return annotate(*collected)


def base_url(value: str) -> Callable[[T], T]:
    return annotate(BaseUrl(value))


def path(value: str) -> Callable[[T], T]:
    return annotate(Path(value))


def header(name: str, value: str) -> Callable[[T], T]:
    return annotate(Header(name, value))


def consumes(media_type: str) -> Callable[[T], T]:
    return annotate(Consumes(media_type))


def produces(media_type: str) -> Callable[[T], T]:
    return annotate(Produces(media_type))


def _make_verb_decorator(method: HttpMethod) -> Callable[..., Callable[[F], F]]:
    """Factory for HTTP verb decorators (@get, @post, etc.)."""

    def verb_decorator(value: str | None = None) -> Callable[[F], F]:
        if value is None:
            return annotate(Verb(method))
        return annotate(Verb(method), Path(value))

    verb_decorator.__name__ = method.value.lower()
    verb_decorator.__doc__ = f"Declare a {method.value} operation with an optional path."
    return verb_decorator


get = _make_verb_decorator(HttpMethod.GET)
post = _make_verb_decorator(HttpMethod.POST)
put = _make_verb_decorator(HttpMethod.PUT)
delete = _make_verb_decorator(HttpMethod.DELETE)
patch = _make_verb_decorator(HttpMethod.PATCH)
head = _make_verb_decorator(HttpMethod.HEAD)
options = _make_verb_decorator(HttpMethod.OPTIONS)

"""Error taxonomy for protocol clients.

Four families reach the caller of a protocol method:

- ConfigurationError: the protocol class itself is wrong (missing or
  duplicated verb, unsupported annotation, unresolvable URI template).
  Never retried; fix the protocol definition.
- TransportError: the request could not be exchanged with the server.
- ClientProtocolError: the server answered but the answer could not be turned
  into the declared return type.
- ResponseCastError: the decoded value (or an absent body) does not fit the
  declared return type.

All of them derive from ProtocolClientError so callers can catch everything
raised by this package in one place.
"""

from __future__ import annotations


class ProtocolClientError(Exception):
    """Base class for all protocol client errors."""


class ConfigurationError(ProtocolClientError):
    """Raised when a protocol definition cannot be turned into a request."""


class UnsupportedAnnotationError(ConfigurationError):
    """Raised when an annotation is explicitly rejected where it was used."""

    def __init__(self, annotation: object, site: str) -> None:
        super().__init__(f"{annotation!r} is not supported on a {site}")
        self.annotation = annotation
        self.site = site


class UnsupportedParameterError(ConfigurationError):
    """Raised when no binding rule matches a method parameter."""

    def __init__(self, operation: str, parameter: str, reason: str) -> None:
        super().__init__(f"{operation}: parameter '{parameter}' {reason}")
        self.operation = operation
        self.parameter = parameter


class UriTemplateError(ConfigurationError):
    """Raised when the accumulated URI template cannot produce a valid URI."""


class TransportError(ProtocolClientError):
    """Raised when a request fails (connection error, timeout, etc.)."""


class ClientProtocolError(ProtocolClientError):
    """Raised when a response body cannot be decoded into the declared type."""


class ResponseStatusError(ClientProtocolError):
    """Raised when the server answers with a non-success status."""

    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"HTTP {status_code} {reason}".rstrip())
        self.status_code = status_code
        self.reason = reason


class ResponseCastError(ProtocolClientError, TypeError):
    """Raised when a decoded value cannot be returned as the declared type."""

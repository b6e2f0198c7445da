"""URI template builder.

Accumulates a base URI, path segments, matrix parameters and query
parameters, then resolves ``{name}`` placeholders into a final httpx.URL.

Query and matrix parameters are replaced rather than appended: setting the
same name twice keeps only the last value(s). A builder is owned by a single
request draft and is never shared between calls.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qsl, quote, urlsplit

import httpx

from protocol_client.errors import UriTemplateError

# {name} or {name: regex}
_PLACEHOLDER = re.compile(r"\{\s*([A-Za-z0-9_.\-]+)\s*(?::[^{}]*)?\}")

# Characters allowed verbatim in the literal (non-placeholder) parts of a
# path template: RFC 3986 unreserved, sub-delims, ':', '@', '/' and '%'.
_LITERAL_PATH = re.compile(r"^[A-Za-z0-9\-._~!$&'()*+,;=:@/%]*$")


def stringify(value: Any) -> str:
    """Render an argument as it appears on the wire.

    Enum members are sent by value and bools in lowercase, wherever they
    are bound (path, query, matrix, header, form or host).
    """
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_values(value: Any) -> list[str] | None:
    """Normalize a parameter value into its list of string values.

    None means "remove the parameter"; lists, tuples and sets give one value
    per element.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, frozenset)):
        return [stringify(v) for v in value if v is not None]
    return [stringify(value)]


class _Segment:
    __slots__ = ("template", "matrix")

    def __init__(self, template: str) -> None:
        self.template = template
        self.matrix: dict[str, list[str]] = {}


class UriTemplateBuilder:
    """Mutable builder for one request URI."""

    def __init__(self, base: str | httpx.URL | None = None) -> None:
        self._scheme = ""
        self._host = ""
        self._port: int | None = None
        self._userinfo = ""
        self._segments: list[_Segment] = []
        self._query: dict[str, list[str]] = {}
        if base is not None:
            self.with_base(base)

    def with_base(self, uri: str | httpx.URL) -> UriTemplateBuilder:
        """Replace the base with the components present in uri.

        Absent components (e.g. the host of a relative path) leave the current
        ones untouched; a non-root path replaces all accumulated segments.
        """
        parts = urlsplit(str(uri))
        try:
            port = parts.port
        except ValueError as e:
            raise UriTemplateError(f"Invalid URI '{uri}': {e}") from e
        if parts.scheme:
            self._scheme = parts.scheme
        if parts.hostname:
            self._host = parts.hostname
            self._port = port
            self._userinfo = parts.netloc.rpartition("@")[0]
        if parts.path.strip("/"):
            self._segments = []
            self.with_path_segment(parts.path)
        if parts.query:
            self._query = {}
            for name, value in parse_qsl(parts.query, keep_blank_values=True):
                self._query.setdefault(name, []).append(value)
        return self

    def with_host(self, host: str) -> UriTemplateBuilder:
        self._host = host
        return self

    def with_path_segment(self, segment: str) -> UriTemplateBuilder:
        """Append path segments; leading and trailing slashes are separators."""
        self._check_template(segment)
        for part in segment.strip("/").split("/"):
            if part:
                self._segments.append(_Segment(part))
        return self

    def with_matrix_param(self, name: str, value: Any) -> UriTemplateBuilder:
        """Replace the named matrix parameter on the current last segment."""
        if not self._segments:
            self._segments.append(_Segment(""))
        matrix = self._segments[-1].matrix
        values = _as_values(value)
        if values is None:
            matrix.pop(name, None)
        else:
            matrix[name] = values
        return self

    def with_query_param(self, name: str, value: Any) -> UriTemplateBuilder:
        """Replace the named query parameter; None removes it."""
        values = _as_values(value)
        if values is None:
            self._query.pop(name, None)
        else:
            self._query[name] = values
        return self

    @property
    def template(self) -> str:
        """The unresolved path template, for diagnostics."""
        return "/" + "/".join(s.template for s in self._segments)

    def resolve(
        self,
        template_values: Mapping[str, Any],
        omit: Iterable[str] = (),
    ) -> httpx.URL:
        """Substitute placeholders and build the final URL.

        Args:
            template_values: Placeholder name -> value. Values are
                percent-encoded, including '/'.
            omit: Placeholder names whose path segment is dropped entirely.

        Raises:
            UriTemplateError: If a placeholder has no value, or the result is
                not a valid URI.
        """
        omitted = set(omit) - set(template_values)
        path_parts: list[str] = []
        for segment in self._segments:
            names = _PLACEHOLDER.findall(segment.template)
            if any(n in omitted for n in names):
                continue
            text = self._substitute(segment.template, template_values)
            for name, values in segment.matrix.items():
                for value in values:
                    text += f";{quote(name, safe='')}={quote(value, safe='')}"
            path_parts.append(text)

        path = "/" + "/".join(path_parts)
        if self._host:
            host = f"[{self._host}]" if ":" in self._host else self._host
            authority = host if self._port is None else f"{host}:{self._port}"
            if self._userinfo:
                authority = f"{self._userinfo}@{authority}"
            text = f"{self._scheme or 'http'}://{authority}{path}"
        else:
            text = path

        params = [(name, value) for name, values in self._query.items() for value in values]
        try:
            return httpx.URL(text, params=params) if params else httpx.URL(text)
        except httpx.InvalidURL as e:
            raise UriTemplateError(f"Invalid URI '{text}': {e}") from e

    def _substitute(self, template: str, values: Mapping[str, Any]) -> str:
        def replacer(match: re.Match[str]) -> str:
            name = match.group(1)
            if values.get(name) is None:
                raise UriTemplateError(
                    f"Unresolved placeholder '{{{name}}}' in URI template '{self.template}'"
                )
            return quote(stringify(values[name]), safe="")

        return _PLACEHOLDER.sub(replacer, template)

    @staticmethod
    def _check_template(template: str) -> None:
        literal = _PLACEHOLDER.sub("", template)
        if "{" in literal or "}" in literal:
            raise UriTemplateError(f"Unbalanced braces in URI template '{template}'")
        if not _LITERAL_PATH.match(literal):
            raise UriTemplateError(f"Illegal characters in URI template '{template}'")

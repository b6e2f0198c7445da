"""Data models shared by the request pipeline, the transport and configuration.

All models use Pydantic v2.
"""

from __future__ import annotations

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Self

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Core HTTP Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP verbs a protocol operation may declare."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @property
    def encloses_entity(self) -> bool:
        """True if a request with this verb may carry a body."""
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


class Entity(BaseModel):
    """A ready-made request body, sent verbatim.

    Passing an Entity to an operation bypasses form encoding and object
    serialization entirely.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    content: bytes = Field(description="Raw body bytes")
    content_type: str | None = Field(default=None, description="Content-Type, e.g., image/png")

    @classmethod
    def from_text(cls, text: str, content_type: str = "text/plain", charset: str = "utf-8") -> Entity:
        """Encode text in charset and declare that charset in the content type."""
        return cls(content=text.encode(charset), content_type=f"{content_type}; charset={charset}")

    @classmethod
    def from_file(cls, path: Path | str, content_type: str | None = None) -> Entity:
        """Read a file into an Entity, guessing the content type from its name."""
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(content=path.read_bytes(), content_type=content_type)

    def with_content_type(self, content_type: str | None) -> Entity:
        """Return a copy with content_type, or self when content_type is empty."""
        if not content_type:
            return self
        return self.model_copy(update={"content_type": content_type})


class OutgoingRequest(BaseModel):
    """A finalized request, ready to hand to the transport.

    Header names keep the case they were set with; lookups through header()
    are case-insensitive. Two requests built from identical arguments compare
    equal.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Absolute or base-relative request URL")
    headers: tuple[tuple[str, str], ...] = Field(
        default=(), description="Request headers as ordered (name, value) pairs"
    )
    content: bytes | None = Field(default=None, description="Encoded body, if any")

    @model_validator(mode="after")
    def check_body_allowed(self) -> Self:
        if self.content is not None and not self.method.encloses_entity:
            raise ValueError(f"{self.method.value} requests cannot carry a body")
        return self

    def header(self, name: str) -> str | None:
        """Return the value of the named header, or None."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    @property
    def content_type(self) -> str | None:
        return self.header("Content-Type")

    def to_httpx(self) -> httpx.Request:
        """Convert to an httpx.Request for sending or inspection."""
        return httpx.Request(
            self.method.value,
            self.url,
            headers=list(self.headers),
            content=self.content,
        )

    @classmethod
    def from_httpx(cls, request: httpx.Request) -> OutgoingRequest:
        return cls(
            method=HttpMethod(request.method.upper()),
            url=str(request.url),
            headers=tuple(request.headers.multi_items()),
            content=request.read() or None,
        )


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Configuration for one protocol client and its transport."""

    model_config = ConfigDict(extra="forbid")

    base_url: str | None = Field(
        default=None, description="Base URL applied before any protocol-level path"
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
    timeout: float = Field(default=30.0, description="Connect/read timeout in seconds")
    charset: str = Field(default="utf-8", description="Charset for forms and text bodies")
    follow_redirects: bool = Field(default=False, description="Follow 3xx responses")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle")
    cert: str | None = Field(default=None, description="Client certificate (mTLS)")
    key: str | None = Field(default=None, description="Client private key (mTLS)")
    key_password: str | None = Field(default=None, description="Password for the client key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")

    @field_validator("charset")
    @classmethod
    def validate_charset(cls, v: str) -> str:
        try:
            "".encode(v)
        except LookupError as e:
            raise ValueError(f"unknown charset '{v}'") from e
        return v

    @model_validator(mode="after")
    def check_cert_pair(self) -> Self:
        if (self.cert is None) != (self.key is None):
            raise ValueError("cert and key must be given together")
        return self

"""Response decoder: turns an httpx.Response into an operation's return value.

The decoding strategy is chosen from the response Content-Type:

    JSON family (application/json, */*+json)  -> JsonCodec, typed by TargetType
    XML family (application/xml, text/xml, */*+xml) -> XmlCodec, typed by TargetType
    anything else, or no Content-Type          -> body text (bytes if declared)

The result must fit the declared return type; an empty body decodes to None
only when the return type admits None.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from protocol_client.codecs import CodecRegistry, default_codecs, parse_media_type
from protocol_client.descriptors import OperationDescriptor
from protocol_client.errors import ClientProtocolError, ResponseCastError, ResponseStatusError
from protocol_client.target_types import TargetType

logger = logging.getLogger(__name__)

# First status treated as a failure, as in any handler that only accepts 2xx.
HTTP_ERROR_THRESHOLD = 300


class ResponseDecoder:
    """Decodes responses for one operation. Stateless; safe to share."""

    def __init__(
        self,
        operation: OperationDescriptor,
        codecs: CodecRegistry | None = None,
        charset: str = "utf-8",
    ) -> None:
        self._operation = operation
        self._codecs = codecs or default_codecs()
        self._charset = charset

    @property
    def target(self) -> TargetType:
        return self._operation.return_type

    def __call__(self, response: httpx.Response) -> Any:
        return self.decode(response)

    def decode(self, response: httpx.Response) -> Any:
        """Decode a response whose body has already been read.

        Raises:
            ResponseStatusError: If the status is 300 or above.
            ClientProtocolError: If the body does not match the declared type.
            ResponseCastError: If the result cannot be returned as the
                declared type (including an empty body for a non-optional type).
        """
        if response.status_code >= HTTP_ERROR_THRESHOLD:
            raise ResponseStatusError(response.status_code, response.reason_phrase)

        target = self.target
        if target.is_none:
            return None
        if not response.content:
            return self._cast(None)

        media_type, params = parse_media_type(response.headers.get("content-type"))
        charset = params.get("charset", self._charset)
        codec = self._codecs.for_media_type(media_type)
        logger.debug(
            "Decoding %s response for %s as %s (%s)",
            media_type, self._operation.name, target, codec.name if codec else "text",
        )

        if codec is None:
            return self._cast(self._text(response.content, charset, target))

        try:
            result = codec.decode(response.content, target, charset)
        except ValidationError as e:
            raise ClientProtocolError(
                f"{self._operation.name}: {media_type} body does not match {target}: {e}"
            ) from e
        except (ValueError, LookupError, SyntaxError) as e:
            # ET.ParseError is a SyntaxError; bad charsets raise LookupError.
            raise ClientProtocolError(
                f"{self._operation.name}: cannot decode {media_type} body: {e}"
            ) from e
        # Already validated against the target by its TypeAdapter.
        if result is None:
            return self._cast(None)
        return result

    def _text(self, content: bytes, charset: str, target: TargetType) -> str | bytes:
        if target.raw_class is not None and issubclass(target.raw_class, (bytes, bytearray)):
            return content
        try:
            return content.decode(charset, errors="replace")
        except LookupError as e:
            raise ClientProtocolError(f"{self._operation.name}: unknown charset '{charset}'") from e

    def _cast(self, value: Any) -> Any:
        if self.target.accepts(value):
            return value
        if value is None:
            raise ResponseCastError(
                f"{self._operation.name}: empty response body cannot be returned as {self.target}"
            )
        raise ResponseCastError(
            f"{self._operation.name}: cannot return {type(value).__name__} as {self.target}"
        )

"""Body codecs, addressed by media type.

A codec turns an object into request bytes and response bytes into an
instance of a TargetType. Two are provided:

- JsonCodec: pydantic_core for encoding, the target's TypeAdapter for
  decoding, so ``list[Widget]`` comes back as Widget instances.
- XmlCodec: ElementTree. Responses are first unmarshalled into a
  JSON-compatible dict (namespace URIs stripped, attributes as ``@name``,
  repeated children as lists, mixed text as ``#text``) and then validated
  into the target type.

Codecs are stateless; the default registry is created once on first use.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from threading import Lock
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_json, to_jsonable_python

from protocol_client.target_types import TargetKind, TargetType

logger = logging.getLogger(__name__)


def parse_media_type(content_type: str | None) -> tuple[str, dict[str, str]]:
    """Split a Content-Type value into a lowercase media type and its parameters.

    Missing or malformed values are treated as application/octet-stream.
    """
    if not content_type:
        return "application/octet-stream", {}
    media_type, *raw_params = content_type.split(";")
    media_type = media_type.strip().lower()
    if media_type.count("/") != 1 or not all(media_type.split("/")):
        return "application/octet-stream", {}
    params: dict[str, str] = {}
    for raw in raw_params:
        name, sep, value = raw.partition("=")
        if sep:
            params[name.strip().lower()] = value.strip().strip('"')
    return media_type, params


class Codec:
    """Encode objects to bytes and decode bytes to a target type."""

    name = "abstract"

    def handles(self, media_type: str) -> bool:
        raise NotImplementedError

    def encode(self, obj: Any, charset: str = "utf-8") -> bytes:
        raise NotImplementedError

    def decode(self, content: bytes, target: TargetType, charset: str = "utf-8") -> Any:
        raise NotImplementedError


class JsonCodec(Codec):
    name = "json"

    def handles(self, media_type: str) -> bool:
        subtype = media_type.split("/", 1)[-1]
        return subtype == "json" or subtype.endswith("+json")

    def encode(self, obj: Any, charset: str = "utf-8") -> bytes:
        encoded = to_json(obj, by_alias=True)
        if charset.lower().replace("-", "") != "utf8":
            encoded = encoded.decode("utf-8").encode(charset)
        return encoded

    def decode(self, content: bytes, target: TargetType, charset: str = "utf-8") -> Any:
        if charset.lower().replace("-", "") != "utf8":
            content = content.decode(charset).encode("utf-8")
        return target.adapter().validate_json(content)


class XmlCodec(Codec):
    name = "xml"

    def __init__(self, force_list: set[str] | None = None) -> None:
        self._force_list = frozenset(force_list or ())

    def handles(self, media_type: str) -> bool:
        subtype = media_type.split("/", 1)[-1]
        return subtype == "xml" or subtype.endswith("+xml")

    def encode(self, obj: Any, charset: str = "utf-8") -> bytes:
        """Marshal obj as an XML document.

        Models are wrapped in a root element named after their class; a dict
        must have exactly one key, the root element name.
        """
        if isinstance(obj, BaseModel):
            data: Any = {type(obj).__name__: obj.model_dump(mode="json", by_alias=True)}
        else:
            data = to_jsonable_python(obj)
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(
                f"XML body needs a single root element, got {type(obj).__name__}"
            )
        ((root_tag, root_value),) = data.items()
        root = _to_element(root_tag, root_value)
        ET.indent(root)
        return ET.tostring(root, encoding=charset, xml_declaration=True)

    def unmarshal(self, content: bytes) -> dict[str, Any]:
        """Parse XML bytes into a single-key dict keyed by the root tag.

        Raises:
            ET.ParseError: If content is not well-formed XML.
        """
        root = ET.fromstring(content)
        return {_local_name(root.tag): _from_element(root, self._force_list)}

    def decode(self, content: bytes, target: TargetType, charset: str = "utf-8") -> Any:
        document = self.unmarshal(content)
        if target.kind is TargetKind.MAP or target.raw_class is None:
            return target.adapter().validate_python(document)

        (root_value,) = document.values()
        if target.kind in (TargetKind.LIST, TargetKind.ARRAY):
            # <Widgets><Widget/>...</Widgets>: the items are the root's only child group.
            if isinstance(root_value, dict) and len(root_value) == 1:
                (items,) = root_value.values()
                root_value = items if isinstance(items, list) else [items]
            elif root_value is None:
                root_value = []
        elif issubclass(target.raw_class, str) and root_value is None:
            root_value = ""
        return target.adapter().validate_python(root_value)


def _local_name(tag: str) -> str:
    """``{http://...}Name`` -> ``Name``."""
    return tag.split("}", 1)[1] if tag.startswith("{") else tag


def _from_element(element: ET.Element, force_list: frozenset[str]) -> dict[str, Any] | str | None:
    result: dict[str, Any] = {}
    for name, value in element.attrib.items():
        if not name.startswith(("xmlns", "{")):
            result[f"@{name}"] = value

    grouped: dict[str, list[Any]] = {}
    for child in element:
        grouped.setdefault(_local_name(child.tag), []).append(_from_element(child, force_list))
    for tag, values in grouped.items():
        result[tag] = values if tag in force_list or len(values) > 1 else values[0]

    text = (element.text or "").strip()
    if text and result:
        result["#text"] = text
    elif text:
        return text
    return result or None


def _to_element(tag: str, value: Any) -> ET.Element:
    element = ET.Element(tag)
    if isinstance(value, dict):
        for key, child in value.items():
            if key == "#text":
                element.text = str(child)
            elif key.startswith("@"):
                element.set(key[1:], str(child))
            elif isinstance(child, list):
                element.extend(_to_element(key, item) for item in child)
            else:
                element.append(_to_element(key, child))
    elif isinstance(value, list):
        element.extend(_to_element("item", item) for item in value)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is not None:
        element.text = str(value)
    return element


class CodecRegistry:
    """Ordered set of codecs; the first one handling a media type wins."""

    def __init__(self, codecs: list[Codec] | None = None) -> None:
        self._codecs: list[Codec] = list(codecs or [])

    def register(self, codec: Codec) -> CodecRegistry:
        self._codecs.insert(0, codec)
        return self

    def for_media_type(self, content_type: str | None) -> Codec | None:
        media_type, _ = parse_media_type(content_type)
        for codec in self._codecs:
            if codec.handles(media_type):
                return codec
        return None

    def __iter__(self):
        return iter(self._codecs)


_DEFAULT_CODECS: CodecRegistry | None = None
_DEFAULT_CODECS_LOCK = Lock()


def default_codecs() -> CodecRegistry:
    """The shared JSON + XML registry, created once on first use."""
    global _DEFAULT_CODECS
    if _DEFAULT_CODECS is None:
        with _DEFAULT_CODECS_LOCK:
            if _DEFAULT_CODECS is None:
                logger.debug("Creating default codec registry")
                _DEFAULT_CODECS = CodecRegistry([JsonCodec(), XmlCodec()])
    return _DEFAULT_CODECS

"""Target type descriptors for response decoding.

A TargetType is an explicit, hashable description of what a response body
must become: a scalar (any class or union pydantic can validate), a list of
T, a map of K to V, or an array (homogeneous tuple) of T. Container element
types are resolved recursively, so ``dict[str, list[Widget]]`` decodes into
real Widget instances rather than raw dicts.
"""

from __future__ import annotations

import collections.abc
import types
import typing
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

import typing_extensions
from pydantic import TypeAdapter


class TargetKind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    MAP = "map"
    ARRAY = "array"


# Abstract collection origins are materialized as these concrete types.
_LIST_ORIGINS: dict[Any, type] = {
    list: list,
    set: set,
    frozenset: frozenset,
    collections.abc.Collection: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
}
_MAP_ORIGINS: dict[Any, type] = {
    dict: dict,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
}

_UNION_TYPES = (typing.Union, types.UnionType)


@dataclass(frozen=True)
class TargetType:
    kind: TargetKind
    raw: Any
    args: tuple[TargetType, ...] = ()
    optional: bool = False

    @classmethod
    def from_annotation(cls, annotation: Any) -> TargetType:
        """Build a TargetType from a (possibly generic) type annotation."""
        if annotation is None or annotation is type(None):
            return cls(TargetKind.SCALAR, type(None), optional=True)

        origin = typing.get_origin(annotation)
        if origin is typing.Annotated:
            return cls.from_annotation(typing.get_args(annotation)[0])

        if origin in _UNION_TYPES:
            members = [a for a in typing.get_args(annotation) if a is not type(None)]
            optional = len(members) < len(typing.get_args(annotation))
            if len(members) == 1:
                inner = cls.from_annotation(members[0])
                return cls(inner.kind, inner.raw, inner.args, optional=optional)
            return cls(TargetKind.SCALAR, typing.Union[tuple(members)], optional=optional)

        args = typing.get_args(annotation)
        if origin in _LIST_ORIGINS:
            element = cls.from_annotation(args[0]) if args else cls.scalar(Any)
            return cls(TargetKind.LIST, _LIST_ORIGINS[origin], (element,))
        if origin in _MAP_ORIGINS:
            key = cls.from_annotation(args[0]) if args else cls.scalar(Any)
            value = cls.from_annotation(args[1]) if len(args) > 1 else cls.scalar(Any)
            return cls(TargetKind.MAP, _MAP_ORIGINS[origin], (key, value))
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return cls(TargetKind.ARRAY, tuple, (cls.from_annotation(args[0]),))

        # Bare containers behave like their parameterized Any form.
        if annotation in _LIST_ORIGINS:
            return cls(TargetKind.LIST, _LIST_ORIGINS[annotation], (cls.scalar(Any),))
        if annotation in _MAP_ORIGINS:
            return cls(TargetKind.MAP, _MAP_ORIGINS[annotation], (cls.scalar(Any), cls.scalar(Any)))

        return cls.scalar(annotation)

    @classmethod
    def scalar(cls, raw: Any) -> TargetType:
        return cls(TargetKind.SCALAR, raw, optional=raw is Any or raw is object)

    def to_annotation(self) -> Any:
        """Rebuild a concrete annotation pydantic can validate against."""
        if self.kind is TargetKind.LIST:
            annotation: Any = self.raw[self.args[0].to_annotation()]
        elif self.kind is TargetKind.MAP:
            annotation = dict[self.args[0].to_annotation(), self.args[1].to_annotation()]
        elif self.kind is TargetKind.ARRAY:
            annotation = tuple[self.args[0].to_annotation(), ...]
        else:
            annotation = self.raw
        if self.optional and annotation not in (Any, object, type(None)):
            return annotation | None
        return annotation

    @property
    def raw_class(self) -> type | None:
        """The class an instance must be of, if there is a single one."""
        if self.raw is Any or self.raw is object:
            return None
        if typing_extensions.is_typeddict(self.raw):
            # TypedDict classes reject isinstance checks; their instances are dicts.
            return dict
        if isinstance(self.raw, type):
            return self.raw
        return typing.get_origin(self.raw) if isinstance(typing.get_origin(self.raw), type) else None

    @property
    def is_none(self) -> bool:
        return self.raw is type(None)

    def accepts_none(self) -> bool:
        return self.optional

    def accepts(self, value: Any) -> bool:
        """True if value may be returned as this type without conversion."""
        if value is None:
            return self.accepts_none()
        if self.raw is Any or self.raw is object:
            return True
        if self.kind is TargetKind.SCALAR and typing.get_origin(self.raw) in _UNION_TYPES:
            return any(TargetType.from_annotation(a).accepts(value) for a in typing.get_args(self.raw))
        raw_class = self.raw_class
        return raw_class is not None and isinstance(value, raw_class)

    def can_hold(self, cls: type) -> bool:
        """True if an instance of cls can be returned as this type directly.

        Any and object are excluded: an untyped operation wants its response
        decoded, not its request.
        """
        if self.kind is not TargetKind.SCALAR or self.raw is Any or self.raw is object:
            return False
        if typing.get_origin(self.raw) in _UNION_TYPES:
            return any(TargetType.from_annotation(a).can_hold(cls) for a in typing.get_args(self.raw))
        raw_class = self.raw_class
        return raw_class is self.raw and issubclass(cls, raw_class)

    def adapter(self) -> TypeAdapter[Any]:
        return _adapter_for(self)

    def __str__(self) -> str:
        annotation = self.to_annotation()
        if isinstance(annotation, type):
            return annotation.__name__
        return repr(annotation).replace("typing.", "")


_ADAPTERS: dict[TargetType, TypeAdapter[Any]] = {}
_ADAPTERS_LOCK = Lock()


def _adapter_for(target: TargetType) -> TypeAdapter[Any]:
    """Return the cached TypeAdapter for target, creating it at most once."""
    adapter = _ADAPTERS.get(target)
    if adapter is not None:
        return adapter
    with _ADAPTERS_LOCK:
        adapter = _ADAPTERS.get(target)
        if adapter is None:
            adapter = TypeAdapter(target.to_annotation())
            _ADAPTERS[target] = adapter
    return adapter

"""Protocol and operation descriptors.

Descriptors are the data form of a protocol class: which annotations apply at
type level, and for each operation its annotations, parameters and return
type. They are computed once per protocol class and only read afterwards, so
concurrent calls share them without locking.

Descriptors can also be built by hand, without any decorated class, and handed
straight to the request assembler.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Any, Callable, Mapping

from protocol_client.annotations import (
    ProtocolAnnotation,
    annotations_of,
    is_operation,
)
from protocol_client.errors import ConfigurationError
from protocol_client.target_types import TargetType

logger = logging.getLogger(__name__)

_EMPTY = inspect.Parameter.empty


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    annotations: tuple[ProtocolAnnotation, ...] = ()
    declared_type: Any = None
    default: Any = _EMPTY


@dataclass(frozen=True)
class OperationDescriptor:
    """One operation: its method-level annotations, parameters and return type."""

    name: str
    annotations: tuple[ProtocolAnnotation, ...]
    parameters: tuple[ParameterDescriptor, ...] = ()
    return_type: TargetType = field(default_factory=lambda: TargetType.scalar(Any))
    signature: inspect.Signature | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.signature is None:
            # Hand-built descriptors get a plain positional-or-keyword signature.
            object.__setattr__(self, "signature", inspect.Signature([
                inspect.Parameter(p.name, inspect.Parameter.POSITIONAL_OR_KEYWORD, default=p.default)
                for p in self.parameters
            ]))

    def bind(self, args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> list[tuple[ParameterDescriptor, Any]]:
        """Pair each parameter with its argument, in declaration order.

        Raises:
            TypeError: If the arguments do not match the signature, exactly
                as calling a regular function with them would.
        """
        assert self.signature is not None
        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return [(p, bound.arguments.get(p.name)) for p in self.parameters]


@dataclass(frozen=True)
class ProtocolDescriptor:
    name: str
    annotations: tuple[ProtocolAnnotation, ...] = ()
    operations: Mapping[str, OperationDescriptor] = field(default_factory=dict)


def _split_annotated(hint: Any) -> tuple[Any, tuple[ProtocolAnnotation, ...]]:
    """Separate a parameter type from the protocol annotations in its metadata.

    Foreign metadata (pydantic Field, docs, ...) is dropped.
    """
    if typing.get_origin(hint) is typing.Annotated:
        base, *metadata = typing.get_args(hint)
        found = tuple(m for m in metadata if isinstance(m, ProtocolAnnotation))
        return base, found
    return hint, ()


def _declared_class(hint: Any) -> Any:
    """Reduce a parameter annotation to the class used for type-based binding.

    Optional[X] becomes X; anything that is not a single class becomes None so
    the binder falls back to the runtime type of the argument.
    """
    if hint is None or hint is _EMPTY:
        return None
    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        members = [a for a in typing.get_args(hint) if a is not type(None)]
        return _declared_class(members[0]) if len(members) == 1 else None
    if isinstance(origin, type):
        return origin
    if isinstance(hint, type) and hint is not object:
        return hint
    return None


def describe_operation(func: Callable[..., Any]) -> OperationDescriptor:
    """Build the descriptor of a declared protocol method."""
    original = inspect.unwrap(func)
    try:
        hints = typing.get_type_hints(original, include_extras=True)
    except Exception as e:
        raise ConfigurationError(f"{original.__qualname__}: cannot resolve type hints: {e}") from e

    signature = inspect.signature(original)
    parameters: list[ParameterDescriptor] = []
    kept: list[inspect.Parameter] = []
    for index, param in enumerate(signature.parameters.values()):
        if index == 0 and param.name in ("self", "cls"):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise ConfigurationError(
                f"{original.__qualname__}: variadic parameter '{param.name}' cannot be bound"
            )
        base, found = _split_annotated(hints.get(param.name, _EMPTY))
        parameters.append(ParameterDescriptor(
            name=param.name,
            annotations=found,
            declared_type=_declared_class(base),
            default=param.default,
        ))
        kept.append(param)

    return_hint = hints.get("return", Any)
    return OperationDescriptor(
        name=original.__name__,
        annotations=annotations_of(func),
        parameters=tuple(parameters),
        return_type=TargetType.from_annotation(return_hint),
        signature=signature.replace(parameters=kept),
    )


_DESCRIPTORS: dict[type, ProtocolDescriptor] = {}
_DESCRIPTORS_LOCK = Lock()


def describe_protocol(cls: type) -> ProtocolDescriptor:
    """Return the descriptor of a protocol class, computing it at most once."""
    descriptor = _DESCRIPTORS.get(cls)
    if descriptor is not None:
        return descriptor
    with _DESCRIPTORS_LOCK:
        descriptor = _DESCRIPTORS.get(cls)
        if descriptor is None:
            descriptor = _build_protocol_descriptor(cls)
            _DESCRIPTORS[cls] = descriptor
    return descriptor


def _build_protocol_descriptor(cls: type) -> ProtocolDescriptor:
    # Base classes first, so a subclass's annotations are applied after
    # (and override) the ones it inherits.
    annotations: list[ProtocolAnnotation] = []
    for klass in reversed(cls.__mro__):
        annotations.extend(annotations_of(klass))

    operations: dict[str, OperationDescriptor] = {}
    for name in dir(cls):
        member = inspect.getattr_static(cls, name)
        if is_operation(member):
            operations[name] = describe_operation(member)

    logger.debug(
        "Described protocol %s: %d type annotations, operations=%s",
        cls.__qualname__, len(annotations), sorted(operations),
    )
    return ProtocolDescriptor(
        name=cls.__qualname__,
        annotations=tuple(annotations),
        operations=MappingProxyType(operations),
    )

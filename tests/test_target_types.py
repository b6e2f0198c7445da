"""Tests for protocol_client.target_types."""

import collections.abc
from typing import Any, Optional, Union

import httpx
import pytest
from typing_extensions import TypedDict

from protocol_client.models import OutgoingRequest
from protocol_client.target_types import TargetKind, TargetType
from tests.conftest import Widget


class WidgetDict(TypedDict):
    id: int


class TestFromAnnotation:
    @pytest.mark.parametrize(
        ("annotation", "kind", "raw"),
        [
            (int, TargetKind.SCALAR, int),
            (list[Widget], TargetKind.LIST, list),
            (collections.abc.Sequence[int], TargetKind.LIST, list),
            (set[str], TargetKind.LIST, set),
            (dict[str, int], TargetKind.MAP, dict),
            (collections.abc.Mapping[str, Widget], TargetKind.MAP, dict),
            (tuple[int, ...], TargetKind.ARRAY, tuple),
            (list, TargetKind.LIST, list),
            (dict, TargetKind.MAP, dict),
        ],
    )
    def test_kinds(self, annotation: Any, kind: TargetKind, raw: type) -> None:
        target = TargetType.from_annotation(annotation)
        assert target.kind is kind
        assert target.raw is raw

    def test_nested_element_types(self) -> None:
        target = TargetType.from_annotation(dict[str, list[Widget]])
        key, value = target.args
        assert key == TargetType.scalar(str)
        assert value.kind is TargetKind.LIST
        assert value.args[0].raw is Widget

    def test_optional(self) -> None:
        target = TargetType.from_annotation(Optional[list[int]])
        assert target.kind is TargetKind.LIST
        assert target.optional
        assert target.accepts_none()

    def test_union_stays_scalar(self) -> None:
        target = TargetType.from_annotation(Union[int, str])
        assert target.kind is TargetKind.SCALAR
        assert target.accepts(1) and target.accepts("a")
        assert not target.accepts(1.5)

    def test_none(self) -> None:
        assert TargetType.from_annotation(None).is_none

    def test_fixed_tuple_is_scalar(self) -> None:
        assert TargetType.from_annotation(tuple[int, str]).kind is TargetKind.SCALAR


class TestAccepts:
    def test_any_accepts_everything_including_none(self) -> None:
        target = TargetType.from_annotation(Any)
        assert target.accepts(None)
        assert target.accepts(object())

    def test_required_rejects_none(self) -> None:
        assert not TargetType.from_annotation(Widget).accepts(None)

    def test_container_checks_container_class(self) -> None:
        target = TargetType.from_annotation(list[int])
        assert target.accepts([1])
        assert not target.accepts((1,))


class TestCanHold:
    def test_exact_and_optional(self) -> None:
        assert TargetType.from_annotation(OutgoingRequest).can_hold(OutgoingRequest)
        assert TargetType.from_annotation(OutgoingRequest | None).can_hold(OutgoingRequest)

    def test_union_member(self) -> None:
        assert TargetType.from_annotation(Union[httpx.Response, str]).can_hold(httpx.Response)

    @pytest.mark.parametrize("annotation", [Any, object, Widget, list[OutgoingRequest]])
    def test_cannot_hold(self, annotation: Any) -> None:
        assert not TargetType.from_annotation(annotation).can_hold(OutgoingRequest)


class TestAdapter:
    def test_adapter_is_cached(self) -> None:
        target = TargetType.from_annotation(list[Widget])
        assert target.adapter() is TargetType.from_annotation(list[Widget]).adapter()

    def test_optional_adapter_accepts_null(self) -> None:
        assert TargetType.from_annotation(Widget | None).adapter().validate_json(b"null") is None

    def test_str(self) -> None:
        assert str(TargetType.from_annotation(Widget)) == "Widget"
        assert "Widget" in str(TargetType.from_annotation(list[Widget]))


class TestTypedDict:
    def test_raw_class_is_dict(self) -> None:
        assert TargetType.from_annotation(WidgetDict).raw_class is dict

    def test_accepts_plain_dict(self) -> None:
        target = TargetType.from_annotation(WidgetDict)
        assert target.accepts({"id": 1})
        assert not target.accepts("text")

    def test_cannot_hold_request(self) -> None:
        assert not TargetType.from_annotation(WidgetDict).can_hold(OutgoingRequest)

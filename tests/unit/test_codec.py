from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest
from boto3.dynamodb.types import Binary

from dynamodel_py.codec import (
    EMPTY_NUMBER_SET,
    attribute_value,
    decode_item,
    dump_field,
    encode_item,
    from_wire,
    undump_field,
    wire_tag,
)
from dynamodel_py.errors import (
    InvalidBooleanError,
    MixedTypesError,
    NestedCollectionError,
    UnknownTypeError,
    UnsupportedTypeError,
)
from dynamodel_py.model import AttributeDefinition


def _attr(kind: str, **kwargs: Any) -> AttributeDefinition:
    return AttributeDefinition(python_name="f", attribute_name="f", kind=kind, **kwargs)


class _Upper:
    def to_dynamodb(self, value: Any) -> Any:
        return str(value).upper()

    def from_dynamodb(self, value: Any) -> Any:
        return str(value).lower()


@pytest.mark.parametrize(
    ("value", "tag"),
    [
        ("a", "S"),
        (1, "N"),
        (1.5, "N"),
        (Decimal("2"), "N"),
        (b"x", "B"),
        (Binary(b"x"), "B"),
        ({"a", "b"}, "SS"),
        ({1, 2}, "NS"),
        ([b"a", b"b"], "BS"),
        (set(), "SS"),
        (EMPTY_NUMBER_SET, "NS"),
    ],
)
def test_wire_tag_classifies_supported_shapes(value: Any, tag: str) -> None:
    assert wire_tag(value) == tag


def test_wire_tag_rejects_nested_mixed_and_unsupported_values() -> None:
    with pytest.raises(NestedCollectionError):
        wire_tag([[1]])
    with pytest.raises(MixedTypesError):
        wire_tag([1, "a"])
    with pytest.raises(UnsupportedTypeError):
        wire_tag(object())
    with pytest.raises(UnsupportedTypeError):
        wire_tag(True)


def test_attribute_value_stringifies_numbers_and_sorts_sets() -> None:
    assert attribute_value(12) == {"N": "12"}
    assert attribute_value(1.5) == {"N": "1.5"}
    assert attribute_value(1e20) == {"N": "100000000000000000000"}
    assert attribute_value({"b", "a"}) == {"SS": ["a", "b"]}
    assert attribute_value({3, 1}) == {"NS": ["1", "3"]}
    assert attribute_value(EMPTY_NUMBER_SET) == {"NS": []}
    assert attribute_value(b"x") == {"B": b"x"}
    assert attribute_value(5, "S") == {"S": "5"}


def test_encode_item_omits_absent_values() -> None:
    assert encode_item({"id": "a", "n": 2, "gone": None}) == {"id": {"S": "a"}, "n": {"N": "2"}}


def test_decode_item_unwraps_store_types() -> None:
    raw = {
        "id": {"S": "a"},
        "n": {"N": "2"},
        "b": {"B": b"x"},
        "ss": {"SS": ["a"]},
    }
    assert decode_item(raw) == {"id": "a", "n": Decimal("2"), "b": b"x", "ss": {"a"}}
    assert from_wire({"NS": ["1", "2"]}) == {Decimal("1"), Decimal("2")}


def test_dump_field_applies_declared_kind() -> None:
    assert dump_field(5, _attr("string")) == "5"
    assert dump_field("7", _attr("integer")) == 7
    assert dump_field("2.5", _attr("float")) == 2.5
    assert dump_field("a", _attr("set")) == {"a"}
    assert dump_field("a", _attr("array")) == ["a"]
    assert dump_field(datetime(2024, 1, 1, tzinfo=UTC), _attr("datetime")) == 1704067200.0
    assert dump_field(True, _attr("boolean")) == "t"
    assert dump_field(False, _attr("boolean")) == "f"
    assert dump_field({"b": 1, "a": 2}, _attr("serialized")) == '{"a":2,"b":1}'
    assert dump_field("Hi", _attr("serialized", serializer=_Upper())) == "HI"
    assert dump_field("x", _attr("binary")) == b"x"


@pytest.mark.parametrize("blank", [None, "", [], set(), b""])
def test_dump_field_treats_blank_values_as_absent(blank: Any) -> None:
    assert dump_field(blank, _attr("string")) is None


def test_unknown_kind_fails_both_ways() -> None:
    with pytest.raises(UnknownTypeError):
        dump_field("x", _attr("weird"))
    with pytest.raises(UnknownTypeError):
        undump_field("x", _attr("weird"))


def test_undump_field_substitutes_declared_defaults() -> None:
    assert undump_field(None, _attr("integer", default=3)) == 3
    assert undump_field(None, _attr("array", default_factory=list)) == []
    assert undump_field(None, _attr("string")) is None
    assert undump_field("", _attr("string", default="x")) is None


def test_undump_field_boolean_accepts_only_exact_markers() -> None:
    attr = _attr("boolean")
    assert undump_field("t", attr) is True
    assert undump_field(True, attr) is True
    assert undump_field("f", attr) is False
    assert undump_field(False, attr) is False
    with pytest.raises(InvalidBooleanError):
        undump_field("yes", attr)


def test_undump_field_converts_store_numbers() -> None:
    assert undump_field(Decimal("5"), _attr("integer")) == 5
    assert undump_field(Decimal("1.25"), _attr("float")) == 1.25
    assert undump_field(Decimal("1704067200"), _attr("datetime")) == datetime(2024, 1, 1, tzinfo=UTC)
    assert undump_field("hi", _attr("serialized", serializer=_Upper())) == "hi"
    assert undump_field({"a": 1}, _attr("serialized")) == {"a": 1}
    assert undump_field({Decimal("2"), Decimal("0.5")}, _attr("set")) == {2, 0.5}
    assert [type(v) for v in undump_field([Decimal("3"), Decimal("1.5")], _attr("array"))] == [int, float]


@pytest.mark.parametrize(
    ("kind", "value"),
    [
        ("string", "hello"),
        ("integer", 42),
        ("float", 1.25),
        ("set", {"a", "b"}),
        ("array", ["x"]),
        ("set", {0.1, 2}),
        ("array", [3]),
        ("datetime", datetime(2024, 1, 1, 12, 30, tzinfo=UTC)),
        ("boolean", True),
        ("serialized", {"nested": [1, 2]}),
        ("binary", b"\x00\x01"),
    ],
)
def test_values_survive_the_wire(kind: str, value: Any) -> None:
    attr = _attr(kind)
    wire = attribute_value(dump_field(value, attr))
    assert undump_field(from_wire(wire), attr) == value

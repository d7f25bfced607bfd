from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from boto3.dynamodb.types import Binary, TypeDeserializer

from .errors import (
    InvalidBooleanError,
    MixedTypesError,
    NestedCollectionError,
    UnknownTypeError,
    UnsupportedTypeError,
)
from .model import AttributeDefinition

_COLLECTIONS = (set, frozenset, list, tuple)
_SET_TAGS = frozenset({"SS", "NS", "BS"})

_deserializer = TypeDeserializer()


class _EmptyNumberSet:
    def __repr__(self) -> str:  # pragma: no cover
        return "EMPTY_NUMBER_SET"


EMPTY_NUMBER_SET: Any = _EmptyNumberSet()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, *_COLLECTIONS)) and len(value) == 0:
        return True
    return False


def wire_tag(value: Any) -> str:
    if value is EMPTY_NUMBER_SET:
        return "NS"
    if isinstance(value, (bytes, bytearray, Binary)):
        return "B"
    if isinstance(value, str):
        return "S"
    if isinstance(value, bool):
        raise UnsupportedTypeError("unsupported attribute type bool")
    if isinstance(value, (int, float, Decimal)):
        return "N"
    if isinstance(value, _COLLECTIONS):
        indicator: str | None = None
        for member in value:
            member_tag = wire_tag(member)
            if len(member_tag) > 1:
                raise NestedCollectionError("nested collections are not supported")
            if indicator is not None and member_tag != indicator:
                raise MixedTypesError(f"mixed types in collection: {indicator} and {member_tag}")
            indicator = member_tag
        return f"{indicator or 'S'}S"
    raise UnsupportedTypeError(f"unsupported attribute type {type(value).__name__}")


def number_to_wire(value: Any) -> str:
    if isinstance(value, bool):
        raise UnsupportedTypeError("booleans are not numbers")
    if isinstance(value, int):
        return str(value)
    try:
        number = Decimal(str(value))
    except InvalidOperation as err:
        raise UnsupportedTypeError(f"not a number: {value!r}") from err
    if not number.is_finite():
        raise UnsupportedTypeError(f"non-finite number: {value!r}")
    return format(number, "f")


def _scalar_to_wire(value: Any, tag: str) -> Any:
    if tag == "B":
        if isinstance(value, Binary):
            return bytes(value.value)
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)
    if tag == "N":
        return number_to_wire(value)
    return str(value)


def attribute_value(value: Any, tag: str | None = None) -> dict[str, Any]:
    """Encode a dumped value as ``{TAG: "stringified-value"}``."""
    if value is EMPTY_NUMBER_SET:
        return {"NS": []}

    resolved = tag or wire_tag(value)
    if resolved in _SET_TAGS:
        if not isinstance(value, _COLLECTIONS):
            value = [value]
        members = [_scalar_to_wire(v, resolved[0]) for v in value]
        if isinstance(value, (set, frozenset)):
            members.sort()
        return {resolved: members}
    return {resolved: _scalar_to_wire(value, resolved)}


def _plain(value: Any) -> Any:
    if isinstance(value, Binary):
        return bytes(value.value)
    if isinstance(value, set):
        return {_plain(v) for v in value}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def from_wire(av: Mapping[str, Any]) -> Any:
    return _plain(_deserializer.deserialize(dict(av)))


def decode_item(item: Mapping[str, Any]) -> dict[str, Any]:
    return {str(name): from_wire(av) for name, av in item.items()}


def encode_item(values: Mapping[str, Any]) -> dict[str, Any]:
    return {name: attribute_value(value) for name, value in values.items() if value is not None}


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return int(value)
    if isinstance(value, datetime):
        return int(value.timestamp())
    return int(Decimal(str(value)))


def _member(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=UTC)
    return datetime.fromtimestamp(float(value), tz=UTC)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, Binary):
        return bytes(value.value)
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def dump_field(value: Any, attr: AttributeDefinition) -> Any:
    """Turn a domain value into the value written for ``attr``; ``None`` means omit."""
    if is_blank(value):
        return None

    kind = attr.kind
    if kind == "string":
        return str(value)
    if kind == "integer":
        return _to_int(value)
    if kind == "float":
        return float(value)
    if kind == "set":
        return value if isinstance(value, _COLLECTIONS) else {value}
    if kind == "array":
        return value if isinstance(value, _COLLECTIONS) else [value]
    if kind == "datetime":
        return _as_datetime(value).timestamp()
    if kind == "boolean":
        if isinstance(value, str):
            return value[:1].lower()
        return "t" if value else "f"
    if kind == "serialized":
        if attr.serializer is not None:
            return attr.serializer.to_dynamodb(value)
        return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
    if kind == "binary":
        return _as_bytes(value)
    raise UnknownTypeError(f"unknown type {kind} for {attr.python_name}")


def undump_field(raw: Any, attr: AttributeDefinition) -> Any:
    """Coerce a stored value back into the declared domain type."""
    if raw is None and attr.has_default:
        value = attr.default_value()
        if value is None:
            return None
    elif is_blank(raw):
        return None
    else:
        value = raw

    kind = attr.kind
    if kind == "string":
        return str(value)
    if kind == "integer":
        return _to_int(value)
    if kind == "float":
        return float(value)
    if kind == "set":
        return {_member(v) for v in value} if isinstance(value, _COLLECTIONS) else {_member(value)}
    if kind == "array":
        return [_member(v) for v in value] if isinstance(value, _COLLECTIONS) else [_member(value)]
    if kind == "datetime":
        return _as_datetime(value)
    if kind == "serialized":
        if not isinstance(value, str):
            return value
        if attr.serializer is not None:
            return attr.serializer.from_dynamodb(value)
        return json.loads(value)
    if kind == "boolean":
        if value is True or value == "t":
            return True
        if value is False or value == "f":
            return False
        raise InvalidBooleanError(f"boolean attribute {attr.python_name} is neither true nor false: {value!r}")
    if kind == "binary":
        return _as_bytes(value)
    raise UnknownTypeError(f"unknown type {kind} for {attr.python_name}")

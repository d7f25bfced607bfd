from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .codec import attribute_value, dump_field
from .errors import MalformedKeyError
from .model import AttributeDefinition, ModelDefinition


@dataclass(frozen=True)
class KeyValue:
    value: Any
    type: str

    def to_wire(self) -> dict[str, Any]:
        return attribute_value(self.value, self.type)


type KeyDescriptor = dict[str, KeyValue]


def _key_value(attr: AttributeDefinition, value: Any) -> KeyValue:
    dumped = dump_field(value, attr)
    if dumped is None:
        raise MalformedKeyError(f"key attribute {attr.python_name} is empty")
    return KeyValue(value=dumped, type=attr.key_type)


def resolve_key(model: ModelDefinition[Any], identifier: Any) -> KeyDescriptor:
    name = model.model_type.__name__
    if isinstance(identifier, (tuple, list)):
        if model.range_key is None:
            raise MalformedKeyError(f"{name}: key is expected to be [HASH], got a {len(identifier)}-tuple")
        if len(identifier) != 2:
            raise MalformedKeyError(f"{name}: key is expected to be [HASH, RANGE], got {len(identifier)} parts")
        hash_value, range_value = identifier
        return {
            model.hash_key.attribute_name: _key_value(model.hash_key, hash_value),
            model.range_key.attribute_name: _key_value(model.range_key, range_value),
        }

    if model.range_key is not None:
        raise MalformedKeyError(f"{name}: key is expected to be [HASH, RANGE], got a scalar")
    return {model.hash_key.attribute_name: _key_value(model.hash_key, identifier)}


def encode_key(key: KeyDescriptor) -> dict[str, Any]:
    return {name: kv.to_wire() for name, kv in key.items()}


def identifier_from(model: ModelDefinition[Any], values: Mapping[str, Any]) -> Any:
    hash_value = values.get(model.hash_key.python_name)
    if model.range_key is None:
        return hash_value
    return (hash_value, values.get(model.range_key.python_name))

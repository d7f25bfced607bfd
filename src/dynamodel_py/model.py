from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Protocol, cast, overload

from .tracking import ItemState

ATTRIBUTE_KINDS = frozenset(
    {"string", "integer", "float", "set", "array", "datetime", "boolean", "serialized", "binary"}
)

_KEY_TYPES = {
    "string": "S",
    "boolean": "S",
    "serialized": "S",
    "integer": "N",
    "float": "N",
    "datetime": "N",
    "binary": "B",
}


class ModelDefinitionError(ValueError):
    pass


class AttributeSerializer(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    kind: str
    roles: tuple[str, ...] = ()
    serializer: AttributeSerializer | None = None
    default: Any = field(default_factory=lambda: MISSING)
    default_factory: Callable[[], Any] | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING or self.default_factory is not None

    def default_value(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        if self.default is MISSING:
            return None
        return self.default

    @property
    def scalar_type(self) -> str | None:
        return _KEY_TYPES.get(self.kind)

    @property
    def key_type(self) -> str:
        key_type = self.scalar_type
        if key_type is None:
            raise ModelDefinitionError(f"attribute {self.python_name} of kind {self.kind} cannot be a key")
        return key_type


@dataclass(frozen=True)
class Projection:
    type: str
    fields: tuple[str, ...] = ()

    @staticmethod
    def all() -> Projection:
        return Projection(type="ALL")

    @staticmethod
    def keys_only() -> Projection:
        return Projection(type="KEYS_ONLY")

    @staticmethod
    def include(*fields: str) -> Projection:
        return Projection(type="INCLUDE", fields=tuple(fields))


@dataclass(frozen=True)
class IndexSpec:
    field: str
    projection: Projection = field(default_factory=Projection.all)


@dataclass(frozen=True)
class IndexDefinition:
    field: str
    attribute_name: str
    type: str
    projection: Projection = field(default_factory=Projection.all)

    def index_name(self, table_name: str) -> str:
        return f"{table_name}_{self.field}_index"


@dataclass(frozen=True)
class Throughput:
    read_units: int = 1
    write_units: int = 1

    def to_request(self) -> dict[str, int]:
        return {"ReadCapacityUnits": self.read_units, "WriteCapacityUnits": self.write_units}


@overload
def dynamodel_field(
    kind: str = "string",
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    serializer: AttributeSerializer | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def dynamodel_field(
    kind: str = "string",
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    serializer: AttributeSerializer | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def dynamodel_field(
    kind: str = "string",
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    serializer: AttributeSerializer | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def dynamodel_field(
    kind: str = "string",
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    serializer: AttributeSerializer | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("dynamodel_field: cannot set both default and default_factory")

    dynamodel: dict[str, Any] = {
        "kind": kind,
        "serializer": serializer,
        "ignore": ignore,
    }
    if name is not None:
        dynamodel["name"] = name
    if roles is not None:
        dynamodel["roles"] = list(roles)

    return field(default=default, default_factory=default_factory, metadata={"dynamodel": dynamodel})


def item_state() -> Any:
    return field(
        default_factory=ItemState,
        compare=False,
        repr=False,
        metadata={"dynamodel": {"state": True}},
    )


def index(field_name: str, *, projection: Projection | None = None) -> IndexSpec:
    return IndexSpec(field=field_name, projection=projection or Projection.all())


def default_table_name(model_type: type[Any]) -> str:
    name = model_type.__name__.lower()
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return f"{name}es"
    if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
        return f"{name[:-1]}ies"
    return f"{name}s"


@dataclass(frozen=True)
class ModelDefinition[T]:
    model_type: type[T]
    table_name: str
    hash_key: AttributeDefinition
    range_key: AttributeDefinition | None
    attributes: Mapping[str, AttributeDefinition]
    indexes: tuple[IndexDefinition, ...]
    state_field: str
    throughput: Throughput | None = None

    @classmethod
    def from_dataclass(
        cls,
        model_type: type[T],
        *,
        table_name: str | None = None,
        indexes: Sequence[IndexSpec] = (),
        throughput: Throughput | None = None,
    ) -> ModelDefinition[T]:
        if not is_dataclass(model_type):
            raise ModelDefinitionError("model_type must be a dataclass")

        attributes: dict[str, AttributeDefinition] = {}
        hash_fields: list[str] = []
        range_fields: list[str] = []
        state_fields: list[str] = []

        for dc_field in fields(model_type):
            opts = cast(dict[str, Any], dc_field.metadata.get("dynamodel", {}))
            if opts.get("state"):
                state_fields.append(dc_field.name)
                continue
            if bool(opts.get("ignore", False)):
                continue

            kind = cast(str, opts.get("kind", "string"))
            if kind not in ATTRIBUTE_KINDS:
                raise ModelDefinitionError(f"unknown attribute kind for {dc_field.name}: {kind}")

            roles = tuple(cast(list[str], opts.get("roles", [])))
            if "hash" in roles:
                hash_fields.append(dc_field.name)
            if "range" in roles:
                range_fields.append(dc_field.name)

            default_factory = None if dc_field.default_factory is MISSING else dc_field.default_factory
            attributes[dc_field.name] = AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=cast(str, opts.get("name", dc_field.name)),
                kind=kind,
                roles=roles,
                serializer=cast(AttributeSerializer | None, opts.get("serializer")),
                default=dc_field.default,
                default_factory=default_factory,
            )

        if len(hash_fields) != 1:
            raise ModelDefinitionError(f"model must define exactly one hash key field (found {len(hash_fields)})")
        if len(range_fields) > 1:
            raise ModelDefinitionError(
                f"model must define at most one range key field (found {len(range_fields)})"
            )
        if len(state_fields) != 1:
            raise ModelDefinitionError(
                f"model must declare exactly one item_state() field (found {len(state_fields)})"
            )

        hash_key = attributes[hash_fields[0]]
        range_key = attributes[range_fields[0]] if range_fields else None
        for key_def in (hash_key, range_key):
            if key_def is not None and key_def.kind not in _KEY_TYPES:
                raise ModelDefinitionError(f"key attribute must be S/N/B: {key_def.python_name} ({key_def.kind})")

        resolved_indexes: list[IndexDefinition] = []
        seen: set[str] = set()
        for spec in indexes:
            if spec.field in seen:
                raise ModelDefinitionError(f"duplicate index field: {spec.field}")
            seen.add(spec.field)

            attr_def = attributes.get(spec.field)
            if attr_def is None:
                raise ModelDefinitionError(f"index on unknown field: {spec.field}")
            if attr_def is hash_key or attr_def is range_key:
                raise ModelDefinitionError(f"index field is already a table key: {spec.field}")

            resolved_indexes.append(
                IndexDefinition(
                    field=spec.field,
                    attribute_name=attr_def.attribute_name,
                    type=attr_def.key_type,
                    projection=spec.projection,
                )
            )

        return cls(
            model_type=model_type,
            table_name=table_name or default_table_name(model_type),
            hash_key=hash_key,
            range_key=range_key,
            attributes=attributes,
            indexes=tuple(resolved_indexes),
            state_field=state_fields[0],
            throughput=throughput,
        )

    def attribute(self, name: str) -> AttributeDefinition | None:
        return self.attributes.get(name)

    def index_for(self, field_name: str) -> IndexDefinition | None:
        for idx in self.indexes:
            if idx.field == field_name:
                return idx
        return None

    def state_of(self, item: T) -> ItemState:
        state = getattr(item, self.state_field)
        if not isinstance(state, ItemState):
            raise ModelDefinitionError(f"{self.state_field} must hold an ItemState")
        return state

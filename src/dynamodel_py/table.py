from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Any, Literal

from botocore.exceptions import ClientError

from . import schema
from .codec import dump_field, is_blank, undump_field
from .conditions import Condition
from .config import DynamodelConfig
from .criteria import Chain, conditions_from_mapping
from .errors import ConditionalCheckFailedError, DynamodelPyError, ValidationError
from .gateway import StoreGateway
from .keys import KeyDescriptor, identifier_from, resolve_key
from .model import AttributeDefinition, ModelDefinition
from .runtime import get_dynamodb_client
from .tracking import BeforeCreate, BeforeDestroy, BeforeSave, BeforeUpdate

logger = logging.getLogger(__name__)

MAX_ITEM_SIZE = 65536

type ConditionsArg = Mapping[str, Any] | Sequence[Condition] | None


@dataclass(frozen=True)
class WriteResult:
    status: Literal["ok", "conflict", "error"]
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class Table[T]:
    def __init__(
        self,
        model: ModelDefinition[T],
        *,
        client: Any | None = None,
        config: DynamodelConfig | None = None,
        table_name: str | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or DynamodelConfig.from_env()
        if table_name is None:
            table_name = self._config.table_name(model.table_name)
        if not table_name:
            raise ValueError("table_name is required (or set ModelDefinition.table_name)")

        self._model = model
        self._table_name = table_name
        self._gateway = StoreGateway(client or get_dynamodb_client(self._config), sleep=sleep)
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id
        self._sleep = sleep
        self._table_ready = False

    @property
    def model(self) -> ModelDefinition[T]:
        return self._model

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def gateway(self) -> StoreGateway:
        return self._gateway

    @property
    def config(self) -> DynamodelConfig:
        return self._config

    # Table lifecycle

    def ensure_table(self) -> None:
        if self._table_ready:
            return
        schema.ensure_table(
            self._model,
            self._gateway,
            table_name=self._table_name,
            throughput=self._model.throughput or self._config.throughput,
            sleep=self._sleep,
        )
        self._table_ready = True

    # Construction

    def new(self, **attrs: Any) -> T:
        values, passthrough, extras = self._split(attrs)
        obj = self._model.model_type(**values, **passthrough)
        self._model.state_of(obj).extras.update(extras)
        return obj

    def create(self, **attrs: Any) -> T:
        return self.save(self.new(**attrs))

    def from_database(self, raw: Mapping[str, Any]) -> T:
        undumped = self.undump(raw)
        values = {name: undumped.pop(name) for name in self._model.attributes}
        obj = self._model.model_type(**values)

        state = self._model.state_of(obj)
        state.extras = undumped
        state.commit(self._values(obj))
        return obj

    # Marshalling

    def undump(self, raw: Mapping[str, Any] | None) -> dict[str, Any]:
        incoming = dict(raw or {})
        out: dict[str, Any] = {}
        for name, attr in self._model.attributes.items():
            out[name] = undump_field(incoming.pop(attr.attribute_name, None), attr)
        for name, value in incoming.items():
            out.setdefault(name, value)
        return out

    def dump(self, obj: T) -> dict[str, Any]:
        state = self._model.state_of(obj)
        current = self._values(obj)
        changed = None if state.new_record else state.changes(current)

        out: dict[str, Any] = {}
        for name, attr in self._model.attributes.items():
            if changed is None or name in changed:
                out[attr.attribute_name] = dump_field(current[name], attr)
        return out

    def key_of(self, obj: T) -> Any:
        state = self._model.state_of(obj)
        if state.new_record:
            return identifier_from(self._model, self._values(obj))
        return identifier_from(self._model, state.committed)

    def key_descriptor(self, obj: T) -> KeyDescriptor:
        return resolve_key(self._model, self.key_of(obj))

    # Writes

    def save(self, obj: T) -> T:
        if self._config.auto_create_tables:
            self.ensure_table()

        state = self._model.state_of(obj)
        if state.new_record:
            if isinstance(obj, BeforeCreate):
                obj.before_create()
            self._stamp(obj, "created_at", only_if_blank=True)
            self._persist(obj, creating=True)
        else:
            self._persist(obj, creating=False)
        return obj

    def update_or_raise(self, obj: T, conditions: ConditionsArg = None) -> T:
        state = self._model.state_of(obj)
        if state.new_record:
            raise ValidationError(f"cannot update an unsaved {self._model.model_type.__name__}; use save()")

        if isinstance(obj, BeforeUpdate):
            obj.before_update()
        self._stamp(obj, "updated_at")

        expected = self._committed_key_conditions(obj) + self._extra_conditions(conditions)
        self._write_update(obj, expected)
        return obj

    def update(self, obj: T, conditions: ConditionsArg = None) -> bool:
        try:
            self.update_or_raise(obj, conditions)
        except ConditionalCheckFailedError:
            return False
        return True

    def try_update(self, obj: T, conditions: ConditionsArg = None) -> WriteResult:
        try:
            self.update_or_raise(obj, conditions)
        except ConditionalCheckFailedError as err:
            return WriteResult(status="conflict", error=err)
        except (DynamodelPyError, ClientError) as err:
            return WriteResult(status="error", error=err)
        return WriteResult(status="ok")

    def update_attributes(self, obj: T, **attrs: Any) -> T:
        for name, value in attrs.items():
            if not hasattr(obj, name):
                raise ValidationError(f"{self._model.model_type.__name__} has no attribute {name}")
            setattr(obj, name, value)
        return self.save(obj)

    def touch(self, obj: T, name: str | None = None) -> T:
        """Save ``obj``, stamping ``updated_at`` and optionally another timestamp attribute."""
        if name is not None:
            attr = self._model.attribute(name)
            if attr is None:
                raise ValidationError(f"{self._model.model_type.__name__} has no attribute {name}")
            setattr(obj, name, self._timestamp_for(attr))
        return self.save(obj)

    def destroy(self, obj: T) -> T:
        self._run_destroy_hook(obj)
        return self.delete(obj)

    def delete(self, obj: T) -> T:
        self._gateway.delete_item(self._table_name, self.key_descriptor(obj))
        return obj

    # Reads

    def find(self, *ids: Any, consistent_read: bool = False) -> T | list[T] | None:
        if len(ids) == 1 and not isinstance(ids[0], list):
            return self.find_by_id(ids[0], consistent_read=consistent_read)
        if (
            self._model.range_key is not None
            and len(ids) == 2
            and not isinstance(ids[0], (tuple, list))
        ):
            return self.find_by_id((ids[0], ids[1]), consistent_read=consistent_read)

        identifiers = ids[0] if len(ids) == 1 else ids
        return self.find_all(identifiers, consistent_read=consistent_read)

    def find_by_id(self, identifier: Any, *, consistent_read: bool = False) -> T | None:
        raw = self._gateway.get_item(
            self._table_name,
            resolve_key(self._model, identifier),
            consistent_read=consistent_read,
        )
        if raw is None:
            return None
        return self.from_database(raw)

    def find_all(self, identifiers: Sequence[Any], *, consistent_read: bool = False) -> list[T]:
        keys: list[KeyDescriptor] = []
        seen: set[tuple[Any, ...]] = set()
        for identifier in identifiers:
            key = resolve_key(self._model, identifier)
            marker = tuple((name, repr(kv.value)) for name, kv in key.items())
            if marker in seen:
                continue
            seen.add(marker)
            keys.append(key)

        items = self._gateway.batch_get(self._table_name, keys, consistent_read=consistent_read)
        return [self.from_database(item) for item in items]

    def find_by(self, **attrs: Any) -> T | None:
        return self.where(**attrs).first()

    def find_all_by(self, **attrs: Any) -> list[T]:
        return self.where(**attrs).all()

    def exists(self, id_or_conditions: Any) -> bool:
        if isinstance(id_or_conditions, Mapping):
            return self.where(id_or_conditions).first() is not None
        return bool(self.find(id_or_conditions))

    def where(self, mapping: Mapping[str, Any] | None = None, **conditions: Any) -> Chain[T]:
        return Chain(self).where(mapping, **conditions)

    def all(self) -> list[T]:
        return Chain(self).all()

    def count(self, mapping: Mapping[str, Any] | None = None, **conditions: Any) -> int:
        return self.where(mapping, **conditions).count()

    # Internals

    def _values(self, obj: T) -> dict[str, Any]:
        return {name: getattr(obj, name) for name in self._model.attributes}

    def _split(self, attrs: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        init_names = {f.name for f in fields(self._model.model_type) if f.init}
        values = {name: undump_field(attrs.get(name), attr) for name, attr in self._model.attributes.items()}

        passthrough: dict[str, Any] = {}
        extras: dict[str, Any] = {}
        for name, value in attrs.items():
            if name in values:
                continue
            if name in init_names and name != self._model.state_field:
                passthrough[name] = value
            else:
                extras[name] = value
        return values, passthrough, extras

    def _run_destroy_hook(self, obj: T) -> None:
        if isinstance(obj, BeforeDestroy):
            obj.before_destroy()

    def _timestamp_for(self, attr: AttributeDefinition) -> Any:
        now = self._clock()
        if attr.kind == "integer":
            return int(now.timestamp())
        if attr.kind == "float":
            return now.timestamp()
        if attr.kind == "string":
            return now.isoformat()
        return now

    def _stamp(self, obj: T, name: str, *, only_if_blank: bool = False) -> None:
        attr = self._model.attribute(name)
        if attr is None:
            return
        if only_if_blank and not is_blank(getattr(obj, name)):
            return
        setattr(obj, name, self._timestamp_for(attr))

    def _assign_keys(self, obj: T) -> None:
        hash_key = self._model.hash_key
        if is_blank(getattr(obj, hash_key.python_name)):
            if hash_key.key_type != "S":
                raise ValidationError(f"hash key {hash_key.python_name} is empty and cannot be generated")
            setattr(obj, hash_key.python_name, self._id_factory())

        range_key = self._model.range_key
        if range_key is not None and is_blank(getattr(obj, range_key.python_name)):
            raise ValidationError(f"range key {range_key.python_name} is empty")

    def _check_sizes(self, dumped: Mapping[str, Any]) -> None:
        for name, value in dumped.items():
            if value is None:
                continue
            size = len(str(value).encode("utf-8"))
            if size > MAX_ITEM_SIZE:
                logger.warning(
                    f"{self._table_name}: the {name} attribute has a size of {size} bytes; "
                    f"items larger than {MAX_ITEM_SIZE} bytes cannot be stored"
                )

    def _persist(self, obj: T, *, creating: bool) -> None:
        if isinstance(obj, BeforeSave):
            obj.before_save()
        self._stamp(obj, "updated_at")
        self._assign_keys(obj)

        if not creating:
            self._write_update(obj, self._committed_key_conditions(obj))
            return

        dumped = self.dump(obj)
        self._check_sizes(dumped)

        expected = [Condition.null(self._model.hash_key.attribute_name)]
        if self._model.range_key is not None:
            expected.append(Condition.null(self._model.range_key.attribute_name))

        self._gateway.put_item(self._table_name, dumped, expected=expected)
        self._model.state_of(obj).commit(self._values(obj))

    def _write_update(self, obj: T, expected: list[Condition]) -> None:
        state = self._model.state_of(obj)
        if identifier_from(self._model, self._values(obj)) != identifier_from(self._model, state.committed):
            raise ValidationError(
                f"cannot change the key of a persisted {self._model.model_type.__name__}; "
                "create a new record and destroy the old one"
            )
        dumped = self.dump(obj)
        self._check_sizes(dumped)

        returned = self._gateway.update_item(
            self._table_name,
            resolve_key(self._model, identifier_from(self._model, state.committed)),
            dumped,
            expected=expected,
        )
        if returned:
            self._refresh(obj, returned)
        state.commit(self._values(obj))

    def _refresh(self, obj: T, returned: Mapping[str, Any]) -> None:
        undumped = self.undump(returned)
        for name in self._model.attributes:
            setattr(obj, name, undumped.pop(name))
        self._model.state_of(obj).extras = undumped

    def _committed_key_conditions(self, obj: T) -> list[Condition]:
        state = self._model.state_of(obj)
        key = resolve_key(self._model, identifier_from(self._model, state.committed))
        return [Condition(field=name, op="EQ", values=(kv.value,), wire_type=kv.type) for name, kv in key.items()]

    def _extra_conditions(self, conditions: ConditionsArg) -> list[Condition]:
        if conditions is None:
            return []
        if isinstance(conditions, Mapping):
            return list(conditions_from_mapping(self._model, conditions, strict=True).values())
        return list(conditions)

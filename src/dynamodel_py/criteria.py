from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .codec import dump_field
from .conditions import Condition, parse_comparison_key
from .errors import InvalidQueryError
from .keys import KeyDescriptor, resolve_key
from .model import AttributeDefinition, ModelDefinition

if TYPE_CHECKING:
    from .table import Table

logger = logging.getLogger(__name__)

# Comparisons the store accepts on a range key inside KeyConditions.
KEY_CONDITION_OPERATORS = frozenset({"EQ", "LE", "LT", "GE", "GT", "BEGINS_WITH", "BETWEEN"})


def condition_for(attr: AttributeDefinition, op: str, value: Any) -> Condition:
    """Build a wire-ready condition on ``attr``, dumping operands through the codec."""
    field_name = attr.attribute_name
    if op in {"NULL", "NOT_NULL"}:
        return Condition(field=field_name, op=op)

    if op in {"CONTAINS", "NOT_CONTAINS"} and attr.kind in {"set", "array"}:
        return Condition(field=field_name, op=op, values=(value,))

    operands = list(value) if op in {"IN", "BETWEEN"} else [value]
    dumped: list[Any] = []
    for operand in operands:
        out = dump_field(operand, attr)
        if out is None:
            raise InvalidQueryError(f"{op} on {attr.python_name} requires a non-empty value")
        dumped.append(out)
    return Condition(field=field_name, op=op, values=tuple(dumped), wire_type=attr.scalar_type)


def _duplicate_message(name: str) -> str:
    return f"{name} already has a condition; use between for a range"


def conditions_from_mapping(
    model: ModelDefinition[Any],
    conditions: Mapping[str, Any],
    *,
    strict: bool = False,
) -> dict[str, Condition]:
    out: dict[str, Condition] = {}
    for key, value in conditions.items():
        field_name, op = parse_comparison_key(key.replace("__", "."))
        attr = model.attribute(field_name)
        if attr is None:
            if strict:
                raise InvalidQueryError(f"{model.model_type.__name__} has no attribute {field_name}")
            logger.warning(f"ignoring condition on undeclared attribute {model.model_type.__name__}.{field_name}")
            continue
        if attr.python_name in out:
            raise InvalidQueryError(_duplicate_message(attr.python_name))
        out[attr.python_name] = condition_for(attr, op, value)
    return out


@dataclass(frozen=True)
class QueryPlan:
    use_query: bool
    index_name: str | None = None


class Chain[T]:
    """Accumulates conditions for one model and runs them as a query or a scan."""

    def __init__(self, table: Table[T]) -> None:
        self._table = table
        self._conditions: dict[str, Condition] = {}
        self._consistent = False
        self._batch_size: int | None = None
        self._start: Any | None = None
        self._scan_index_forward = False
        self._select: tuple[str, ...] | None = None

    @property
    def conditions(self) -> dict[str, Condition]:
        return dict(self._conditions)

    def where(self, mapping: Mapping[str, Any] | None = None, **conditions: Any) -> Chain[T]:
        merged: dict[str, Any] = dict(mapping or {})
        merged.update(conditions)
        added = conditions_from_mapping(self._table.model, merged)
        for name in added:
            if name in self._conditions:
                raise InvalidQueryError(_duplicate_message(name))
        self._conditions.update(added)
        return self

    def consistent(self) -> Chain[T]:
        self._consistent = True
        return self

    def batch(self, size: int) -> Chain[T]:
        if self._table.config.partitioning:
            raise InvalidQueryError("cannot batch calls when using partitioning")
        if size <= 0:
            raise InvalidQueryError("batch size must be > 0")
        self._batch_size = size
        return self

    def start(self, identifier: Any) -> Chain[T]:
        self._start = identifier
        return self

    def scan_index_forward(self, forward: bool) -> Chain[T]:
        self._scan_index_forward = forward
        return self

    def select(self, *names: str) -> Chain[T]:
        model = self._table.model
        wire_names: list[str] = []
        for name in names:
            attr = model.attribute(name)
            if attr is None:
                raise InvalidQueryError(f"{model.model_type.__name__} has no attribute {name}")
            wire_names.append(attr.attribute_name)
        self._select = tuple(wire_names)
        return self

    def plan(self) -> QueryPlan:
        model = self._table.model
        if model.range_key is None:
            return QueryPlan(use_query=False)

        hash_name = model.hash_key.python_name
        hash_cond = self._conditions.get(hash_name)
        if hash_cond is None or hash_cond.op != "EQ":
            return QueryPlan(use_query=False)

        keys = set(self._conditions)
        if keys == {hash_name}:
            return QueryPlan(use_query=True)
        if len(keys) != 2:
            return QueryPlan(use_query=False)

        (other,) = keys - {hash_name}
        if self._conditions[other].op not in KEY_CONDITION_OPERATORS:
            return QueryPlan(use_query=False)
        if other == model.range_key.python_name:
            return QueryPlan(use_query=True)

        idx = model.index_for(other)
        if idx is None:
            return QueryPlan(use_query=False)
        return QueryPlan(use_query=True, index_name=idx.index_name(self._table.table_name))

    def is_range_query(self) -> bool:
        return self.plan().use_query

    # Terminal operations

    def records(self) -> Iterator[T]:
        for raw in self._fetch(limit=None):
            yield self._table.from_database(raw)

    def each(self) -> Iterator[T]:
        return self.records()

    def __iter__(self) -> Iterator[T]:
        return self.each()

    def all(self) -> list[T]:
        return list(self.records())

    def limit(self, n: int) -> list[T]:
        return [self._table.from_database(raw) for raw in self._fetch(limit=n)]

    def first(self) -> T | None:
        found = self.limit(1)
        return found[0] if found else None

    def count(self) -> int:
        plan = self._checked_plan()
        gateway = self._table.gateway
        conditions = list(self._conditions.values())
        if plan.use_query:
            return gateway.query_count(
                self._table.table_name,
                conditions,
                index_name=plan.index_name,
                start_key=self._start_key(),
                consistent_read=self._consistent,
            )
        return gateway.scan_count(self._table.table_name, conditions, start_key=self._start_key())

    def destroy_all(self) -> int:
        keys: list[KeyDescriptor] = []
        for obj in self.records():
            self._table._run_destroy_hook(obj)
            keys.append(self._table.key_descriptor(obj))
        return self._table.gateway.batch_delete(self._table.table_name, keys)

    def delete_all(self) -> int:
        model = self._table.model
        key_names = [model.hash_key.attribute_name]
        if model.range_key is not None:
            key_names.append(model.range_key.attribute_name)

        keys = [self._table.key_descriptor(self._table.from_database(raw)) for raw in self._fetch(None, key_names)]
        return self._table.gateway.batch_delete(self._table.table_name, keys)

    # Internals

    def _start_key(self) -> KeyDescriptor | None:
        if self._start is None:
            return None
        return resolve_key(self._table.model, self._start)

    def _checked_plan(self) -> QueryPlan:
        plan = self.plan()
        if plan.use_query:
            return plan

        if self._consistent:
            raise InvalidQueryError("consistent read is not supported by the scan operation")
        if self._table.config.warn_on_scan:
            self._warn_scan()
        return plan

    def _warn_scan(self) -> None:
        model = self._table.model
        queried = sorted(self._conditions) or sorted(model.attributes)
        logger.warning(
            f"{model.model_type.__name__} query on [{', '.join(queried)}] is not covered by a key or index "
            f"and falls back to a full scan of {self._table.table_name}; declare a range key or index on one "
            f"of these attributes to query instead"
        )

    def _fetch(self, limit: int | None, attributes: Sequence[str] | None = None) -> Iterator[dict[str, Any]]:
        if limit is not None and limit <= 0:
            return iter(())

        plan = self._checked_plan()
        gateway = self._table.gateway
        conditions = list(self._conditions.values())
        selected = attributes or self._select

        if plan.use_query:
            return gateway.query(
                self._table.table_name,
                conditions,
                index_name=plan.index_name,
                limit=limit,
                start_key=self._start_key(),
                attributes=selected,
                page_size=self._batch_size,
                scan_index_forward=self._scan_index_forward,
                consistent_read=self._consistent,
            )
        return gateway.scan(
            self._table.table_name,
            conditions,
            limit=limit,
            start_key=self._start_key(),
            attributes=selected,
            page_size=self._batch_size,
        )

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .codec import attribute_value
from .errors import ValidationError

OPERATORS = (
    "EQ",
    "NE",
    "LE",
    "LT",
    "GE",
    "GT",
    "NOT_NULL",
    "NULL",
    "CONTAINS",
    "NOT_CONTAINS",
    "BEGINS_WITH",
    "IN",
    "BETWEEN",
)

_NO_VALUE = frozenset({"NULL", "NOT_NULL"})


def parse_comparison_key(key: str) -> tuple[str, str]:
    """Split ``"created_at.gt"`` into ``("created_at", "GT")``.

    A suffix that is not an operator is part of the attribute name.
    """
    head, sep, tail = key.rpartition(".")
    if sep and head and tail.upper() in OPERATORS:
        return head, tail.upper()
    return key, "EQ"


@dataclass(frozen=True)
class Condition:
    field: str
    op: str = "EQ"
    values: tuple[Any, ...] = ()
    wire_type: str | None = None

    @staticmethod
    def eq(field: str, value: Any) -> Condition:
        return Condition(field=field, op="EQ", values=(value,))

    @staticmethod
    def ne(field: str, value: Any) -> Condition:
        return Condition(field=field, op="NE", values=(value,))

    @staticmethod
    def lt(field: str, value: Any) -> Condition:
        return Condition(field=field, op="LT", values=(value,))

    @staticmethod
    def le(field: str, value: Any) -> Condition:
        return Condition(field=field, op="LE", values=(value,))

    @staticmethod
    def gt(field: str, value: Any) -> Condition:
        return Condition(field=field, op="GT", values=(value,))

    @staticmethod
    def ge(field: str, value: Any) -> Condition:
        return Condition(field=field, op="GE", values=(value,))

    @staticmethod
    def between(field: str, low: Any, high: Any) -> Condition:
        return Condition(field=field, op="BETWEEN", values=(low, high))

    @staticmethod
    def begins_with(field: str, prefix: Any) -> Condition:
        return Condition(field=field, op="BEGINS_WITH", values=(prefix,))

    @staticmethod
    def contains(field: str, value: Any) -> Condition:
        return Condition(field=field, op="CONTAINS", values=(value,))

    @staticmethod
    def not_contains(field: str, value: Any) -> Condition:
        return Condition(field=field, op="NOT_CONTAINS", values=(value,))

    @staticmethod
    def in_(field: str, values: Sequence[Any]) -> Condition:
        return Condition(field=field, op="IN", values=tuple(values))

    @staticmethod
    def null(field: str) -> Condition:
        return Condition(field=field, op="NULL")

    @staticmethod
    def not_null(field: str) -> Condition:
        return Condition(field=field, op="NOT_NULL")

    def to_wire(self) -> dict[str, Any]:
        op = self.op.upper()
        if op not in OPERATORS:
            raise ValidationError(f"unsupported comparison operator: {self.op}")

        entry: dict[str, Any] = {"ComparisonOperator": op}
        vals = self.values
        if op in _NO_VALUE:
            if vals:
                raise ValidationError(f"{op} on {self.field} does not take a value")
            return entry
        if op == "BETWEEN" and len(vals) != 2:
            raise ValidationError(f"BETWEEN on {self.field} requires two values")
        if op == "IN" and not vals:
            raise ValidationError(f"IN on {self.field} requires at least one value")
        if op not in {"IN", "BETWEEN"} and len(vals) != 1:
            raise ValidationError(f"{op} on {self.field} requires one value")

        entry["AttributeValueList"] = [attribute_value(v, self.wire_type) for v in vals]
        return entry


def encode_conditions(conditions: Iterable[Condition]) -> dict[str, Any]:
    return {cond.field: cond.to_wire() for cond in conditions}

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _assert_match(expected: Any, actual: Any, *, path: str) -> None:
    if expected is ANY:
        return

    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        for k, v in expected.items():
            if k not in actual:
                raise AssertionError(f"{path}: missing key {k!r}")
            _assert_match(v, actual[k], path=f"{path}.{k}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            _assert_match(e, a, path=f"{path}[{i}]")
        return

    if expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


@dataclass(frozen=True)
class ExpectedCall:
    method: str
    expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None
    response: Mapping[str, Any] | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Scripted client: every call must match the next expectation, in order."""

    def __init__(self) -> None:
        self._expected: list[ExpectedCall] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._expected.append(ExpectedCall(method=method, expected=expected, response=response, error=error))

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        self.calls.append((method, dict(req)))
        if not self._expected:
            raise AssertionError(f"unexpected call: {method}")

        call = self._expected.pop(0)
        if call.method != method:
            raise AssertionError(f"expected {call.method}, got {method}")

        if callable(call.expected):
            call.expected(req)
        elif call.expected is not None:
            _assert_match(dict(call.expected), req, path=method)

        if call.error is not None:
            raise call.error

        return dict(call.response or {})

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("put_item", kwargs)

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("get_item", kwargs)

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("update_item", kwargs)

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("delete_item", kwargs)

    def query(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("query", kwargs)

    def scan(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("scan", kwargs)

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("batch_get_item", kwargs)

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("batch_write_item", kwargs)

    def list_tables(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("list_tables", kwargs)

    def create_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("create_table", kwargs)

    def delete_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("delete_table", kwargs)

    def describe_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("describe_table", kwargs)


# In-memory store


def _py(av: Mapping[str, Any]) -> Any:
    ((tag, raw),) = av.items()
    if tag == "S":
        return str(raw)
    if tag == "N":
        return Decimal(str(raw))
    if tag == "B":
        return bytes(raw)
    if tag == "SS":
        return frozenset(str(v) for v in raw)
    if tag == "NS":
        return frozenset(Decimal(str(v)) for v in raw)
    if tag == "BS":
        return frozenset(bytes(v) for v in raw)
    return raw


def _comparable(a: Any, b: Any) -> bool:
    return type(a) is type(b) and not isinstance(a, frozenset)


def _matches(av: Mapping[str, Any] | None, cond: Mapping[str, Any]) -> bool:
    op = str(cond.get("ComparisonOperator", ""))
    vals = [_py(v) for v in cond.get("AttributeValueList", [])]
    actual = None if av is None else _py(av)

    if op == "NULL":
        return actual is None
    if op == "NOT_NULL":
        return actual is not None
    if actual is None:
        return op in {"NE", "NOT_CONTAINS"}

    if op == "EQ":
        return actual == vals[0]
    if op == "NE":
        return actual != vals[0]
    if op in {"LT", "LE", "GT", "GE"}:
        if not _comparable(actual, vals[0]):
            return False
        if op == "LT":
            return actual < vals[0]
        if op == "LE":
            return actual <= vals[0]
        if op == "GT":
            return actual > vals[0]
        return actual >= vals[0]
    if op == "BEGINS_WITH":
        return _comparable(actual, vals[0]) and actual.startswith(vals[0])
    if op in {"CONTAINS", "NOT_CONTAINS"}:
        if isinstance(actual, frozenset):
            found = vals[0] in actual
        elif _comparable(actual, vals[0]) and isinstance(actual, (str, bytes)):
            found = vals[0] in actual
        else:
            found = False
        return found if op == "CONTAINS" else not found
    if op == "IN":
        return actual in vals
    if op == "BETWEEN":
        return _comparable(actual, vals[0]) and vals[0] <= actual <= vals[1]
    raise client_error("ValidationException", f"unsupported ComparisonOperator {op}")


@dataclass
class _MemTable:
    name: str
    hash_attr: str
    range_attr: str | None
    request: dict[str, Any]
    index_ranges: dict[str, str] = field(default_factory=dict)
    items: dict[tuple[Any, ...], dict[str, Any]] = field(default_factory=dict)

    def key_of(self, attrs: Mapping[str, Any]) -> tuple[Any, ...]:
        if self.hash_attr not in attrs:
            raise client_error("ValidationException", f"missing key attribute {self.hash_attr}")
        if self.range_attr is None:
            return (_py(attrs[self.hash_attr]),)
        if self.range_attr not in attrs:
            raise client_error("ValidationException", f"missing key attribute {self.range_attr}")
        return (_py(attrs[self.hash_attr]), _py(attrs[self.range_attr]))

    def key_attrs(self, item: Mapping[str, Any], index_range: str | None = None) -> dict[str, Any]:
        names = [self.hash_attr]
        if self.range_attr is not None:
            names.append(self.range_attr)
        if index_range is not None:
            names.append(index_range)
        return {n: copy.deepcopy(item[n]) for n in names if n in item}

    def describe(self) -> dict[str, Any]:
        desc = {k: copy.deepcopy(v) for k, v in self.request.items() if k != "TableName"}
        desc["TableName"] = self.name
        desc["TableStatus"] = "ACTIVE"
        desc["ItemCount"] = len(self.items)
        return desc


class InMemoryDynamoDBClient:
    """A small stateful store speaking the legacy parameter API.

    ``page_size`` caps how many items one scan or query page evaluates, so
    tests can exercise pagination without large fixtures. Count-only requests
    are never paged.
    """

    def __init__(self, *, page_size: int | None = None) -> None:
        self.page_size = page_size
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._tables: dict[str, _MemTable] = {}

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def items(self, table_name: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(i) for i in self._table(table_name, "Items").items.values()]

    def _record(self, method: str, req: Mapping[str, Any]) -> None:
        self.calls.append((method, copy.deepcopy(dict(req))))

    def _table(self, name: str, operation: str) -> _MemTable:
        table = self._tables.get(name)
        if table is None:
            raise client_error("ResourceNotFoundException", f"Requested resource not found: {name}", operation)
        return table

    def _check_expected(self, current: Mapping[str, Any] | None, expected: Mapping[str, Any] | None, op: str) -> None:
        for name, cond in (expected or {}).items():
            av = None if current is None else current.get(name)
            if not _matches(av, cond):
                raise client_error("ConditionalCheckFailedException", "The conditional request failed", op)

    # Tables

    def list_tables(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("list_tables", kwargs)
        names = sorted(self._tables)
        start = kwargs.get("ExclusiveStartTableName")
        if start is not None:
            names = [n for n in names if n > start]

        size = kwargs.get("Limit") or self.page_size
        if size is None or len(names) <= size:
            return {"TableNames": names}
        page = names[:size]
        return {"TableNames": page, "LastEvaluatedTableName": page[-1]}

    def create_table(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("create_table", kwargs)
        name = str(kwargs["TableName"])
        if name in self._tables:
            raise client_error("ResourceInUseException", f"Table already exists: {name}", "CreateTable")

        hash_attr = ""
        range_attr: str | None = None
        for entry in kwargs["KeySchema"]:
            if entry["KeyType"] == "HASH":
                hash_attr = entry["AttributeName"]
            else:
                range_attr = entry["AttributeName"]

        table = _MemTable(name=name, hash_attr=hash_attr, range_attr=range_attr, request=dict(kwargs))
        for idx in kwargs.get("LocalSecondaryIndexes", []):
            for entry in idx["KeySchema"]:
                if entry["KeyType"] == "RANGE":
                    table.index_ranges[idx["IndexName"]] = entry["AttributeName"]

        self._tables[name] = table
        return {"TableDescription": table.describe()}

    def describe_table(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("describe_table", kwargs)
        return {"Table": self._table(str(kwargs["TableName"]), "DescribeTable").describe()}

    def delete_table(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("delete_table", kwargs)
        table = self._table(str(kwargs["TableName"]), "DeleteTable")
        del self._tables[table.name]
        return {"TableDescription": table.describe()}

    # Items

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("put_item", kwargs)
        table = self._table(str(kwargs["TableName"]), "PutItem")
        item = copy.deepcopy(dict(kwargs["Item"]))
        key = table.key_of(item)

        self._check_expected(table.items.get(key), kwargs.get("Expected"), "PutItem")
        table.items[key] = item
        return {}

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("get_item", kwargs)
        table = self._table(str(kwargs["TableName"]), "GetItem")
        item = table.items.get(table.key_of(kwargs["Key"]))
        if item is None:
            return {}
        return {"Item": self._project(item, kwargs.get("AttributesToGet"))}

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("update_item", kwargs)
        table = self._table(str(kwargs["TableName"]), "UpdateItem")
        key_attrs = dict(kwargs["Key"])
        key = table.key_of(key_attrs)
        current = table.items.get(key)

        self._check_expected(current, kwargs.get("Expected"), "UpdateItem")

        item = copy.deepcopy(current) if current is not None else copy.deepcopy(key_attrs)
        for name, update in (kwargs.get("AttributeUpdates") or {}).items():
            if name in key_attrs:
                raise client_error("ValidationException", f"cannot update key attribute {name}", "UpdateItem")
            action = update.get("Action", "PUT")
            if action == "DELETE":
                item.pop(name, None)
            elif action == "PUT":
                item[name] = copy.deepcopy(update["Value"])
            else:
                raise client_error("ValidationException", f"unsupported action {action}", "UpdateItem")

        table.items[key] = item
        if kwargs.get("ReturnValues") == "ALL_NEW":
            return {"Attributes": copy.deepcopy(item)}
        return {}

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("delete_item", kwargs)
        table = self._table(str(kwargs["TableName"]), "DeleteItem")
        key = table.key_of(kwargs["Key"])
        self._check_expected(table.items.get(key), kwargs.get("Expected"), "DeleteItem")
        table.items.pop(key, None)
        return {}

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("batch_get_item", kwargs)
        responses: dict[str, list[dict[str, Any]]] = {}
        for name, request in kwargs["RequestItems"].items():
            table = self._table(name, "BatchGetItem")
            found = responses.setdefault(name, [])
            for key_attrs in request.get("Keys", []):
                item = table.items.get(table.key_of(key_attrs))
                if item is not None:
                    found.append(self._project(item, request.get("AttributesToGet")))
        return {"Responses": responses, "UnprocessedKeys": {}}

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("batch_write_item", kwargs)
        for name, requests in kwargs["RequestItems"].items():
            table = self._table(name, "BatchWriteItem")
            for request in requests:
                if "DeleteRequest" in request:
                    table.items.pop(table.key_of(request["DeleteRequest"]["Key"]), None)
                elif "PutRequest" in request:
                    item = copy.deepcopy(dict(request["PutRequest"]["Item"]))
                    table.items[table.key_of(item)] = item
        return {"UnprocessedItems": {}}

    # Scan / query

    def scan(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("scan", kwargs)
        table = self._table(str(kwargs["TableName"]), "Scan")
        ordered = sorted(table.items.values(), key=table.key_of)
        filters = kwargs.get("ScanFilter") or {}

        def keep(item: Mapping[str, Any]) -> bool:
            return all(_matches(item.get(n), c) for n, c in filters.items())

        return self._page(table, ordered, keep, kwargs, index_range=None)

    def query(self, **kwargs: Any) -> Mapping[str, Any]:
        self._record("query", kwargs)
        table = self._table(str(kwargs["TableName"]), "Query")
        index_name = kwargs.get("IndexName")
        if index_name is not None and index_name not in table.index_ranges:
            raise client_error("ValidationException", f"unknown index {index_name}", "Query")

        range_attr = table.index_ranges[index_name] if index_name is not None else table.range_attr
        key_conditions = dict(kwargs.get("KeyConditions") or {})
        hash_cond = key_conditions.pop(table.hash_attr, None)
        if hash_cond is None or hash_cond.get("ComparisonOperator") != "EQ":
            raise client_error("ValidationException", "query requires an EQ condition on the hash key", "Query")
        for name in key_conditions:
            if name != range_attr:
                raise client_error("ValidationException", f"{name} is not a key of the queried index", "Query")

        candidates = [
            item
            for item in table.items.values()
            if _matches(item.get(table.hash_attr), hash_cond)
            and (index_name is None or range_attr in item)
        ]

        def order(item: Mapping[str, Any]) -> tuple[Any, ...]:
            if range_attr is None:
                return table.key_of(item)
            return (_py(item[range_attr]), table.key_of(item))

        ordered = sorted(candidates, key=order, reverse=not kwargs.get("ScanIndexForward", True))

        def keep(item: Mapping[str, Any]) -> bool:
            return all(_matches(item.get(n), c) for n, c in key_conditions.items())

        return self._page(table, ordered, keep, kwargs, index_range=table.index_ranges.get(index_name or ""))

    def _page(
        self,
        table: _MemTable,
        ordered: list[dict[str, Any]],
        keep: Callable[[Mapping[str, Any]], bool],
        req: Mapping[str, Any],
        *,
        index_range: str | None,
    ) -> Mapping[str, Any]:
        start = req.get("ExclusiveStartKey")
        if start:
            start_key = table.key_of(start)
            for pos, item in enumerate(ordered):
                if table.key_of(item) == start_key:
                    ordered = ordered[pos + 1 :]
                    break
            else:
                ordered = []

        counting = req.get("Select") == "COUNT"
        size = req.get("Limit") or (None if counting else self.page_size)
        evaluated = ordered if size is None else ordered[:size]
        matched = [item for item in evaluated if keep(item)]

        out: dict[str, Any] = {"Count": len(matched), "ScannedCount": len(evaluated)}
        if not counting:
            out["Items"] = [self._project(item, req.get("AttributesToGet")) for item in matched]
        if size is not None and len(ordered) > size and evaluated:
            out["LastEvaluatedKey"] = table.key_attrs(evaluated[-1], index_range)
        return out

    def _project(self, item: Mapping[str, Any], names: Any) -> dict[str, Any]:
        if not names:
            return copy.deepcopy(dict(item))
        return {n: copy.deepcopy(item[n]) for n in names if n in item}

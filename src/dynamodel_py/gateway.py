from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .codec import attribute_value, decode_item, encode_item
from .conditions import Condition, encode_conditions
from .errors import BatchRetryExceededError, ValidationError
from .keys import KeyDescriptor, encode_key

logger = logging.getLogger(__name__)


def _backoff_seconds(attempt: int) -> float:
    seconds = 0.05 * (2.0 ** (attempt - 1))
    if seconds > 1.0:
        return 1.0
    return seconds


def _chunked[T](items: Sequence[T], size: int) -> Sequence[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


class StoreGateway:
    """Maps structured intents onto the store's wire calls and decodes the results."""

    def __init__(
        self,
        client: Any,
        *,
        max_retries: int = 5,
        sleep: Callable[[float], None] | None = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValidationError("max_retries must be >= 0")
        self._client = client
        self._max_retries = max_retries
        self._sleep = sleep
        self._tables: set[str] | None = None

    @property
    def client(self) -> Any:
        return self._client

    def _call(self, operation: str, **req: Any) -> Mapping[str, Any]:
        logger.debug(f"{operation} {req.get('TableName', '')}".rstrip())
        try:
            return getattr(self._client, operation)(**req)
        except ClientError as err:
            mapped = map_client_error(err)
            if mapped is err:
                raise
            raise mapped from err

    def _wait(self, attempts: int) -> None:
        if self._sleep is not None:
            self._sleep(_backoff_seconds(attempts))

    # Tables

    def list_tables(self) -> list[str]:
        names: list[str] = []
        start: str | None = None
        while True:
            req: dict[str, Any] = {}
            if start is not None:
                req["ExclusiveStartTableName"] = start
            resp = self._call("list_tables", **req)
            names.extend(str(n) for n in resp.get("TableNames", []))
            start = resp.get("LastEvaluatedTableName")
            if not start:
                return names

    def table_names(self, *, refresh: bool = False) -> set[str]:
        if self._tables is None or refresh:
            self._tables = set(self.list_tables())
        return self._tables

    def create_table(self, request: Mapping[str, Any]) -> Mapping[str, Any]:
        resp = self._call("create_table", **dict(request))
        self.table_names().add(str(request["TableName"]))
        return resp

    def describe_table(self, table_name: str) -> dict[str, Any]:
        return dict(self._call("describe_table", TableName=table_name))

    def delete_table(self, table_name: str) -> None:
        self._call("delete_table", TableName=table_name)
        if self._tables is not None:
            self._tables.discard(table_name)

    # Items

    def put_item(
        self,
        table_name: str,
        attributes: Mapping[str, Any],
        *,
        expected: Sequence[Condition] = (),
    ) -> None:
        req: dict[str, Any] = {"TableName": table_name, "Item": encode_item(attributes)}
        if expected:
            req["Expected"] = encode_conditions(expected)
        self._call("put_item", **req)

    def update_item(
        self,
        table_name: str,
        key: KeyDescriptor,
        attributes: Mapping[str, Any],
        *,
        expected: Sequence[Condition] = (),
    ) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        for name, value in attributes.items():
            if name in key:
                continue
            if value is None:
                updates[name] = {"Action": "DELETE"}
            else:
                updates[name] = {"Action": "PUT", "Value": attribute_value(value)}

        req: dict[str, Any] = {
            "TableName": table_name,
            "Key": encode_key(key),
            "ReturnValues": "ALL_NEW",
        }
        if updates:
            req["AttributeUpdates"] = updates
        if expected:
            req["Expected"] = encode_conditions(expected)

        resp = self._call("update_item", **req)
        return decode_item(resp.get("Attributes") or {})

    def delete_item(
        self,
        table_name: str,
        key: KeyDescriptor,
        *,
        expected: Sequence[Condition] = (),
    ) -> None:
        req: dict[str, Any] = {"TableName": table_name, "Key": encode_key(key)}
        if expected:
            req["Expected"] = encode_conditions(expected)
        self._call("delete_item", **req)

    def get_item(
        self,
        table_name: str,
        key: KeyDescriptor,
        *,
        consistent_read: bool = False,
        attributes: Sequence[str] | None = None,
    ) -> dict[str, Any] | None:
        req: dict[str, Any] = {"TableName": table_name, "Key": encode_key(key)}
        if consistent_read:
            req["ConsistentRead"] = True
        if attributes:
            req["AttributesToGet"] = list(attributes)

        item = self._call("get_item", **req).get("Item")
        if not item:
            return None
        return decode_item(item)

    def batch_get(
        self,
        table_name: str,
        keys: Sequence[KeyDescriptor],
        *,
        consistent_read: bool = False,
        attributes: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        if not keys:
            return []

        base_req: dict[str, Any] = {}
        if consistent_read:
            base_req["ConsistentRead"] = True
        if attributes:
            base_req["AttributesToGet"] = list(attributes)

        out: list[dict[str, Any]] = []
        for chunk in _chunked([encode_key(k) for k in keys], 100):
            pending: list[Any] = list(chunk)
            attempts = 0

            while pending:
                resp = self._call("batch_get_item", RequestItems={table_name: dict(base_req, Keys=pending)})
                for item in resp.get("Responses", {}).get(table_name, []):
                    out.append(decode_item(item))

                pending = resp.get("UnprocessedKeys", {}).get(table_name, {}).get("Keys") or []
                if pending:
                    if attempts >= self._max_retries:
                        raise BatchRetryExceededError(operation="batch_get", unprocessed_count=len(pending))
                    attempts += 1
                    self._wait(attempts)

        return out

    def batch_delete(self, table_name: str, keys: Sequence[KeyDescriptor]) -> int:
        requests = [{"DeleteRequest": {"Key": encode_key(k)}} for k in keys]

        for chunk in _chunked(requests, 25):
            pending: list[Any] = list(chunk)
            attempts = 0

            while pending:
                resp = self._call("batch_write_item", RequestItems={table_name: pending})
                pending = resp.get("UnprocessedItems", {}).get(table_name, []) or []
                if pending:
                    if attempts >= self._max_retries:
                        raise BatchRetryExceededError(operation="batch_delete", unprocessed_count=len(pending))
                    attempts += 1
                    self._wait(attempts)

        return len(requests)

    # Scan / query

    def scan(
        self,
        table_name: str,
        conditions: Sequence[Condition] = (),
        *,
        limit: int | None = None,
        start_key: KeyDescriptor | None = None,
        attributes: Sequence[str] | None = None,
        page_size: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        req = self._scan_request(table_name, conditions, start_key=start_key)
        if attributes:
            req["AttributesToGet"] = list(attributes)
        if page_size is not None:
            req["Limit"] = page_size
        return self._paginate("scan", req, limit=limit)

    def scan_count(
        self,
        table_name: str,
        conditions: Sequence[Condition] = (),
        *,
        start_key: KeyDescriptor | None = None,
    ) -> int:
        req = self._scan_request(table_name, conditions, start_key=start_key)
        return int(self._count("scan", req).get("Count", 0))

    def query(
        self,
        table_name: str,
        conditions: Sequence[Condition],
        *,
        index_name: str | None = None,
        limit: int | None = None,
        start_key: KeyDescriptor | None = None,
        attributes: Sequence[str] | None = None,
        page_size: int | None = None,
        scan_index_forward: bool = True,
        consistent_read: bool = False,
    ) -> Iterator[dict[str, Any]]:
        req = self._query_request(
            table_name,
            conditions,
            index_name=index_name,
            start_key=start_key,
            scan_index_forward=scan_index_forward,
            consistent_read=consistent_read,
        )
        if attributes:
            req["AttributesToGet"] = list(attributes)
        if page_size is not None:
            req["Limit"] = page_size
        return self._paginate("query", req, limit=limit)

    def query_count(
        self,
        table_name: str,
        conditions: Sequence[Condition],
        *,
        index_name: str | None = None,
        start_key: KeyDescriptor | None = None,
        consistent_read: bool = False,
    ) -> int:
        req = self._query_request(
            table_name,
            conditions,
            index_name=index_name,
            start_key=start_key,
            consistent_read=consistent_read,
        )
        return int(self._count("query", req).get("Count", 0))

    def _scan_request(
        self,
        table_name: str,
        conditions: Sequence[Condition],
        *,
        start_key: KeyDescriptor | None,
    ) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": table_name}
        if conditions:
            req["ScanFilter"] = encode_conditions(conditions)
        if start_key:
            req["ExclusiveStartKey"] = encode_key(start_key)
        return req

    def _query_request(
        self,
        table_name: str,
        conditions: Sequence[Condition],
        *,
        index_name: str | None,
        start_key: KeyDescriptor | None,
        scan_index_forward: bool = True,
        consistent_read: bool = False,
    ) -> dict[str, Any]:
        if not conditions:
            raise ValidationError("query requires key conditions")

        req: dict[str, Any] = {
            "TableName": table_name,
            "KeyConditions": encode_conditions(conditions),
            "ScanIndexForward": scan_index_forward,
        }
        if index_name is not None:
            req["IndexName"] = index_name
        if consistent_read:
            req["ConsistentRead"] = True
        if start_key:
            req["ExclusiveStartKey"] = encode_key(start_key)
        return req

    def _count(self, operation: str, req: Mapping[str, Any]) -> Mapping[str, Any]:
        count_req = {k: v for k, v in req.items() if k not in {"AttributesToGet", "Limit"}}
        count_req["Select"] = "COUNT"
        return self._call(operation, **count_req)

    def _paginate(
        self,
        operation: str,
        req: dict[str, Any],
        *,
        limit: int | None,
    ) -> Iterator[dict[str, Any]]:
        if limit is not None and limit <= 0:
            return

        counted = self._count(operation, req)
        if int(counted.get("Count", 0)) == 0 and not counted.get("LastEvaluatedKey"):
            return

        remaining = limit
        start = req.get("ExclusiveStartKey")
        while True:
            page_req = dict(req)
            if start:
                page_req["ExclusiveStartKey"] = start

            resp = self._call(operation, **page_req)
            for item in resp.get("Items", []):
                yield decode_item(item)
                if remaining is not None:
                    remaining -= 1
                    if remaining == 0:
                        return

            start = resp.get("LastEvaluatedKey")
            if not start:
                return

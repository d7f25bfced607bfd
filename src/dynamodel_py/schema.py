from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import error_code
from .errors import NotFoundError, ValidationError
from .gateway import StoreGateway
from .model import ModelDefinition, Throughput

logger = logging.getLogger(__name__)


def build_create_table_request(
    model: ModelDefinition[Any],
    *,
    table_name: str | None = None,
    throughput: Throughput | None = None,
) -> dict[str, Any]:
    resolved_table = table_name or model.table_name
    if not resolved_table:
        raise ValueError("table_name is required (or set ModelDefinition.table_name)")

    resolved_throughput = throughput or model.throughput or Throughput()

    hash_attr = model.hash_key.attribute_name
    key_schema = [{"AttributeName": hash_attr, "KeyType": "HASH"}]
    attr_types: dict[str, str] = {hash_attr: model.hash_key.key_type}

    if model.range_key is not None:
        range_attr = model.range_key.attribute_name
        key_schema.append({"AttributeName": range_attr, "KeyType": "RANGE"})
        attr_types[range_attr] = model.range_key.key_type

    if model.indexes and model.range_key is None:
        raise ValidationError(f"local secondary indexes require a range key: {resolved_table}")

    lsis: list[dict[str, Any]] = []
    for idx in model.indexes:
        attr_types[idx.attribute_name] = idx.type

        proj: dict[str, Any] = {"ProjectionType": idx.projection.type}
        if idx.projection.type == "INCLUDE" and idx.projection.fields:
            proj["NonKeyAttributes"] = list(idx.projection.fields)

        lsis.append(
            {
                "IndexName": idx.index_name(resolved_table),
                "KeySchema": [
                    {"AttributeName": hash_attr, "KeyType": "HASH"},
                    {"AttributeName": idx.attribute_name, "KeyType": "RANGE"},
                ],
                "Projection": proj,
            }
        )

    req: dict[str, Any] = {
        "TableName": resolved_table,
        "KeySchema": key_schema,
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_types[name]} for name in sorted(attr_types.keys())
        ],
        "ProvisionedThroughput": resolved_throughput.to_request(),
    }
    if lsis:
        req["LocalSecondaryIndexes"] = lsis
    return req


def ensure_table(
    model: ModelDefinition[Any],
    gateway: StoreGateway,
    *,
    table_name: str | None = None,
    throughput: Throughput | None = None,
    wait_for_active: bool = True,
    wait_timeout_seconds: float = 300.0,
    poll_interval_seconds: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Create the model's table unless the store already lists it.

    Returns True when a create request was issued.
    """
    req = build_create_table_request(model, table_name=table_name, throughput=throughput)
    resolved_table = str(req["TableName"])

    if resolved_table in gateway.table_names():
        return False

    logger.info(f"creating table {resolved_table}")
    try:
        gateway.create_table(req)
    except ClientError as err:
        if error_code(err) != "ResourceInUseException":
            raise
        gateway.table_names().add(resolved_table)

    if wait_for_active:
        _wait_for_table_active(
            gateway,
            resolved_table,
            timeout_seconds=wait_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            sleep=sleep,
        )
    return True


def describe_table(
    model: ModelDefinition[Any],
    gateway: StoreGateway,
    *,
    table_name: str | None = None,
) -> dict[str, Any]:
    resolved_table = table_name or model.table_name
    try:
        return gateway.describe_table(resolved_table)
    except ClientError as err:
        if error_code(err) == "ResourceNotFoundException":
            raise NotFoundError(f"table not found: {resolved_table}") from err
        raise


def delete_table(
    model: ModelDefinition[Any],
    gateway: StoreGateway,
    *,
    table_name: str | None = None,
    ignore_missing: bool = False,
) -> None:
    resolved_table = table_name or model.table_name
    try:
        gateway.delete_table(resolved_table)
    except ClientError as err:
        if ignore_missing and error_code(err) == "ResourceNotFoundException":
            return
        raise


def _wait_for_table_active(
    gateway: StoreGateway,
    table_name: str,
    *,
    timeout_seconds: float,
    poll_interval_seconds: float,
    sleep: Callable[[float], None],
) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            resp = gateway.describe_table(table_name)
        except ClientError as err:
            if error_code(err) != "ResourceNotFoundException":
                raise
            resp = {}

        status = str(resp.get("Table", {}).get("TableStatus", ""))
        if status == "ACTIVE":
            return
        sleep(poll_interval_seconds)

    raise ValidationError(f"timed out waiting for table ACTIVE: {table_name}")

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from botocore.exceptions import ClientError

from dynamodel_py.testkit import (
    ANY,
    FakeDynamoDBClient,
    InMemoryDynamoDBClient,
    client_error,
    fixed_clock,
    no_sleep,
    sequential_ids,
)

TABLE = {
    "TableName": "events",
    "KeySchema": [
        {"AttributeName": "source", "KeyType": "HASH"},
        {"AttributeName": "seq", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [],
    "ProvisionedThroughput": {"ReadCapacityUnits": 1, "WriteCapacityUnits": 1},
}


def _events(page_size: int | None = None) -> InMemoryDynamoDBClient:
    client = InMemoryDynamoDBClient(page_size=page_size)
    client.create_table(**TABLE)
    for seq in (3, 1, 2):
        client.put_item(TableName="events", Item={"source": {"S": "a"}, "seq": {"N": str(seq)}, "kind": {"S": "x"}})
    client.put_item(TableName="events", Item={"source": {"S": "b"}, "seq": {"N": "1"}})
    return client


def test_fake_client_matches_requests_in_order() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "notes", "Item": ANY}, response={})
    client.expect("get_item", error=client_error("ResourceNotFoundException"))

    client.put_item(TableName="notes", Item={"id": {"S": "a"}})
    with pytest.raises(ClientError):
        client.get_item(TableName="notes", Key={})

    client.assert_no_pending()
    assert [name for name, _ in client.calls] == ["put_item", "get_item"]


def test_fake_client_rejects_unexpected_calls() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "notes"})

    with pytest.raises(AssertionError, match="expected put_item"):
        client.delete_item(TableName="notes")
    with pytest.raises(AssertionError, match="unexpected call"):
        client.scan(TableName="notes")


def test_fake_client_reports_mismatches() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"Item": {"id": {"S": "a"}}})

    with pytest.raises(AssertionError, match=r"put_item\.Item\.id\.S"):
        client.put_item(TableName="t", Item={"id": {"S": "b"}})


def test_client_error_carries_code_and_operation() -> None:
    err = client_error("ConditionalCheckFailedException", operation="PutItem")
    assert err.response["Error"]["Code"] == "ConditionalCheckFailedException"
    assert err.operation_name == "PutItem"


def test_memory_store_conditional_put() -> None:
    client = _events()
    item = {"source": {"S": "a"}, "seq": {"N": "1"}}

    with pytest.raises(ClientError) as info:
        client.put_item(
            TableName="events",
            Item=item,
            Expected={"source": {"ComparisonOperator": "NULL"}},
        )
    assert info.value.response["Error"]["Code"] == "ConditionalCheckFailedException"


def test_memory_store_query_orders_by_range_key() -> None:
    client = _events()
    key = {"source": {"ComparisonOperator": "EQ", "AttributeValueList": [{"S": "a"}]}}

    forward = client.query(TableName="events", KeyConditions=key)
    backward = client.query(TableName="events", KeyConditions=key, ScanIndexForward=False)
    counted = client.query(TableName="events", KeyConditions=key, Select="COUNT")

    assert [i["seq"]["N"] for i in forward["Items"]] == ["1", "2", "3"]
    assert [i["seq"]["N"] for i in backward["Items"]] == ["3", "2", "1"]
    assert counted["Count"] == 3
    assert "Items" not in counted


def test_memory_store_query_requires_hash_equality() -> None:
    client = _events()
    with pytest.raises(ClientError):
        client.query(
            TableName="events",
            KeyConditions={"seq": {"ComparisonOperator": "GT", "AttributeValueList": [{"N": "1"}]}},
        )


def test_memory_store_pages_scans() -> None:
    client = _events(page_size=3)

    first = client.scan(TableName="events")
    second = client.scan(TableName="events", ExclusiveStartKey=first["LastEvaluatedKey"])

    assert first["Count"] == 3
    assert first["LastEvaluatedKey"] == {"source": {"S": "a"}, "seq": {"N": "3"}}
    assert second["Count"] == 1
    assert "LastEvaluatedKey" not in second
    assert client.scan(TableName="events", Select="COUNT")["Count"] == 4


def test_memory_store_scan_filter_and_projection() -> None:
    client = _events()
    resp = client.scan(
        TableName="events",
        ScanFilter={"kind": {"ComparisonOperator": "NOT_NULL"}},
        AttributesToGet=["seq"],
    )
    assert resp["Items"] == [{"seq": {"N": "1"}}, {"seq": {"N": "2"}}, {"seq": {"N": "3"}}]


def test_memory_store_update_item_actions() -> None:
    client = _events()
    key = {"source": {"S": "a"}, "seq": {"N": "1"}}

    resp = client.update_item(
        TableName="events",
        Key=key,
        AttributeUpdates={"kind": {"Action": "DELETE"}, "note": {"Action": "PUT", "Value": {"S": "n"}}},
        ReturnValues="ALL_NEW",
    )
    assert resp["Attributes"] == {"source": {"S": "a"}, "seq": {"N": "1"}, "note": {"S": "n"}}

    with pytest.raises(ClientError):
        client.update_item(
            TableName="events",
            Key=key,
            AttributeUpdates={"seq": {"Action": "PUT", "Value": {"N": "9"}}},
        )


def test_memory_store_batch_operations() -> None:
    client = _events()
    keys = [{"source": {"S": "a"}, "seq": {"N": "1"}}, {"source": {"S": "z"}, "seq": {"N": "1"}}]

    got = client.batch_get_item(RequestItems={"events": {"Keys": keys}})
    assert len(got["Responses"]["events"]) == 1

    client.batch_write_item(RequestItems={"events": [{"DeleteRequest": {"Key": keys[0]}}]})
    assert len(client.items("events")) == 3


def test_memory_store_table_lifecycle() -> None:
    client = InMemoryDynamoDBClient(page_size=1)
    client.create_table(**TABLE)
    client.create_table(**dict(TABLE, TableName="audit"))

    first = client.list_tables()
    assert first == {"TableNames": ["audit"], "LastEvaluatedTableName": "audit"}
    assert client.list_tables(ExclusiveStartTableName="audit") == {"TableNames": ["events"]}

    with pytest.raises(ClientError):
        client.create_table(**TABLE)
    assert client.describe_table(TableName="events")["Table"]["TableStatus"] == "ACTIVE"

    client.delete_table(TableName="events")
    with pytest.raises(ClientError):
        client.describe_table(TableName="events")


def test_fixed_clock_steps() -> None:
    start = datetime(2020, 5, 1, tzinfo=UTC)
    clock = fixed_clock(start, step=timedelta(minutes=1))
    assert [clock(), clock()] == [start, start + timedelta(minutes=1)]

    frozen = fixed_clock()
    assert frozen() == frozen() == datetime(2024, 1, 1, tzinfo=UTC)


def test_sequential_ids_and_no_sleep() -> None:
    ids = sequential_ids("w-")
    assert [ids(), ids(), ids()] == ["w-1", "w-2", "w-3"]
    assert no_sleep(1.0) is None

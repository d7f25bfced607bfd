from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pytest
from botocore.exceptions import ClientError

from dynamodel_py import BatchRetryExceededError, Condition, ConditionalCheckFailedError, ValidationError
from dynamodel_py.gateway import StoreGateway
from dynamodel_py.keys import KeyValue
from dynamodel_py.testkit import ANY, FakeDynamoDBClient, client_error, no_sleep


def _items(start: int, count: int) -> list[dict[str, Any]]:
    return [{"id": {"S": f"i{n}"}} for n in range(start, start + count)]


def _page_requests(client: FakeDynamoDBClient, method: str) -> list[dict[str, Any]]:
    return [req for req in client.calls_to(method) if req.get("Select") != "COUNT"]


def test_scan_truncates_to_limit_and_stops_paging() -> None:
    client = FakeDynamoDBClient()
    client.expect("scan", {"TableName": "t", "Select": "COUNT"}, response={"Count": 12})

    def first_page(req: Mapping[str, Any]) -> None:
        assert "Select" not in req
        assert "ExclusiveStartKey" not in req

    client.expect("scan", first_page, response={"Items": _items(0, 4), "LastEvaluatedKey": {"id": {"S": "i3"}}})
    client.expect(
        "scan",
        {"ExclusiveStartKey": {"id": {"S": "i3"}}},
        response={"Items": _items(4, 4), "LastEvaluatedKey": {"id": {"S": "i7"}}},
    )

    gateway = StoreGateway(client, sleep=no_sleep)
    got = list(gateway.scan("t", limit=5))

    assert [item["id"] for item in got] == ["i0", "i1", "i2", "i3", "i4"]
    assert len(_page_requests(client, "scan")) == 2
    client.assert_no_pending()


def test_scan_follows_cursor_until_exhausted() -> None:
    client = FakeDynamoDBClient()
    client.expect("scan", {"Select": "COUNT"}, response={"Count": 6})
    client.expect("scan", response={"Items": _items(0, 3), "LastEvaluatedKey": {"id": {"S": "i2"}}})
    client.expect("scan", {"ExclusiveStartKey": {"id": {"S": "i2"}}}, response={"Items": _items(3, 3)})

    got = list(StoreGateway(client).scan("t"))

    assert len(got) == 6
    client.assert_no_pending()


@pytest.mark.parametrize("limit", [0, -1])
def test_non_positive_limit_issues_no_requests(limit: int) -> None:
    client = FakeDynamoDBClient()
    gateway = StoreGateway(client)

    assert list(gateway.scan("t", limit=limit)) == []
    assert list(gateway.query("t", [Condition.eq("id", "a")], limit=limit)) == []
    assert client.calls == []


def test_zero_count_short_circuits_the_fetch() -> None:
    client = FakeDynamoDBClient()
    client.expect("query", {"Select": "COUNT"}, response={"Count": 0})

    assert list(StoreGateway(client).query("t", [Condition.eq("id", "a")])) == []
    assert len(client.calls) == 1
    client.assert_no_pending()


def test_zero_count_with_a_cursor_still_fetches() -> None:
    client = FakeDynamoDBClient()
    client.expect("scan", {"Select": "COUNT"}, response={"Count": 0, "LastEvaluatedKey": {"id": {"S": "x"}}})
    client.expect("scan", response={"Items": _items(0, 1)})

    assert len(list(StoreGateway(client).scan("t"))) == 1
    client.assert_no_pending()


def test_count_is_a_single_request() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "scan",
        {
            "TableName": "t",
            "Select": "COUNT",
            "ScanFilter": {"name": {"ComparisonOperator": "EQ", "AttributeValueList": [{"S": "a"}]}},
        },
        response={"Count": 7, "LastEvaluatedKey": {"id": {"S": "z"}}},
    )

    assert StoreGateway(client).scan_count("t", [Condition.eq("name", "a")]) == 7
    assert len(client.calls) == 1


def test_query_request_shape() -> None:
    client = FakeDynamoDBClient()

    def count_request(req: Mapping[str, Any]) -> None:
        assert req["Select"] == "COUNT"
        assert "Limit" not in req
        assert "AttributesToGet" not in req

    client.expect("query", count_request, response={"Count": 1})
    client.expect(
        "query",
        {
            "TableName": "t",
            "IndexName": "t_at_index",
            "KeyConditions": {
                "id": {"ComparisonOperator": "EQ", "AttributeValueList": [{"S": "a"}]},
                "at": {"ComparisonOperator": "GT", "AttributeValueList": [{"N": "3"}]},
            },
            "ScanIndexForward": False,
            "ConsistentRead": True,
            "Limit": 10,
            "AttributesToGet": ["id"],
            "ExclusiveStartKey": {"id": {"S": "a"}, "at": {"N": "1"}},
        },
        response={"Items": [{"id": {"S": "a"}}]},
    )

    got = list(
        StoreGateway(client).query(
            "t",
            [Condition.eq("id", "a"), Condition.gt("at", 3)],
            index_name="t_at_index",
            scan_index_forward=False,
            consistent_read=True,
            page_size=10,
            attributes=["id"],
            start_key={"id": KeyValue("a", "S"), "at": KeyValue(1, "N")},
        )
    )
    assert got == [{"id": "a"}]
    client.assert_no_pending()


def test_query_without_key_conditions_is_rejected() -> None:
    with pytest.raises(ValidationError):
        StoreGateway(FakeDynamoDBClient()).query_count("t", [])


def test_update_item_builds_put_and_delete_actions() -> None:
    client = FakeDynamoDBClient()

    def check(req: Mapping[str, Any]) -> None:
        assert req["Key"] == {"id": {"S": "a"}}
        assert req["ReturnValues"] == "ALL_NEW"
        assert req["AttributeUpdates"] == {
            "name": {"Action": "PUT", "Value": {"S": "x"}},
            "gone": {"Action": "DELETE"},
        }
        assert req["Expected"] == {"id": {"ComparisonOperator": "EQ", "AttributeValueList": [{"S": "a"}]}}

    client.expect("update_item", check, response={"Attributes": {"id": {"S": "a"}, "name": {"S": "x"}}})

    got = StoreGateway(client).update_item(
        "t",
        {"id": KeyValue("a", "S")},
        {"id": "a", "name": "x", "gone": None},
        expected=[Condition.eq("id", "a")],
    )
    assert got == {"id": "a", "name": "x"}


def test_put_and_get_item() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {"TableName": "t", "Item": {"id": {"S": "a"}, "n": {"N": "1"}}, "Expected": {"id": {"ComparisonOperator": "NULL"}}},
    )
    client.expect("get_item", {"Key": {"id": {"S": "a"}}, "ConsistentRead": True}, response={"Item": {"id": {"S": "a"}}})
    client.expect("get_item", {"Key": {"id": {"S": "b"}}}, response={})

    gateway = StoreGateway(client)
    gateway.put_item("t", {"id": "a", "n": 1, "blank": None}, expected=[Condition.null("id")])
    assert gateway.get_item("t", {"id": KeyValue("a", "S")}, consistent_read=True) == {"id": "a"}
    assert gateway.get_item("t", {"id": KeyValue("b", "S")}) is None
    client.assert_no_pending()


def test_conditional_check_failure_is_mapped() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", error=client_error("ConditionalCheckFailedException"))

    with pytest.raises(ConditionalCheckFailedError) as info:
        StoreGateway(client).put_item("t", {"id": "a"})
    assert isinstance(info.value.__cause__, ClientError)


def test_other_store_errors_propagate_unchanged() -> None:
    original = client_error("ProvisionedThroughputExceededException")
    client = FakeDynamoDBClient()
    client.expect("delete_item", error=original)

    with pytest.raises(ClientError) as info:
        StoreGateway(client).delete_item("t", {"id": KeyValue("a", "S")})
    assert info.value is original


def test_batch_get_retries_unprocessed_keys() -> None:
    sleeps: list[float] = []
    client = FakeDynamoDBClient()
    client.expect(
        "batch_get_item",
        response={"Responses": {"t": []}, "UnprocessedKeys": {"t": {"Keys": [{"id": {"S": "a"}}]}}},
    )
    client.expect(
        "batch_get_item",
        {"RequestItems": {"t": {"Keys": [{"id": {"S": "a"}}]}}},
        response={"Responses": {"t": [{"id": {"S": "a"}}]}},
    )

    got = StoreGateway(client, sleep=sleeps.append).batch_get("t", [{"id": KeyValue("a", "S")}])

    assert got == [{"id": "a"}]
    assert sleeps == [0.05]


def test_batch_get_retry_limit_exceeded() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "batch_get_item",
        response={"Responses": {"t": []}, "UnprocessedKeys": {"t": {"Keys": [{"id": {"S": "a"}}]}}},
    )

    with pytest.raises(BatchRetryExceededError):
        StoreGateway(client, max_retries=0, sleep=no_sleep).batch_get("t", [{"id": KeyValue("a", "S")}])


def test_batch_get_chunks_by_one_hundred() -> None:
    client = FakeDynamoDBClient()
    sizes: list[int] = []

    def record(req: Mapping[str, Any]) -> None:
        sizes.append(len(req["RequestItems"]["t"]["Keys"]))

    client.expect("batch_get_item", record, response={"Responses": {"t": []}})
    client.expect("batch_get_item", record, response={"Responses": {"t": []}})

    keys = [{"id": KeyValue(f"k{n}", "S")} for n in range(150)]
    assert StoreGateway(client).batch_get("t", keys) == []
    assert sizes == [100, 50]


def test_batch_delete_chunks_and_retries() -> None:
    client = FakeDynamoDBClient()
    client.expect("batch_write_item", response={"UnprocessedItems": {}})
    client.expect(
        "batch_write_item",
        response={"UnprocessedItems": {"t": [{"DeleteRequest": {"Key": {"id": {"S": "k29"}}}}]}},
    )
    client.expect("batch_write_item", {"RequestItems": {"t": [ANY]}}, response={"UnprocessedItems": {}})

    keys = [{"id": KeyValue(f"k{n}", "S")} for n in range(30)]
    assert StoreGateway(client, sleep=no_sleep).batch_delete("t", keys) == 30

    first, second, _ = client.calls_to("batch_write_item")
    assert len(first["RequestItems"]["t"]) == 25
    assert len(second["RequestItems"]["t"]) == 5
    client.assert_no_pending()


def test_list_tables_pages_and_caches() -> None:
    client = FakeDynamoDBClient()
    client.expect("list_tables", response={"TableNames": ["a"], "LastEvaluatedTableName": "a"})
    client.expect("list_tables", {"ExclusiveStartTableName": "a"}, response={"TableNames": ["b"]})
    client.expect("create_table", {"TableName": "c"})

    gateway = StoreGateway(client)
    assert gateway.table_names() == {"a", "b"}
    gateway.create_table({"TableName": "c"})
    assert gateway.table_names() == {"a", "b", "c"}
    assert len(client.calls_to("list_tables")) == 2
    client.assert_no_pending()


def test_requests_are_traced_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_item")

    with caplog.at_level(logging.DEBUG, logger="dynamodel_py.gateway"):
        StoreGateway(client).delete_item("widgets", {"id": KeyValue("a", "S")})

    assert "delete_item widgets" in caplog.text

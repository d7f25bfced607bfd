from __future__ import annotations

from typing import Any, cast

import boto3
from botocore.config import Config

from .config import DynamodelConfig


def create_boto3_config(config: DynamodelConfig | None = None) -> Config:
    resolved = config or DynamodelConfig()
    return Config(
        connect_timeout=resolved.connect_timeout,
        read_timeout=resolved.read_timeout,
        retries={"max_attempts": resolved.max_attempts, "mode": "adaptive"},
    )


_clients: dict[tuple[str, str | None], Any] = {}


def get_dynamodb_client(
    config: DynamodelConfig | None = None,
    *,
    session: Any | None = None,
) -> Any:
    resolved = config or DynamodelConfig.from_env()
    key = (resolved.region, resolved.endpoint_url)
    existing = _clients.get(key)
    if existing is not None:
        return existing

    sess = session or boto3.session.Session(
        region_name=resolved.region,
        aws_access_key_id=resolved.access_key_id,
        aws_secret_access_key=resolved.secret_access_key,
    )
    client = cast(Any, sess).client(
        "dynamodb",
        region_name=resolved.region,
        endpoint_url=resolved.endpoint_url,
        config=create_boto3_config(resolved),
    )

    _clients[key] = client
    return client


def _reset_clients_for_tests() -> None:
    _clients.clear()

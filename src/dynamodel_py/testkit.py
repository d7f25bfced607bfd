from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from .mocks import ANY, FakeDynamoDBClient, InMemoryDynamoDBClient, client_error


def fixed_clock(start: datetime | None = None, *, step: timedelta | None = None) -> Callable[[], datetime]:
    """A clock returning ``start``, advanced by ``step`` after each reading."""
    current = start or datetime(2024, 1, 1, tzinfo=UTC)
    increment = step or timedelta(0)

    def now() -> datetime:
        nonlocal current
        value = current
        current = current + increment
        return value

    return now


def sequential_ids(prefix: str = "id-") -> Callable[[], str]:
    counter = 0

    def next_id() -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}{counter}"

    return next_id


def no_sleep(_: float) -> None:
    return None


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "InMemoryDynamoDBClient",
    "client_error",
    "fixed_clock",
    "no_sleep",
    "sequential_ids",
]

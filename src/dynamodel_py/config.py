from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .model import Throughput

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _env_str(environ: Mapping[str, str], name: str) -> str | None:
    value = (environ.get(name) or "").strip()
    return value or None


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _env_str(environ, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _env_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = _env_str(environ, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from err
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(environ, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number (got {raw!r})") from err
    if value <= 0:
        raise ValueError(f"{name} must be > 0 (got {value})")
    return value


@dataclass(frozen=True)
class DynamodelConfig:
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    table_prefix: str = ""
    read_capacity: int = 1
    write_capacity: int = 1
    warn_on_scan: bool = True
    partitioning: bool = False
    auto_create_tables: bool = True
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> DynamodelConfig:
        return cls(
            region=_env_str(environ, "AWS_REGION") or "us-east-1",
            endpoint_url=_env_str(environ, "DYNAMODB_ENDPOINT"),
            access_key_id=_env_str(environ, "AWS_ACCESS_KEY_ID"),
            secret_access_key=_env_str(environ, "AWS_SECRET_ACCESS_KEY"),
            table_prefix=_env_str(environ, "DYNAMODEL_TABLE_PREFIX") or "",
            read_capacity=_env_int(environ, "DYNAMODEL_READ_CAPACITY", 1, minimum=1),
            write_capacity=_env_int(environ, "DYNAMODEL_WRITE_CAPACITY", 1, minimum=1),
            warn_on_scan=_env_bool(environ, "DYNAMODEL_WARN_ON_SCAN", True),
            partitioning=_env_bool(environ, "DYNAMODEL_PARTITIONING", False),
            auto_create_tables=_env_bool(environ, "DYNAMODEL_AUTO_CREATE_TABLES", True),
            connect_timeout=_env_float(environ, "DYNAMODEL_CONNECT_TIMEOUT", 1.0),
            read_timeout=_env_float(environ, "DYNAMODEL_READ_TIMEOUT", 3.0),
            max_attempts=_env_int(environ, "DYNAMODEL_MAX_ATTEMPTS", 3, minimum=1),
        )

    @property
    def throughput(self) -> Throughput:
        return Throughput(read_units=self.read_capacity, write_units=self.write_capacity)

    def table_name(self, name: str) -> str:
        return f"{self.table_prefix}{name}"

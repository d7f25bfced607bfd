from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .conditions import OPERATORS, Condition, parse_comparison_key
from .errors import (
    BatchRetryExceededError,
    CodecError,
    ConditionalCheckFailedError,
    DynamodelPyError,
    InvalidBooleanError,
    InvalidQueryError,
    MalformedKeyError,
    MixedTypesError,
    NestedCollectionError,
    NotFoundError,
    UnknownTypeError,
    UnsupportedTypeError,
    ValidationError,
)
from .model import (
    AttributeSerializer,
    IndexDefinition,
    IndexSpec,
    ModelDefinition,
    ModelDefinitionError,
    Projection,
    Throughput,
    dynamodel_field,
    index,
    item_state,
)
from .tracking import BeforeCreate, BeforeDestroy, BeforeSave, BeforeUpdate, ItemState

if TYPE_CHECKING:
    from .config import DynamodelConfig
    from .criteria import Chain
    from .runtime import create_boto3_config, get_dynamodb_client
    from .schema import build_create_table_request, delete_table, describe_table, ensure_table
    from .table import Table, WriteResult


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {"build_create_table_request", "delete_table", "describe_table", "ensure_table"}:
        from . import schema

        return getattr(schema, name)
    if name in {"Table", "WriteResult"}:
        from . import table

        return getattr(table, name)
    if name == "Chain":
        from .criteria import Chain

        return Chain
    if name == "DynamodelConfig":
        from .config import DynamodelConfig

        return DynamodelConfig
    if name in {"create_boto3_config", "get_dynamodb_client"}:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AttributeSerializer",
    "BatchRetryExceededError",
    "BeforeCreate",
    "BeforeDestroy",
    "BeforeSave",
    "BeforeUpdate",
    "build_create_table_request",
    "Chain",
    "CodecError",
    "Condition",
    "ConditionalCheckFailedError",
    "create_boto3_config",
    "delete_table",
    "describe_table",
    "DynamodelConfig",
    "DynamodelPyError",
    "dynamodel_field",
    "ensure_table",
    "get_dynamodb_client",
    "index",
    "IndexDefinition",
    "IndexSpec",
    "InvalidBooleanError",
    "InvalidQueryError",
    "item_state",
    "ItemState",
    "MalformedKeyError",
    "MixedTypesError",
    "ModelDefinition",
    "ModelDefinitionError",
    "NestedCollectionError",
    "NotFoundError",
    "OPERATORS",
    "parse_comparison_key",
    "Projection",
    "Table",
    "Throughput",
    "UnknownTypeError",
    "UnsupportedTypeError",
    "ValidationError",
    "WriteResult",
    "__repo_version__",
    "__version__",
]

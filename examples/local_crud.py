from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from dynamodel_py import ItemState, ModelDefinition, Table, delete_table, dynamodel_field, index, item_state
from dynamodel_py.config import DynamodelConfig


@dataclass
class Note:
    author: str = dynamodel_field(roles=["hash"], default="")
    created_at: float | None = dynamodel_field("float", roles=["range"], default=None)
    topic: str = dynamodel_field(default="")
    body: str = dynamodel_field(default="")
    state: ItemState = item_state()


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    config = DynamodelConfig.from_env(
        {
            "DYNAMODB_ENDPOINT": os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
            "AWS_REGION": os.environ.get("AWS_REGION", "us-east-1"),
            "AWS_ACCESS_KEY_ID": os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
            "AWS_SECRET_ACCESS_KEY": os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
            "DYNAMODEL_TABLE_PREFIX": f"dynamodel_py_example_{uuid.uuid4().hex[:12]}_",
        }
    )
    notes = Table(ModelDefinition.from_dataclass(Note, indexes=[index("topic")]), config=config)

    try:
        notes.create(author="ada", topic="engines", body="first")
        notes.create(author="ada", topic="looms", body="second")
        notes.create(author="charles", topic="engines", body="third")

        print("ada on engines:", notes.where(author="ada", topic="engines").all())
        print("ada newest first:", [n.body for n in notes.where(author="ada").all()])
        print("everyone on engines (scan):", notes.count(topic="engines"))
    finally:
        delete_table(notes.model, notes.gateway, table_name=notes.table_name, ignore_missing=True)


if __name__ == "__main__":
    main()

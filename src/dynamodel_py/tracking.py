from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(eq=False)
class ItemState:
    """Persistence bookkeeping composed into a domain dataclass.

    ``committed`` is the attribute snapshot taken at the last successful write
    or load; anything that differs from it is a pending change. ``extras``
    keeps attributes returned by the store that the model does not declare.
    """

    new_record: bool = True
    committed: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def persisted(self) -> bool:
        return not self.new_record

    def changes(self, current: Mapping[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, value in current.items():
            original = self.committed.get(name)
            if name not in self.committed or original != value:
                out[name] = original
        return out

    def commit(self, current: Mapping[str, Any]) -> None:
        self.committed = copy.deepcopy(dict(current))
        self.new_record = False


@runtime_checkable
class BeforeCreate(Protocol):
    def before_create(self) -> None: ...


@runtime_checkable
class BeforeSave(Protocol):
    def before_save(self) -> None: ...


@runtime_checkable
class BeforeUpdate(Protocol):
    def before_update(self) -> None: ...


@runtime_checkable
class BeforeDestroy(Protocol):
    def before_destroy(self) -> None: ...

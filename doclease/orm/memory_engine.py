# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""In-memory database engine implementation using pure Python objects.

This provides ephemeral storage with Filter DSL support using Python evaluation.
All data is lost when the Python process terminates.

Records are copied on the way in and on the way out, so callers mutating a
returned model never change stored state behind the engine's back (the same
isolation a real database gives). Primary keys and table-level unique
constraints are enforced.

For SQLite-based in-memory storage, use SQLDatabaseEngine with
sqlite+aiosqlite:///:memory:.
"""

from __future__ import annotations

import threading
from typing import Any, TypeVar

from sqlmodel import SQLModel

from .engine import DatabaseEngine, get_pk_fields, get_table_name, get_unique_field_sets
from .filters import Filter, evaluate

T = TypeVar("T", bound=SQLModel)


def _clone(model: T) -> T:
    return type(model)(**model.model_dump())


class InMemoryDatabaseEngine(DatabaseEngine):
    """Thread-safe in-memory storage engine using pure Python objects.

    Thread Safety:
        - Uses a re-entrant lock to protect all read/write operations
        - Safe for concurrent access from multiple asyncio tasks
        - Each engine instance is isolated (process-level storage)

    Several lock managers sharing one instance behave like several clients
    sharing one database table.

    Example:
        >>> engine = InMemoryDatabaseEngine()
        >>> await engine.setup_models([DocumentLockModel])
        >>> rows = await engine.find_many(
        ...     DocumentLockModel,
        ...     filters=ComparisonFilter.eq("document_id", "proj-1"),
        ...     order_by="queue_position",
        ... )
    """

    def __init__(self) -> None:
        # Storage: {table_name: {pk_tuple: model_instance}}
        self._storage: dict[str, dict[tuple[object, ...], SQLModel]] = {}
        self._lock = threading.RLock()

    async def setup_models(self, model_classes: list[type[SQLModel]]) -> None:
        """Initialize storage for model classes."""
        with self._lock:
            for model_class in model_classes:
                self._storage.setdefault(get_table_name(model_class), {})

    def _get_pk_tuple(self, model: SQLModel) -> tuple[object, ...]:
        pk_fields = get_pk_fields(type(model))
        return tuple(getattr(model, f) for f in pk_fields)

    def _get_table(self, model_class: type[SQLModel]) -> dict[tuple[object, ...], SQLModel]:
        return self._storage.setdefault(get_table_name(model_class), {})

    def _check_unique(
        self,
        table: dict[tuple[object, ...], SQLModel],
        candidate: SQLModel,
        own_pk: tuple[object, ...],
    ) -> None:
        for fields in get_unique_field_sets(type(candidate)):
            wanted = tuple(getattr(candidate, f) for f in fields)
            for pk, other in table.items():
                if pk != own_pk and tuple(getattr(other, f) for f in fields) == wanted:
                    raise ValueError(f"Unique constraint violated: {dict(zip(fields, wanted))}")

    async def find_many(
        self,
        model_class: type[T],
        *,
        filters: Filter | None = None,
        order_by: str | tuple[str, ...] | None = None,
    ) -> list[T]:
        """Find all records matching filters.

        Args:
            model_class: The SQLModel class to query
            filters: Optional Filter DSL expression
            order_by: Field name(s) to order by. Prefix with "-" for descending.

        Returns:
            Copies of the matching records
        """
        with self._lock:
            table = self._get_table(model_class)

            if filters is not None:
                results = [model for model in table.values() if evaluate(filters, model)]
            else:
                results = list(table.values())

            if order_by:
                fields = (order_by,) if isinstance(order_by, str) else order_by
                for field in reversed(fields):
                    reverse = field.startswith("-")
                    field_name = field[1:] if reverse else field
                    results.sort(key=lambda m: getattr(m, field_name), reverse=reverse)

            return [_clone(model) for model in results]  # type: ignore[misc]

    async def create(self, model: T) -> T:
        """Create a new record.

        Raises:
            ValueError: If the primary key or a unique constraint is already taken
        """
        with self._lock:
            table = self._get_table(type(model))
            pk = self._get_pk_tuple(model)

            if pk in table:
                pk_values = dict(zip(get_pk_fields(type(model)), pk))
                raise ValueError(f"Duplicate primary key: {pk_values}")
            self._check_unique(table, model, pk)

            table[pk] = _clone(model)
            return model

    async def update_where(
        self,
        model_class: type[T],
        *,
        filters: Filter,
        values: dict[str, Any],
    ) -> int:
        """Set values on every record matching filters.

        Raises:
            ValueError: If the update would break a unique constraint
        """
        with self._lock:
            table = self._get_table(model_class)
            matched = [(pk, model) for pk, model in table.items() if evaluate(filters, model)]

            updated: list[tuple[tuple[object, ...], SQLModel]] = []
            for pk, model in matched:
                candidate = _clone(model)
                for key, value in values.items():
                    setattr(candidate, key, value)
                self._check_unique(table, candidate, pk)
                updated.append((pk, candidate))

            for pk, candidate in updated:
                table[pk] = candidate
            return len(updated)

    async def delete(
        self,
        model_class: type[T],
        *,
        filters: Filter,
    ) -> int:
        """Delete records matching filters. Returns the number deleted."""
        with self._lock:
            table = self._get_table(model_class)
            to_delete = [pk for pk, model in table.items() if evaluate(filters, model)]
            for pk in to_delete:
                del table[pk]
            return len(to_delete)

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

"""Database engine abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TypeVar

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel

from .filters import Filter

T = TypeVar("T", bound=SQLModel)


def get_table_name(model_class: type[SQLModel]) -> str:
    """Get table name from a SQLModel class."""
    return str(model_class.__tablename__)  # type: ignore[attr-defined]


def get_pk_fields(model_class: type[SQLModel]) -> list[str]:
    """Get primary key field names from a SQLModel class."""
    return [name for name, info in model_class.model_fields.items() if getattr(info, "primary_key", False) is True]


def get_unique_field_sets(model_class: type[SQLModel]) -> list[tuple[str, ...]]:
    """Get the column names of every table-level unique constraint."""
    table = model_class.__table__  # type: ignore[attr-defined]
    return [
        tuple(column.name for column in constraint.columns)
        for constraint in table.constraints
        if isinstance(constraint, UniqueConstraint)
    ]


class DatabaseEngine(ABC):
    """Abstract database engine for multi-backend storage."""

    @abstractmethod
    async def setup_models(self, model_classes: list[type[SQLModel]]) -> None:
        """Setup storage for the given model classes."""

    @abstractmethod
    async def find_many(
        self,
        model_class: type[T],
        *,
        filters: Filter | None = None,
        order_by: str | tuple[str, ...] | None = None,
    ) -> list[T]:
        """Find all records matching filters."""

    @abstractmethod
    async def create(self, model: T) -> T:
        """Create a new record. Returns the created record.

        Raises an error mentioning a unique/duplicate violation when the
        primary key or a unique constraint is already taken.
        """

    @abstractmethod
    async def update_where(
        self,
        model_class: type[T],
        *,
        filters: Filter,
        values: dict[str, Any],
    ) -> int:
        """Set ``values`` on records matching filters. Returns count of updated records."""

    @abstractmethod
    async def delete(
        self,
        model_class: type[T],
        *,
        filters: Filter,
    ) -> int:
        """Delete records matching filters. Returns count of deleted records."""

    async def dispose(self) -> None:
        """Release connections held by the engine. No-op for engines without any."""

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

"""SQL database engine using SQLModel/SQLAlchemy.

This engine accepts Filter DSL filters and converts them to SQLAlchemy
ColumnElement[bool] using to_sqlalchemy() before passing to where() clauses.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import text, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from .engine import DatabaseEngine
from .filters import Filter, to_sqlalchemy

T = TypeVar("T", bound=SQLModel)

logger = logging.getLogger(__name__)


class SQLDatabaseEngine(DatabaseEngine):
    """Async SQL database engine supporting SQLite, PostgreSQL, MySQL."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        **kwargs: Any,
    ) -> SQLDatabaseEngine:
        """Create engine from database URL."""
        if not any(driver in url for driver in ["+asyncpg", "+aiosqlite", "+aiomysql"]):
            raise ValueError(f"URL must contain async driver (+asyncpg, +aiosqlite, or +aiomysql): {url}")

        if "sqlite" in url:
            connect_args = kwargs.pop("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", 30)
            engine = create_async_engine(
                url,
                echo=echo,
                connect_args=connect_args,
                poolclass=kwargs.pop("poolclass", None),
                **kwargs,
            )
        else:
            engine = create_async_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
                **kwargs,
            )

        return cls(engine)

    async def setup_models(self, model_classes: list[type[SQLModel]]) -> None:
        """Create tables for the given model classes."""
        async with self._engine.begin() as conn:
            if "sqlite" in str(self._engine.url.drivername):
                # WAL lets readers proceed while another client writes
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA busy_timeout=30000"))
                await conn.execute(text("PRAGMA synchronous=NORMAL"))

            tables = [model_class.__table__ for model_class in model_classes]  # type: ignore[attr-defined]
            await conn.run_sync(SQLModel.metadata.create_all, tables=tables)

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
            filters: Optional Filter DSL filter expression
            order_by: Field name(s) to order by. Prefix with "-" for descending.

        Returns:
            List of matching records
        """
        stmt = select(model_class)

        if filters is not None:
            stmt = stmt.where(to_sqlalchemy(filters, model_class))

        if order_by:
            fields = (order_by,) if isinstance(order_by, str) else order_by
            for field in fields:
                if field.startswith("-"):
                    stmt = stmt.order_by(getattr(model_class, field[1:]).desc())
                else:
                    stmt = stmt.order_by(getattr(model_class, field))

        async with AsyncSession(self._engine, expire_on_commit=False) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def create(self, model: T) -> T:
        """Create a new record.

        Flushes before committing so constraint violations surface as
        IntegrityError from this call.
        """
        async with AsyncSession(self._engine, expire_on_commit=False) as session:
            session.add(model)
            try:
                await session.flush()
                await session.commit()
            except Exception:
                await session.rollback()
                raise

            try:
                await session.refresh(model)
            except Exception as e:
                # Object may be detached in concurrent scenarios; the row is committed either way
                logger.debug("Failed to refresh model after create (object may be detached): %s", e)

            return model

    async def update_where(
        self,
        model_class: type[T],
        *,
        filters: Filter,
        values: dict[str, Any],
    ) -> int:
        """Set values on every record matching filters. Returns the row count."""
        stmt = update(model_class).where(to_sqlalchemy(filters, model_class)).values(**values)
        async with AsyncSession(self._engine) as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def delete(
        self,
        model_class: type[T],
        *,
        filters: Filter,
    ) -> int:
        """Delete records matching filters.

        Args:
            model_class: The SQLModel class to delete from
            filters: Filter DSL filter expression

        Returns:
            Number of records deleted
        """
        async with AsyncSession(self._engine) as session:
            stmt = select(model_class).where(to_sqlalchemy(filters, model_class))
            result = await session.execute(stmt)
            models = list(result.scalars().all())
            for model in models:
                await session.delete(model)
            await session.commit()
            return len(models)

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self._engine.dispose()

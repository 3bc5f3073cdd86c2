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

"""Lease store adapter.

This module provides LeaseStore, the narrow per-document view of the shared
``document_locks`` table that the lock manager works through. It works with
any DatabaseEngine and assumes single-row operations only: nothing here spans
rows atomically.

Every call is bounded by a timeout. Timeouts and driver I/O failures surface
as StoreUnavailable; unique/duplicate violations surface as LeaseConflict.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from .errors import LeaseConflict, StoreUnavailable
from .models import DocumentLockModel
from .orm import AndFilter, ComparisonFilter

if TYPE_CHECKING:
    from .orm import DatabaseEngine, Filter

logger = logging.getLogger(__name__)

R = TypeVar("R")

UPDATABLE_FIELDS = frozenset({"last_heartbeat_ns", "queue_position"})

_CONFLICT_KEYWORDS = ("unique", "duplicate", "constraint", "integrity")


def _is_conflict(error: Exception) -> bool:
    # Different databases have different exception types
    error_msg = str(error).lower()
    return any(keyword in error_msg for keyword in _CONFLICT_KEYWORDS)


def _document_filter(document_id: str, document_type: str, *extra: ComparisonFilter) -> Filter:
    return AndFilter(
        filters=[
            ComparisonFilter.eq("document_id", document_id),
            ComparisonFilter.eq("document_type", document_type),
            *extra,
        ]
    )


class LeaseStore:
    """Filtered access to lease records of one (document_id, document_type) at a time.

    Example:
        >>> store = LeaseStore(engine=InMemoryDatabaseEngine(), timeout=5.0)
        >>> await store.insert(DocumentLockModel(document_id="proj-1", document_type="spis", holder_id="u1"))
        >>> [r.holder_id for r in await store.list("proj-1", "spis")]
        ['u1']
    """

    def __init__(self, *, engine: DatabaseEngine, timeout: float = 10.0) -> None:
        """Initialize the store.

        Args:
            engine: DatabaseEngine instance holding the document_locks table
            timeout: Seconds allowed for each store call
        """
        self._engine = engine
        self._timeout = timeout
        self._initialized = False

    @property
    def engine(self) -> DatabaseEngine:
        return self._engine

    async def ensure_ready(self) -> None:
        """Ensure the document_locks table exists."""
        if not self._initialized:
            logger.debug("Initializing LeaseStore database models")
            await self._call("setup", self._engine.setup_models([DocumentLockModel]))
            self._initialized = True
            logger.info("LeaseStore initialized successfully")

    async def _call(self, operation: str, awaitable: Awaitable[R]) -> R:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Lease store timed out after {self._timeout}s during {operation}") from e
        except (ValueError, SQLAlchemyError) as e:
            if _is_conflict(e):
                raise LeaseConflict(f"Lease store conflict during {operation}: {e}") from e
            if isinstance(e, SQLAlchemyError):
                raise StoreUnavailable(f"Lease store failed during {operation}: {e}") from e
            raise
        except OSError as e:
            raise StoreUnavailable(f"Lease store failed during {operation}: {e}") from e

    async def list(self, document_id: str, document_type: str) -> list[DocumentLockModel]:
        """Return the document's records ordered by queue position, ascending."""
        await self.ensure_ready()
        return await self._call(
            "list",
            self._engine.find_many(
                DocumentLockModel,
                filters=_document_filter(document_id, document_type),
                order_by=("queue_position", "acquired_at_ns"),
            ),
        )

    async def insert(self, record: DocumentLockModel) -> DocumentLockModel:
        """Insert a new record.

        Raises:
            LeaseConflict: If the holder already has a record for this document,
                or the queue position is taken
        """
        await self.ensure_ready()
        return await self._call("insert", self._engine.create(record))

    async def update_fields(
        self,
        document_id: str,
        document_type: str,
        holder_id: str,
        **fields: int,
    ) -> bool:
        """Partially update one record.

        Args:
            document_id: Document identifier
            document_type: Document discriminator
            holder_id: Holder whose record is updated
            **fields: last_heartbeat_ns and/or queue_position

        Returns:
            False when the record no longer exists (nothing written)

        Raises:
            ValueError: If fields is empty or names anything else
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if not fields or unknown:
            raise ValueError(f"update_fields accepts {sorted(UPDATABLE_FIELDS)}, got {sorted(fields)}")

        await self.ensure_ready()
        count = await self._call(
            "update",
            self._engine.update_where(
                DocumentLockModel,
                filters=_document_filter(document_id, document_type, ComparisonFilter.eq("holder_id", holder_id)),
                values=dict(fields),
            ),
        )
        return count > 0

    async def delete_where(
        self,
        document_id: str,
        document_type: str,
        *,
        holder_id: str | None = None,
        heartbeat_before_ns: int | None = None,
    ) -> int:
        """Delete one holder's record, or every record whose heartbeat predates a cutoff.

        Exactly one of holder_id and heartbeat_before_ns must be given.

        Returns:
            Number of records deleted (0 when already gone)
        """
        if (holder_id is None) == (heartbeat_before_ns is None):
            raise ValueError("delete_where needs exactly one of holder_id or heartbeat_before_ns")

        if holder_id is not None:
            condition = ComparisonFilter.eq("holder_id", holder_id)
        else:
            assert heartbeat_before_ns is not None
            condition = ComparisonFilter.lt("last_heartbeat_ns", heartbeat_before_ns)

        await self.ensure_ready()
        return await self._call(
            "delete",
            self._engine.delete(DocumentLockModel, filters=_document_filter(document_id, document_type, condition)),
        )

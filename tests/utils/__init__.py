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

"""
Test utilities and helper functions.

Controllable clocks, misbehaving engines and a client factory for
simulating several users sharing one lease table.
"""

import asyncio
from typing import Any

from doclease import Caller, DocumentLockManager, DocumentLockModel, LeaseConfig, SessionIdentity
from doclease.orm import ComparisonFilter, DatabaseEngine, InMemoryDatabaseEngine

START_NS = 1_700_000_000 * 1_000_000_000


class FakeClock:
    """Nanosecond clock that only moves when told to."""

    def __init__(self, start_ns: int = START_NS) -> None:
        self.now_ns = start_ns

    def __call__(self) -> int:
        return self.now_ns

    def advance(self, seconds: float) -> None:
        self.now_ns += int(seconds * 1_000_000_000)


class FlakyEngine(InMemoryDatabaseEngine):
    """In-memory engine whose operations can be made to fail with a connection error.

    ``failing`` fails every call of an operation; ``fail_on_call`` fails only
    its n-th call (1-based).
    """

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()
        self.fail_on_call: dict[str, int] = {}
        self.calls: dict[str, int] = {}

    def _maybe_fail(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        if operation in self.failing or self.fail_on_call.get(operation) == self.calls[operation]:
            raise ConnectionError(f"store unreachable during {operation}")

    async def find_many(self, model_class, *, filters=None, order_by=None):  # type: ignore[no-untyped-def]
        self._maybe_fail("find_many")
        return await super().find_many(model_class, filters=filters, order_by=order_by)

    async def create(self, model):  # type: ignore[no-untyped-def]
        self._maybe_fail("create")
        return await super().create(model)

    async def update_where(self, model_class, *, filters, values):  # type: ignore[no-untyped-def]
        self._maybe_fail("update_where")
        return await super().update_where(model_class, filters=filters, values=values)

    async def delete(self, model_class, *, filters):  # type: ignore[no-untyped-def]
        self._maybe_fail("delete")
        return await super().delete(model_class, filters=filters)


class SlowEngine(InMemoryDatabaseEngine):
    """In-memory engine whose reads hang for ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def find_many(self, model_class, *, filters=None, order_by=None):  # type: ignore[no-untyped-def]
        await asyncio.sleep(self.delay)
        return await super().find_many(model_class, filters=filters, order_by=order_by)


def make_client(
    engine: DatabaseEngine,
    holder_id: str,
    holder_name: str | None = None,
    *,
    clock: Any = None,
    config: LeaseConfig | None = None,
) -> DocumentLockManager:
    """One user's lock manager on a shared engine."""
    identity = SessionIdentity(Caller(holder_id=holder_id, holder_name=holder_name or holder_id.upper()))
    kwargs: dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    return DocumentLockManager(engine=engine, identity=identity, config=config, **kwargs)


async def queue_of(engine: DatabaseEngine, document_id: str, document_type: str) -> list[tuple[str, int]]:
    """(holder_id, queue_position) pairs of a document, ordered by position."""
    records = await engine.find_many(
        DocumentLockModel,
        filters=ComparisonFilter.eq("document_id", document_id),
        order_by="queue_position",
    )
    return [(r.holder_id, r.queue_position) for r in records if r.document_type == document_type]

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

"""Unit tests for ExpirySweeper and QueueReconciler."""

import asyncio

from doclease import DocumentLockModel, ExpirySweeper, LeaseStore, QueueReconciler, plan_positions
from doclease.orm import InMemoryDatabaseEngine
from tests.utils import START_NS

WINDOW_NS = 120 * 1_000_000_000


def lock(holder_id: str, position: int, heartbeat_ns: int = START_NS) -> DocumentLockModel:
    return DocumentLockModel(
        document_id="proj-1",
        document_type="spis",
        holder_id=holder_id,
        holder_name=holder_id,
        acquired_at_ns=START_NS,
        last_heartbeat_ns=heartbeat_ns,
        queue_position=position,
    )


class TestPlanPositions:
    """The pure renumbering plan."""

    def test_dense_queue_needs_no_writes(self):
        records = [lock("a", 1), lock("b", 2), lock("c", 3)]
        assert plan_positions(records) == []

    def test_gaps_are_compressed_in_order(self):
        records = [lock("a", 2), lock("b", 5), lock("c", 6)]
        plan = [(record.holder_id, position) for record, position in plan_positions(records)]
        assert plan == [("a", 1), ("b", 2), ("c", 3)]

    def test_only_moved_records_are_planned(self):
        records = [lock("a", 1), lock("b", 3), lock("c", 4)]
        plan = [(record.holder_id, position) for record, position in plan_positions(records)]
        assert plan == [("b", 2), ("c", 3)]

    def test_empty_queue(self):
        assert plan_positions([]) == []


class TestQueueReconciler:
    """Renumbering written back through the store."""

    def test_reconcile_closes_gaps(self):
        async def run():
            store = LeaseStore(engine=InMemoryDatabaseEngine())
            for record in (lock("a", 2), lock("b", 4), lock("c", 7)):
                await store.insert(record)

            writes = await QueueReconciler(store=store).reconcile(await store.list("proj-1", "spis"))

            assert writes == 3
            records = await store.list("proj-1", "spis")
            assert [(r.holder_id, r.queue_position) for r in records] == [("a", 1), ("b", 2), ("c", 3)]

        asyncio.run(run())

    def test_reconcile_skips_vanished_records(self):
        async def run():
            store = LeaseStore(engine=InMemoryDatabaseEngine())
            for record in (lock("a", 2), lock("b", 3)):
                await store.insert(record)
            snapshot = await store.list("proj-1", "spis")
            await store.delete_where("proj-1", "spis", holder_id="a")

            writes = await QueueReconciler(store=store).reconcile(snapshot)

            assert writes == 1
            records = await store.list("proj-1", "spis")
            assert [(r.holder_id, r.queue_position) for r in records] == [("b", 2)]

        asyncio.run(run())


class TestExpirySweeper:
    """Deleting leases whose heartbeat is older than the window."""

    def test_sweep_removes_only_stale_records(self):
        async def run():
            store = LeaseStore(engine=InMemoryDatabaseEngine())
            now = START_NS + WINDOW_NS + 1_000
            await store.insert(lock("stale", 1, heartbeat_ns=START_NS))
            await store.insert(lock("edge", 2, heartbeat_ns=now - WINDOW_NS))
            await store.insert(lock("fresh", 3, heartbeat_ns=now))

            removed = await ExpirySweeper(store=store, expiry_window_ns=WINDOW_NS).sweep("proj-1", "spis", now)

            assert removed == 1
            assert [r.holder_id for r in await store.list("proj-1", "spis")] == ["edge", "fresh"]

        asyncio.run(run())

    def test_sweep_leaves_other_documents_alone(self):
        async def run():
            store = LeaseStore(engine=InMemoryDatabaseEngine())
            other = lock("x", 1, heartbeat_ns=START_NS)
            other.document_id = "proj-2"
            await store.insert(other)

            sweeper = ExpirySweeper(store=store, expiry_window_ns=WINDOW_NS)
            assert await sweeper.sweep("proj-1", "spis", START_NS + 10 * WINDOW_NS) == 0
            assert len(await store.list("proj-2", "spis")) == 1

        asyncio.run(run())

    def test_cutoff(self):
        sweeper = ExpirySweeper(store=LeaseStore(engine=InMemoryDatabaseEngine()), expiry_window_ns=WINDOW_NS)
        assert sweeper.cutoff(START_NS) == START_NS - WINDOW_NS

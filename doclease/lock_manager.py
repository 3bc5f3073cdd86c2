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

"""Document lock manager with FIFO queueing and automatic heartbeat renewal.

This module provides DocumentLockManager, which lets one signed-in user at a
time edit a shared document while everyone else who opened it waits in a
first-come, first-served queue. Leases live in the ``document_locks`` table of
any DatabaseEngine, are kept alive by a background heartbeat, and are reclaimed
by whichever client next looks at the document once their holder has been
silent for longer than the expiry window.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from .config import LeaseConfig
from .errors import LeaseConflict, LeaseError, Unauthenticated
from .heartbeat import HeartbeatScheduler
from .models import DocumentLockModel, LeaseInfo, LeaseKey
from .orm import InMemoryDatabaseEngine, SQLDatabaseEngine
from .reconciler import QueueReconciler
from .store import LeaseStore
from .sweeper import ExpirySweeper

if TYPE_CHECKING:
    from .identity import Caller, IdentityProvider
    from .orm import DatabaseEngine

logger = logging.getLogger(__name__)


class DocumentLockManager:
    """Per-client document lease manager.

    Features:
    - Uses DatabaseEngine for storage (works with any engine)
    - Queue position 1 holds the lease, later arrivals wait in FIFO order
    - Automatic heartbeat every heartbeat_interval seconds while a lease is held
    - Leases expire after expiry_window seconds without heartbeat
    - Queue positions stay dense (1..N) after every insert and delete
    - Operations on the same document are serialized within this client

    Example:
        >>> engine = InMemoryDatabaseEngine()
        >>> manager = DocumentLockManager(engine=engine, identity=SessionIdentity(Caller("u1", "Jana")))
        >>> info = await manager.acquire("proj-1", "spis")
        >>> info.is_own_lock
        True
        >>> await manager.release("proj-1", "spis")
    """

    def __init__(
        self,
        *,
        engine: DatabaseEngine,
        identity: IdentityProvider,
        config: LeaseConfig | None = None,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        """Initialize the lock manager.

        Args:
            engine: DatabaseEngine instance for lease storage, shared by all clients
            identity: Returns the signed-in Caller, or None when signed out
            config: Lease timings; defaults to LeaseConfig()
            clock: Nanosecond wall clock used for heartbeats and expiry
        """
        self._config = config or LeaseConfig()
        self._identity = identity
        self._clock = clock
        self._store = LeaseStore(engine=engine, timeout=self._config.store_timeout)
        self._sweeper = ExpirySweeper(store=self._store, expiry_window_ns=self._config.expiry_window_ns)
        self._reconciler = QueueReconciler(store=self._store)
        self._heartbeats = HeartbeatScheduler(interval=self._config.heartbeat_interval)
        self._key_locks: dict[LeaseKey, asyncio.Lock] = {}
        self._key_users: dict[LeaseKey, int] = {}
        self._owns_engine = False

    @classmethod
    def from_config(
        cls,
        config: LeaseConfig,
        identity: IdentityProvider,
        *,
        clock: Callable[[], int] = time.time_ns,
    ) -> DocumentLockManager:
        """Create a manager whose engine comes from config.database_url (in-memory when unset)."""
        engine: DatabaseEngine
        if config.database_url:
            engine = SQLDatabaseEngine.from_url(config.database_url)
        else:
            engine = InMemoryDatabaseEngine()
        manager = cls(engine=engine, identity=identity, config=config, clock=clock)
        manager._owns_engine = True
        return manager

    @property
    def config(self) -> LeaseConfig:
        return self._config

    @property
    def engine(self) -> DatabaseEngine:
        return self._store.engine

    @property
    def held_keys(self) -> list[LeaseKey]:
        """Documents this client is currently heartbeating."""
        return self._heartbeats.keys

    @asynccontextmanager
    async def _locked(self, key: LeaseKey) -> AsyncGenerator[None, None]:
        """Hold the per-document mutex; the entry is dropped once nobody holds or awaits it."""
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[key] -= 1
            if self._key_users[key] == 0:
                del self._key_users[key]
                del self._key_locks[key]

    def _require_caller(self) -> Caller:
        caller = self._identity()
        if caller is None:
            raise Unauthenticated("User not authenticated")
        return caller

    async def _compact(self, key: LeaseKey) -> None:
        """Renumber the queue; failures are logged, not raised."""
        try:
            records = await self._store.list(*key)
            await self._reconciler.reconcile(records)
        except LeaseError as e:
            logger.warning(f"Queue reconcile failed for document={key.document_id}, type={key.document_type}: {e}")

    async def _sweep(self, key: LeaseKey) -> None:
        """Remove expired leases and close the gaps they leave; failures are logged, not raised."""
        try:
            removed = await self._sweeper.sweep(key.document_id, key.document_type, self._clock())
        except LeaseError as e:
            logger.warning(f"Expiry sweep failed for document={key.document_id}, type={key.document_type}: {e}")
            return
        if removed:
            await self._compact(key)

    async def _refresh_locked(self, key: LeaseKey, caller: Caller) -> bool:
        await self._sweep(key)
        updated = await self._store.update_fields(
            key.document_id,
            key.document_type,
            caller.holder_id,
            last_heartbeat_ns=self._clock(),
        )
        if not updated:
            logger.warning(
                f"Lock not found on refresh for document={key.document_id}, type={key.document_type}, holder={caller.holder_id}"
            )
        # Holders ahead of us may have expired since the last beat
        await self._compact(key)
        return updated

    async def _append(self, key: LeaseKey, caller: Caller, records: list[DocumentLockModel]) -> None:
        """Insert the caller at the tail of the queue.

        A position conflict means another client appended concurrently: re-read
        and retry at the new tail. If the caller's own record shows up instead,
        the earlier attempt landed and this becomes a refresh.
        """
        attempts = self._config.max_insert_attempts
        for attempt in range(1, attempts + 1):
            position = max((record.queue_position for record in records), default=0) + 1
            now = self._clock()
            record = DocumentLockModel(
                document_id=key.document_id,
                document_type=key.document_type,
                holder_id=caller.holder_id,
                holder_name=caller.holder_name,
                acquired_at_ns=now,
                last_heartbeat_ns=now,
                queue_position=position,
            )
            try:
                await self._store.insert(record)
                logger.info(
                    f"Queued holder={caller.holder_id} at position {position} "
                    f"for document={key.document_id}, type={key.document_type}"
                )
                return
            except LeaseConflict as e:
                logger.debug(
                    f"Lock conflict detected for document={key.document_id}, type={key.document_type} "
                    f"at position {position} (attempt {attempt}/{attempts}): {e}"
                )
                records = await self._store.list(*key)
                if any(existing.holder_id == caller.holder_id for existing in records):
                    await self._refresh_locked(key, caller)
                    return

        logger.warning(
            f"Lock acquisition failed: could not join the queue for document={key.document_id}, "
            f"type={key.document_type} after {attempts} attempts"
        )
        raise LeaseConflict(
            f"Could not join the queue for document {key.document_id} ({key.document_type}) after {attempts} attempts"
        )

    async def acquire(self, document_id: str, document_type: str) -> LeaseInfo:
        """Join the edit queue of a document, or refresh an existing place in it.

        Args:
            document_id: Document identifier
            document_type: Document discriminator such as "spis"

        Returns:
            LeaseInfo from a fresh read: who holds the document and the caller's
            position. Editing is granted only when is_own_lock is True.

        Raises:
            Unauthenticated: If nobody is signed in
            StoreUnavailable: If the store cannot be read or written
            LeaseConflict: If concurrent appends kept taking the tail position
        """
        caller = self._require_caller()
        key = LeaseKey(document_id, document_type)

        logger.info(f"Attempting to acquire lock for document={document_id}, type={document_type}, holder={caller.holder_id}")

        async with self._locked(key):
            await self._sweep(key)
            records = await self._store.list(*key)

            if any(record.holder_id == caller.holder_id for record in records):
                logger.debug(f"Holder={caller.holder_id} already queued for {key}, refreshing")
                await self._refresh_locked(key, caller)
            else:
                await self._append(key, caller, records)
                await self._compact(key)

            # Read before arming the timer: a failed acquire must not leave a lease renewing itself
            records = await self._store.list(*key)

            if not self._heartbeats.is_running(key):
                await self._heartbeats.start(key, functools.partial(self.refresh, document_id, document_type))

        info = LeaseInfo.from_records(records, caller.holder_id) or LeaseInfo.unlocked()
        if info.is_own_lock:
            logger.info(f"Lock acquired successfully for document={document_id}, type={document_type}, holder={caller.holder_id}")
        else:
            logger.info(
                f"Holder={caller.holder_id} waiting at position {info.queue_position} for document={document_id}, "
                f"type={document_type}, locked by holder={info.locked_by}"
            )
        return info

    async def release(self, document_id: str, document_type: str) -> None:
        """Give up the caller's place in a document's queue.

        The local heartbeat is stopped before touching the store, so a failing
        delete never leaves a timer renewing a lease the UI considers released.
        Releasing a lease that is already gone is a no-op.

        Raises:
            StoreUnavailable: If the delete cannot reach the store
        """
        key = LeaseKey(document_id, document_type)
        await self._heartbeats.stop(key)

        caller = self._identity()
        if caller is None:
            return

        async with self._locked(key):
            logger.debug(f"Releasing lock for document={document_id}, type={document_type}, holder={caller.holder_id}")
            deleted_count = await self._store.delete_where(document_id, document_type, holder_id=caller.holder_id)
            if deleted_count > 0:
                logger.info(f"Lock released successfully for document={document_id}, type={document_type}, holder={caller.holder_id}")
            else:
                logger.debug(
                    f"Lock was already released or expired for document={document_id}, type={document_type}, holder={caller.holder_id}"
                )
            await self._compact(key)

    async def refresh(self, document_id: str, document_type: str) -> bool:
        """Heartbeat: prove the caller is still active and promote it past expired holders.

        Returns:
            True if the caller still has a place in the queue. False when it
            does not (expired and swept, or signed out); that is not an error.

        Raises:
            StoreUnavailable: If the heartbeat cannot be written
        """
        caller = self._identity()
        if caller is None:
            return False

        key = LeaseKey(document_id, document_type)
        async with self._locked(key):
            return await self._refresh_locked(key, caller)

    async def get_lock_info(self, document_id: str, document_type: str) -> LeaseInfo | None:
        """Current lease status of a document, or None when nobody holds it.

        Returns None as well when nobody is signed in.
        """
        caller = self._identity()
        if caller is None:
            return None

        key = LeaseKey(document_id, document_type)
        async with self._locked(key):
            await self._sweep(key)
            records = await self._store.list(*key)

        return LeaseInfo.from_records(records, caller.holder_id)

    async def check_lock_status(self, document_id: str, document_type: str) -> LeaseInfo:
        """Like get_lock_info, but an unlocked document yields LeaseInfo.unlocked()."""
        info = await self.get_lock_info(document_id, document_type)
        return info if info is not None else LeaseInfo.unlocked()

    @asynccontextmanager
    async def hold(self, document_id: str, document_type: str) -> AsyncGenerator[LeaseInfo, None]:
        """Acquire on enter, release on exit.

        Example:
            >>> async with manager.hold("proj-1", "spis") as info:
            ...     if info.is_own_lock:
            ...         await save_form()
        """
        info = await self.acquire(document_id, document_type)
        try:
            yield info
        finally:
            await self.release(document_id, document_type)

    async def release_all(self) -> None:
        """Release every lease this client is heartbeating."""
        for key in self._heartbeats.keys:
            await self.release(key.document_id, key.document_type)

    async def stop(self) -> None:
        """Cancel all heartbeat timers without touching the lease records.

        Leases left behind expire once the expiry window passes. An engine
        built by from_config is disposed; its pool is recreated if the manager
        is used again.
        """
        stopped = await self._heartbeats.stop_all()
        if stopped:
            logger.info(f"DocumentLockManager stopped {stopped} heartbeat(s)")
        if self._owns_engine:
            await self._store.engine.dispose()

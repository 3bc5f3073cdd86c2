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

"""Per-document heartbeat timers.

One asyncio task per locally held lease calls a beat coroutine every
``interval`` seconds. A failing beat is logged and retried on the next tick;
a beat returning False (the lease row is gone) ends the loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .models import LeaseKey

logger = logging.getLogger(__name__)

Beat = Callable[[], Awaitable[bool | None]]


class HeartbeatScheduler:
    """Owns the heartbeat tasks of one lock manager."""

    def __init__(self, *, interval: float) -> None:
        self._interval = interval
        self._tasks: dict[LeaseKey, asyncio.Task[None]] = {}

    @property
    def keys(self) -> list[LeaseKey]:
        return [key for key, task in self._tasks.items() if not task.done()]

    def is_running(self, key: LeaseKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def start(self, key: LeaseKey, beat: Beat) -> None:
        """Start beating for key, replacing any timer already running for it."""
        await self.stop(key)
        logger.debug(f"Starting heartbeat loop for {key}")
        self._tasks[key] = asyncio.create_task(self._loop(key, beat), name=f"heartbeat:{key}")

    async def _loop(self, key: LeaseKey, beat: Beat) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    alive = await beat()
                except Exception as e:
                    logger.warning(f"Heartbeat failed for {key}, retrying next tick: {e}")
                    continue

                if alive is False:
                    logger.warning(f"Heartbeat stopped: lock not found for {key}")
                    break
                logger.debug(f"Heartbeat sent for {key}")
        except asyncio.CancelledError:
            logger.debug(f"Heartbeat loop cancelled for {key}")
            raise
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def stop(self, key: LeaseKey) -> bool:
        """Cancel the timer for key.

        Returns:
            True if a running timer was cancelled, False if none was running
        """
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False

        task.cancel()
        if task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug(f"Heartbeat stopped for {key}")
        return True

    async def stop_all(self) -> int:
        """Cancel every timer. Returns the number cancelled."""
        stopped = 0
        for key in list(self._tasks):
            if await self.stop(key):
                stopped += 1
        return stopped

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

"""Expired lease removal."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .store import LeaseStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Deletes lease records whose holders stopped heartbeating.

    Run before every read that feeds a decision, then re-list: a snapshot
    taken before the sweep may still contain dead holders.
    """

    def __init__(self, *, store: LeaseStore, expiry_window_ns: int) -> None:
        self._store = store
        self._expiry_window_ns = expiry_window_ns

    def cutoff(self, now_ns: int) -> int:
        """Heartbeats strictly older than this are dead."""
        return now_ns - self._expiry_window_ns

    async def sweep(self, document_id: str, document_type: str, now_ns: int) -> int:
        """Clean up expired locks of one document.

        Returns:
            Number of locks cleaned up
        """
        count = await self._store.delete_where(
            document_id,
            document_type,
            heartbeat_before_ns=self.cutoff(now_ns),
        )
        if count > 0:
            logger.warning(f"Cleaned up {count} expired lock(s) for document={document_id}, type={document_type}")
        return count

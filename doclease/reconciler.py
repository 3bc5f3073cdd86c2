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

"""Queue position compaction.

After any insert or delete the surviving records of a document are renumbered
to 1..N, keeping their relative order, so a waiting user's position always
means "this many people are ahead of me, plus one".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .models import DocumentLockModel

if TYPE_CHECKING:
    from .store import LeaseStore

logger = logging.getLogger(__name__)


def plan_positions(records: Sequence[DocumentLockModel]) -> list[tuple[DocumentLockModel, int]]:
    """Return (record, new_position) for every record whose position must change.

    ``records`` must already be sorted by current queue position. Order is
    preserved; only gaps and duplicates are compressed away.
    """
    return [(record, index) for index, record in enumerate(records, start=1) if record.queue_position != index]


class QueueReconciler:
    """Writes dense queue positions back to the store."""

    def __init__(self, *, store: LeaseStore) -> None:
        self._store = store

    async def reconcile(self, records: Sequence[DocumentLockModel]) -> int:
        """Renumber records to 1..N, skipping records already in place.

        Writes go in ascending order: each target position was vacated by a
        deleted record or by the record just moved down.

        Returns:
            Number of records whose position was written
        """
        writes = 0
        for record, position in plan_positions(records):
            updated = await self._store.update_fields(
                record.document_id,
                record.document_type,
                record.holder_id,
                queue_position=position,
            )
            if updated:
                logger.debug(
                    f"Moved holder={record.holder_id} from position {record.queue_position} to {position} "
                    f"for document={record.document_id}, type={record.document_type}"
                )
                writes += 1
        return writes

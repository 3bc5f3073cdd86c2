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

"""Document lock data models."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import NamedTuple

from pydantic import BaseModel
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class LeaseKey(NamedTuple):
    """Identifies the resource under contention."""

    document_id: str
    document_type: str

    def __str__(self) -> str:
        return f"{self.document_type}:{self.document_id}"


class DocumentLockModel(SQLModel, table=True):
    """One caller's place in a document's edit queue.

    Lock key: (document_id, document_type, holder_id)
    - queue_position 1 holds the lease and may edit
    - higher positions wait, read-only, in FIFO order

    Expiration-based locking:
    - Lock is alive while last_heartbeat_ns is within the expiry window
    - Heartbeat renews the lock by moving last_heartbeat_ns forward
    - Expired rows are deleted by whichever client next sweeps the document

    Attributes:
        document_id: Document identifier (primary key)
        document_type: Document discriminator such as "spis" or "order" (primary key)
        holder_id: Contending user's id (primary key)
        holder_name: Display name snapshot taken on acquisition
        acquired_at_ns: Nanosecond timestamp when the caller joined the queue
        last_heartbeat_ns: Nanosecond timestamp of the latest heartbeat
        queue_position: 1-based rank, unique per document
    """

    __tablename__ = "document_locks"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint("document_id", "document_type", "queue_position", name="uq_document_locks_position"),
    )

    document_id: str = Field(primary_key=True)
    document_type: str = Field(primary_key=True)
    holder_id: str = Field(primary_key=True)
    holder_name: str = Field(default="")
    acquired_at_ns: int = Field(default_factory=time.time_ns)
    last_heartbeat_ns: int = Field(default_factory=time.time_ns)
    queue_position: int = Field(default=1)


class LeaseInfo(BaseModel):
    """Read-only lease status handed to the UI.

    Attributes:
        is_locked: Whether anyone holds the document
        locked_by: holder_id of queue position 1
        locked_by_name: Display name of queue position 1
        locked_at_ns: When queue position 1 joined the queue
        is_own_lock: True iff the caller is queue position 1
        queue_position: The caller's position, or N + 1 when not queued
    """

    is_locked: bool
    locked_by: str = ""
    locked_by_name: str = ""
    locked_at_ns: int | None = None
    is_own_lock: bool = False
    queue_position: int = 1

    @classmethod
    def unlocked(cls) -> LeaseInfo:
        return cls(is_locked=False)

    @classmethod
    def from_records(cls, records: Sequence[DocumentLockModel], holder_id: str) -> LeaseInfo | None:
        """Derive the caller's view from records ordered by queue position."""
        if not records:
            return None

        head = records[0]
        own = next((record for record in records if record.holder_id == holder_id), None)
        return cls(
            is_locked=True,
            locked_by=head.holder_id,
            locked_by_name=head.holder_name,
            locked_at_ns=head.acquired_at_ns,
            is_own_lock=head.holder_id == holder_id,
            queue_position=own.queue_position if own else len(records) + 1,
        )

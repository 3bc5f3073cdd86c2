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

"""Document edit leases: one editor per document, everyone else queued."""

from .config import LeaseConfig
from .errors import ConfigError, LeaseConflict, LeaseError, StoreUnavailable, Unauthenticated
from .heartbeat import HeartbeatScheduler
from .identity import Caller, IdentityProvider, SessionIdentity
from .lock_manager import DocumentLockManager
from .models import DocumentLockModel, LeaseInfo, LeaseKey
from .orm import DatabaseEngine, InMemoryDatabaseEngine, SQLDatabaseEngine
from .reconciler import QueueReconciler, plan_positions
from .store import LeaseStore
from .sweeper import ExpirySweeper

__all__ = [
    # Lock manager
    "DocumentLockManager",
    "LeaseConfig",
    # Identity
    "Caller",
    "IdentityProvider",
    "SessionIdentity",
    # Models
    "DocumentLockModel",
    "LeaseInfo",
    "LeaseKey",
    # Components
    "LeaseStore",
    "ExpirySweeper",
    "QueueReconciler",
    "plan_positions",
    "HeartbeatScheduler",
    # ORM
    "DatabaseEngine",
    "InMemoryDatabaseEngine",
    "SQLDatabaseEngine",
    # Errors
    "LeaseError",
    "Unauthenticated",
    "StoreUnavailable",
    "LeaseConflict",
    "ConfigError",
]

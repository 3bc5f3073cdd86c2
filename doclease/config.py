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

"""Lease configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

import dotenv

from .errors import ConfigError

ENV_PREFIX = "DOCLEASE_"


@dataclass
class LeaseConfig:
    """Configuration for document leases.

    Attributes:
        expiry_window: Seconds without a heartbeat after which a lease is dead (default: 120)
        heartbeat_interval: Seconds between heartbeats of a held lease (default: 30)
            Must be < expiry_window / 2 so one missed beat never expires a lease
        store_timeout: Seconds allowed for a single store call (default: 10)
        max_insert_attempts: Queue-append retries after position conflicts (default: 3)
        database_url: Async SQLAlchemy URL; None keeps leases in process memory
    """

    expiry_window: float = 120.0
    heartbeat_interval: float = 30.0
    store_timeout: float = 10.0
    max_insert_attempts: int = 3
    database_url: str | None = None

    def __post_init__(self) -> None:
        for name in ("expiry_window", "heartbeat_interval", "store_timeout", "max_insert_attempts"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.heartbeat_interval >= self.expiry_window / 2:
            raise ConfigError(
                f"heartbeat_interval ({self.heartbeat_interval}s) must be < expiry_window/2 ({self.expiry_window / 2}s)"
            )

    @property
    def expiry_window_ns(self) -> int:
        return int(self.expiry_window * 1_000_000_000)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> LeaseConfig:
        """Build a config from ``DOCLEASE_*`` variables.

        Without an explicit mapping, a ``.env`` file is loaded first and
        ``os.environ`` is read.
        """
        if environ is None:
            dotenv.load_dotenv()
            environ = os.environ

        def read(name: str, cast: type[float] | type[int], default: float | int) -> float | int:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e

        return cls(
            expiry_window=float(read("expiry_window", float, cls.expiry_window)),
            heartbeat_interval=float(read("heartbeat_interval", float, cls.heartbeat_interval)),
            store_timeout=float(read("store_timeout", float, cls.store_timeout)),
            max_insert_attempts=int(read("max_insert_attempts", int, cls.max_insert_attempts)),
            database_url=environ.get(f"{ENV_PREFIX}DATABASE_URL") or None,
        )

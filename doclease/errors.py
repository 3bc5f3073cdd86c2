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

"""Document lease errors.

A record that is already gone is never an error: store calls report it as a
zero count or ``False`` and the lock manager treats it as success.
"""

from __future__ import annotations


class LeaseError(Exception):
    """Base class for document lease errors."""


class Unauthenticated(LeaseError):
    """Raised when no caller identity is available."""


class StoreUnavailable(LeaseError):
    """Raised when the lease store times out or fails with an I/O error.

    Transient: the lease itself is not considered lost.
    """


class LeaseConflict(LeaseError):
    """Raised when an insert collides with an existing holder or queue position."""


class ConfigError(LeaseError, ValueError):
    """Exception raised for configuration errors."""

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

"""Caller identity for lease operations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """The signed-in user contending for document leases.

    Attributes:
        holder_id: Stable unique user id
        holder_name: Display name, snapshotted into the lease on acquisition
    """

    holder_id: str
    holder_name: str

    @classmethod
    def from_names(cls, holder_id: str, first_name: str, last_name: str) -> Caller:
        return cls(holder_id=holder_id, holder_name=f"{first_name} {last_name}".strip())


IdentityProvider = Callable[[], "Caller | None"]


class SessionIdentity:
    """Mutable identity slot following sign-in and sign-out.

    Instances are callable and can be passed wherever an IdentityProvider is
    expected.

    Example:
        >>> identity = SessionIdentity()
        >>> identity.sign_in(Caller("u1", "Jana Novakova"))
        >>> manager = DocumentLockManager(engine=engine, identity=identity)
    """

    def __init__(self, caller: Caller | None = None) -> None:
        self._caller = caller

    def __call__(self) -> Caller | None:
        return self._caller

    def sign_in(self, caller: Caller) -> None:
        self._caller = caller

    def sign_out(self) -> None:
        self._caller = None

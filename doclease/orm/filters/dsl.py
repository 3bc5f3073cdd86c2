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

"""Filter DSL models.

A small, serializable filter vocabulary shared by every storage engine: the
SQL engine compiles it to SQLAlchemy expressions, the in-memory engine
evaluates it against Python objects.
"""

from collections.abc import Sequence
from enum import Enum
from typing import Literal

from pydantic import BaseModel


class FilterOperator(str, Enum):
    """Comparison operators."""

    EQ = "eq"
    LT = "lt"


class FilterBase(BaseModel):
    """Base class for filter nodes."""

    pass


class ComparisonFilter(FilterBase):
    """Single-field comparison."""

    type: Literal["comparison"] = "comparison"
    field: str
    op: FilterOperator
    value: str | int | float | bool | None

    @classmethod
    def eq(cls, field: str, value: str | int | float | bool | None) -> "ComparisonFilter":
        return cls(field=field, op=FilterOperator.EQ, value=value)

    @classmethod
    def lt(cls, field: str, value: str | int | float) -> "ComparisonFilter":
        return cls(field=field, op=FilterOperator.LT, value=value)


class AndFilter(FilterBase):
    """Logical AND of nested filters. An empty AND matches everything."""

    type: Literal["and"] = "and"
    filters: Sequence["ComparisonFilter | AndFilter"]


Filter = ComparisonFilter | AndFilter

AndFilter.model_rebuild()
